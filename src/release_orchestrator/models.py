"""Data models for the release orchestrator."""

import re
from dataclasses import dataclass, field
from typing import Literal

BumpKind = Literal["major", "minor"]

_VERSION_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)$", re.ASCII)


@dataclass(frozen=True, order=True)
class Version:
    """A two-component release version, ordered by major then minor."""

    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse a "major.minor" string.

        Raises:
            ValueError: If the text is not a two-component version
        """
        m = _VERSION_RE.match(text.strip())
        if m is None:
            raise ValueError(f"Invalid version: {text!r}")
        return cls(int(m.group(1)), int(m.group(2)))


@dataclass
class Repository:
    """A repository taking part in a release batch."""

    id: str
    name: str
    current_version: Version | None = None  # None = no prior release
    version_error: str | None = None  # set when the version lookup failed
    bump: BumpKind | None = None
    selected: bool = True

    @property
    def has_prior_release(self) -> bool:
        return self.current_version is not None and self.version_error is None

    @property
    def version_label(self) -> str:
        """Human-readable current version, including the sentinel states."""
        if self.version_error is not None:
            return "Error loading"
        if self.current_version is None:
            return "No releases"
        return str(self.current_version)


@dataclass(frozen=True)
class Ref:
    """A named pointer to a commit or tag object."""

    name: str
    object_id: str


@dataclass(frozen=True)
class Commit:
    """A commit as listed by the remote history query."""

    commit_id: str
    author: str
    comment: str
    work_item_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkItem:
    """A tracked unit of work (story, bug, task)."""

    id: int
    type: str
    title: str
    url: str
    state: str | None = None
    description: str | None = None
    integration_build: str | None = None


@dataclass(frozen=True)
class CommitRange:
    """Commits introduced between two release tags, newest first."""

    commits: list[Commit]
    old_commit_found: bool = True
    truncated: bool = False  # fallback list cut by the configured hard limit


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of releasing a single repository."""

    repository: str
    success: bool
    new_version: Version | None = None
    work_items: tuple[WorkItem, ...] = ()
    error: str | None = None
    warnings: tuple[str, ...] = ()


@dataclass
class BatchResult:
    """Complete result of a release batch."""

    results: list[ProcessingResult]
    work_items: list[WorkItem]
    cancelled: bool = False
    failed: list[ProcessingResult] = field(init=False)

    def __post_init__(self) -> None:
        self.failed = [r for r in self.results if not r.success]
