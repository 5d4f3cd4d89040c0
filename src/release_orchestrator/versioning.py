"""Version bump policy and release ref naming."""

import re

from release_orchestrator.models import BumpKind, Version

DEFAULT_BUMP: BumpKind = "minor"

_RELEASE_BRANCH_PREFIX = "refs/heads/release/"
_RELEASE_BRANCH_RE = re.compile(r"^refs/heads/release/(\d+)\.(\d+)\.x$", re.ASCII)


def next_version(current: Version | None, bump: BumpKind) -> Version:
    """Compute the version that follows ``current`` for the given bump kind.

    ``None`` stands for both "never released" and "version lookup failed";
    either way the repository is seeded with 1.0 (major) or 0.1 (minor).
    """
    if bump not in ("major", "minor"):
        raise ValueError(f"Unknown bump kind: {bump!r}")
    if current is None:
        return Version(1, 0) if bump == "major" else Version(0, 1)
    if bump == "major":
        return Version(current.major + 1, 0)
    return Version(current.major, current.minor + 1)


def release_branch_name(version: Version) -> str:
    """Full ref name of the release branch for a version."""
    return f"{_RELEASE_BRANCH_PREFIX}{version}.x"


def release_tag_name(version: Version) -> str:
    return str(version)


def release_tag_message(version: Version) -> str:
    return f"Release {version}"


def parse_release_branch(ref_name: str) -> Version | None:
    """Parse the version out of a release branch ref name.

    Returns None for anything that is not ``refs/heads/release/<M>.<m>.x``.
    """
    m = _RELEASE_BRANCH_RE.match(ref_name)
    if m is None:
        return None
    return Version(int(m.group(1)), int(m.group(2)))
