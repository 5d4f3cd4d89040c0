"""Per-repository release pipeline and batch orchestration."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from release_orchestrator.commit_range import CommitRangeComputer
from release_orchestrator.devops_client import AzureDevOpsClient
from release_orchestrator.exceptions import (
    RangeQueryFailed,
    RefCreationFailed,
    RefNotFound,
    ReleaseError,
    TagCreationFailed,
)
from release_orchestrator.extraction import WorkItemExtractor, default_extractors
from release_orchestrator.models import ProcessingResult, Repository, WorkItem
from release_orchestrator.refs import REMOTE_ERRORS, RefResolver
from release_orchestrator.versioning import (
    DEFAULT_BUMP,
    next_version,
    release_branch_name,
    release_tag_message,
    release_tag_name,
)
from release_orchestrator.work_items import WorkItemResolver, consolidate

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Stages a repository goes through, in order."""

    SOURCE_COMMIT_RESOLVED = "source commit resolved"
    BRANCH_CREATED = "branch created"
    TAG_CREATED = "tag created"
    RANGE_COMPUTED = "range computed"
    WORK_ITEMS_EXTRACTED = "work items extracted"
    RECORDED = "recorded"


@dataclass(frozen=True)
class BatchContext:
    """Settings shared by every repository of one batch."""

    source_branch: str = "main"
    max_workers: int = 1
    cancel: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


class ReleasePipeline:
    """Releases repositories one by one and collects their work items.

    A failure before the release tag exists fails only that repository.
    Anything that goes wrong afterwards just leaves the repository without
    work items; the branch and tag are already there.
    """

    def __init__(
        self,
        client: AzureDevOpsClient,
        resolver: RefResolver | None = None,
        range_computer: CommitRangeComputer | None = None,
        extractor: WorkItemExtractor | None = None,
        work_item_resolver: WorkItemResolver | None = None,
    ) -> None:
        self.client = client
        self.resolver = resolver or RefResolver(client)
        self.range_computer = range_computer or CommitRangeComputer(client, self.resolver)
        self.extractor = extractor or WorkItemExtractor(default_extractors(client))
        self.work_item_resolver = work_item_resolver or WorkItemResolver(client)

    def run(
        self, repositories: Iterable[Repository], context: BatchContext | None = None
    ) -> list[ProcessingResult]:
        """Process every selected repository and return the results in input order.

        The cancel event of the context is checked before each repository is
        started; a repository that has started always runs to the end.
        """
        context = context or BatchContext()
        selected = [r for r in repositories if r.selected]
        logger.info("Starting release batch for %d repositories", len(selected))

        if context.max_workers > 1:
            results = self._run_parallel(selected, context)
        else:
            results = []
            for repository in selected:
                if context.cancelled:
                    break
                results.append(self.process_repository(repository, context))

        if context.cancelled and len(results) < len(selected):
            logger.warning(
                "Release batch cancelled after %d of %d repositories",
                len(results), len(selected),
            )
        return results

    def _run_parallel(
        self, repositories: list[Repository], context: BatchContext
    ) -> list[ProcessingResult]:
        def task(repository: Repository) -> ProcessingResult | None:
            if context.cancelled:
                return None
            return self.process_repository(repository, context)

        with ThreadPoolExecutor(max_workers=context.max_workers) as pool:
            # map() yields in submission order, which keeps the input order
            outcomes = list(pool.map(task, repositories))
        return [r for r in outcomes if r is not None]

    def process_repository(
        self, repository: Repository, context: BatchContext | None = None
    ) -> ProcessingResult:
        """Run all stages for a single repository. Never raises."""
        context = context or BatchContext()
        bump = repository.bump or DEFAULT_BUMP
        current = repository.current_version if repository.has_prior_release else None
        stage = None

        try:
            new_version = next_version(current, bump)
            source_commit = self.resolver.resolve_branch_head(repository.id, context.source_branch)
            stage = Stage.SOURCE_COMMIT_RESOLVED
            self._log_stage(repository, stage)

            self._create_branch(repository, release_branch_name(new_version), source_commit)
            stage = Stage.BRANCH_CREATED
            self._log_stage(repository, stage)

            self._create_tag(
                repository,
                release_tag_name(new_version),
                source_commit,
                release_tag_message(new_version),
            )
            stage = Stage.TAG_CREATED
            self._log_stage(repository, stage)
        except (ReleaseError, *REMOTE_ERRORS) as e:
            after = stage.value if stage else "start"
            logger.error("Release of %s failed after stage '%s': %s", repository.name, after, e)
            return ProcessingResult(repository=repository.name, success=False, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error releasing %s", repository.name)
            return ProcessingResult(repository=repository.name, success=False, error=str(e))

        work_items: list[WorkItem] = []
        warnings: list[str] = []
        if current is None:
            logger.info(
                "%s has no previous release (%s), skipping work items",
                repository.name, repository.version_label,
            )
        else:
            try:
                work_items = self._collect_work_items(
                    repository, release_tag_name(current), release_tag_name(new_version), warnings
                )
            except RangeQueryFailed as e:
                logger.error("Error fetching commits between tags for %s: %s", repository.name, e)
                warnings.append(f"Work items unavailable: {e}")
            except Exception as e:
                # the branch and tag exist by now, so the release still counts
                logger.exception("Unexpected error collecting work items for %s", repository.name)
                warnings.append(f"Work items unavailable: {e}")

        logger.info(
            "Released %s %s with %d work items", repository.name, new_version, len(work_items)
        )
        self._log_stage(repository, Stage.RECORDED)
        return ProcessingResult(
            repository=repository.name,
            success=True,
            new_version=new_version,
            work_items=tuple(work_items),
            warnings=tuple(warnings),
        )

    def _create_branch(self, repository: Repository, name: str, commit_id: str) -> None:
        try:
            self.client.create_ref(repository.id, name, commit_id)
        except REMOTE_ERRORS as e:
            raise RefCreationFailed(f"Cannot create branch {name}: {e}") from e

    def _create_tag(self, repository: Repository, name: str, commit_id: str, message: str) -> None:
        try:
            self.client.create_annotated_tag(repository.id, name, commit_id, message)
        except REMOTE_ERRORS as e:
            raise TagCreationFailed(f"Cannot create tag {name}: {e}") from e

    def _collect_work_items(
        self, repository: Repository, old_tag: str, new_tag: str, warnings: list[str]
    ) -> list[WorkItem]:
        commit_range = self.range_computer.commits_between_tags(repository.id, old_tag, new_tag)
        if not commit_range.old_commit_found:
            warnings.append(
                f"Tag {old_tag} not found in the history of {new_tag}; "
                f"used all {len(commit_range.commits)} listed commits"
                + (" (capped)" if commit_range.truncated else "")
            )
        self._log_stage(repository, Stage.RANGE_COMPUTED)

        ids = self.extractor.extract(repository.id, commit_range.commits)
        self._log_stage(repository, Stage.WORK_ITEMS_EXTRACTED)
        return self.work_item_resolver.resolve(ids)

    def _log_stage(self, repository: Repository, stage: Stage) -> None:
        logger.debug("%s: %s", repository.name, stage.value)


def consolidated_work_items(results: Iterable[ProcessingResult]) -> list[WorkItem]:
    """Batch-wide unique work items, first seen wins, in result order."""
    return consolidate(r.work_items for r in results if r.success)
