"""Release batch entry points used by the web interface."""

import logging
import threading
from typing import Iterable

from release_orchestrator.commit_range import CommitRangeComputer
from release_orchestrator.config import Config, config_exists, load_config
from release_orchestrator.devops_client import AzureDevOpsClient
from release_orchestrator.exceptions import ConfigNotFoundError, InvalidConfigError
from release_orchestrator.models import BatchResult, ProcessingResult, Repository, WorkItem
from release_orchestrator.pipeline import BatchContext, ReleasePipeline, consolidated_work_items
from release_orchestrator.refs import REMOTE_ERRORS, RefResolver
from release_orchestrator.work_items import WorkItemResolver

logger = logging.getLogger(__name__)


def get_config() -> Config:
    """Load the configuration, translating failures into release errors.

    Raises:
        ConfigNotFoundError: If config file not found
        InvalidConfigError: If config is invalid
    """
    if not config_exists():
        raise ConfigNotFoundError(
            "Configuration not found. Create ~/.release-orchestrator/config.toml to set up."
        )
    try:
        return load_config()
    except ValueError as e:
        raise InvalidConfigError(str(e)) from e


def load_repositories(
    names: Iterable[str] | None = None, client: AzureDevOpsClient | None = None
) -> list[Repository]:
    """Build the batch's repositories with their current release versions.

    A failed version lookup doesn't raise: the repository gets ``version_error``
    set and is then released as if it had never been released before.

    Args:
        names: Repository names; defaults to the configured list
        client: Client to use; one is created from the configuration if omitted
    """
    if client is None or names is None:
        config = get_config()
        client = client or AzureDevOpsClient(config)
        names = config.repositories if names is None else names

    resolver = RefResolver(client)
    repositories: list[Repository] = []
    for name in names:
        try:
            version = resolver.resolve_latest_release_version(name)
            repositories.append(Repository(id=name, name=name, current_version=version))
        except REMOTE_ERRORS as e:
            logger.error("Error fetching version for %s: %s", name, e)
            repositories.append(Repository(id=name, name=name, version_error=str(e)))
    return repositories


def build_pipeline(config: Config, client: AzureDevOpsClient) -> ReleasePipeline:
    resolver = RefResolver(client)
    return ReleasePipeline(
        client,
        resolver=resolver,
        range_computer=CommitRangeComputer(
            client,
            resolver,
            page_size=config.commit_page_size,
            max_fallback_commits=config.max_fallback_commits,
        ),
        work_item_resolver=WorkItemResolver(client, config.integration_build_field),
    )


def run_release_batch(
    repositories: list[Repository],
    cancel: threading.Event | None = None,
    client: AzureDevOpsClient | None = None,
) -> BatchResult:
    """Release a batch of repositories and consolidate their work items.

    Args:
        repositories: Repositories in processing order; unselected ones are skipped
        cancel: Optional event that stops the batch between repositories
        client: Client to use; one is created from the configuration if omitted

    Returns:
        BatchResult with one ProcessingResult per processed repository and the
        batch-wide deduplicated work items

    Raises:
        ConfigNotFoundError: If config file not found
        InvalidConfigError: If config is invalid
    """
    config = get_config()
    client = client or AzureDevOpsClient(config)
    context = BatchContext(
        source_branch=config.source_branch,
        max_workers=config.max_workers,
        cancel=cancel or threading.Event(),
    )

    results = build_pipeline(config, client).run(repositories, context)
    work_items = consolidated_work_items(results)

    for failed in (r for r in results if not r.success):
        logger.warning("%s: %s", failed.repository, failed.error)
    logger.info(
        "Release batch finished: %d succeeded, %d failed, %d unique work items",
        sum(1 for r in results if r.success),
        sum(1 for r in results if not r.success),
        len(work_items),
    )

    selected = sum(1 for r in repositories if r.selected)
    cancelled = context.cancelled and len(results) < selected
    return BatchResult(results=results, work_items=work_items, cancelled=cancelled)


def integration_build_version(
    results: Iterable[ProcessingResult],
    repositories: Iterable[Repository],
    main_repository: str | None,
) -> str:
    """Version label stamped on exported work items.

    Uses the new version of the main repository, falling back to its current
    version and finally to ``1.0``.
    """
    for result in results:
        if result.repository == main_repository and result.new_version is not None:
            return str(result.new_version)
    for repository in repositories:
        if repository.name == main_repository and repository.current_version is not None:
            return str(repository.current_version)
    return "1.0"


def stamp_integration_build(
    work_item_ids: Iterable[int], build: str, client: AzureDevOpsClient | None = None
) -> list[int]:
    """Write the integration build label onto each work item.

    Returns:
        Ids of the work items that could not be updated
    """
    config = get_config()
    client = client or AzureDevOpsClient(config)
    failed: list[int] = []
    for work_item_id in work_item_ids:
        try:
            client.update_work_item_field(work_item_id, config.integration_build_field, build)
        except REMOTE_ERRORS as e:
            logger.error("Error updating work item %s: %s", work_item_id, e)
            failed.append(work_item_id)
    return failed


def batch_result_to_dict(result: BatchResult) -> dict:
    """Convert a BatchResult to a JSON-serializable dict."""

    def _work_item_dict(w: WorkItem) -> dict:
        return {
            "id": w.id,
            "type": w.type,
            "title": w.title,
            "description": w.description,
            "state": w.state,
            "url": w.url,
        }

    results = []
    for r in result.results:
        results.append({
            "repository": r.repository,
            "success": r.success,
            "new_version": str(r.new_version) if r.new_version is not None else None,
            "error": r.error,
            "warnings": list(r.warnings),
            "work_items": [_work_item_dict(w) for w in r.work_items],
        })

    return {
        "results": results,
        "cancelled": result.cancelled,
        "work_items": [_work_item_dict(w) for w in result.work_items],
        "release_notes": [
            {"type": w.type, "id": w.id, "title": w.title, "url": w.url}
            for w in result.work_items
        ],
    }
