"""Commit range computation between two releases."""

import logging

from release_orchestrator.devops_client import AzureDevOpsClient
from release_orchestrator.exceptions import RangeQueryFailed, RefNotFound
from release_orchestrator.models import Commit, CommitRange
from release_orchestrator.refs import REMOTE_ERRORS, RefResolver

logger = logging.getLogger(__name__)


def _parse_commit(raw: dict) -> Commit:
    """Convert a raw commit dict from the API into a Commit."""
    author = raw.get("author") or {}
    return Commit(
        commit_id=raw["commitId"],
        author=author.get("name", ""),
        comment=raw.get("comment", ""),
        work_item_ids=tuple(str(wi["id"]) for wi in raw.get("workItems") or []),
    )


def commits_after(commits: list[Commit], old_commit_id: str) -> tuple[list[Commit], bool]:
    """Cut a newest-first commit listing at the old release commit.

    Returns:
        Tuple of (commits newer than ``old_commit_id``, whether it was found).
        When the old commit is not in the listing the whole listing is returned.
    """
    for index, commit in enumerate(commits):
        if commit.commit_id == old_commit_id:
            return commits[:index], True
    return list(commits), False


class CommitRangeComputer:
    """Computes the commits introduced between two points of a repository."""

    def __init__(
        self,
        client: AzureDevOpsClient,
        resolver: RefResolver | None = None,
        page_size: int = 1000,
        max_fallback_commits: int | None = None,
    ) -> None:
        self.client = client
        self.resolver = resolver or RefResolver(client)
        self.page_size = page_size
        self.max_fallback_commits = max_fallback_commits

    def commits_between_branches(
        self, repository: str, base_branch: str, compare_branch: str
    ) -> list[Commit]:
        """Commits on ``compare_branch`` that are not on ``base_branch``.

        Raises:
            RangeQueryFailed: If the comparison query fails
        """
        try:
            raw = self.client.get_commits(
                repository, item_version=compare_branch, compare_version=base_branch
            )
            return [_parse_commit(c) for c in raw]
        except REMOTE_ERRORS as e:
            raise RangeQueryFailed(
                f"Cannot compare {base_branch}..{compare_branch} in {repository}: {e}"
            ) from e

    def commits_between_tags(self, repository: str, old_tag: str, new_tag: str) -> CommitRange:
        """Commits reachable from ``new_tag`` but not from ``old_tag``, newest first.

        There is no native tag range query, so the history below the new tag is
        listed (one page of ``page_size`` commits) and cut at the old tag's commit.
        If the old commit is not in that page, the whole page is returned and the
        range is flagged with ``old_commit_found=False``.

        Raises:
            RangeQueryFailed: If a tag is missing or the remote query fails
        """
        try:
            old_commit_id = self.resolver.resolve_tag_commit(repository, old_tag)
            new_commit_id = self.resolver.resolve_tag_commit(repository, new_tag)

            logger.info(
                "Getting commits between tags %s (%s) and %s (%s) in %s",
                old_tag, old_commit_id, new_tag, new_commit_id, repository,
            )

            raw = self.client.get_commits(
                repository,
                item_version=new_commit_id,
                version_type="commit",
                top=self.page_size,
            )
            listing = [_parse_commit(c) for c in raw]
        except RefNotFound as e:
            raise RangeQueryFailed(str(e)) from e
        except REMOTE_ERRORS as e:
            raise RangeQueryFailed(
                f"Cannot list commits between {old_tag} and {new_tag} in {repository}: {e}"
            ) from e

        commits, found = commits_after(listing, old_commit_id)
        if found:
            logger.info(
                "Found %d commits between tags (out of %d listed)", len(commits), len(listing)
            )
            return CommitRange(commits=commits)

        logger.warning(
            "Old commit %s not found in history of %s, returning all %d listed commits",
            old_commit_id, repository, len(listing),
        )
        truncated = False
        if self.max_fallback_commits is not None and len(commits) > self.max_fallback_commits:
            commits = commits[: self.max_fallback_commits]
            truncated = True
            logger.warning(
                "Fallback range for %s capped at %d commits", repository, self.max_fallback_commits
            )
        return CommitRange(commits=commits, old_commit_found=False, truncated=truncated)
