"""Work item reference extraction from commits.

Each extractor looks at a commit from a different angle and returns the
work item ids it can see. ``WorkItemExtractor`` runs all of them on every
commit and unions the results, so a commit that is linked, mentions ``#123``
and is a pull request merge contributes through every channel.
"""

import logging
import re
from typing import Iterable, Protocol

from release_orchestrator.devops_client import AzureDevOpsClient
from release_orchestrator.exceptions import PullRequestLookupFailed
from release_orchestrator.models import Commit
from release_orchestrator.refs import REMOTE_ERRORS

logger = logging.getLogger(__name__)

PULL_REQUEST_MERGE_RE = re.compile(r"Merged PR (\d+)", re.IGNORECASE | re.ASCII)
INLINE_REFERENCE_RE = re.compile(r"(?:AB)?#(\d+)", re.IGNORECASE | re.ASCII)


class Extractor(Protocol):
    def extract(self, repository: str, commit: Commit) -> set[str]: ...


class ExplicitLinkExtractor:
    """Work items listed on the commit record itself."""

    def extract(self, repository: str, commit: Commit) -> set[str]:
        return set(commit.work_item_ids)


class InlineReferenceExtractor:
    """``#123`` and ``AB#123`` mentions anywhere in the commit message."""

    def extract(self, repository: str, commit: Commit) -> set[str]:
        return set(INLINE_REFERENCE_RE.findall(commit.comment))


class PullRequestMergeExtractor:
    """Work items linked to the pull request a merge commit came from."""

    def __init__(self, client: AzureDevOpsClient) -> None:
        self.client = client

    def extract(self, repository: str, commit: Commit) -> set[str]:
        m = PULL_REQUEST_MERGE_RE.search(commit.comment)
        if m is None:
            return set()
        pull_request_id = m.group(1)
        try:
            return set(self._linked_ids(repository, pull_request_id))
        except PullRequestLookupFailed as e:
            logger.warning("Skipping work items of PR %s in %s: %s", pull_request_id, repository, e)
            return set()

    def _linked_ids(self, repository: str, pull_request_id: str) -> list[str]:
        try:
            return self.client.get_pull_request_work_item_ids(repository, pull_request_id)
        except REMOTE_ERRORS as e:
            raise PullRequestLookupFailed(str(e)) from e


class CommitLinkExtractor:
    """Work items linked to the commit on the server side."""

    def __init__(self, client: AzureDevOpsClient) -> None:
        self.client = client

    def extract(self, repository: str, commit: Commit) -> set[str]:
        try:
            return set(self.client.get_commit_work_item_ids(repository, commit.commit_id))
        except REMOTE_ERRORS as e:
            logger.warning(
                "Error fetching work items for commit %s in %s: %s",
                commit.commit_id, repository, e,
            )
            return set()


def default_extractors(client: AzureDevOpsClient) -> list[Extractor]:
    return [
        ExplicitLinkExtractor(),
        PullRequestMergeExtractor(client),
        InlineReferenceExtractor(),
        CommitLinkExtractor(client),
    ]


class WorkItemExtractor:
    """Collects the unique work item ids referenced by a sequence of commits."""

    def __init__(self, extractors: Iterable[Extractor]) -> None:
        self.extractors = list(extractors)

    def extract(self, repository: str, commits: Iterable[Commit]) -> list[str]:
        """Run every extractor on every commit.

        Returns:
            Unique ids in the order they were first discovered.
        """
        found: dict[str, None] = {}
        for commit in commits:
            for extractor in self.extractors:
                # sorted so the discovery order doesn't depend on set iteration
                for work_item_id in sorted(extractor.extract(repository, commit), key=_id_key):
                    found.setdefault(work_item_id, None)
        logger.debug("Extracted %d work item ids from %s", len(found), repository)
        return list(found)


def _id_key(work_item_id: str) -> tuple[int, str]:
    return (int(work_item_id), work_item_id) if work_item_id.isdigit() else (0, work_item_id)
