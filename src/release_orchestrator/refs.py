"""Resolution of branch and tag refs to commit ids."""

import logging

import requests

from release_orchestrator.devops_client import (
    ApiError,
    AuthenticationError,
    AzureDevOpsClient,
    ConnectionError,
    RateLimitError,
)
from release_orchestrator.exceptions import RefNotFound, TagDereferenceFailed
from release_orchestrator.models import Ref, Version
from release_orchestrator.versioning import parse_release_branch

logger = logging.getLogger(__name__)

# Everything a single remote call can raise once retries are exhausted.
REMOTE_ERRORS = (
    ApiError,
    AuthenticationError,
    ConnectionError,
    RateLimitError,
    requests.RequestException,
    KeyError,
    ValueError,
)


def _to_refs(raw_refs: list[dict]) -> list[Ref]:
    return [Ref(name=r["name"], object_id=r["objectId"]) for r in raw_refs]


class RefResolver:
    """Resolves symbolic names to commit ids in a remote repository."""

    def __init__(self, client: AzureDevOpsClient) -> None:
        self.client = client

    def resolve_branch_head(self, repository: str, branch: str) -> str:
        """Get the commit id a branch currently points at.

        Raises:
            RefNotFound: If the branch does not exist
        """
        full_name = f"refs/heads/{branch}"
        refs = _to_refs(self.client.list_refs(repository, f"heads/{branch}"))
        for ref in refs:
            # the filter is a prefix match, so "main" also lists "main-old"
            if ref.name == full_name:
                return ref.object_id
        raise RefNotFound(f"Source branch {full_name} not found in {repository}")

    def resolve_latest_release_version(self, repository: str) -> Version | None:
        """Find the highest version among the repository's release branches.

        Returns:
            The maximum parsed version, or None when there are no release branches.
            Branch names that don't follow the release pattern are ignored.
        """
        refs = _to_refs(self.client.list_refs(repository, "heads/release"))
        versions = [v for v in (parse_release_branch(r.name) for r in refs) if v is not None]
        if not versions:
            return None
        return max(versions)

    def dereference_tag(self, repository: str, tag_object_id: str) -> str:
        """Follow an annotated tag object to the commit it tags.

        Lightweight tags point straight at a commit and have no tag object to
        fetch, so on failure the object id itself is returned as the commit id.
        """
        try:
            return self._tag_target(repository, tag_object_id)
        except TagDereferenceFailed as e:
            logger.warning(
                "Failed to dereference tag object %s in %s, treating as lightweight tag: %s",
                tag_object_id, repository, e,
            )
            return tag_object_id

    def _tag_target(self, repository: str, tag_object_id: str) -> str:
        try:
            tag = self.client.get_annotated_tag(repository, tag_object_id)
            return tag["taggedObject"]["objectId"]
        except (*REMOTE_ERRORS, TypeError) as e:
            raise TagDereferenceFailed(str(e)) from e

    def find_tag(self, repository: str, tag_name: str) -> Ref:
        """Look up the ref of a tag by its short name.

        Raises:
            RefNotFound: If the tag does not exist
        """
        full_name = f"refs/tags/{tag_name}"
        for ref in _to_refs(self.client.list_refs(repository, "tags")):
            if ref.name == full_name:
                return ref
        raise RefNotFound(f"Tag {tag_name} not found in {repository}")

    def resolve_tag_commit(self, repository: str, tag_name: str) -> str:
        """Resolve a tag name to the commit id it marks."""
        ref = self.find_tag(repository, tag_name)
        return self.dereference_tag(repository, ref.object_id)
