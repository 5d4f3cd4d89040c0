"""Exception hierarchy for the release orchestrator."""


class ReleaseError(Exception):
    """Base exception for release errors."""

    pass


class ConfigNotFoundError(ReleaseError):
    """Configuration file not found."""

    pass


class InvalidConfigError(ReleaseError):
    """Configuration is invalid."""

    pass


class RefNotFound(ReleaseError):
    """A branch or tag ref does not exist in the repository."""

    pass


class RefCreationFailed(ReleaseError):
    """The release branch could not be created."""

    pass


class TagCreationFailed(ReleaseError):
    """The release tag could not be created."""

    pass


class RangeQueryFailed(ReleaseError):
    """The commit range between two releases could not be computed."""

    pass


class TagDereferenceFailed(ReleaseError):
    """An annotated tag object could not be fetched."""

    pass


class WorkItemFetchFailed(ReleaseError):
    """A single work item could not be fetched."""

    pass


class PullRequestLookupFailed(ReleaseError):
    """Work items linked to a pull request could not be fetched."""

    pass

