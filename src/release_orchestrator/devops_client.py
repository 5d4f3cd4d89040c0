"""Azure DevOps REST API client with retry logic."""

import logging
from typing import Any

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from release_orchestrator.config import Config

logger = logging.getLogger(__name__)

_EMPTY_OBJECT_ID = "0" * 40
_TIMEOUT = 15


class RateLimitError(Exception):
    """Raised when the Azure DevOps API rate limit is hit."""

    pass


class AuthenticationError(Exception):
    """Raised when Azure DevOps authentication fails."""

    pass


class ConnectionError(Exception):
    """Raised when the Azure DevOps server cannot be reached."""

    pass


class ApiError(Exception):
    """Raised for a non-success response from the Azure DevOps API."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"API Error: {status_code} - {message}")
        self.status_code = status_code


class _TransientApiError(ApiError):
    """Server-side failure worth retrying."""

    pass


def _values(data: Any) -> list:
    """The ``value`` list of a collection response; empty bodies have none."""
    return (data or {}).get("value") or []


class AzureDevOpsClient:
    """Client for the Azure DevOps git and work item tracking APIs."""

    def __init__(self, config: Config, session: requests.Session | None = None) -> None:
        """Initialize the client with configuration."""
        self.config = config
        self._session = session
        self._retrying = Retrying(
            retry=retry_if_exception_type(
                (RateLimitError, ConnectionError, _TransientApiError)
            ),
            stop=stop_after_attempt(config.retry_attempts),
            wait=wait_exponential(
                multiplier=config.retry_base_delay, max=config.retry_max_delay
            ),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )

    @property
    def project_url(self) -> str:
        return (
            f"https://dev.azure.com/{self.config.organization}/{self.config.project}"
        )

    @property
    def organization_url(self) -> str:
        return f"https://dev.azure.com/{self.config.organization}"

    def _get_session(self) -> requests.Session:
        """Get or create the HTTP session."""
        if self._session is None:
            session = requests.Session()
            session.auth = ("", self.config.personal_access_token)
            session.headers.update({"Content-Type": "application/json"})
            self._session = session
        return self._session

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Perform a single API call under the retry policy and return the JSON body."""
        return self._retrying.copy()(self._send, method, url, **kwargs)

    def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        params = dict(kwargs.pop("params", None) or {})
        params.setdefault("api-version", self.config.api_version)
        try:
            response = self._get_session().request(
                method, url, params=params, timeout=_TIMEOUT, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise ConnectionError(
                f"Cannot connect to Azure DevOps at {self.organization_url}. "
                "Check the organization name and your network connection."
            ) from e

        status = response.status_code
        if status == 429:
            raise RateLimitError(
                "Rate limited by Azure DevOps. Retrying with exponential backoff..."
            )
        if status in (401, 203):
            # 203 is returned with a sign-in page when the token is rejected
            raise AuthenticationError(
                "Authentication failed. Check your personal access token."
            )
        if status == 403:
            raise AuthenticationError(
                "Access denied. Check the scopes of your personal access token."
            )
        if status >= 500:
            raise _TransientApiError(status, response.text[:300])
        if status >= 400:
            raise ApiError(status, response.text[:300])

        if not response.content:
            return None
        return response.json()

    def _git_url(self, repository: str, path: str = "") -> str:
        return f"{self.project_url}/_apis/git/repositories/{repository}{path}"

    def list_repositories(self) -> list[dict]:
        """List the git repositories of the project.

        Returns:
            List of raw repository dicts (``id``, ``name``, ...)
        """
        data = self._request("GET", f"{self.project_url}/_apis/git/repositories")
        return _values(data)

    def list_refs(self, repository: str, filter: str) -> list[dict]:
        """List refs whose name (without ``refs/``) starts with ``filter``.

        Args:
            repository: Repository name or id
            filter: Ref prefix such as ``heads/release`` or ``tags``

        Returns:
            List of raw ref dicts with ``name`` and ``objectId``
        """
        data = self._request("GET", self._git_url(repository, "/refs"), params={"filter": filter})
        return _values(data)

    def get_commits(
        self,
        repository: str,
        item_version: str,
        version_type: str = "branch",
        compare_version: str | None = None,
        top: int | None = None,
    ) -> list[dict]:
        """List commits reachable from ``item_version``, newest first.

        When ``compare_version`` is given the API returns only the commits
        reachable from ``item_version`` but not from ``compare_version``.
        """
        params: dict[str, Any] = {
            "searchCriteria.itemVersion.version": item_version,
            "searchCriteria.itemVersion.versionType": version_type,
        }
        if compare_version is not None:
            params["searchCriteria.compareVersion.version"] = compare_version
        if top is not None:
            params["searchCriteria.$top"] = top
        data = self._request("GET", self._git_url(repository, "/commits"), params=params)
        return _values(data)

    def create_ref(self, repository: str, name: str, object_id: str) -> dict:
        """Create a new ref pointing at ``object_id``.

        Raises:
            ApiError: If the ref could not be created (e.g. it already exists)
        """
        data = self._request(
            "POST",
            self._git_url(repository, "/refs"),
            json=[{"name": name, "oldObjectId": _EMPTY_OBJECT_ID, "newObjectId": object_id}],
        )
        updates = _values(data)
        update = updates[0] if updates else {}
        if update.get("success") is False:
            raise ApiError(409, update.get("customMessage") or f"Ref {name} was not created")
        return update

    def create_annotated_tag(
        self, repository: str, name: str, object_id: str, message: str
    ) -> dict:
        """Create an annotated tag object targeting ``object_id``."""
        return self._request(
            "POST",
            self._git_url(repository, "/annotatedtags"),
            json={"name": name, "taggedObject": {"objectId": object_id}, "message": message},
        )

    def get_annotated_tag(self, repository: str, tag_object_id: str) -> dict:
        return self._request(
            "GET", self._git_url(repository, f"/annotatedtags/{tag_object_id}")
        )

    def get_commit_work_item_ids(self, repository: str, commit_id: str) -> list[str]:
        """Get ids of work items linked to a commit on the server side."""
        data = self._request(
            "GET", self._git_url(repository, f"/commits/{commit_id}/workitems")
        )
        return [str(item["id"]) for item in _values(data)]

    def get_pull_request_work_item_ids(self, repository: str, pull_request_id: str) -> list[str]:
        """Get ids of work items linked to a pull request."""
        data = self._request(
            "GET", self._git_url(repository, f"/pullrequests/{pull_request_id}/workitems")
        )
        return [str(item["id"]) for item in _values(data)]

    def get_work_item(self, work_item_id: str) -> dict:
        """Fetch the raw record of a single work item."""
        return self._request(
            "GET", f"{self.organization_url}/_apis/wit/workitems/{work_item_id}"
        )

    def update_work_item_field(self, work_item_id: int, field_name: str, value: str) -> dict:
        """Set a single field on a work item with a JSON patch document."""
        return self._request(
            "PATCH",
            f"{self.organization_url}/_apis/wit/workitems/{work_item_id}",
            json=[{"op": "add", "path": f"/fields/{field_name}", "value": value}],
            headers={"Content-Type": "application/json-patch+json"},
        )
