"""Shared fixtures for release orchestrator tests."""

from unittest.mock import MagicMock

import pytest

from release_orchestrator.config import Config


@pytest.fixture
def config():
    """A valid configuration that retries without sleeping."""
    return Config(
        organization="contoso",
        project="Platform",
        personal_access_token="secret-token",
        repositories=["Api", "Web"],
        main_repository="Api",
        retry_attempts=3,
        retry_base_delay=0,
        retry_max_delay=0,
    )


@pytest.fixture
def client():
    """A mock Azure DevOps client with no refs, commits or links."""
    mock_client = MagicMock()
    mock_client.list_refs.return_value = []
    mock_client.get_commits.return_value = []
    mock_client.get_commit_work_item_ids.return_value = []
    mock_client.get_pull_request_work_item_ids.return_value = []
    return mock_client
