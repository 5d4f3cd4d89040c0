"""Tests for the release batch entry points."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from release_orchestrator.devops_client import ApiError, ConnectionError
from release_orchestrator.exceptions import ConfigNotFoundError, InvalidConfigError
from release_orchestrator.models import (
    BatchResult,
    ProcessingResult,
    Repository,
    Version,
    WorkItem,
)
from release_orchestrator.releases import (
    batch_result_to_dict,
    integration_build_version,
    load_repositories,
    run_release_batch,
    stamp_integration_build,
)


def _release_client(failing_tags=()):
    """Mock client where every repository has release 1.2 and one commit after it."""
    client = MagicMock()

    def list_refs(repository, filter):
        if filter == "heads/main":
            return [{"name": "refs/heads/main", "objectId": f"{repository}-head"}]
        if filter == "tags":
            return [
                {"name": "refs/tags/1.2", "objectId": f"{repository}-old"},
                {"name": "refs/tags/1.3", "objectId": f"{repository}-head"},
            ]
        return []

    def create_annotated_tag(repository, name, object_id, message):
        if repository in failing_tags:
            raise ApiError(409, f"Tag {name} already exists")
        return {"objectId": "tagobj"}

    client.list_refs.side_effect = list_refs
    client.create_annotated_tag.side_effect = create_annotated_tag
    client.get_annotated_tag.side_effect = ApiError(404, "lightweight")
    client.get_commits.side_effect = lambda repository, **kwargs: [
        {"commitId": f"{repository}-head", "comment": "Merged PR 1: shared #100", "author": {}},
        {"commitId": f"{repository}-old", "comment": "#999", "author": {}},
    ]
    client.get_commit_work_item_ids.return_value = []
    client.get_pull_request_work_item_ids.side_effect = lambda repository, pr: [
        {"Api": "200", "Web": "300", "Worker": "400"}[repository]
    ]
    client.get_work_item.side_effect = lambda wid: {
        "id": int(wid),
        "url": f"https://example.com/{wid}",
        "fields": {"System.WorkItemType": "Bug", "System.Title": f"Item {wid}"},
    }
    return client


class TestGetConfigErrors:
    """Configuration problems surface as release errors."""

    @patch("release_orchestrator.releases.config_exists", return_value=False)
    def test_raises_when_no_config(self, mock_exists):
        with pytest.raises(ConfigNotFoundError):
            run_release_batch([Repository(id="Api", name="Api")])

    @patch("release_orchestrator.releases.load_config")
    @patch("release_orchestrator.releases.config_exists", return_value=True)
    def test_raises_when_invalid_config(self, mock_exists, mock_load):
        mock_load.side_effect = ValueError("bad config")
        with pytest.raises(InvalidConfigError, match="bad config"):
            run_release_batch([Repository(id="Api", name="Api")])


class TestLoadRepositories:
    """Tests for load_repositories."""

    def test_reads_latest_release_branches(self, client):
        client.list_refs.side_effect = lambda repository, filter: {
            "Api": [{"name": "refs/heads/release/1.2.x", "objectId": "a"}],
            "Web": [],
        }[repository]

        repos = load_repositories(["Api", "Web"], client=client)

        assert [(r.name, r.current_version) for r in repos] == [("Api", Version(1, 2)), ("Web", None)]
        assert [r.version_label for r in repos] == ["1.2", "No releases"]

    def test_lookup_error_sets_sentinel(self, client):
        client.list_refs.side_effect = ConnectionError("down")

        repos = load_repositories(["Api"], client=client)

        assert repos[0].version_error is not None
        assert repos[0].has_prior_release is False
        assert repos[0].version_label == "Error loading"

    @patch("release_orchestrator.releases.load_config")
    @patch("release_orchestrator.releases.config_exists", return_value=True)
    def test_defaults_to_configured_repositories(self, mock_exists, mock_load, config, client):
        mock_load.return_value = config

        repos = load_repositories(client=client)

        assert [r.name for r in repos] == ["Api", "Web"]


class TestRunReleaseBatch:
    """Tests for run_release_batch."""

    @patch("release_orchestrator.releases.load_config")
    @patch("release_orchestrator.releases.config_exists", return_value=True)
    def test_isolates_failures_and_consolidates(self, mock_exists, mock_load, config):
        mock_load.return_value = config
        client = _release_client(failing_tags={"Web"})
        repos = [
            Repository(id=name, name=name, current_version=Version(1, 2), bump="minor")
            for name in ("Api", "Web", "Worker")
        ]

        result = run_release_batch(repos, client=client)

        assert [r.success for r in result.results] == [True, False, True]
        assert "already exists" in result.results[1].error
        assert [r.repository for r in result.failed] == ["Web"]
        assert {w.id for w in result.results[0].work_items} == {100, 200}
        assert len(result.work_items) == 3
        assert {w.id for w in result.work_items} == {100, 200, 400}
        assert result.cancelled is False

    @patch("release_orchestrator.releases.load_config")
    @patch("release_orchestrator.releases.config_exists", return_value=True)
    def test_uses_configured_page_size(self, mock_exists, mock_load, config):
        config.commit_page_size = 25
        mock_load.return_value = config
        client = _release_client()

        run_release_batch(
            [Repository(id="Api", name="Api", current_version=Version(1, 2))], client=client
        )

        assert client.get_commits.call_args.kwargs["top"] == 25

    @patch("release_orchestrator.releases.load_config")
    @patch("release_orchestrator.releases.config_exists", return_value=True)
    def test_cancelled_before_start(self, mock_exists, mock_load, config):
        mock_load.return_value = config
        cancel = threading.Event()
        cancel.set()

        result = run_release_batch(
            [Repository(id="Api", name="Api")], cancel=cancel, client=_release_client()
        )

        assert result.results == []
        assert result.cancelled is True


class TestIntegrationBuild:
    """Tests for integration build labelling."""

    def test_prefers_new_version_of_main_repository(self):
        results = [
            ProcessingResult("Web", True, Version(5, 0)),
            ProcessingResult("Api", True, Version(1, 4)),
        ]
        assert integration_build_version(results, [], "Api") == "1.4"

    def test_falls_back_to_current_version(self):
        results = [ProcessingResult("Api", False, error="boom")]
        repos = [Repository(id="Api", name="Api", current_version=Version(1, 3))]
        assert integration_build_version(results, repos, "Api") == "1.3"

    def test_defaults(self):
        assert integration_build_version([], [], None) == "1.0"

    @patch("release_orchestrator.releases.load_config")
    @patch("release_orchestrator.releases.config_exists", return_value=True)
    def test_stamp_reports_failures(self, mock_exists, mock_load, config, client):
        mock_load.return_value = config
        client.update_work_item_field.side_effect = [None, ApiError(404, "gone"), None]

        failed = stamp_integration_build([100, 200, 300], "1.4", client=client)

        assert failed == [200]
        client.update_work_item_field.assert_any_call(100, "Custom.IntegrationBuild", "1.4")


class TestBatchResultToDict:
    """Tests for batch_result_to_dict serializer."""

    def test_serializes_result(self):
        item = WorkItem(id=100, type="Bug", title="Crash", url="https://example.com/100")
        result = BatchResult(
            results=[
                ProcessingResult("Api", True, Version(1, 3), (item,), warnings=("capped",)),
                ProcessingResult("Web", False, error="Tag 2.1 already exists"),
            ],
            work_items=[item],
        )

        d = batch_result_to_dict(result)

        assert d["results"][0]["new_version"] == "1.3"
        assert d["results"][0]["warnings"] == ["capped"]
        assert d["results"][0]["work_items"][0]["id"] == 100
        assert d["results"][1] == {
            "repository": "Web",
            "success": False,
            "new_version": None,
            "error": "Tag 2.1 already exists",
            "warnings": [],
            "work_items": [],
        }
        assert d["release_notes"] == [
            {"type": "Bug", "id": 100, "title": "Crash", "url": "https://example.com/100"}
        ]
        assert d["cancelled"] is False
