"""Work item fetching and consolidation."""

import logging
import re
from typing import Iterable

from release_orchestrator.devops_client import AzureDevOpsClient
from release_orchestrator.exceptions import WorkItemFetchFailed
from release_orchestrator.models import WorkItem
from release_orchestrator.refs import REMOTE_ERRORS

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITIES = [
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),  # last, so "&amp;lt;" stays "&lt;"
]


def strip_html_tags(html: str | None) -> str:
    """Reduce an HTML fragment to plain text.

    Tags are removed repeatedly until nothing changes, so nested
    constructs like ``<<b>script>`` don't survive a single pass.
    """
    if not html:
        return ""
    result = html
    previous = None
    while result != previous:
        previous = result
        result = _TAG_RE.sub("", result)
    for entity, char in _ENTITIES:
        result = result.replace(entity, char)
    return result.strip()


def parse_work_item(raw: dict, integration_build_field: str = "Custom.IntegrationBuild") -> WorkItem:
    """Convert a raw work item record into a WorkItem.

    Raises:
        KeyError: If the record has no id or fields
    """
    fields = raw["fields"]
    html_link = raw.get("_links", {}).get("html", {}).get("href")
    description = strip_html_tags(fields.get("System.Description")) or None
    return WorkItem(
        id=int(raw["id"]),
        type=fields.get("System.WorkItemType", ""),
        title=fields.get("System.Title", ""),
        url=html_link or raw.get("url", ""),
        state=fields.get("System.State"),
        description=description,
        integration_build=fields.get(integration_build_field),
    )


class WorkItemResolver:
    """Fetches full work item records, skipping the ones that can't be fetched."""

    def __init__(
        self,
        client: AzureDevOpsClient,
        integration_build_field: str = "Custom.IntegrationBuild",
    ) -> None:
        self.client = client
        self.integration_build_field = integration_build_field

    def resolve(self, ids: Iterable[str]) -> list[WorkItem]:
        work_items: list[WorkItem] = []
        for work_item_id in ids:
            try:
                work_items.append(self._fetch(work_item_id))
            except WorkItemFetchFailed as e:
                logger.warning("Error fetching work item %s: %s", work_item_id, e)
        return work_items

    def _fetch(self, work_item_id: str) -> WorkItem:
        try:
            raw = self.client.get_work_item(work_item_id)
            return parse_work_item(raw, self.integration_build_field)
        except (*REMOTE_ERRORS, TypeError) as e:
            raise WorkItemFetchFailed(str(e)) from e


def consolidate(groups: Iterable[Iterable[WorkItem]]) -> list[WorkItem]:
    """Merge work item lists, keeping the first record seen for each id."""
    unique: dict[int, WorkItem] = {}
    for group in groups:
        for item in group:
            unique.setdefault(item.id, item)
    return list(unique.values())
