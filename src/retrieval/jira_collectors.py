"""Jira search helpers: JQL construction and single-page issue retrieval."""

from __future__ import annotations

from typing import Optional

from .config import JIRA_PAGE_SIZE, JIRA_STORY_POINTS_FIELD
from .http_client import Endpoint, Page, RemoteApiClient

SEARCH_FIELDS = [
    "summary",
    "status",
    "issuetype",
    "creator",
    "assignee",
    "reporter",
    "created",
    "updated",
    "resolutiondate",
    "labels",
    "priority",
    JIRA_STORY_POINTS_FIELD,
]


def build_jql(project_key: str, since: Optional[str] = None) -> str:
    """Oldest first, so issues created mid-export land on pages not yet fetched.

    `since` is a date or ISO timestamp; only its date part reaches JQL.
    """
    jql = f'project = "{project_key}"'
    if since:
        jql += f' AND created >= "{since[:10]}"'
    return jql + " ORDER BY created ASC, key ASC"


def search_endpoint(project_key: str, since: Optional[str] = None) -> Endpoint:
    return Endpoint(
        "search",
        {"jql": build_jql(project_key, since), "fields": ",".join(SEARCH_FIELDS)},
        style="offset",
        items_key="issues",
    )


def fetch_issue_page(client: RemoteApiClient, endpoint: Endpoint, page_index: int,
                     page_size: int = JIRA_PAGE_SIZE) -> Page:
    """Fetch page `page_index` (0-based). Offset pages are independently re-fetchable."""
    return client.list_page(endpoint, page=page_index + 1, per_page=page_size)


__all__ = ["SEARCH_FIELDS", "build_jql", "search_endpoint", "fetch_issue_page"]
