"""Shared fixtures: an in-memory remote client and a no-sleep clock."""

import re
import time
from typing import Any, Callable, Dict, List, Optional

import pytest

from src.retrieval.errors import GraphQLError, NotFoundError
from src.retrieval.http_client import Endpoint, Page, RemoteApiClient

PR_NUMBER_RE = re.compile(r"(pr\d+): pullRequest\(number: (\d+)\)")


class FakeClient(RemoteApiClient):
    """Deterministic stand-in for GitHubClient/JiraClient.

    `pages` maps an endpoint path to the full item list (or an exception to
    raise); `singles` maps a path to a get_one result (or exception);
    `graphql` is a callable(query, variables) or an exception.
    """

    def __init__(self, pages: Optional[Dict[str, Any]] = None,
                 singles: Optional[Dict[str, Any]] = None,
                 graphql: Any = None) -> None:
        self.pages = pages or {}
        self.singles = singles or {}
        self.graphql = graphql
        self.calls: List[tuple] = []

    def list_page(self, endpoint: Endpoint, *, page: int = 1, per_page: int = 100,
                  cursor: Optional[str] = None) -> Page:
        self.calls.append(("list", endpoint.path, page))
        value = self.pages.get(endpoint.path, [])
        if isinstance(value, BaseException):
            raise value
        start = (page - 1) * per_page
        items = value[start:start + per_page]
        return Page(items=items, total=len(value), has_more=start + len(items) < len(value))

    def batch_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append(("batch", (variables or {}).get("name")))
        if isinstance(self.graphql, BaseException):
            raise self.graphql
        if callable(self.graphql):
            return self.graphql(query, variables or {})
        return {}

    def get_one(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append(("get", path))
        value = self.singles.get(path)
        if isinstance(value, BaseException):
            raise value
        if value is None:
            raise NotFoundError(f"{path}: HTTP 404", status=404, url=path)
        return value

    def count(self, kind: str, path: Optional[str] = None) -> int:
        return sum(1 for c in self.calls if c[0] == kind and (path is None or c[1] == path))


def pr_details_handler(details: Dict[str, Dict[int, Dict[str, Any]]],
                       fail_repos: Optional[set] = None) -> Callable[[str, Dict[str, Any]], Dict[str, Any]]:
    """GraphQL fake answering aliased pullRequest sub-queries.

    `details[repo][number]` is the GraphQL pullRequest object to return.
    """

    def handler(query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        repo = variables.get("name")
        if fail_repos and repo in fail_repos:
            raise GraphQLError("Something went wrong while executing your query")
        repo_data = {}
        for alias, number in PR_NUMBER_RE.findall(query):
            node = details.get(repo, {}).get(int(number))
            if node is not None:
                repo_data[alias] = node
        return {"repository": repo_data}

    return handler


def gql_pr(number: int, commits: List[Dict[str, Any]], additions: int = 10, deletions: int = 2) -> Dict[str, Any]:
    """GraphQL pullRequest node with commit nodes built from (sha, login, message) dicts."""
    return {
        "number": number,
        "additions": additions,
        "deletions": deletions,
        "commits": {
            "nodes": [
                {
                    "commit": {
                        "oid": c["sha"],
                        "message": c.get("message", "change"),
                        "additions": c.get("additions", 1),
                        "deletions": c.get("deletions", 0),
                        "author": {"date": c.get("date", "2025-01-02T00:00:00Z"),
                                   "user": {"login": c["login"]} if c.get("login") else None},
                    }
                }
                for c in commits
            ]
        },
    }


def rest_pr(number: int, login: str, *, state: str = "closed", merged_at: Optional[str] = "2025-01-02T12:00:00Z",
            created_at: str = "2025-01-01T00:00:00Z") -> Dict[str, Any]:
    return {
        "number": number,
        "title": f"PR {number}",
        "html_url": f"https://github.com/o/r/pull/{number}",
        "state": state,
        "user": {"login": login, "id": 1},
        "created_at": created_at,
        "merged_at": merged_at,
        "closed_at": merged_at,
        "commits": 1,
        "labels": [{"name": "feature"}],
        "requested_reviewers": [],
        "draft": False,
    }


def rest_commit(sha: str, login: Optional[str], message: str = "direct change") -> Dict[str, Any]:
    return {
        "sha": sha,
        "html_url": f"https://github.com/o/r/commit/{sha}",
        "commit": {"message": message, "author": {"date": "2025-01-03T00:00:00Z"}, "committer": None},
        "author": {"login": login} if login else None,
    }


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_: None)


@pytest.fixture
def fake_client_cls():
    return FakeClient
