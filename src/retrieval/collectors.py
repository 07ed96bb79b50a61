"""Raw GitHub fetchers for repositories, pull requests, commits, issues and people."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .batching import resolve_in_batches
from .config import (
    BATCH_PAUSE_SEC,
    DEFAULT_MAX_PAGES,
    PR_COMMITS_PER_DETAIL,
    PR_DETAIL_BATCH_SIZE,
    REPO_LIST_MAX_PAGES,
)
from .errors import ApiError, AuthError, NotFoundError
from .http_client import Endpoint, RemoteApiClient, dig
from .pagination import collect_pages, iter_pages

PR_DETAIL_FIELDS = """
      number additions deletions
      commits(first: %d) {
        nodes { commit { oid message additions deletions author { date user { login } } } }
      }
""" % PR_COMMITS_PER_DETAIL

ORG_MEMBERS_QUERY = """
query OrgMembers($login: String!, $first: Int!, $after: String) {
  organization(login: $login) {
    membersWithRole(first: $first, after: $after) {
      nodes { login email }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""


def list_owner_repos(client: RemoteApiClient, owner: str) -> List[str]:
    """Return non-archived repo names for an org, falling back to a user account."""
    print(f"  listing repositories for {owner}...")
    try:
        repos = collect_pages(
            client,
            Endpoint(f"orgs/{owner}/repos", {"type": "all"}),
            max_pages=REPO_LIST_MAX_PAGES,
        )
    except NotFoundError:
        repos = collect_pages(
            client,
            Endpoint(f"users/{owner}/repos", {"type": "all"}),
            max_pages=REPO_LIST_MAX_PAGES,
        )
    names = [r.get("name") for r in repos if r.get("name") and not r.get("archived")]
    print(f"  found {len(names)} repos ({len(repos) - len(names)} archived skipped)")
    return names


def list_pull_requests(client: RemoteApiClient, owner: str, repo: str,
                       max_pages: int = DEFAULT_MAX_PAGES) -> List[Dict[str, Any]]:
    """Return pull requests in every state, most recently updated first."""
    endpoint = Endpoint(
        f"repos/{owner}/{repo}/pulls",
        {"state": "all", "sort": "updated", "direction": "desc"},
    )
    return collect_pages(client, endpoint, max_pages=max_pages)


def list_pr_reviews(client: RemoteApiClient, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
    return collect_pages(client, Endpoint(f"repos/{owner}/{repo}/pulls/{number}/reviews"))


def list_commits(client: RemoteApiClient, owner: str, repo: str,
                 since: Optional[str] = None,
                 max_pages: int = DEFAULT_MAX_PAGES) -> List[Dict[str, Any]]:
    """Return repository commit history, optionally bounded by `since`."""
    params = {"since": since} if since else {}
    return collect_pages(client, Endpoint(f"repos/{owner}/{repo}/commits", params), max_pages=max_pages)


def list_issues(client: RemoteApiClient, owner: str, repo: str,
                since: Optional[str] = None,
                max_pages: int = DEFAULT_MAX_PAGES) -> List[Dict[str, Any]]:
    """Return issues (pull requests excluded) in every state."""
    params: Dict[str, Any] = {"state": "all", "sort": "updated", "direction": "desc"}
    if since:
        params["since"] = since
    data = collect_pages(client, Endpoint(f"repos/{owner}/{repo}/issues", params), max_pages=max_pages)
    return [i for i in data if "pull_request" not in i]


def build_pr_details_query(owner: str, repo: str, numbers: List[int]) -> Tuple[str, Dict[str, Any]]:
    """Build one aliased GraphQL document covering every PR number in the batch."""
    aliases = "\n".join(
        f"    pr{idx}: pullRequest(number: {int(num)}) {{{PR_DETAIL_FIELDS}    }}"
        for idx, num in enumerate(numbers)
    )
    query = (
        "query PrDetails($owner: String!, $name: String!) {\n"
        "  repository(owner: $owner, name: $name) {\n"
        f"{aliases}\n"
        "  }\n"
        "}\n"
    )
    return query, {"owner": owner, "name": repo}


def _commit_from_graphql(node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    commit = (node or {}).get("commit") or {}
    if not commit.get("oid"):
        return None
    author = commit.get("author") or {}
    return {
        "sha": commit.get("oid"),
        "message": commit.get("message") or "",
        "authorUsername": (author.get("user") or {}).get("login"),
        "authorDate": author.get("date"),
        "additions": commit.get("additions"),
        "deletions": commit.get("deletions"),
    }


def parse_pr_details(repo_data: Dict[str, Any], numbers: List[int]) -> Dict[int, Dict[str, Any]]:
    """Map aliased GraphQL results back onto PR numbers; missing aliases are dropped."""
    results: Dict[int, Dict[str, Any]] = {}
    for idx in range(len(numbers)):
        pr = (repo_data or {}).get(f"pr{idx}")
        if not pr or pr.get("number") is None:
            continue
        nodes = dig(pr, ("commits", "nodes")) or []
        commits = [c for c in (_commit_from_graphql(n) for n in nodes) if c]
        results[pr["number"]] = {
            "additions": pr.get("additions") or 0,
            "deletions": pr.get("deletions") or 0,
            "commits": commits,
        }
    return results


def fetch_pr_details_single(client: RemoteApiClient, owner: str, repo: str,
                            number: int) -> Dict[str, Any]:
    """REST fallback for one PR; per-commit diff stats are not available here."""
    pr = client.get_one(f"repos/{owner}/{repo}/pulls/{number}") or {}
    raw_commits = collect_pages(client, Endpoint(f"repos/{owner}/{repo}/pulls/{number}/commits"))
    commits = []
    for c in raw_commits:
        if not c.get("sha"):
            continue
        commit = c.get("commit") or {}
        commits.append({
            "sha": c["sha"],
            "message": commit.get("message") or "",
            "authorUsername": (c.get("author") or {}).get("login"),
            "authorDate": (commit.get("author") or {}).get("date"),
            "additions": None,
            "deletions": None,
        })
    return {
        "additions": pr.get("additions") or 0,
        "deletions": pr.get("deletions") or 0,
        "commits": commits,
    }


def fetch_pr_details(client: RemoteApiClient, owner: str, repo: str, numbers: List[int],
                     *, batch_size: int = PR_DETAIL_BATCH_SIZE,
                     pause_sec: float = BATCH_PAUSE_SEC) -> Dict[int, Dict[str, Any]]:
    """Diff stats and commits per PR via batched GraphQL, REST per PR on batch failure."""

    def batch_fetch(batch: List[int]) -> Dict[int, Dict[str, Any]]:
        query, variables = build_pr_details_query(owner, repo, batch)
        data = client.batch_query(query, variables)
        return parse_pr_details(data.get("repository") or {}, batch)

    return resolve_in_batches(
        numbers,
        batch_fetch,
        lambda number: fetch_pr_details_single(client, owner, repo, number),
        batch_size=batch_size,
        pause_sec=pause_sec,
        label=f"PR details for {owner}/{repo}",
    )


def fetch_org_member_emails(client: RemoteApiClient, owner: str) -> Dict[str, str]:
    """Map login -> email for org members visible to an admin credential.

    A failure on the first page means the owner is not an org (or we lack
    admin rights) and yields an empty map; a later failure keeps what was read.
    """
    emails: Dict[str, str] = {}
    endpoint = Endpoint(
        "graphql",
        {"login": owner},
        style="cursor",
        query=ORG_MEMBERS_QUERY,
        connection=("organization", "membersWithRole"),
    )
    pages_read = 0
    try:
        for nodes in iter_pages(client, endpoint, progress_every=0, pause_sec=0):
            pages_read += 1
            for node in nodes:
                if node.get("login") and node.get("email"):
                    emails[node["login"]] = node["email"]
    except AuthError:
        raise
    except ApiError as exc:
        if pages_read:
            print(f"[warn] failed to fetch all org member emails for {owner} "
                  f"(got {len(emails)} so far): {exc}")
    return emails


def fetch_user_profile(client: RemoteApiClient, username: str) -> Optional[Dict[str, Any]]:
    """Return the public profile for `username`, or None when it cannot be read."""
    try:
        return client.get_one(f"users/{username}")
    except AuthError:
        raise
    except ApiError as exc:
        print(f"[warn] profile lookup failed for {username}: {exc}")
        return None


__all__ = [
    "PR_DETAIL_FIELDS",
    "ORG_MEMBERS_QUERY",
    "list_owner_repos",
    "list_pull_requests",
    "list_pr_reviews",
    "list_commits",
    "list_issues",
    "build_pr_details_query",
    "parse_pr_details",
    "fetch_pr_details_single",
    "fetch_pr_details",
    "fetch_org_member_emails",
    "fetch_user_profile",
]
