"""Per-repository export: fetch, classify and normalize one unit of work."""

from __future__ import annotations

import datetime as dt
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from src.retrieval.collectors import (
    fetch_pr_details,
    list_commits,
    list_issues,
    list_pr_reviews,
    list_pull_requests,
)
from src.retrieval.config import (
    BATCH_PAUSE_SEC,
    DEFAULT_MAX_PAGES,
    JIRA_STORY_POINTS_FIELD,
    PR_DETAIL_BATCH_SIZE,
    REVIEW_PAUSE_SEC,
    WEB_URL,
)
from src.retrieval.errors import ApiError, AuthError
from src.retrieval.http_client import RemoteApiClient

from .classify import (
    cycle_time_hours,
    detect_ai_tool,
    is_bot,
    is_jira_app,
    map_issue_state,
    map_jira_state,
    map_pr_state,
    map_review_state,
    parse_timestamp,
)
from .reconcile import dedupe_pr_commits, filter_direct_commits

RECORD_KINDS = ("pullRequests", "reviews", "commits", "issues")


def _login(user: Optional[Dict[str, Any]]) -> Optional[str]:
    return (user or {}).get("login") or None


def _labels(raw: Dict[str, Any]) -> List[str]:
    return [l.get("name") for l in (raw.get("labels") or []) if isinstance(l, dict) and l.get("name")]


def normalize_commit(sha: str, url: str, pr_id: Optional[str], author: Optional[str],
                     message: str, committed_at: Optional[str],
                     additions: Optional[int], deletions: Optional[int]) -> Dict[str, Any]:
    record = {
        "sha": sha,
        "externalUrl": url,
        "prExternalId": pr_id,
        "authorUsername": author,
        "message": message,
        "committedAt": committed_at,
        "additions": additions,
        "deletions": deletions,
    }
    record.update(detect_ai_tool(message))
    return record


def normalize_review(review: Dict[str, Any], pr_id: str) -> Optional[Dict[str, Any]]:
    state = map_review_state(review.get("state"))
    if state is None:
        return None
    return {
        "externalId": str(review["id"]) if review.get("id") is not None else None,
        "prExternalId": pr_id,
        "reviewerUsername": _login(review.get("user")),
        "state": state,
        "submittedAt": review.get("submitted_at"),
        "body": review.get("body") or None,
    }


def normalize_pull_request(pr: Dict[str, Any], details: Optional[Dict[str, Any]],
                           reviews_count: int) -> Dict[str, Any]:
    details = details or {}
    additions = details.get("additions")
    if additions is None:
        additions = pr.get("additions") or 0
    deletions = details.get("deletions")
    if deletions is None:
        deletions = pr.get("deletions") or 0
    return {
        "externalId": str(pr["number"]),
        "externalUrl": pr.get("html_url"),
        "title": pr.get("title") or "",
        "authorUsername": _login(pr.get("user")),
        "state": map_pr_state(pr),
        "createdAt": pr.get("created_at"),
        "mergedAt": pr.get("merged_at"),
        "closedAt": pr.get("closed_at"),
        "additions": additions,
        "deletions": deletions,
        "commitsCount": pr.get("commits") if pr.get("commits") is not None else len(details.get("commits") or []),
        "reviewsCount": reviews_count,
        "cycleTimeHours": cycle_time_hours(pr.get("created_at"), pr.get("merged_at")),
        "metadata": {
            "labels": _labels(pr),
            "reviewers": [r.get("login") for r in (pr.get("requested_reviewers") or []) if r.get("login")],
            "draft": bool(pr.get("draft")),
        },
    }


def normalize_issue(issue: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "externalId": str(issue["number"]),
        "externalUrl": issue.get("html_url"),
        "title": issue.get("title") or "",
        "authorUsername": _login(issue.get("user")),
        "assigneeUsername": _login(issue.get("assignee")),
        "state": map_issue_state(issue.get("state")),
        "createdAt": issue.get("created_at"),
        "closedAt": issue.get("closed_at"),
        "resolvedAt": issue.get("closed_at"),
        "cycleTimeHours": cycle_time_hours(issue.get("created_at"), issue.get("closed_at")),
        "metadata": {"labels": _labels(issue)},
    }


def _fetch_reviews(client: RemoteApiClient, owner: str, repo: str, number: int) -> List[Dict[str, Any]]:
    try:
        reviews = list_pr_reviews(client, owner, repo, number)
    except AuthError:
        raise
    except ApiError as exc:
        print(f"[warn] reviews unavailable for {owner}/{repo}#{number}: {exc}")
        return []
    if REVIEW_PAUSE_SEC:
        time.sleep(REVIEW_PAUSE_SEC)
    return reviews


def export_pull_requests(client: RemoteApiClient, owner: str, repo: str, *,
                         since: Optional[dt.datetime] = None,
                         max_pages: int = DEFAULT_MAX_PAGES,
                         batch_size: int = PR_DETAIL_BATCH_SIZE,
                         batch_pause_sec: float = BATCH_PAUSE_SEC,
                         ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], List[Dict[str, Any]], Set[str]]:
    """Return (pull requests, reviews, PR commits, shas attributed to any PR).

    The sha set includes commits of excluded bot PRs so they cannot resurface
    as direct pushes from the repository history.
    """
    print(f"  fetching pull requests for {owner}/{repo}...")
    prs = list_pull_requests(client, owner, repo, max_pages=max_pages)
    if since:
        prs = [pr for pr in prs if (parse_timestamp(pr.get("created_at")) or since) >= since]
    print(f"  processing {len(prs)} pull requests...")

    numbers = [pr["number"] for pr in prs if pr.get("number") is not None and pr.get("additions") is None]
    print(f"  fetching diff stats and commits for {len(numbers)} PRs via GraphQL...")
    details_map = fetch_pr_details(client, owner, repo, numbers,
                                   batch_size=batch_size, pause_sec=batch_pause_sec)

    exported_prs: List[Dict[str, Any]] = []
    exported_reviews: List[Dict[str, Any]] = []
    pr_commits: List[Dict[str, Any]] = []
    attributed: Set[str] = set()

    for pr in prs:
        details = details_map.get(pr.get("number"))
        detail_commits = (details or {}).get("commits") or []
        attributed.update(c["sha"] for c in detail_commits if c.get("sha"))

        if is_bot(_login(pr.get("user"))):
            continue

        pr_id = str(pr["number"])
        reviews = []
        for raw in _fetch_reviews(client, owner, repo, pr["number"]):
            if is_bot(_login(raw.get("user"))):
                continue
            review = normalize_review(raw, pr_id)
            if review:
                reviews.append(review)
        exported_reviews.extend(reviews)
        exported_prs.append(normalize_pull_request(pr, details, len(reviews)))

        for c in detail_commits:
            if is_bot(c.get("authorUsername")):
                continue
            pr_commits.append(normalize_commit(
                c["sha"],
                f"{WEB_URL}/{owner}/{repo}/commit/{c['sha']}",
                pr_id,
                c.get("authorUsername"),
                c.get("message") or "",
                c.get("authorDate"),
                c.get("additions"),
                c.get("deletions"),
            ))

    pr_commits = dedupe_pr_commits(pr_commits)
    print(f"  exported {len(exported_prs)} PRs, {len(exported_reviews)} reviews, {len(pr_commits)} PR commits")
    return exported_prs, exported_reviews, pr_commits, attributed


def export_commits(client: RemoteApiClient, owner: str, repo: str, attributed: Set[str], *,
                   since: Optional[str] = None,
                   max_pages: int = DEFAULT_MAX_PAGES) -> List[Dict[str, Any]]:
    """Direct-push commits: repository history minus anything attributed to a PR."""
    print(f"  fetching commits for {owner}/{repo}...")
    raw = list_commits(client, owner, repo, since=since, max_pages=max_pages)
    remaining, dropped = filter_direct_commits(raw, attributed)
    exported = []
    for c in remaining:
        author = _login(c.get("author"))
        if is_bot(author):
            continue
        commit = c.get("commit") or {}
        stats = c.get("stats") or {}
        exported.append(normalize_commit(
            c["sha"],
            c.get("html_url") or f"{WEB_URL}/{owner}/{repo}/commit/{c['sha']}",
            None,
            author,
            commit.get("message") or "",
            (commit.get("author") or {}).get("date") or (commit.get("committer") or {}).get("date"),
            stats.get("additions"),
            stats.get("deletions"),
        ))
    print(f"  exported {len(exported)} direct commits ({dropped} already attributed to PRs)")
    return exported


def export_issues(client: RemoteApiClient, owner: str, repo: str, *,
                  since: Optional[str] = None,
                  max_pages: int = DEFAULT_MAX_PAGES) -> List[Dict[str, Any]]:
    """Issues for a repo; a disabled or inaccessible tracker yields an empty list."""
    print(f"  fetching issues for {owner}/{repo}...")
    try:
        raw = list_issues(client, owner, repo, since=since, max_pages=max_pages)
    except AuthError:
        raise
    except ApiError as exc:
        print(f"[warn] could not fetch issues for {owner}/{repo} (disabled or tracked elsewhere?): {exc}")
        return []
    if not raw:
        print(f"[warn] no issues found for {owner}/{repo}")
    exported = []
    for issue in raw:
        if is_bot(_login(issue.get("user"))) or is_bot(_login(issue.get("assignee"))):
            continue
        exported.append(normalize_issue(issue))
    print(f"  exported {len(exported)} issues")
    return exported


def export_repository(client: RemoteApiClient, owner: str, repo: str, *,
                      since: Optional[str] = None,
                      max_pages: int = DEFAULT_MAX_PAGES,
                      batch_size: int = PR_DETAIL_BATCH_SIZE,
                      batch_pause_sec: float = BATCH_PAUSE_SEC) -> Dict[str, List[Dict[str, Any]]]:
    """Produce the complete output of one repository unit (not yet namespaced)."""
    since_dt = parse_timestamp(since) if since else None
    prs, reviews, pr_commits, attributed = export_pull_requests(
        client, owner, repo,
        since=since_dt,
        max_pages=max_pages,
        batch_size=batch_size,
        batch_pause_sec=batch_pause_sec,
    )
    direct = export_commits(client, owner, repo, attributed, since=since, max_pages=max_pages)
    issues = export_issues(client, owner, repo, since=since, max_pages=max_pages)
    return {
        "pullRequests": prs,
        "reviews": reviews,
        "commits": pr_commits + direct,
        "issues": issues,
    }


def _person(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _human_email(raw: Optional[Dict[str, Any]]) -> Optional[str]:
    """Email of a human Jira user; app and bot accounts never become contributors."""
    person = _person(raw)
    if is_jira_app(person):
        return None
    return person.get("emailAddress") or None


def normalize_jira_issue(issue: Dict[str, Any], browse_url: str,
                         story_points_field: str = JIRA_STORY_POINTS_FIELD) -> Dict[str, Any]:
    """Normalize one Jira search hit; missing nested fields become nulls."""
    fields = issue.get("fields") or {}
    status = fields.get("status") or {}
    state = map_jira_state((status.get("statusCategory") or {}).get("key"))
    resolved_at = fields.get("resolutiondate") or None
    closed_at = None
    if state in ("resolved", "closed"):
        closed_at = resolved_at or fields.get("updated")
    return {
        "externalId": issue.get("key"),
        "externalUrl": browse_url,
        "title": fields.get("summary") or "",
        "issueType": (fields.get("issuetype") or {}).get("name"),
        "authorEmail": _human_email(fields.get("creator")),
        "assigneeEmail": _human_email(fields.get("assignee")),
        "reporterEmail": _human_email(fields.get("reporter")),
        "state": state,
        "priority": (fields.get("priority") or {}).get("name"),
        "storyPoints": fields.get(story_points_field) or None,
        "createdAt": fields.get("created"),
        "updatedAt": fields.get("updated"),
        "closedAt": closed_at,
        "resolvedAt": resolved_at,
        "cycleTimeHours": cycle_time_hours(fields.get("created"), resolved_at),
        "metadata": {
            "labels": list(fields.get("labels") or []),
            "statusName": status.get("name"),
        },
    }


def jira_people(issue: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Creator, assignee and reporter objects present on a raw Jira issue."""
    fields = issue.get("fields") or {}
    people = []
    for role in ("creator", "assignee", "reporter"):
        person = _person(fields.get(role))
        if person.get("accountId"):
            people.append(person)
    return people


__all__ = [
    "RECORD_KINDS",
    "normalize_commit",
    "normalize_review",
    "normalize_pull_request",
    "normalize_issue",
    "export_pull_requests",
    "export_commits",
    "export_issues",
    "export_repository",
    "normalize_jira_issue",
    "jira_people",
]
