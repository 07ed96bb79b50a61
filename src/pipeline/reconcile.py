"""Cross-stream commit dedup and cross-scope identifier namespacing."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple


def dedupe_records(records: Iterable[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    """Keep the first record for each value of `key`; records without one are dropped."""
    seen: Set[str] = set()
    unique: List[Dict[str, Any]] = []
    for record in records:
        value = record.get(key)
        if not value or value in seen:
            continue
        seen.add(value)
        unique.append(record)
    return unique


def dedupe_pr_commits(commits: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """A commit shared by several PRs stays with the first one."""
    return dedupe_records(commits, "sha")


def filter_direct_commits(repo_commits: Iterable[Dict[str, Any]],
                          seen_shas: Set[str]) -> Tuple[List[Dict[str, Any]], int]:
    """Drop repo-history commits already captured through a pull request.

    Returns the remaining commits (first occurrence per sha) and how many were dropped.
    """
    kept: List[Dict[str, Any]] = []
    dropped = 0
    seen = set(seen_shas)
    for commit in repo_commits:
        sha = commit.get("sha")
        if not sha or sha in seen:
            dropped += 1
            continue
        seen.add(sha)
        kept.append(commit)
    return kept, dropped


def namespace_prefix(owner: str, repo: str, multi_owner: bool, multi_repo: bool) -> Optional[str]:
    """Qualifier making per-repo ids unique across the snapshot, or None when not needed."""
    if multi_owner:
        return f"{owner}/{repo}"
    if multi_repo:
        return repo
    return None


def _prefixed(prefix: str, value: Any) -> Any:
    if value is None or value == "":
        return value
    return f"{prefix}/{value}"


def apply_namespace(unit_output: Dict[str, List[Dict[str, Any]]],
                    prefix: Optional[str]) -> Dict[str, List[Dict[str, Any]]]:
    """Rewrite record ids and every field pointing at a pull request id, in place."""
    if not prefix:
        return unit_output
    for pr in unit_output.get("pullRequests", []):
        pr["externalId"] = _prefixed(prefix, pr.get("externalId"))
    for issue in unit_output.get("issues", []):
        issue["externalId"] = _prefixed(prefix, issue.get("externalId"))
    for review in unit_output.get("reviews", []):
        review["externalId"] = _prefixed(prefix, review.get("externalId"))
        review["prExternalId"] = _prefixed(prefix, review.get("prExternalId"))
    for commit in unit_output.get("commits", []):
        commit["prExternalId"] = _prefixed(prefix, commit.get("prExternalId"))
    return unit_output


__all__ = [
    "dedupe_records",
    "dedupe_pr_commits",
    "filter_direct_commits",
    "namespace_prefix",
    "apply_namespace",
]
