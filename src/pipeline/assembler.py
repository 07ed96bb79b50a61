"""Contributor resolution and final snapshot assembly."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, Optional

from src.retrieval.collectors import fetch_org_member_emails, fetch_user_profile
from src.retrieval.config import SCHEMA_VERSION
from src.retrieval.http_client import RemoteApiClient

from .checkpoint import ExportAccumulator
from .classify import is_bot, is_jira_app

# (collection, field) pairs that hold a contributor username
USERNAME_REFERENCES = [
    ("pullRequests", "authorUsername"),
    ("commits", "authorUsername"),
    ("issues", "authorUsername"),
    ("issues", "assigneeUsername"),
    ("reviews", "reviewerUsername"),
]

# (collection, field) pairs that hold a pull request externalId
PR_REFERENCES = [
    ("commits", "prExternalId"),
    ("reviews", "prExternalId"),
]


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def referenced_usernames(records: Dict[str, List[Dict[str, Any]]]) -> List[str]:
    """Unique usernames referenced anywhere in the records, in first-seen order."""
    seen: Dict[str, None] = {}
    for kind, field_name in USERNAME_REFERENCES:
        for record in records.get(kind, []):
            username = record.get(field_name)
            if username and not is_bot(username):
                seen.setdefault(username, None)
    return list(seen)


def build_contributors(client: RemoteApiClient, records: Dict[str, List[Dict[str, Any]]],
                       owners: Iterable[str]) -> List[Dict[str, Any]]:
    """One contributor per referenced username, enriched from profile and org emails.

    A failed profile lookup still yields an entry so references keep resolving.
    """
    print("Identifying contributors...")
    usernames = referenced_usernames(records)

    org_emails: Dict[str, str] = {}
    for owner in owners:
        print(f"  fetching org member emails for {owner}...")
        org_emails.update(fetch_org_member_emails(client, owner))
    print(f"  found emails for {len(org_emails)} org members")

    print(f"  fetching profiles for {len(usernames)} contributors...")
    contributors = []
    for username in usernames:
        profile = fetch_user_profile(client, username) or {}
        login = profile.get("login") or username
        contributors.append({
            "externalUsername": username,
            "externalId": str(profile["id"]) if profile.get("id") is not None else None,
            "displayName": profile.get("name"),
            "email": org_emails.get(login) or profile.get("email"),
            "avatarUrl": profile.get("avatar_url"),
        })
    return contributors


def build_jira_contributors(people: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Dedupe Jira user objects by accountId; app accounts and bot names excluded."""
    contributors: Dict[str, Dict[str, Any]] = {}
    for person in people:
        account_id = person.get("accountId")
        if not account_id or account_id in contributors:
            continue
        if is_jira_app(person):
            continue
        avatars = person.get("avatarUrls") or {}
        contributors[account_id] = {
            "externalUsername": account_id,
            "externalId": account_id,
            "displayName": person.get("displayName"),
            "email": person.get("emailAddress"),
            "avatarUrl": avatars.get("48x48"),
        }
    return list(contributors.values())


def enforce_reference_integrity(records: Dict[str, List[Dict[str, Any]]],
                                contributors: List[Dict[str, Any]]) -> int:
    """Null out references the importer could not resolve; return how many were fixed."""
    known_users = {c["externalUsername"] for c in contributors}
    known_prs = {pr.get("externalId") for pr in records.get("pullRequests", [])}
    fixed = 0
    for kind, field_name in USERNAME_REFERENCES:
        for record in records.get(kind, []):
            value = record.get(field_name)
            if value is not None and value not in known_users:
                record[field_name] = None
                fixed += 1
    for kind, field_name in PR_REFERENCES:
        for record in records.get(kind, []):
            value = record.get(field_name)
            if value is not None and value not in known_prs:
                record[field_name] = None
                fixed += 1
    if fixed:
        print(f"[warn] cleared {fixed} dangling references before export")
    return fixed


def assemble_snapshot(accumulator: ExportAccumulator,
                      contributors: List[Dict[str, Any]],
                      metadata: Dict[str, Any],
                      skipped_units: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
    """Build the snapshot document; every nullable key is present."""
    records = accumulator.to_dict()
    meta = {
        "exportedAt": utc_now_iso(),
        "version": SCHEMA_VERSION,
    }
    meta.update(metadata)
    meta["skippedUnits"] = list(skipped_units or [])
    snapshot: Dict[str, Any] = {"metadata": meta, "contributors": contributors}
    snapshot.update(records)
    return snapshot


def print_summary(snapshot: Dict[str, Any], units_total: int, output_file: str) -> None:
    """Console summary; skipped units are listed, not silently left out of the count."""
    skipped = snapshot["metadata"].get("skippedUnits") or []
    print("")
    print("=" * 60)
    print("EXPORT COMPLETE" if not skipped else "EXPORT COMPLETE (with skipped units)")
    print("=" * 60)
    print(f"  Units:         {units_total - len(skipped)}/{units_total} exported")
    for key in ("contributors", "pullRequests", "reviews", "commits", "issues"):
        if key in snapshot:
            print(f"  {key + ':':<15}{len(snapshot[key])}")
    for entry in skipped:
        print(f"  skipped {entry.get('unit')}: {entry.get('reason')}")
    print("")
    print(f"Output written to: {output_file}")


__all__ = [
    "USERNAME_REFERENCES",
    "PR_REFERENCES",
    "utc_now_iso",
    "referenced_usernames",
    "build_contributors",
    "build_jira_contributors",
    "enforce_reference_integrity",
    "assemble_snapshot",
    "print_summary",
]
