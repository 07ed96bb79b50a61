"""Checkpointed Jira issue export; one search page is one unit of work."""

from __future__ import annotations

import math
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from src.retrieval.errors import ApiError, AuthError
from src.retrieval.http_client import RemoteApiClient
from src.retrieval.jira_client import JiraClient, browse_url
from src.retrieval.jira_collectors import fetch_issue_page, search_endpoint

from .assembler import assemble_snapshot, build_jira_contributors, print_summary
from .checkpoint import CheckpointManager, ExportAccumulator, write_json_atomic
from .classify import is_jira_app
from .config import JiraExportSettings, jira_fingerprint, parse_jira_args, resolve_jira_settings
from .exporters import jira_people, normalize_jira_issue
from .reconcile import dedupe_records
from .runner import (
    EXIT_ABORTED,
    EXIT_COMPLETED_WITH_SKIPS,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_USAGE,
    UnitLoop,
)

JIRA_RECORD_KINDS = ("issues", "people")


def page_unit_id(settings: JiraExportSettings, page_index: int) -> str:
    return f"{settings.project_key}@{page_index * settings.page_size}+{settings.page_size}"


def export_page(client: RemoteApiClient, settings: JiraExportSettings, page_index: int,
                state: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Fetch and normalize one page; `state["last"]` tells the caller whether to stop."""
    endpoint = search_endpoint(settings.project_key, settings.since)
    page = fetch_issue_page(client, endpoint, page_index, settings.page_size)
    items = page.items
    remaining = settings.max_results - page_index * settings.page_size
    if len(items) > remaining:
        items = items[:max(0, remaining)]
    if page_index == 0:
        if page.total is not None:
            print(f"  found {page.total} issues, exporting up to {settings.max_results}")
        if not items:
            print(f"[warn] Jira query for {settings.project_key} returned no issues")
    state["last"] = (
        not page.items
        or page.has_more is False
        or len(page.items) < settings.page_size
        or len(items) >= remaining
    )

    issues = []
    people: List[Dict[str, Any]] = []
    app_created = 0
    for raw in items:
        key = raw.get("key")
        if not key:
            continue
        if is_jira_app((raw.get("fields") or {}).get("creator")):
            app_created += 1
            continue
        issues.append(normalize_jira_issue(raw, browse_url(settings.domain, key)))
        people.extend(jira_people(raw))
    print(f"  page {page_index + 1}: exported {len(issues)} issues")
    if app_created:
        print(f"  [skip] {app_created} issues created by app or bot accounts")
    return {"issues": issues, "people": people}


def run_jira_export(settings: JiraExportSettings, client: Optional[RemoteApiClient] = None) -> int:
    """Run (or resume) the Jira export and return the process exit status."""
    client = client or JiraClient(settings.domain, settings.email, settings.api_token)
    accumulator = ExportAccumulator(JIRA_RECORD_KINDS)
    checkpoint = CheckpointManager(settings.checkpoint_file, jira_fingerprint(settings))
    checkpoint.load(accumulator)
    loop = UnitLoop(checkpoint, accumulator)
    max_pages = max(1, math.ceil(settings.max_results / settings.page_size))

    print("=" * 60)
    print(f"Exporting Jira issues: {settings.domain}/{settings.project_key}")
    print(f"Organization: {settings.org_slug}")
    print(f"Since: {settings.since or 'all time'}")
    print(f"Max results: {settings.max_results}")
    print(f"Output file: {settings.output_file}")
    print("=" * 60)

    units_seen = 0
    try:
        for page_index in range(max_pages):
            unit_id = page_unit_id(settings, page_index)
            units_seen += 1
            if checkpoint.is_complete(unit_id):
                continue
            state: Dict[str, Any] = {"last": False}
            output = loop.process(
                unit_id,
                lambda page_index=page_index, state=state: export_page(client, settings, page_index, state),
            )
            if output is not None and state["last"]:
                break
    except AuthError as exc:
        print(f"[abort] Jira credential rejected: {exc}. Checkpoint kept at {checkpoint.path}")
        return EXIT_ABORTED
    except ApiError as exc:
        print(f"[abort] {exc}. Checkpoint kept at {checkpoint.path}")
        return EXIT_ABORTED
    except KeyboardInterrupt:
        print(f"\n[abort] interrupted. Last checkpoint kept at {checkpoint.path}")
        return EXIT_INTERRUPTED

    contributors = build_jira_contributors(accumulator.get("people"))
    issues = dedupe_records(accumulator.get("issues"), "externalId")
    repeated = len(accumulator.get("issues")) - len(issues)
    if repeated:
        print(f"[checkpoint] dropped {repeated} issues seen on more than one page")
    issues_only = ExportAccumulator(("issues",), {"issues": issues})
    snapshot = assemble_snapshot(
        issues_only,
        contributors,
        {
            "source": "jira",
            "projectKey": settings.project_key,
            "repository": f"{settings.domain}/{settings.project_key}",
            "organizationSlug": settings.org_slug,
            "since": settings.since,
        },
        checkpoint.skipped_units,
    )
    write_json_atomic(Path(settings.output_file), snapshot)
    checkpoint.complete()
    print_summary(snapshot, units_seen, settings.output_file)
    return EXIT_COMPLETED_WITH_SKIPS if checkpoint.skipped_units else EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point for the Jira export."""
    args = parse_jira_args(argv)
    try:
        settings = resolve_jira_settings(args)
    except ValueError as exc:
        print(f"[error] {exc}")
        sys.exit(EXIT_USAGE)
    if not settings.email or not settings.api_token:
        print("[error] JIRA_EMAIL and JIRA_API_TOKEN must be set (env or local_secrets.json)")
        sys.exit(EXIT_USAGE)
    sys.exit(run_jira_export(settings))


__all__ = ["JIRA_RECORD_KINDS", "page_unit_id", "export_page", "run_jira_export", "main"]


if __name__ == "__main__":
    main()
