"""Runtime settings and CLI parsing for the GitHub and Jira export entry points."""

from __future__ import annotations

import argparse
import datetime as dt
import hashlib
import json
from dataclasses import dataclass
from typing import List, Optional, Sequence

from src.retrieval.config import (
    CHECKPOINT_SUFFIX,
    DEFAULT_JIRA_OUTPUT_FILE,
    DEFAULT_MAX_PAGES,
    DEFAULT_OUTPUT_FILE,
    JIRA_DEFAULT_MAX_RESULTS,
    JIRA_PAGE_SIZE,
)
from src.secrets import github_tokens, jira_credentials


@dataclass(frozen=True)
class ExportSettings:
    """Resolved runtime settings for a GitHub export."""

    owners: List[str]
    repo: Optional[str]
    org_slug: str
    output_file: str
    checkpoint_file: str
    since: Optional[str]
    max_pages: int
    token: Optional[str]


@dataclass(frozen=True)
class JiraExportSettings:
    """Resolved runtime settings for a Jira export."""

    domain: str
    project_key: str
    org_slug: str
    output_file: str
    checkpoint_file: str
    since: Optional[str]
    max_results: int
    page_size: int
    email: Optional[str]
    api_token: Optional[str]


def normalize_since(raw: Optional[str]) -> Optional[str]:
    """Turn `YYYY-MM-DD` (or any ISO timestamp) into a UTC `...Z` timestamp."""
    if not raw:
        return None
    text = raw.strip()
    try:
        if len(text) == 10:
            value = dt.datetime.strptime(text, "%Y-%m-%d").replace(tzinfo=dt.timezone.utc)
        else:
            value = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
            if value.tzinfo is None:
                value = value.replace(tzinfo=dt.timezone.utc)
    except ValueError as exc:
        raise ValueError(f"invalid --since date: {raw!r}") from exc
    return value.astimezone(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def config_fingerprint(*parts: object) -> str:
    """Stable hash of the run's scope; checkpoints from other scopes are ignored."""
    raw = json.dumps(list(parts), sort_keys=True, default=str)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def export_fingerprint(settings: ExportSettings) -> str:
    return config_fingerprint("github", list(settings.owners), settings.repo, settings.since)


def jira_fingerprint(settings: JiraExportSettings) -> str:
    return config_fingerprint("jira", settings.domain, settings.project_key, settings.since)


def build_arg_parser() -> argparse.ArgumentParser:
    """Return the CLI parser used by the GitHub export entry point."""

    parser = argparse.ArgumentParser(
        description="Export pull requests, commits, reviews, issues and contributors from GitHub.",
    )
    parser.add_argument("owners", nargs="+", help="one or more GitHub orgs or users")
    parser.add_argument("--repo", default=None, help="only export this repository (single owner only)")
    parser.add_argument("--output", default=DEFAULT_OUTPUT_FILE)
    parser.add_argument("--org-slug", default=None, help="organization slug (default: first owner)")
    parser.add_argument("--since", default=None, help="only export data after this date (YYYY-MM-DD)")
    parser.add_argument("--max-pages", type=int, default=DEFAULT_MAX_PAGES,
                        help="max pages per list endpoint, 100 items per page (0 = no cap)")
    parser.add_argument("--checkpoint", default=None, help="checkpoint path (default: <output>.checkpoint.json)")
    return parser


def build_jira_arg_parser() -> argparse.ArgumentParser:
    """Return the CLI parser used by the Jira export entry point."""

    parser = argparse.ArgumentParser(description="Export issues from a Jira project.")
    parser.add_argument("domain", help="Jira site, e.g. mycompany.atlassian.net")
    parser.add_argument("project_key")
    parser.add_argument("--output", default=DEFAULT_JIRA_OUTPUT_FILE)
    parser.add_argument("--org-slug", default=None, help="organization slug (default: project key)")
    parser.add_argument("--since", default=None, help="only export issues created after this date")
    parser.add_argument("--max-results", type=int, default=JIRA_DEFAULT_MAX_RESULTS)
    parser.add_argument("--page-size", type=int, default=JIRA_PAGE_SIZE)
    parser.add_argument("--checkpoint", default=None)
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments; accepts argv overrides for testing."""

    return build_arg_parser().parse_args(argv)


def parse_jira_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_jira_arg_parser().parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> ExportSettings:
    """Return immutable GitHub export settings from parsed arguments and secrets."""

    owners = [o.strip() for o in args.owners if o.strip()]
    if args.repo and len(owners) > 1:
        raise ValueError("--repo can only be used with a single owner")
    tokens = github_tokens()
    return ExportSettings(
        owners=owners,
        repo=args.repo,
        org_slug=args.org_slug or owners[0],
        output_file=args.output,
        checkpoint_file=args.checkpoint or f"{args.output}{CHECKPOINT_SUFFIX}",
        since=normalize_since(args.since),
        max_pages=max(0, int(args.max_pages)),
        token=tokens[0] if tokens else None,
    )


def resolve_jira_settings(args: argparse.Namespace) -> JiraExportSettings:
    """Return immutable Jira export settings from parsed arguments and secrets."""

    email, api_token = jira_credentials()
    return JiraExportSettings(
        domain=args.domain,
        project_key=args.project_key,
        org_slug=args.org_slug or args.project_key.lower(),
        output_file=args.output,
        checkpoint_file=args.checkpoint or f"{args.output}{CHECKPOINT_SUFFIX}",
        since=normalize_since(args.since),
        max_results=max(1, int(args.max_results)),
        page_size=max(1, int(args.page_size)),
        email=email,
        api_token=api_token,
    )


__all__ = [
    "ExportSettings",
    "JiraExportSettings",
    "normalize_since",
    "config_fingerprint",
    "export_fingerprint",
    "jira_fingerprint",
    "build_arg_parser",
    "build_jira_arg_parser",
    "parse_args",
    "parse_jira_args",
    "resolve_settings",
    "resolve_jira_settings",
]
