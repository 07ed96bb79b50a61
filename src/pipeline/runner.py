"""Entry points for running the checkpointed GitHub activity export."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from src.retrieval.collectors import list_owner_repos
from src.retrieval.errors import ApiError, AuthError, RetriesExhaustedError
from src.retrieval.http_client import GitHubClient, RemoteApiClient

from .assembler import (
    assemble_snapshot,
    build_contributors,
    enforce_reference_integrity,
    print_summary,
)
from .checkpoint import CheckpointManager, ExportAccumulator, write_json_atomic
from .config import ExportSettings, export_fingerprint, parse_args, resolve_settings
from .exporters import RECORD_KINDS, export_repository
from .reconcile import apply_namespace, namespace_prefix

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2
EXIT_COMPLETED_WITH_SKIPS = 3
EXIT_INTERRUPTED = 130

UnitOutput = Dict[str, List[Dict]]


@dataclass(frozen=True)
class WorkUnit:
    """One repository to export, with the qualifier applied to its ids."""

    owner: str
    repo: str
    prefix: Optional[str] = None

    @property
    def unit_id(self) -> str:
        return f"{self.owner}/{self.repo}"


class UnitLoop:
    """Runs units sequentially, persisting each success before moving on.

    Not-found, empty and malformed units are skipped and recorded. Exhausted
    retries skip the unit too, except on the first unit this invocation
    attempts, where they abort the run. Credential failures always abort.
    """

    def __init__(self, checkpoint: CheckpointManager, accumulator: ExportAccumulator) -> None:
        self.checkpoint = checkpoint
        self.accumulator = accumulator
        self.attempted = 0

    def process(self, unit_id: str, work: Callable[[], UnitOutput]) -> Optional[UnitOutput]:
        """Run one unit; return its output, or None when it was skipped."""
        first = self.attempted == 0
        self.attempted += 1
        self.checkpoint.start_unit(unit_id)
        try:
            output = work()
        except AuthError:
            raise
        except RetriesExhaustedError as exc:
            if first:
                raise
            self.skip(unit_id, f"retries exhausted after {exc.attempts} attempts: {exc}")
            return None
        except ApiError as exc:
            self.skip(unit_id, f"{type(exc).__name__}: {exc}")
            return None
        self.checkpoint.commit_unit(unit_id, output, self.accumulator)
        print(f"[checkpoint] {unit_id} complete ({len(self.checkpoint.completed_units)} units saved)")
        return output

    def skip(self, unit_id: str, reason: str) -> None:
        print(f"[skip] {unit_id}: {reason}")
        self.checkpoint.record_skip(unit_id, reason, self.accumulator)


def plan_units(client: RemoteApiClient, settings: ExportSettings, loop: UnitLoop) -> List[WorkUnit]:
    """Resolve the ordered repository list and each unit's namespace prefix."""
    multi_owner = len(settings.owners) > 1
    units: List[WorkUnit] = []
    for owner in settings.owners:
        if settings.repo:
            repos = [settings.repo]
        else:
            try:
                repos = list_owner_repos(client, owner)
            except AuthError:
                raise
            except RetriesExhaustedError:
                raise
            except ApiError as exc:
                loop.skip(f"{owner}/*", f"cannot list repositories: {exc}")
                continue
            if not repos:
                loop.skip(f"{owner}/*", "no repositories found")
                continue
            if loop.checkpoint.clear_skip(f"{owner}/*", loop.accumulator):
                print(f"[checkpoint] {owner}/* listed on retry, earlier skip cleared")
        multi_repo = len(repos) > 1
        for repo in repos:
            units.append(WorkUnit(owner, repo, namespace_prefix(owner, repo, multi_owner, multi_repo)))
    return units


def process_repo(client: RemoteApiClient, unit: WorkUnit, settings: ExportSettings) -> UnitOutput:
    """Export one repository and namespace its ids for the snapshot."""
    print(f"\n--- Repo: {unit.unit_id} ---")
    output = export_repository(
        client,
        unit.owner,
        unit.repo,
        since=settings.since,
        max_pages=settings.max_pages,
    )
    return apply_namespace(output, unit.prefix)


def scope_label(settings: ExportSettings) -> str:
    if settings.repo:
        return ", ".join(f"{o}/{settings.repo}" for o in settings.owners)
    return ", ".join(f"{o}/*" for o in settings.owners)


def run_export(settings: ExportSettings, client: Optional[RemoteApiClient] = None) -> int:
    """Run (or resume) the export and return the process exit status."""
    client = client or GitHubClient(settings.token)
    accumulator = ExportAccumulator(RECORD_KINDS)
    checkpoint = CheckpointManager(settings.checkpoint_file, export_fingerprint(settings))
    checkpoint.load(accumulator)
    loop = UnitLoop(checkpoint, accumulator)

    print("=" * 60)
    print(f"Exporting GitHub data: {', '.join(settings.owners)}")
    print(f"Organization: {settings.org_slug}")
    print(f"Since: {settings.since or 'all time'}")
    print(f"Max pages per endpoint: {settings.max_pages or 'no cap'}")
    print(f"Output file: {settings.output_file}")
    print("=" * 60)

    try:
        units = plan_units(client, settings, loop)
        for unit in units:
            if checkpoint.is_complete(unit.unit_id):
                print(f"[checkpoint] {unit.unit_id} already exported, skipping fetch")
                continue
            loop.process(unit.unit_id, lambda unit=unit: process_repo(client, unit, settings))
        contributors = build_contributors(client, accumulator.records, settings.owners)
    except AuthError as exc:
        print(f"[abort] credential rejected: {exc}. Checkpoint kept at {checkpoint.path}")
        return EXIT_ABORTED
    except ApiError as exc:
        print(f"[abort] {exc}. Checkpoint kept at {checkpoint.path}")
        return EXIT_ABORTED
    except KeyboardInterrupt:
        print(f"\n[abort] interrupted. Last checkpoint kept at {checkpoint.path}")
        return EXIT_INTERRUPTED

    snapshot = assemble_snapshot(
        accumulator,
        contributors,
        {
            "repository": scope_label(settings),
            "organizationSlug": settings.org_slug,
            "since": settings.since,
        },
        checkpoint.skipped_units,
    )
    enforce_reference_integrity(snapshot, contributors)
    write_json_atomic(Path(settings.output_file), snapshot)
    checkpoint.complete()

    owner_skips = sum(1 for s in checkpoint.skipped_units if s["unit"].endswith("/*"))
    print_summary(snapshot, len(units) + owner_skips, settings.output_file)
    return EXIT_COMPLETED_WITH_SKIPS if checkpoint.skipped_units else EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point; exits 0 on success, 3 when units were skipped, 1 on abort."""
    args = parse_args(argv)
    try:
        settings = resolve_settings(args)
    except ValueError as exc:
        print(f"[error] {exc}")
        sys.exit(EXIT_USAGE)
    sys.exit(run_export(settings))


__all__ = [
    "EXIT_OK",
    "EXIT_ABORTED",
    "EXIT_USAGE",
    "EXIT_COMPLETED_WITH_SKIPS",
    "EXIT_INTERRUPTED",
    "WorkUnit",
    "UnitLoop",
    "plan_units",
    "process_repo",
    "scope_label",
    "run_export",
    "main",
]


if __name__ == "__main__":
    main()
