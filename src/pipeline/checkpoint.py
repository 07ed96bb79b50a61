"""Checkpoint persistence and resume bookkeeping for the per-unit export loop."""

from __future__ import annotations

import datetime as dt
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List

FRESH = "fresh"
RESUMING = "resuming"
RUNNING = "running"
COMPLETED = "completed"


@dataclass
class ExportAccumulator:
    """Output gathered so far, owned by the single sequential export loop."""

    kinds: Iterable[str]
    records: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.kinds = tuple(self.kinds)
        for kind in self.kinds:
            self.records.setdefault(kind, [])

    def extend(self, unit_output: Dict[str, List[Dict[str, Any]]]) -> None:
        for kind in self.kinds:
            self.records[kind].extend(unit_output.get(kind) or [])

    def get(self, kind: str) -> List[Dict[str, Any]]:
        return self.records.get(kind, [])

    def counts(self) -> Dict[str, int]:
        return {kind: len(self.records[kind]) for kind in self.kinds}

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {kind: list(self.records[kind]) for kind in self.kinds}


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON via a temp file in the same directory, fsync, then rename over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class CheckpointManager:
    """Tracks completed units for one configuration fingerprint.

    States: fresh -> running -> completed, or resuming -> running -> completed.
    Every `commit_unit` persists before returning, so a crash after unit K is
    persisted never re-runs unit K. A checkpoint whose fingerprint differs
    from the current run is ignored and overwritten.
    """

    def __init__(self, path: str | Path, fingerprint: str) -> None:
        self.path = Path(path)
        self.fingerprint = fingerprint
        self.state = FRESH
        self.completed_units: List[str] = []
        self.skipped_units: List[Dict[str, str]] = []

    def load(self, accumulator: ExportAccumulator) -> str:
        """Replay a matching checkpoint into `accumulator`; return the resulting state."""
        self.state = FRESH
        if not self.path.exists():
            return self.state
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                doc = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[warn] unreadable checkpoint {self.path} ({exc}); starting fresh")
            return self.state
        if not isinstance(doc, dict) or doc.get("fingerprint") != self.fingerprint:
            print(f"[checkpoint] {self.path} was produced by a different configuration; starting fresh")
            return self.state

        self.completed_units = list(doc.get("completedUnits") or [])
        self.skipped_units = list(doc.get("skippedUnits") or [])
        accumulator.extend(doc.get("accumulated") or {})
        self.state = RESUMING
        print(f"[checkpoint] resuming: {len(self.completed_units)} units already complete")
        return self.state

    def is_complete(self, unit_id: str) -> bool:
        return unit_id in self.completed_units

    def start_unit(self, unit_id: str) -> None:
        self.state = RUNNING

    def commit_unit(self, unit_id: str, unit_output: Dict[str, List[Dict[str, Any]]],
                    accumulator: ExportAccumulator) -> None:
        """Append the unit's output with its completion marker and persist both together."""
        accumulator.extend(unit_output)
        self.completed_units.append(unit_id)
        self.skipped_units = [s for s in self.skipped_units if s.get("unit") != unit_id]
        self._persist(accumulator)

    def record_skip(self, unit_id: str, reason: str, accumulator: ExportAccumulator) -> None:
        self.skipped_units = [s for s in self.skipped_units if s.get("unit") != unit_id]
        self.skipped_units.append({"unit": unit_id, "reason": reason})
        self._persist(accumulator)

    def clear_skip(self, unit_id: str, accumulator: ExportAccumulator) -> bool:
        """Forget an earlier skip of `unit_id`; persists only when one was recorded."""
        remaining = [s for s in self.skipped_units if s.get("unit") != unit_id]
        if len(remaining) == len(self.skipped_units):
            return False
        self.skipped_units = remaining
        self._persist(accumulator)
        return True

    def complete(self) -> None:
        """Drop the checkpoint once the snapshot has been written."""
        self.state = COMPLETED
        if self.path.exists():
            self.path.unlink()

    def _persist(self, accumulator: ExportAccumulator) -> None:
        write_json_atomic(self.path, {
            "fingerprint": self.fingerprint,
            "completedUnits": self.completed_units,
            "skippedUnits": self.skipped_units,
            "accumulated": accumulator.to_dict(),
            "updatedAt": dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        })


__all__ = [
    "FRESH",
    "RESUMING",
    "RUNNING",
    "COMPLETED",
    "ExportAccumulator",
    "write_json_atomic",
    "CheckpointManager",
]
