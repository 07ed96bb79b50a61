"""Tests for src.pipeline.checkpoint persistence and resume bookkeeping.

Run with:
    pytest tests/test_checkpoint.py --maxfail=1 -v --cov=src.pipeline.checkpoint --cov-report=term-missing
"""

import json

from src.pipeline import checkpoint
from src.pipeline.checkpoint import CheckpointManager, ExportAccumulator

KINDS = ("pullRequests", "commits")


def test_accumulator_extend_and_counts():
    acc = ExportAccumulator(KINDS)
    acc.extend({"pullRequests": [{"externalId": "1"}], "ignored": [{"x": 1}]})
    assert acc.counts() == {"pullRequests": 1, "commits": 0}
    assert acc.to_dict() == {"pullRequests": [{"externalId": "1"}], "commits": []}


def test_write_json_atomic_replaces_file(tmp_path):
    target = tmp_path / "nested" / "out.json"
    checkpoint.write_json_atomic(target, {"a": 1})
    checkpoint.write_json_atomic(target, {"a": 2})
    assert json.loads(target.read_text()) == {"a": 2}
    assert [p.name for p in target.parent.iterdir()] == ["out.json"]


def test_fresh_start_without_file(tmp_path):
    mgr = CheckpointManager(tmp_path / "cp.json", "fp")
    assert mgr.load(ExportAccumulator(KINDS)) == checkpoint.FRESH


def test_commit_persists_and_resume_replays(tmp_path):
    path = tmp_path / "cp.json"
    acc = ExportAccumulator(KINDS)
    mgr = CheckpointManager(path, "fp")
    mgr.load(acc)
    mgr.start_unit("o/r1")
    assert mgr.state == checkpoint.RUNNING
    mgr.commit_unit("o/r1", {"pullRequests": [{"externalId": "1"}]}, acc)

    doc = json.loads(path.read_text())
    assert doc["fingerprint"] == "fp"
    assert doc["completedUnits"] == ["o/r1"]
    assert doc["accumulated"]["pullRequests"] == [{"externalId": "1"}]
    assert doc["updatedAt"].endswith("Z")

    resumed_acc = ExportAccumulator(KINDS)
    resumed = CheckpointManager(path, "fp")
    assert resumed.load(resumed_acc) == checkpoint.RESUMING
    assert resumed.is_complete("o/r1")
    assert not resumed.is_complete("o/r2")
    assert resumed_acc.get("pullRequests") == [{"externalId": "1"}]


def test_fingerprint_mismatch_starts_fresh(tmp_path, capsys):
    path = tmp_path / "cp.json"
    acc = ExportAccumulator(KINDS)
    CheckpointManager(path, "old").commit_unit("o/r1", {"commits": [{"sha": "a"}]}, acc)

    fresh_acc = ExportAccumulator(KINDS)
    mgr = CheckpointManager(path, "new")
    assert mgr.load(fresh_acc) == checkpoint.FRESH
    assert mgr.completed_units == []
    assert fresh_acc.counts() == {"pullRequests": 0, "commits": 0}
    assert "different configuration" in capsys.readouterr().out


def test_unreadable_checkpoint_starts_fresh(tmp_path, capsys):
    path = tmp_path / "cp.json"
    path.write_text("{not json")
    mgr = CheckpointManager(path, "fp")
    assert mgr.load(ExportAccumulator(KINDS)) == checkpoint.FRESH
    assert "unreadable checkpoint" in capsys.readouterr().out


def test_skips_are_recorded_and_cleared_on_success(tmp_path):
    path = tmp_path / "cp.json"
    acc = ExportAccumulator(KINDS)
    mgr = CheckpointManager(path, "fp")
    mgr.record_skip("o/r1", "NotFoundError: gone", acc)
    mgr.record_skip("o/r1", "RetriesExhaustedError: flaky", acc)
    assert mgr.skipped_units == [{"unit": "o/r1", "reason": "RetriesExhaustedError: flaky"}]
    assert json.loads(path.read_text())["skippedUnits"] == mgr.skipped_units

    mgr.commit_unit("o/r1", {}, acc)
    assert mgr.skipped_units == []


def test_complete_removes_checkpoint(tmp_path):
    path = tmp_path / "cp.json"
    acc = ExportAccumulator(KINDS)
    mgr = CheckpointManager(path, "fp")
    mgr.commit_unit("o/r1", {}, acc)
    assert path.exists()
    mgr.complete()
    assert not path.exists()
    assert mgr.state == checkpoint.COMPLETED


def test_clear_skip_persists_only_when_something_changed(tmp_path):
    path = tmp_path / "cp.json"
    acc = ExportAccumulator(KINDS)
    mgr = CheckpointManager(path, "fp")
    assert mgr.clear_skip("o/*", acc) is False
    assert not path.exists()

    mgr.record_skip("o/*", "cannot list repositories", acc)
    assert mgr.clear_skip("o/*", acc) is True
    assert mgr.skipped_units == []
    assert json.loads(path.read_text())["skippedUnits"] == []
