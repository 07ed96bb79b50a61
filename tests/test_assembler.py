"""Tests for src.pipeline.assembler contributor resolution and snapshot assembly.

Run with:
    pytest tests/test_assembler.py --maxfail=1 -v --cov=src.pipeline.assembler --cov-report=term-missing
"""

from conftest import FakeClient
from src.pipeline import assembler
from src.pipeline.checkpoint import ExportAccumulator
from src.pipeline.exporters import RECORD_KINDS
from src.retrieval.errors import RetriesExhaustedError


def _records():
    return {
        "pullRequests": [{"externalId": "1", "authorUsername": "alice"}],
        "reviews": [{"externalId": "9", "prExternalId": "1", "reviewerUsername": "bob"}],
        "commits": [
            {"sha": "a", "prExternalId": "1", "authorUsername": "alice"},
            {"sha": "b", "prExternalId": "missing", "authorUsername": None},
        ],
        "issues": [{"externalId": "3", "authorUsername": "carol", "assigneeUsername": "ghost"}],
    }


def test_referenced_usernames_first_seen_order():
    assert assembler.referenced_usernames(_records()) == ["alice", "carol", "ghost", "bob"]


def test_build_contributors_prefers_org_email_and_survives_profile_failure(capsys):
    client = FakeClient(
        pages={"graphql": [{"login": "alice", "email": "alice@acme.dev"}]},
        singles={
            "users/alice": {"login": "alice", "id": 1, "name": "Alice", "email": "alice@home.dev",
                            "avatar_url": "https://a"},
            "users/bob": {"login": "bob", "id": 2, "name": None, "email": "bob@home.dev"},
            "users/carol": RetriesExhaustedError("flaky", attempts=3),
        },
    )
    records = {"pullRequests": [{"authorUsername": "alice"}],
               "reviews": [{"reviewerUsername": "bob"}],
               "issues": [{"authorUsername": "carol"}]}
    contributors = assembler.build_contributors(client, records, ["acme"])
    by_name = {c["externalUsername"]: c for c in contributors}

    assert by_name["alice"]["email"] == "alice@acme.dev"
    assert by_name["alice"]["externalId"] == "1"
    assert by_name["bob"]["email"] == "bob@home.dev"
    assert by_name["carol"] == {
        "externalUsername": "carol",
        "externalId": None,
        "displayName": None,
        "email": None,
        "avatarUrl": None,
    }
    assert "profile lookup failed for carol" in capsys.readouterr().out


def test_build_jira_contributors_dedupes_and_excludes_apps():
    people = [
        {"accountId": "u1", "displayName": "Alice", "emailAddress": "a@x", "avatarUrls": {"48x48": "img"}},
        {"accountId": "u1", "displayName": "Alice again"},
        {"accountId": "app", "displayName": "Automation for Jira", "accountType": "app"},
        {"accountId": "b1", "displayName": "release-bot"},
        {"displayName": "no id"},
    ]
    contributors = assembler.build_jira_contributors(people)
    assert contributors == [{
        "externalUsername": "u1",
        "externalId": "u1",
        "displayName": "Alice",
        "email": "a@x",
        "avatarUrl": "img",
    }]


def test_enforce_reference_integrity_clears_dangling(capsys):
    records = _records()
    contributors = [{"externalUsername": name} for name in ("alice", "bob", "carol")]
    fixed = assembler.enforce_reference_integrity(records, contributors)
    assert fixed == 2
    assert records["issues"][0]["assigneeUsername"] is None
    assert records["commits"][1]["prExternalId"] is None
    assert records["commits"][0]["prExternalId"] == "1"
    assert "cleared 2 dangling references" in capsys.readouterr().out


def test_assemble_snapshot_shape():
    acc = ExportAccumulator(RECORD_KINDS)
    acc.extend({"pullRequests": [{"externalId": "1"}]})
    skipped = [{"unit": "o/gone", "reason": "NotFoundError: gone"}]
    snapshot = assembler.assemble_snapshot(
        acc, [], {"repository": "o/*", "organizationSlug": "o", "since": None}, skipped,
    )
    assert set(snapshot) == {"metadata", "contributors", "pullRequests", "reviews", "commits", "issues"}
    meta = snapshot["metadata"]
    assert meta["version"] == "1.0.0"
    assert meta["since"] is None
    assert meta["skippedUnits"] == skipped
    assert meta["exportedAt"].endswith("Z")


def test_print_summary_lists_skips(capsys):
    snapshot = {"metadata": {"skippedUnits": [{"unit": "o/gone", "reason": "gone"}]},
                "contributors": [], "pullRequests": [{}]}
    assembler.print_summary(snapshot, 3, "out.json")
    out = capsys.readouterr().out
    assert "2/3 exported" in out
    assert "skipped o/gone: gone" in out
    assert "with skipped units" in out
