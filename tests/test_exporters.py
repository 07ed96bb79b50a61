"""Tests for src.pipeline.exporters, the per-repository unit of work.

Run with coverage:
    pytest tests/test_exporters.py --maxfail=1 -v --cov=src.pipeline.exporters --cov-report=term-missing
"""

import datetime as dt

import pytest

from conftest import FakeClient, gql_pr, pr_details_handler, rest_commit, rest_pr
from src.pipeline import exporters
from src.retrieval.errors import AuthError, NotFoundError


def _review(review_id, login, state="APPROVED"):
    return {
        "id": review_id,
        "user": {"login": login},
        "state": state,
        "submitted_at": "2025-01-02T00:00:00Z",
        "body": "",
    }


def _repo_client(**overrides):
    details = {"r": {
        1: gql_pr(1, [{"sha": "a", "login": "alice"}, {"sha": "b", "login": "dependabot[bot]"}]),
        2: gql_pr(2, [{"sha": "c", "login": "dependabot[bot]"}]),
        3: gql_pr(3, [{"sha": "a", "login": "alice"}, {"sha": "x", "login": "carol",
                                                      "message": "Co-Authored-By: Claude <noreply@anthropic.com>"}]),
    }}
    pages = {
        "repos/o/r/pulls": [rest_pr(1, "alice"), rest_pr(2, "dependabot[bot]"),
                            rest_pr(3, "carol", state="open", merged_at=None)],
        "repos/o/r/pulls/1/reviews": [
            _review(11, "bob"),
            _review(12, "github-actions[bot]", "COMMENTED"),
            _review(13, "carol", "PENDING"),
        ],
        "repos/o/r/commits": [
            rest_commit("a", "alice"),
            rest_commit("c", "dependabot[bot]"),
            rest_commit("d", "alice", "hotfix"),
            rest_commit("e", "renovate[bot]"),
        ],
        "repos/o/r/issues": [
            {"number": 4, "title": "Bug", "state": "closed", "user": {"login": "bob"}, "assignee": None,
             "created_at": "2025-01-01T00:00:00Z", "closed_at": "2025-01-01T06:00:00Z",
             "html_url": "https://github.com/o/r/issues/4", "labels": []},
            {"number": 5, "title": "Bump", "state": "open", "user": {"login": "renovate[bot]"}},
        ],
    }
    pages.update(overrides)
    return FakeClient(pages=pages, graphql=pr_details_handler(details))


def test_export_repository_excludes_bots_and_dedupes_commits():
    client = _repo_client()
    output = exporters.export_repository(client, "o", "r", batch_pause_sec=0)

    assert [pr["externalId"] for pr in output["pullRequests"]] == ["1", "3"]
    assert client.count("list", "repos/o/r/pulls/2/reviews") == 0

    shas = [c["sha"] for c in output["commits"]]
    assert sorted(shas) == ["a", "d", "x"]
    by_sha = {c["sha"]: c for c in output["commits"]}
    assert by_sha["a"]["prExternalId"] == "1"
    assert by_sha["x"]["prExternalId"] == "3"
    assert by_sha["d"]["prExternalId"] is None
    assert by_sha["x"]["isAiAssisted"] is True
    assert by_sha["x"]["aiTool"] == "Claude"

    assert [r["reviewerUsername"] for r in output["reviews"]] == ["bob"]
    assert output["reviews"][0]["state"] == "approved"
    assert [i["externalId"] for i in output["issues"]] == ["4"]
    assert output["issues"][0]["cycleTimeHours"] == 6.0


def test_pull_request_record_fields():
    client = _repo_client()
    prs, reviews, _, attributed = exporters.export_pull_requests(client, "o", "r", batch_pause_sec=0)
    merged = prs[0]
    assert merged["state"] == "merged"
    assert merged["cycleTimeHours"] == 36.0
    assert merged["additions"] == 10 and merged["deletions"] == 2
    assert merged["reviewsCount"] == 1
    assert merged["metadata"]["labels"] == ["feature"]
    assert prs[1]["state"] == "open"
    assert prs[1]["cycleTimeHours"] is None
    assert {"a", "b", "c", "x"} <= attributed


def test_since_filters_old_pull_requests():
    client = _repo_client(**{"repos/o/r/pulls": [
        rest_pr(1, "alice", created_at="2024-06-01T00:00:00Z"),
        rest_pr(3, "carol", created_at="2025-02-01T00:00:00Z"),
    ]})
    since = dt.datetime(2025, 1, 1, tzinfo=dt.timezone.utc)
    prs, _, _, _ = exporters.export_pull_requests(client, "o", "r", since=since, batch_pause_sec=0)
    assert [pr["externalId"] for pr in prs] == ["3"]


def test_disabled_issue_tracker_yields_empty_list(capsys):
    client = _repo_client(**{"repos/o/r/issues": NotFoundError("Issues are disabled", status=410)})
    assert exporters.export_issues(client, "o", "r") == []
    assert "could not fetch issues" in capsys.readouterr().out


def test_empty_issue_list_warns(capsys):
    client = _repo_client(**{"repos/o/r/issues": []})
    assert exporters.export_issues(client, "o", "r") == []
    assert "no issues found" in capsys.readouterr().out


def test_review_failure_is_warned_not_fatal(capsys):
    client = _repo_client(**{"repos/o/r/pulls/1/reviews": NotFoundError("gone", status=404)})
    prs, reviews, _, _ = exporters.export_pull_requests(client, "o", "r", batch_pause_sec=0)
    assert prs[0]["reviewsCount"] == 0
    assert reviews == []
    assert "reviews unavailable" in capsys.readouterr().out


def test_auth_failure_in_reviews_propagates():
    client = _repo_client(**{"repos/o/r/pulls/1/reviews": AuthError("bad token", status=401)})
    with pytest.raises(AuthError):
        exporters.export_pull_requests(client, "o", "r", batch_pause_sec=0)


def test_pull_request_listing_failure_propagates():
    client = _repo_client(**{"repos/o/r/pulls": NotFoundError("gone", status=404)})
    with pytest.raises(NotFoundError):
        exporters.export_repository(client, "o", "r")


def test_normalize_review_drops_pending():
    assert exporters.normalize_review(_review(1, "bob", "PENDING"), "1") is None
    assert exporters.normalize_review(_review(1, "bob"), "1")["externalId"] == "1"
