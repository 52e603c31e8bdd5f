#!/usr/bin/env python3
"""Tests for the commit source adapter: paging, ordering and malformed records."""

import threading
from datetime import datetime, timezone

import pytest

from utils.commit_source import CommitSourceAdapter
from utils.errors import ProviderError
import requests

from utils.errors import ParseAnomaly
from utils.github_client import normalize_github_commit
from utils.gitlab_client import GitlabClient
from utils.vcs_client import VcsClient


def raw_commit(sha, message="feat: thing", date="2024-05-01T10:00:00Z"):
    return {
        "sha": sha,
        "html_url": f"https://github.com/octo/app/commit/{sha}",
        "commit": {"message": message, "author": {"name": "Mona", "date": date}},
    }


class FakeClient(VcsClient):
    """Serves canned pages; a page mapped to an exception raises it."""

    provider = "github"

    def __init__(self, pages, tags=None, compare=None):
        self.pages = pages
        self.tags = tags or []
        self.compare = compare or []
        self.requested = []
        self._lock = threading.Lock()
        self.closed = False

    def list_commits(self, repo_ref, *, since=None, until=None, per_page=30, page=1):
        with self._lock:
            self.requested.append(page)
        result = self.pages.get(page, [])
        if isinstance(result, Exception):
            raise result
        return result

    def compare_refs(self, repo_ref, from_ref, to_ref):
        return self.compare

    def get_commit_detail(self, repo_ref, sha):
        return raw_commit(sha)

    def get_tags(self, repo_ref):
        return self.tags

    def normalize_commit(self, raw, repo_ref):
        return normalize_github_commit(raw, repo_ref)

    def commit_url(self, repository_url, sha):
        return f"{repository_url}/commit/{sha}"

    def close(self):
        self.closed = True


def test_pages_are_concatenated_in_provider_order():
    client = FakeClient({
        1: [raw_commit("a1"), raw_commit("a2")],
        2: [raw_commit("b1"), raw_commit("b2")],
        3: [raw_commit("c1")],
    })
    adapter = CommitSourceAdapter(client, per_page=2, max_pages=10, workers=3)
    commits = adapter.fetch_commits("octo/app")
    assert [c.id for c in commits] == ["a1", "a2", "b1", "b2", "c1"]


def test_short_first_page_ends_paging():
    client = FakeClient({1: [raw_commit("only")]})
    adapter = CommitSourceAdapter(client, per_page=30, max_pages=5, workers=1)
    assert [c.id for c in adapter.fetch_commits("octo/app")] == ["only"]
    assert client.requested == [1]


def test_empty_history():
    adapter = CommitSourceAdapter(FakeClient({}), per_page=30, max_pages=5, workers=2)
    assert adapter.fetch_commits("octo/app") == []


def test_page_failure_discards_everything():
    client = FakeClient({
        1: [raw_commit("a1"), raw_commit("a2")],
        2: ProviderError("boom", status_code=500),
        3: [raw_commit("c1")],
    })
    adapter = CommitSourceAdapter(client, per_page=2, max_pages=10, workers=2)
    with pytest.raises(ProviderError) as exc:
        adapter.fetch_commits("octo/app")
    assert exc.value.code == "SERVER"
    assert exc.value.retryable


def test_unexpected_exception_is_wrapped():
    client = FakeClient({1: RuntimeError("socket closed")})
    adapter = CommitSourceAdapter(client, per_page=2, max_pages=3, workers=1)
    with pytest.raises(ProviderError) as exc:
        adapter.fetch_commits("octo/app")
    assert exc.value.code == "UNKNOWN"


def test_page_limit_truncates():
    full = {p: [raw_commit(f"p{p}a"), raw_commit(f"p{p}b")] for p in range(1, 10)}
    adapter = CommitSourceAdapter(FakeClient(full), per_page=2, max_pages=3, workers=2)
    commits = adapter.fetch_commits("octo/app")
    assert len(commits) == 6
    assert commits[-1].id == "p3b"


def test_malformed_records_are_dropped_with_anomaly():
    client = FakeClient({1: [raw_commit("good1"), {"commit": {"message": "no sha"}}, "junk", raw_commit("good2")]})
    adapter = CommitSourceAdapter(client, per_page=30, max_pages=1, workers=1)
    commits = adapter.fetch_commits("octo/app")
    assert [c.id for c in commits] == ["good1", "good2"]
    assert len(adapter.anomalies) == 2


def with_files(sha, files):
    raw = raw_commit(sha)
    raw["files"] = files
    return raw


@pytest.mark.parametrize(
    "bad",
    [
        with_files("bad", [{"filename": "f.py", "additions": [1]}]),
        with_files("bad", [{"filename": "f.py", "deletions": {"n": 2}}]),
        with_files("bad", [{"filename": "f.py", "additions": "3"}]),
        with_files("bad", {"filename": "f.py"}),
        {"sha": "bad", "commit": "feat: not an object"},
        {"sha": "bad", "commit": {"message": "feat: x", "author": ["Mona"]}},
    ],
)
def test_malformed_nested_fields_drop_only_that_record(bad):
    client = FakeClient({1: [raw_commit("good1"), bad, raw_commit("good2")]})
    adapter = CommitSourceAdapter(client, per_page=30, max_pages=1, workers=1)
    assert [c.id for c in adapter.fetch_commits("octo/app")] == ["good1", "good2"]
    assert len(adapter.anomalies) == 1
    assert isinstance(adapter.anomalies[0], ParseAnomaly)
    assert adapter.anomalies[0].source == "github:octo/app#1"


def test_malformed_records_between_refs_are_dropped():
    client = FakeClient({}, compare=[raw_commit("c1"), with_files("c2", [{"filename": "f.py", "additions": [1]}])])
    adapter = CommitSourceAdapter(client, workers=1)
    assert [c.id for c in adapter.fetch_commits_between("octo/app", "v1.0.0", "v1.1.0")] == ["c1"]
    assert len(adapter.anomalies) == 1


class FakeGitlabPages(FakeClient):
    provider = "gitlab"

    def __init__(self, pages):
        super().__init__(pages)
        self.gitlab = GitlabClient(token="t", session=requests.Session())

    def normalize_commit(self, raw, repo_ref):
        return self.gitlab.normalize_commit(raw, repo_ref)


def gitlab_commit(sha, diffs=None):
    raw = {"id": sha, "message": "fix: y", "author_name": "Ada", "authored_date": "2024-02-03T04:05:06+00:00"}
    if diffs is not None:
        raw["diffs"] = diffs
    return raw


@pytest.mark.parametrize(
    "diffs",
    [
        [{"new_path": "a.py", "diff": 5}],
        [{"new_path": "a.py", "diff": ["+x"]}],
        "not a list",
    ],
)
def test_gitlab_malformed_diff_drops_only_that_record(diffs):
    client = FakeGitlabPages({1: [gitlab_commit("g1", [{"new_path": "a.py", "diff": "+x\n"}]), gitlab_commit("bad", diffs), gitlab_commit("g2")]})
    adapter = CommitSourceAdapter(client, per_page=30, max_pages=1, workers=1)
    commits = adapter.fetch_commits("group/app")
    assert [c.id for c in commits] == ["g1", "g2"]
    assert commits[0].files_changed[0].additions == 1
    assert len(adapter.anomalies) == 1


def test_malformed_commit_detail_raises_provider_error():
    class BadDetail(FakeClient):
        def get_commit_detail(self, repo_ref, sha):
            return with_files(sha, [{"filename": "f.py", "additions": [1]}])

    with pytest.raises(ProviderError):
        CommitSourceAdapter(BadDetail({}), workers=1).get_commit_detail("octo/app", "abc")


def test_duplicate_ids_are_collapsed():
    client = FakeClient({1: [raw_commit("x"), raw_commit("x"), raw_commit("y")]})
    adapter = CommitSourceAdapter(client, per_page=30, max_pages=1, workers=1)
    assert [c.id for c in adapter.fetch_commits("octo/app")] == ["x", "y"]


def test_missing_author_and_date_get_defaults():
    raw = {"sha": "abc", "commit": {"message": "fix: x"}}
    commit = normalize_github_commit(raw, "octo/app")
    assert commit.author_name == "Unknown"
    assert commit.author_date.tzinfo is not None
    assert commit.url == "https://github.com/octo/app/commit/abc"
    assert commit.files_changed == []


def test_fetch_commits_between_uses_compare():
    client = FakeClient({}, compare=[raw_commit("c1"), raw_commit("c2")])
    adapter = CommitSourceAdapter(client, workers=1)
    assert [c.id for c in adapter.fetch_commits_between("octo/app", "v1.0.0", "v1.1.0")] == ["c1", "c2"]


def test_commit_detail_and_latest_version():
    client = FakeClient({}, tags=["nightly", "v1.2.0", "v1.10.0", "1.9.9"])
    adapter = CommitSourceAdapter(client, workers=1)
    assert adapter.get_commit_detail("octo/app", "deadbeef").id == "deadbeef"
    assert adapter.latest_version("octo/app") == "1.10.0"
    adapter.close()
    assert client.closed


def test_author_date_is_parsed():
    commit = normalize_github_commit(raw_commit("d", date="2024-01-02T03:04:05Z"), "octo/app")
    assert commit.author_date == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
