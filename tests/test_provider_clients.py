#!/usr/bin/env python3
"""Tests for the GitHub and GitLab REST clients against a fake session."""

import pytest
import requests

from utils.errors import ProviderError
from utils.github_client import GithubClient, parse_repo_ref
from utils.gitlab_client import GitlabClient, project_path


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Routes GET calls by URL suffix; records every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self.headers = {}

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(404, {"message": "Not Found"})

    def close(self):
        pass


@pytest.mark.parametrize(
    "ref",
    ["https://github.com/octo/app", "https://github.com/octo/app.git", "git@github.com:octo/app.git", "octo/app"],
)
def test_parse_repo_ref_forms(ref):
    assert parse_repo_ref(ref) == ("octo", "app")


def test_parse_repo_ref_rejects_garbage():
    with pytest.raises(ProviderError) as exc:
        parse_repo_ref("not a repo")
    assert exc.value.code == "INVALID_REPO"


def test_github_list_commits_sends_paging_params():
    session = FakeSession({"/repos/octo/app/commits": FakeResponse(200, [{"sha": "a"}])})
    client = GithubClient(token="t", session=session)
    assert client.list_commits("octo/app", per_page=50, page=2) == [{"sha": "a"}]
    url, params = session.calls[0]
    assert url == "https://api.github.com/repos/octo/app/commits"
    assert params == {"per_page": 50, "page": 2}
    assert session.headers["Authorization"] == "Bearer t"


@pytest.mark.parametrize(
    "status,text,code",
    [
        (401, "", "UNAUTHORIZED"),
        (404, "", "NOT_FOUND"),
        (403, "API rate limit exceeded", "RATE_LIMIT"),
        (502, "", "SERVER"),
    ],
)
def test_github_status_mapping(status, text, code):
    session = FakeSession({"/commits": FakeResponse(status, {}, text)})
    client = GithubClient(token="t", session=session)
    with pytest.raises(ProviderError) as exc:
        client.list_commits("octo/app")
    assert exc.value.code == code


def test_github_timeout_and_network_errors():
    client = GithubClient(token="t", session=FakeSession({"/commits": requests.Timeout("slow")}))
    with pytest.raises(ProviderError) as exc:
        client.list_commits("octo/app")
    assert exc.value.code == "TIMEOUT"

    client = GithubClient(token="t", session=FakeSession({"/commits": requests.ConnectionError("down")}))
    with pytest.raises(ProviderError) as exc:
        client.list_commits("octo/app")
    assert exc.value.code == "NETWORK"


def test_github_compare_and_detail():
    session = FakeSession({
        "/compare/v1.0.0...v1.1.0": FakeResponse(200, {"commits": [{"sha": "a"}, {"sha": "b"}]}),
        "/commits/abc123": FakeResponse(200, {
            "sha": "abc123",
            "commit": {"message": "fix: x", "author": {"name": "Mona", "date": "2024-01-01T00:00:00Z"}},
            "files": [
                {"filename": "a.py", "status": "copied", "additions": 3, "deletions": 1},
                {"filename": "b.py", "status": "changed"},
            ],
        }),
    })
    client = GithubClient(token="t", session=session)
    assert [c["sha"] for c in client.compare_refs("octo/app", "v1.0.0", "v1.1.0")] == ["a", "b"]
    commit = client.normalize_commit(client.get_commit_detail("octo/app", "abc123"), "octo/app")
    assert [(f.path, f.status) for f in commit.files_changed] == [("a.py", "added"), ("b.py", "modified")]
    assert commit.files_changed[0].additions == 3


def test_github_commit_url():
    client = GithubClient(token="t", session=FakeSession({}))
    assert client.commit_url("https://github.com/octo/app.git", "abc") == "https://github.com/octo/app/commit/abc"


def test_gitlab_project_path():
    assert project_path("https://gitlab.com/group/sub/app.git") == "group/sub/app"
    assert project_path("git@gitlab.com:group/app.git") == "group/app"
    with pytest.raises(ProviderError):
        project_path("app")


def test_gitlab_list_commits_encodes_project():
    session = FakeSession({"/repository/commits": FakeResponse(200, [])})
    client = GitlabClient(token="t", session=session)
    client.list_commits("group/sub/app", page=3)
    url, params = session.calls[0]
    assert url == "https://gitlab.com/api/v4/projects/group%2Fsub%2Fapp/repository/commits"
    assert params["page"] == 3
    assert session.headers["Private-Token"] == "t"


def test_gitlab_compare_preserves_provider_order():
    session = FakeSession({"/repository/compare": FakeResponse(200, {"commits": [{"id": "1"}, {"id": "2"}, {"id": "3"}]})})
    client = GitlabClient(token="t", session=session)
    assert [c["id"] for c in client.compare_refs("group/app", "v1", "v2")] == ["1", "2", "3"]
    assert session.calls[0][1] == {"from": "v1", "to": "v2"}


def test_gitlab_detail_merges_diffs():
    session = FakeSession({
        "/repository/commits/abc": FakeResponse(200, {
            "id": "abc",
            "message": "feat: gitlab thing",
            "author_name": "Ada",
            "authored_date": "2024-02-03T04:05:06+00:00",
            "web_url": "https://gitlab.com/group/app/-/commit/abc",
        }),
        "/repository/commits/abc/diff": FakeResponse(200, [
            {"new_path": "n.py", "new_file": True, "diff": "+a\n+b\n"},
            {"old_path": "o.py", "new_path": "o.py", "deleted_file": True, "diff": "-x\n"},
            {"old_path": "r.py", "new_path": "r2.py", "renamed_file": True, "diff": ""},
        ]),
    })
    client = GitlabClient(token="t", session=session)
    commit = client.normalize_commit(client.get_commit_detail("group/app", "abc"), "group/app")
    assert commit.author_name == "Ada"
    assert [(f.path, f.status, f.additions, f.deletions) for f in commit.files_changed] == [
        ("n.py", "added", 2, 0),
        ("o.py", "removed", 0, 1),
        ("r2.py", "renamed", 0, 0),
    ]


def test_gitlab_commit_url_shapes():
    client = GitlabClient(token="t", session=FakeSession({}))
    assert client.commit_url("https://gitlab.example.com/g/app", "abc") == "https://gitlab.example.com/g/app/-/commit/abc"
    assert client.commit_url("g/app", "abc") == "https://gitlab.com/g/app/-/commit/abc"


def test_gitlab_normalize_without_id_raises():
    client = GitlabClient(token="t", session=FakeSession({}))
    with pytest.raises(ValueError):
        client.normalize_commit({"message": "x"}, "g/app")
