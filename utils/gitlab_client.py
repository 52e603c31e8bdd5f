#!/usr/bin/env python3
"""GitLab REST client for commit history.

Projects are addressed by their URL-encoded ``group/subgroup/project`` path.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from configs.config import Config
from utils.commit_models import FileChange, NormalizedCommit
from utils.errors import ProviderError
from utils.vcs_client import VcsClient, build_session, parse_timestamp

logger = logging.getLogger(__name__)

_PREFIXES = [
    re.compile(r"^https?://[^/]+/"),
    re.compile(r"^git@[^:]+:"),
]


def project_path(repo_ref: str) -> str:
    path = (repo_ref or "").strip()
    for prefix in _PREFIXES:
        path = prefix.sub("", path)
    path = path.rstrip("/")
    if path.endswith(".git"):
        path = path[:-4]
    if "/" not in path or any(not seg for seg in path.split("/")):
        raise ProviderError(f"Invalid GitLab project reference: {repo_ref!r}", code="INVALID_REPO")
    return path


def _count_diff_lines(diff: Any) -> tuple:
    if diff is None:
        return 0, 0
    if not isinstance(diff, str):
        raise ValueError(f"diff is not text: {type(diff).__name__}")
    additions = deletions = 0
    for line in diff.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            additions += 1
        elif line.startswith("-") and not line.startswith("---"):
            deletions += 1
    return additions, deletions


class GitlabClient(VcsClient):
    """GitLab REST API (v4) client."""

    provider = "gitlab"

    def __init__(
        self,
        token: Optional[str] = None,
        timeout_s: Optional[int] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        gitlab_config = Config.get_gitlab_config()
        self.token = token or gitlab_config["token"]
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Private-Token"] = self.token
        else:
            logger.warning("No GitLab token configured; only public projects are reachable")
        if session is not None:
            session.headers.update(headers)
        super().__init__(
            base_url or gitlab_config["base_url"],
            int(timeout_s or gitlab_config["timeout_s"]),
            session or build_session(headers),
        )
        # Web host for commit links, e.g. https://gitlab.com
        self.web_url = re.sub(r"/api/v\d+$", "", self.base_url)
        logger.info("GitLab client initialized")

    def _project(self, repo_ref: str) -> str:
        return quote(project_path(repo_ref), safe="")

    def list_commits(self, repo_ref, *, since=None, until=None, per_page=30, page=1, ref_name=None):
        params = {
            "since": since.isoformat() if since else None,
            "until": until.isoformat() if until else None,
            "ref_name": ref_name,
            "per_page": per_page,
            "page": page,
        }
        data = self._get_json(
            f"/projects/{self._project(repo_ref)}/repository/commits",
            params,
            what=f"commits for {project_path(repo_ref)} (page {page})",
        )
        if not isinstance(data, list):
            raise ProviderError(f"Unexpected commits payload for {project_path(repo_ref)}", code="UNKNOWN")
        logger.debug(f"✓ Retrieved {len(data)} commits from {project_path(repo_ref)} page {page}")
        return data

    def compare_refs(self, repo_ref, from_ref, to_ref):
        data = self._get_json(
            f"/projects/{self._project(repo_ref)}/repository/compare",
            {"from": from_ref, "to": to_ref},
            what=f"comparison {from_ref}...{to_ref} in {project_path(repo_ref)}",
        )
        commits = data.get("commits") if isinstance(data, dict) else None
        return list(commits or [])

    def get_commit_detail(self, repo_ref, sha):
        base = f"/projects/{self._project(repo_ref)}/repository/commits/{sha}"
        commit = self._get_json(base, what=f"commit {sha[:7]} in {project_path(repo_ref)}")
        diffs = self._get_json(f"{base}/diff", what=f"diff of {sha[:7]} in {project_path(repo_ref)}")
        if isinstance(commit, dict):
            commit = {**commit, "diffs": diffs if isinstance(diffs, list) else []}
        return commit

    def get_tags(self, repo_ref):
        data = self._get_json(
            f"/projects/{self._project(repo_ref)}/repository/tags",
            {"per_page": 100},
            what=f"tags for {project_path(repo_ref)}",
        )
        return [t.get("name") for t in (data or []) if isinstance(t, dict) and t.get("name")]

    def commit_url(self, repository_url: str, sha: str) -> str:
        if re.match(r"^https?://", repository_url or ""):
            base = repository_url.rstrip("/")
            if base.endswith(".git"):
                base = base[:-4]
            return f"{base}/-/commit/{sha}"
        return f"{self.web_url}/{project_path(repository_url)}/-/commit/{sha}"

    def normalize_commit(self, raw: Dict[str, Any], repo_ref: str) -> NormalizedCommit:
        if not isinstance(raw, dict):
            raise ValueError("commit payload is not an object")
        sha = raw.get("id") or raw.get("sha")
        if not sha or not isinstance(sha, str):
            raise ValueError("commit payload has no id")
        ts = parse_timestamp(raw.get("authored_date")) or parse_timestamp(raw.get("created_at"))
        url = raw.get("web_url") or self.commit_url(repo_ref, sha)
        return NormalizedCommit(
            id=sha,
            message=raw.get("message") or raw.get("title") or "",
            author_name=raw.get("author_name") or "Unknown",
            author_date=ts or datetime.now(timezone.utc),
            url=url,
            files_changed=_gitlab_files(raw.get("diffs")),
        )


def _gitlab_files(raw_diffs: Any) -> List[FileChange]:
    if raw_diffs is None:
        return []
    if not isinstance(raw_diffs, list):
        raise ValueError("diffs is not a list")
    files: List[FileChange] = []
    for d in raw_diffs:
        if not isinstance(d, dict):
            continue
        path = d.get("new_path") or d.get("old_path")
        if not path:
            continue
        if d.get("deleted_file"):
            status = "removed"
        elif d.get("renamed_file"):
            status = "renamed"
        elif d.get("new_file"):
            status = "added"
        else:
            status = "modified"
        additions, deletions = _count_diff_lines(d.get("diff"))
        files.append(FileChange(path=path, status=status, additions=additions, deletions=deletions, patch=d.get("diff")))
    return files
