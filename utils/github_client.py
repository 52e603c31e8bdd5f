#!/usr/bin/env python3
"""GitHub REST client for commit history.

Accepts ``https://github.com/owner/repo(.git)``, ``git@github.com:owner/repo.git``
or plain ``owner/repo`` references.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from configs.config import Config
from utils.commit_models import FileChange, NormalizedCommit
from utils.errors import ProviderError
from utils.vcs_client import VcsClient, build_session, line_count, nested_object, parse_timestamp

logger = logging.getLogger(__name__)

_REPO_PATTERNS = [
    re.compile(r"^https?://github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$"),
    re.compile(r"^git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$"),
    re.compile(r"^([\w.-]+)/([\w.-]+)$"),
]

_FILE_STATUS = {
    "added": "added",
    "copied": "added",
    "removed": "removed",
    "renamed": "renamed",
}


def parse_repo_ref(repo_ref: str) -> Tuple[str, str]:
    ref = (repo_ref or "").strip()
    for pattern in _REPO_PATTERNS:
        match = pattern.match(ref)
        if match:
            return match.group(1), match.group(2)
    raise ProviderError(f"Invalid GitHub repository reference: {repo_ref!r}", code="INVALID_REPO")


def _iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class GithubClient(VcsClient):
    """GitHub REST API client."""

    provider = "github"

    def __init__(
        self,
        token: Optional[str] = None,
        timeout_s: Optional[int] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize GitHub client.

        Args:
            token: Personal access token (defaults to Config.GITHUB_TOKEN)
            timeout_s: Request timeout in seconds (defaults to Config.HTTP_TIMEOUT_S)
            base_url: API root, for GitHub Enterprise
            session: Preconfigured session, mainly for tests
        """
        github_config = Config.get_github_config()
        self.token = token or github_config["token"]
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        else:
            logger.warning("No GitHub token configured; using unauthenticated requests")
        if session is not None:
            session.headers.update(headers)
        super().__init__(
            base_url or github_config["base_url"],
            int(timeout_s or github_config["timeout_s"]),
            session or build_session(headers),
        )
        logger.info("GitHub client initialized")

    def list_commits(self, repo_ref, *, since=None, until=None, per_page=30, page=1, sha=None, path=None):
        owner, repo = parse_repo_ref(repo_ref)
        params = {
            "since": _iso(since),
            "until": _iso(until),
            "sha": sha,
            "path": path,
            "per_page": per_page,
            "page": page,
        }
        data = self._get_json(f"/repos/{owner}/{repo}/commits", params, what=f"commits for {owner}/{repo} (page {page})")
        if not isinstance(data, list):
            raise ProviderError(f"Unexpected commits payload for {owner}/{repo}", code="UNKNOWN")
        logger.debug(f"✓ Retrieved {len(data)} commits from {owner}/{repo} page {page}")
        return data

    def compare_refs(self, repo_ref, from_ref, to_ref):
        owner, repo = parse_repo_ref(repo_ref)
        data = self._get_json(
            f"/repos/{owner}/{repo}/compare/{from_ref}...{to_ref}",
            what=f"comparison {from_ref}...{to_ref} in {owner}/{repo}",
        )
        commits = data.get("commits") if isinstance(data, dict) else None
        return list(commits or [])

    def get_commit_detail(self, repo_ref, sha):
        owner, repo = parse_repo_ref(repo_ref)
        return self._get_json(f"/repos/{owner}/{repo}/commits/{sha}", what=f"commit {sha[:7]} in {owner}/{repo}")

    def get_tags(self, repo_ref):
        owner, repo = parse_repo_ref(repo_ref)
        data = self._get_json(f"/repos/{owner}/{repo}/tags", {"per_page": 100}, what=f"tags for {owner}/{repo}")
        return [t.get("name") for t in (data or []) if isinstance(t, dict) and t.get("name")]

    def commit_url(self, repository_url: str, sha: str) -> str:
        try:
            owner, repo = parse_repo_ref(repository_url)
            return f"https://github.com/{owner}/{repo}/commit/{sha}"
        except ProviderError:
            return f"{repository_url.rstrip('/')}/commit/{sha}"

    def normalize_commit(self, raw: Dict[str, Any], repo_ref: str) -> NormalizedCommit:
        return normalize_github_commit(raw, repo_ref)


def _github_files(raw_files: Any) -> List[FileChange]:
    if raw_files is None:
        return []
    if not isinstance(raw_files, list):
        raise ValueError("files is not a list")
    files: List[FileChange] = []
    for f in raw_files:
        if not isinstance(f, dict) or not f.get("filename"):
            continue
        files.append(
            FileChange(
                path=f["filename"],
                status=_FILE_STATUS.get(f.get("status"), "modified"),
                additions=line_count(f.get("additions"), "additions"),
                deletions=line_count(f.get("deletions"), "deletions"),
                patch=f.get("patch"),
            )
        )
    return files


def normalize_github_commit(raw: Dict[str, Any], repo_ref: str) -> NormalizedCommit:
    """Normalize one GitHub commit payload.

    Missing author, date, url, or files fall back to defaults. A payload that
    is not an object, lacks a sha, or carries wrongly typed nested fields
    raises ValueError.
    """
    if not isinstance(raw, dict):
        raise ValueError("commit payload is not an object")
    sha = raw.get("sha")
    if not sha or not isinstance(sha, str):
        raise ValueError("commit payload has no sha")
    commit = nested_object(raw, "commit")
    author = nested_object(commit, "author")
    url = raw.get("html_url")
    if not url:
        try:
            owner, repo = parse_repo_ref(repo_ref)
            url = f"https://github.com/{owner}/{repo}/commit/{sha}"
        except ProviderError:
            url = ""
    return NormalizedCommit(
        id=sha,
        message=commit.get("message") or "",
        author_name=author.get("name") or "Unknown",
        author_date=parse_timestamp(author.get("date")) or datetime.now(timezone.utc),
        url=url,
        files_changed=_github_files(raw.get("files")),
    )
