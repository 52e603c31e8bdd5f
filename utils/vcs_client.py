#!/usr/bin/env python3
"""Shared REST plumbing for VCS provider clients.

Subclasses supply auth headers, URL layout, and payload normalization; this
module owns the retrying session and the HTTP status to ProviderError mapping.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from utils.commit_models import NormalizedCommit, Provider
from utils.errors import ProviderError

logger = logging.getLogger(__name__)

USER_AGENT = "changelog-engine/1.0"


def build_session(headers: Dict[str, str]) -> requests.Session:
    """Create a session with retries for transient failures."""
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, **headers})
    retry_strategy = Retry(
        total=3,
        status_forcelist=[429, 500, 502, 503, 504],
        backoff_factor=1,
        allowed_methods=["HEAD", "GET", "OPTIONS"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 provider timestamp; None when absent or unreadable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def line_count(value: Any, field: str) -> int:
    """Non-negative line count from a payload field; raises ValueError when it is not an integer."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} is not an integer: {value!r}")
    return max(0, value)


def nested_object(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Sub-object of a payload; absent means empty, any other type raises ValueError."""
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} is not an object")
    return value


class VcsClient(ABC):
    """Base class for provider REST clients."""

    provider: Provider

    def __init__(self, base_url: str, timeout_s: int, session: requests.Session) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None, *, what: str) -> Any:
        url = f"{self.base_url}{path}"
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            logger.debug(f"GET {url} {clean}")
            response = self.session.get(url, params=clean, timeout=self.timeout_s)
        except requests.Timeout as e:
            raise ProviderError(f"Timed out fetching {what}: {e}", code="TIMEOUT") from e
        except requests.RequestException as e:
            raise ProviderError(f"Failed to fetch {what}: {e}", code="NETWORK") from e

        status = response.status_code
        if status == 401:
            raise ProviderError(f"Invalid {self.provider} token or insufficient permissions", status_code=401)
        elif status == 404:
            raise ProviderError(f"{what} not found", status_code=404)
        elif status == 403 and "rate limit" in (response.text or "").lower():
            raise ProviderError(f"{self.provider} API rate limit exceeded", status_code=429)
        elif status >= 400:
            raise ProviderError(f"{self.provider} API error: HTTP {status} while fetching {what}", status_code=status)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {self.provider} for {what}", status_code=status, code="UNKNOWN") from e

    @abstractmethod
    def list_commits(
        self,
        repo_ref: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        per_page: int = 30,
        page: int = 1,
    ) -> List[Dict[str, Any]]:
        """Return one page of raw commit payloads, newest first."""

    @abstractmethod
    def compare_refs(self, repo_ref: str, from_ref: str, to_ref: str) -> List[Dict[str, Any]]:
        """Return raw commit payloads between two refs."""

    @abstractmethod
    def get_commit_detail(self, repo_ref: str, sha: str) -> Dict[str, Any]:
        """Return one raw commit payload including its file changes."""

    @abstractmethod
    def get_tags(self, repo_ref: str) -> List[str]:
        """Return tag names, newest first as the provider orders them."""

    @abstractmethod
    def normalize_commit(self, raw: Dict[str, Any], repo_ref: str) -> NormalizedCommit:
        """Convert a raw payload; raises ValueError for a malformed record."""

    @abstractmethod
    def commit_url(self, repository_url: str, sha: str) -> str:
        """Web URL of a commit in the provider's URL shape."""

    def close(self) -> None:
        self.session.close()
