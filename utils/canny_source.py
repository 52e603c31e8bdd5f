#!/usr/bin/env python3
"""Canny changelog import source.

Fetches published changelog entries from Canny and shape-adapts them into
the same validated batch produced by the Markdown parser.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

import requests
from pydantic import BaseModel, Field

from configs.config import Config
from utils.changelog_models import ValidatedEntry
from utils.errors import ProviderError
from utils.markdown_import import FormatDetection, ImportParseOutcome
from utils.validation import validate_entries
from utils.vcs_client import build_session, parse_timestamp

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
# Hard stop on pagination regardless of hasMore
MAX_SKIP = 1000


class CannyImportOptions(BaseModel):
	status_filter: Literal["all", "published", "scheduled", "draft"] = "published"
	include_labels: bool = True
	include_post_tags: bool = False
	max_entries: int = Field(default_factory=lambda: Config.CANNY_MAX_ENTRIES, ge=1)


class CannySource:
	"""Client for Canny's changelog ``entries/list`` endpoint."""

	def __init__(
		self,
		api_key: Optional[str] = None,
		base_url: Optional[str] = None,
		timeout_s: Optional[int] = None,
		session: Optional[requests.Session] = None,
	):
		cfg = Config.get_canny_config()
		self.api_key = api_key or cfg["api_key"]
		if not self.api_key:
			raise ProviderError("Canny API key is required (CANNY_API_KEY env var)", code="UNAUTHORIZED")
		self.url = f"{(base_url or cfg['base_url']).rstrip('/')}/entries/list"
		self.timeout_s = int(timeout_s or cfg["timeout_s"])
		self.session = session or build_session({"Accept": "application/json"})

	def _post(self, form: Dict[str, Any]) -> Dict[str, Any]:
		try:
			response = self.session.post(self.url, data={"apiKey": self.api_key, **form}, timeout=self.timeout_s)
		except requests.Timeout as e:
			raise ProviderError(f"Timed out contacting Canny: {e}", code="TIMEOUT") from e
		except requests.RequestException as e:
			raise ProviderError(f"Failed to contact Canny: {e}", code="NETWORK") from e
		if response.status_code in (401, 403):
			raise ProviderError("Invalid Canny API key or insufficient permissions", status_code=response.status_code)
		if response.status_code != 200:
			raise ProviderError(f"Canny API request failed: HTTP {response.status_code}", status_code=response.status_code)
		try:
			return response.json()
		except ValueError as e:
			raise ProviderError("Invalid JSON from Canny", status_code=response.status_code, code="UNKNOWN") from e

	def validate_api_key(self) -> bool:
		try:
			self._post({"limit": 1})
		except ProviderError as e:
			if e.code == "UNAUTHORIZED":
				return False
			raise
		return True

	def fetch_entries(self, options: Optional[CannyImportOptions] = None) -> List[Dict[str, Any]]:
		"""Fetch raw entries, newest first, filtered by status and capped at ``max_entries``.

		Raises:
			ProviderError: If any page fails; nothing partial is returned
		"""
		options = options or CannyImportOptions()
		collected: List[Dict[str, Any]] = []
		skip = 0
		while len(collected) < options.max_entries:
			data = self._post({"limit": PAGE_SIZE, "skip": skip, "sort": "created"})
			page = [e for e in (data.get("entries") or []) if isinstance(e, dict)]
			if options.status_filter != "all":
				page = [e for e in page if e.get("status") == options.status_filter]
			collected.extend(page)
			if not data.get("hasMore") or not page:
				break
			skip += PAGE_SIZE
			if skip > MAX_SKIP:
				logger.warning("Canny pagination limit reached; remaining entries were not fetched")
				break
		logger.info(f"✓ Fetched {min(len(collected), options.max_entries)} Canny entries")
		return collected[: options.max_entries]

	def fetch_outcome(self, options: Optional[CannyImportOptions] = None) -> ImportParseOutcome:
		options = options or CannyImportOptions()
		return convert_canny_entries(self.fetch_entries(options), options)


def _content(entry: Dict[str, Any]) -> str:
	content = (entry.get("markdownDetails") or "").strip() or (entry.get("plaintextDetails") or "").strip()
	content = content or "No content provided."
	posts = [p for p in (entry.get("posts") or []) if isinstance(p, dict) and p.get("title") and p.get("url")]
	if posts:
		lines = ["", "", "**Related Feature Requests:**"]
		lines.extend(f"- [{p['title']}]({p['url']}) - {p.get('status') or 'unknown'}" for p in posts)
		content += "\n".join(lines)
	return content


def _tags(entry: Dict[str, Any], options: CannyImportOptions) -> List[str]:
	tags: List[str] = [t for t in (entry.get("types") or []) if isinstance(t, str)]
	if options.include_labels:
		tags.extend(l["name"] for l in (entry.get("labels") or []) if isinstance(l, dict) and isinstance(l.get("name"), str))
	if options.include_post_tags:
		for post in entry.get("posts") or []:
			if isinstance(post, dict):
				tags.extend(t["name"] for t in (post.get("tags") or []) if isinstance(t, dict) and isinstance(t.get("name"), str))
	out: List[str] = []
	for tag in tags:
		low = tag.strip().lower()
		if low and low not in out:
			out.append(low)
	return out


def convert_canny_entries(entries: List[Dict[str, Any]], options: Optional[CannyImportOptions] = None) -> ImportParseOutcome:
	options = options or CannyImportOptions()
	imported_at = datetime.now(timezone.utc).isoformat()
	candidates = []
	for entry in entries:
		reactions = entry.get("reactions") if isinstance(entry.get("reactions"), dict) else {}
		candidates.append(
			ValidatedEntry(
				title=entry.get("title") or "Untitled Entry",
				content=_content(entry),
				published_at=parse_timestamp(entry.get("publishedAt")),
				tags=_tags(entry, options),
				metadata={
					"source": "canny",
					"canny_id": entry.get("id"),
					"canny_url": entry.get("url"),
					"likes": reactions.get("like", 0) if isinstance(reactions.get("like"), int) else 0,
					"post_count": len(entry.get("posts") or []),
					"status": entry.get("status") or "unknown",
					"imported_at": imported_at,
				},
			)
		)
	validated, preview = validate_entries(candidates)
	return ImportParseOutcome(
		entries=validated,
		preview=preview,
		detected_format=FormatDetection(format="custom", confidence=1.0, characteristics=["Canny changelog entries"]),
	)
