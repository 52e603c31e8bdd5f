#!/usr/bin/env python3
"""Parse externally authored changelogs into ValidatedEntry batches.

Markdown input is split on level 1 and 2 headings; each heading starts one
entry and everything up to the next such heading is its content. Level 3+
headings become bold labels inside the content. Already-structured items
(third-party trackers, synthesized changelogs) go through the same
validation and preview step, so downstream code never needs to know which
path produced a batch.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from utils.changelog_models import GeneratedChangelog, ImportPreview, ValidatedEntry
from utils.markdown_renderer import entry_lines
from utils.validation import validate_entries
from utils.vcs_client import parse_timestamp

logger = logging.getLogger(__name__)

ImportFormat = Literal["keepachangelog", "github_releases", "custom", "simple"]

_SEMVER = r"\d+\.\d+\.\d+(?:-[a-zA-Z0-9.-]+)?"

VERSION_PATTERNS = [
	re.compile(rf"^\[?v?({_SEMVER})\]?", re.IGNORECASE),
	re.compile(rf"^(?:version|release)\s+v?({_SEMVER})", re.IGNORECASE),
]

DATE_PATTERNS = [
	(re.compile(r"(\d{4}-\d{2}-\d{2})"), ["%Y-%m-%d"]),
	(re.compile(r"(\d{2}/\d{2}/\d{4})"), ["%m/%d/%Y", "%d/%m/%Y"]),
	(
		re.compile(r"(\d{1,2}\s+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{4})", re.IGNORECASE),
		["%d %b %Y", "%d %B %Y"],
	),
]

SECTION_MARKERS = [
	"added", "changed", "deprecated", "removed", "fixed", "security",
	"features", "bug fixes", "improvements", "breaking changes",
	"enhancements", "patches", "updates", "new", "fixes",
]

_ENTRY_HEADING = re.compile(r"^(#{1,2})(?:\s+(.*?))?\s*#*\s*$")
_SUB_HEADING = re.compile(r"^(#{3,6})\s+(.+?)\s*#*\s*$")
_LINK_REFERENCE = re.compile(r"^\s*\[[^\]]+\]:\s*\S+")
_LIST_ITEM = re.compile(r"^\s*[-*+]\s+(.+)$")
_BRACKET_TAG = re.compile(r"\[([A-Z]+)\]")
_PREFIX_TAG = re.compile(r"^(feat|fix|docs|style|refactor|test|chore|perf)(?:\([^)]+\))?:\s*", re.IGNORECASE)


class HeaderInfo(BaseModel):
	title: str = ""
	version: Optional[str] = None
	published_at: Optional[datetime] = None
	is_release: bool = False


class ParsedSection(BaseModel):
	heading: str
	level: int
	line_number: int


class FormatDetection(BaseModel):
	format: ImportFormat = "simple"
	confidence: float = Field(0.0, ge=0.0, le=1.0)
	characteristics: List[str] = Field(default_factory=list)


class ImportParseOutcome(BaseModel):
	entries: List[ValidatedEntry] = Field(default_factory=list)
	preview: ImportPreview
	sections: List[ParsedSection] = Field(default_factory=list)
	detected_format: FormatDetection = Field(default_factory=FormatDetection)
	parse_warnings: List[str] = Field(default_factory=list)


def _parse_date(text: str) -> Optional[datetime]:
	for pattern, formats in DATE_PATTERNS:
		match = pattern.search(text or "")
		if not match:
			continue
		raw = re.sub(r"\s+", " ", match.group(1))
		for fmt in formats:
			try:
				return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
			except ValueError:
				continue
	return None


def _strip_date(text: str) -> str:
	for pattern, _ in DATE_PATTERNS:
		text = pattern.sub("", text)
	return text


def _tidy_title(text: str) -> str:
	text = re.sub(r"^[\[\(\s-]+|[\]\)\s-]+$", "", text or "")
	text = re.sub(r"\(\s*\)", "", text)
	return re.sub(r"\s+", " ", text).strip(" -")


def parse_header(heading: str) -> HeaderInfo:
	"""Extract title, version and date from a level 1/2 heading text."""
	text = (heading or "").strip()
	if not text:
		return HeaderInfo()

	# [1.0.3] - 2024-05-01
	m = re.match(rf"^\[v?({_SEMVER})\]\s*-\s*(.+)$", text)
	if m:
		version, date_str = m.group(1), m.group(2).strip()
		return HeaderInfo(title=f"Version {version} - {date_str}", version=version, published_at=_parse_date(date_str), is_release=True)

	# [](https://host/o/r/compare/v1.6.1...v1.7.0) (2025-07-09)
	m = re.match(r"^\[\]\(([^)]*/compare/[^)]*)\)\s*\(([^)]+)\)$", text)
	if m:
		head = re.search(rf"\.\.\.v?({_SEMVER})$", m.group(1))
		date_str = m.group(2).strip()
		return HeaderInfo(
			title=f"Release {date_str}",
			version=head.group(1) if head else None,
			published_at=_parse_date(date_str),
			is_release=True,
		)

	# [1.2.0](https://host/o/r/compare/...) (2024-01-01)
	m = re.match(r"^\[([^\]]+)\]\([^)]*\)\s*\(([^)]+)\)$", text)
	if m:
		version, date_str = m.group(1).strip().lstrip("vV"), m.group(2).strip()
		return HeaderInfo(title=f"{version} - {date_str}", version=version, published_at=_parse_date(date_str), is_release=True)

	# [1.2.0] (2024-01-01)
	m = re.match(r"^\[([^\]]+)\]\s*\(([^)]+)\)$", text)
	if m:
		version, date_str = m.group(1).strip(), m.group(2).strip()
		return HeaderInfo(title=f"{version} - {date_str}", version=version, published_at=_parse_date(date_str), is_release=True)

	if re.match(r"^\[?(unreleased|latest|current)\]?", text, re.IGNORECASE):
		return HeaderInfo(title=_tidy_title(text) or "Unreleased", is_release=True)

	version = None
	title = text
	for pattern in VERSION_PATTERNS:
		m = pattern.match(text)
		if m:
			version = m.group(1)
			title = text[m.end():]
			break
	published_at = _parse_date(title)
	if published_at:
		title = _strip_date(title)
	title = _tidy_title(title)
	if not title and version:
		title = f"Version {version}"
	elif not title and published_at:
		title = f"Release {published_at.date().isoformat()}"
	return HeaderInfo(title=title, version=version, published_at=published_at, is_release=bool(version or published_at))


def extract_tags(line: str) -> List[str]:
	tags = [t.lower() for t in _BRACKET_TAG.findall(line or "")]
	m = _PREFIX_TAG.match((line or "").strip())
	if m:
		tags.append(m.group(1).lower())
	return tags


def detect_format(text: str) -> FormatDetection:
	lines = (text or "").split("\n")
	characteristics: List[str] = []
	confidence = 0.0

	keepachangelog = bool(re.search(r"keep\s*a\s*changelog", text, re.IGNORECASE)) or (
		bool(re.search(r"unreleased", text, re.IGNORECASE)) and bool(re.search(r"^\s*\[[\d.]+\]:\s*http", text, re.IGNORECASE | re.MULTILINE))
	)
	if keepachangelog:
		characteristics.append("Keep a Changelog format detected")
		confidence += 0.4

	release_headers = any(re.match(r"^#+\s*(?:release|\[?v?\d+\.\d+\.\d+)", ln, re.IGNORECASE) for ln in lines)
	if release_headers:
		characteristics.append("Release headers detected")
		confidence += 0.3

	section_headers = any(
		re.match(rf"^#+\s*{re.escape(marker)}\b", ln, re.IGNORECASE) for ln in lines for marker in SECTION_MARKERS
	)
	if section_headers:
		characteristics.append("Structured sections found")
		confidence += 0.2

	version_headers = any(
		_ENTRY_HEADING.match(ln) and any(p.match((_ENTRY_HEADING.match(ln).group(2) or "")) for p in VERSION_PATTERNS)
		for ln in lines
	)
	uses_markdown = bool(re.search(r"[#*`\[\]]", text or ""))

	fmt: ImportFormat = "simple"
	if keepachangelog:
		fmt = "keepachangelog"
		confidence += 0.2
	elif release_headers and version_headers:
		fmt = "github_releases"
		confidence += 0.15
	elif uses_markdown and version_headers:
		fmt = "custom"
		confidence += 0.1
	return FormatDetection(format=fmt, confidence=min(round(confidence, 2), 1.0), characteristics=characteristics)


def _process_content(lines: List[str]) -> str:
	"""Turn raw lines under a heading into entry content."""
	out: List[str] = []
	for line in lines:
		if _LINK_REFERENCE.match(line):
			continue
		sub = _SUB_HEADING.match(line)
		if sub:
			if out and out[-1].strip():
				out.append("")
			out.append(f"**{sub.group(2).strip()}**")
			out.append("")
			continue
		if line.strip() or (out and out[-1].strip()):
			out.append(line.rstrip())
	while out and not out[-1].strip():
		out.pop()
	while out and not out[0].strip():
		out.pop(0)
	return "\n".join(out)


def _section_tags(lines: List[str]) -> List[str]:
	tags: List[str] = []
	for line in lines:
		sub = _SUB_HEADING.match(line)
		if sub:
			label = sub.group(2).strip().lower()
			if label in SECTION_MARKERS:
				tags.append(label.replace(" ", "-"))
			continue
		item = _LIST_ITEM.match(line)
		if item:
			tags.extend(extract_tags(item.group(1)))
	return tags


class MarkdownImportParser:
	"""Parses Markdown changelog text into validated entries plus a preview."""

	def parse(self, raw_text: str) -> ImportParseOutcome:
		text = (raw_text or "").replace("\r\n", "\n")
		lines = text.split("\n")
		sections: List[ParsedSection] = []
		drafts: List[Dict[str, Any]] = []
		parse_warnings: List[str] = []

		current: Optional[Dict[str, Any]] = None
		preamble: List[str] = []
		in_title = False

		for i, line in enumerate(lines):
			heading = _ENTRY_HEADING.match(line)
			if heading:
				level = len(heading.group(1))
				heading_text = (heading.group(2) or "").strip()
				sections.append(ParsedSection(heading=heading_text, level=level, line_number=i + 1))
				# Document title such as "# Changelog"; its intro text is dropped
				if level == 1 and current is None and not drafts and (
					"changelog" in heading_text.lower() or not parse_header(heading_text).is_release
				):
					in_title = True
					continue
				in_title = False
				if current is not None:
					drafts.append(current)
				current = {"header": parse_header(heading_text), "lines": [], "line_number": i + 1}
				continue
			sub = _SUB_HEADING.match(line)
			if sub:
				sections.append(ParsedSection(heading=sub.group(2).strip(), level=len(sub.group(1)), line_number=i + 1))
			if current is not None:
				current["lines"].append(line)
			elif not in_title:
				preamble.append(line)
		if current is not None:
			drafts.append(current)

		if not drafts and "".join(preamble).strip():
			# Headingless document: one untitled entry
			drafts.append({"header": HeaderInfo(), "lines": preamble, "line_number": 1})
		elif preamble and "".join(preamble).strip():
			parse_warnings.append("Text before the first heading was ignored")

		candidates = []
		for draft in drafts:
			header: HeaderInfo = draft["header"]
			candidates.append(
				ValidatedEntry(
					title=header.title,
					content=_process_content(draft["lines"]),
					version=header.version,
					published_at=header.published_at,
					tags=_section_tags(draft["lines"]),
					metadata={"line_number": draft["line_number"]},
				)
			)
		if not candidates:
			parse_warnings.append("No valid changelog entries found")

		entries, preview = validate_entries(candidates)
		detected = detect_format(text)
		logger.info(
			f"Parsed {len(entries)} entries ({preview.valid_entries} valid) from {len(lines)} lines, format={detected.format}"
		)
		return ImportParseOutcome(
			entries=entries,
			preview=preview,
			sections=sections,
			detected_format=detected,
			parse_warnings=parse_warnings,
		)


def entries_from_items(items: Iterable[Dict[str, Any]]) -> ImportParseOutcome:
	"""Shape-adapt already structured items (title/content/version/tags/published_at)."""
	candidates: List[ValidatedEntry] = []
	for i, item in enumerate(items):
		if not isinstance(item, dict):
			logger.warning(f"Skipping non-object import item #{i}")
			continue
		published = item.get("published_at")
		candidates.append(
			ValidatedEntry(
				title=str(item.get("title") or ""),
				content=str(item.get("content") or ""),
				version=item.get("version") or None,
				tags=[str(t) for t in (item.get("tags") or [])],
				published_at=parse_timestamp(published) if published else None,
				metadata=dict(item.get("metadata") or {}),
			)
		)
	entries, preview = validate_entries(candidates)
	return ImportParseOutcome(entries=entries, preview=preview, detected_format=FormatDetection(format="custom", confidence=1.0))


def entries_from_changelog(generated: GeneratedChangelog) -> ImportParseOutcome:
	"""Feed synthesized entries back through validation.

	``description`` becomes the title, the rendered line the content, and the
	commit reference is kept alongside the category.
	"""
	candidates = [
		ValidatedEntry(
			title=e.description,
			content="\n".join(entry_lines(e, include_commit_link=bool(e.commit_url))),
			tags=[e.category.slug],
			published_at=generated.metadata.generated_at,
			category=e.category,
			commit_ref=e.commit_ref,
		)
		for e in generated.entries
	]
	entries, preview = validate_entries(candidates)
	return ImportParseOutcome(entries=entries, preview=preview, detected_format=FormatDetection(format="custom", confidence=1.0))
