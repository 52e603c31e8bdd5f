#!/usr/bin/env python3
"""Entry validation and import preview construction.

Validation never raises: every problem becomes an error (entry cannot be
imported) or a warning (entry can be imported as is or with a suggested fix).
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Tuple

from utils.changelog_models import ImportOptions, ImportPreview, ImportStrategy, ValidatedEntry
from utils.errors import ValidationFailure
from utils.versioning import STRICT_VERSION_RE, sanitize_version, version_key

MAX_TITLE_LENGTH = 200
MAX_CONTENT_LENGTH = 50000

TAG_ALIASES: Dict[str, str] = {
	"bug": "fix",
	"bugfix": "fix",
	"bugs": "fix",
	"feature": "feat",
	"features": "feat",
	"enhancement": "feat",
	"enhancements": "feat",
	"improvement": "feat",
	"improvements": "feat",
	"documentation": "docs",
	"doc": "docs",
	"breaking": "breaking-change",
	"breaking-changes": "breaking-change",
	"performance": "perf",
	"optimization": "perf",
	"optimizations": "perf",
	"sec": "security",
	"maintenance": "chore",
	"housekeeping": "chore",
	"misc": "chore",
	"miscellaneous": "chore",
}


class ValidationCode:
	MISSING_TITLE = "missing_title"
	MISSING_CONTENT = "missing_content"
	TITLE_TOO_LONG = "title_too_long"
	CONTENT_TOO_LONG = "content_too_long"
	INVALID_VERSION = "invalid_version"


def placeholder_title(index: int) -> str:
	return f"Untitled entry {index + 1}"


def normalize_tag(tag: str) -> str:
	low = (tag or "").strip().lower()
	return TAG_ALIASES.get(low, low)


def _issues(entry: ValidatedEntry) -> List[ValidationFailure]:
	issues: List[ValidationFailure] = []
	title = (entry.title or "").strip()
	if not title:
		issues.append(ValidationFailure(ValidationCode.MISSING_TITLE, "Entry title is missing; a placeholder was used", "title", "warning"))
	elif len(title) > MAX_TITLE_LENGTH:
		issues.append(
			ValidationFailure(
				ValidationCode.TITLE_TOO_LONG,
				f"Title is too long ({len(title)} chars, max {MAX_TITLE_LENGTH})",
				"title",
				"warning",
			)
		)
	content = (entry.content or "").strip()
	if not content:
		issues.append(ValidationFailure(ValidationCode.MISSING_CONTENT, "Entry content is empty", "content", "error"))
	elif len(entry.content) > MAX_CONTENT_LENGTH:
		issues.append(
			ValidationFailure(
				ValidationCode.CONTENT_TOO_LONG,
				f"Content is too long ({len(entry.content)} chars, max {MAX_CONTENT_LENGTH})",
				"content",
				"error",
			)
		)
	if entry.version and not STRICT_VERSION_RE.match(entry.version):
		issues.append(
			ValidationFailure(ValidationCode.INVALID_VERSION, f'Version format may be invalid: "{entry.version}"', "version", "warning")
		)
	return issues


def validate_entry(entry: ValidatedEntry, index: int) -> ValidatedEntry:
	"""Return a copy of ``entry`` with its validation outcome filled in.

	Args:
		entry: Candidate entry (title/content/version as parsed)
		index: Zero-based position in the batch, used for placeholder titles
	"""
	issues = _issues(entry)
	errors = [i.message for i in issues if i.severity == "error"]
	warnings = [i.message for i in issues if i.severity == "warning"]
	fixes: Dict[str, str] = {}
	metadata = dict(entry.metadata)
	update = {}

	codes = {i.kind for i in issues}
	if ValidationCode.MISSING_TITLE in codes:
		update["title"] = placeholder_title(index)
		metadata["title_defaulted"] = True
	if ValidationCode.TITLE_TOO_LONG in codes:
		fixes["title"] = entry.title.strip()[: MAX_TITLE_LENGTH - 3] + "..."
	if ValidationCode.INVALID_VERSION in codes:
		sanitized = sanitize_version(entry.version)
		if sanitized:
			fixes["version"] = sanitized
	metadata["issue_codes"] = sorted(codes)
	metadata.setdefault("original_index", index)

	update.update(
		is_valid=not errors,
		validation_errors=errors,
		warnings=warnings,
		suggested_fixes=fixes,
		tags=_dedupe_tags(entry.tags),
		metadata=metadata,
	)
	return entry.model_copy(update=update)


def _dedupe_tags(tags: Iterable[str]) -> List[str]:
	out: List[str] = []
	seen = set()
	for tag in tags or []:
		low = (tag or "").strip().lower()
		if low and low not in seen:
			seen.add(low)
			out.append(low)
	return out


def build_preview(entries: List[ValidatedEntry]) -> ImportPreview:
	"""Aggregate counts over already-validated entries."""
	# Same key as reconciliation collisions; the first spelling is reported
	keyed = [(version_key(e.version), e.version) for e in entries if version_key(e.version)]
	counts = Counter(key for key, _ in keyed)
	spelling: Dict[str, str] = {}
	for key, raw in keyed:
		spelling.setdefault(key, raw)
	duplicates = [spelling[key] for key in spelling if counts[key] > 1]

	version_map: Dict[str, str] = {}
	tag_map: Dict[str, str] = {}
	for e in entries:
		if e.version and e.suggested_fixes.get("version"):
			version_map[e.version] = e.suggested_fixes["version"]
		for tag in e.tags:
			normalized = normalize_tag(tag)
			if normalized != tag:
				tag_map[tag] = normalized

	warnings: List[str] = []
	errors: List[str] = []
	for i, e in enumerate(entries):
		label = e.title or placeholder_title(i)
		warnings.extend(f"{label}: {w}" for w in e.warnings)
		errors.extend(f"{label}: {err}" for err in e.validation_errors)
	for v in duplicates:
		warnings.append(f"Version {v} appears {counts[version_key(v)]} times in this import")

	valid = sum(1 for e in entries if e.is_valid)
	return ImportPreview(
		total_entries=len(entries),
		valid_entries=valid,
		invalid_entries=len(entries) - valid,
		duplicate_versions=duplicates,
		missing_titles=sum(1 for e in entries if e.metadata.get("title_defaulted") or not (e.title or "").strip()),
		missing_content=sum(1 for e in entries if not (e.content or "").strip()),
		warnings=warnings,
		errors=errors,
		suggested_version_mappings=version_map,
		suggested_tag_mappings=tag_map,
	)


def validate_entries(entries: List[ValidatedEntry]) -> Tuple[List[ValidatedEntry], ImportPreview]:
	validated = [validate_entry(e, i) for i, e in enumerate(entries)]
	return validated, build_preview(validated)


def validate_import_options(options: ImportOptions) -> List[str]:
	"""Warnings about option combinations that do not mean what they look like."""
	warnings: List[str] = []
	if options.strategy == ImportStrategy.REPLACE and options.preserve_existing_entries:
		warnings.append("Replace strategy with preserve existing entries enabled behaves like append; nothing will be deleted")
	if options.strategy == ImportStrategy.REPLACE and not options.preserve_existing_entries:
		warnings.append("Replace strategy will delete all existing entries of the project")
	return warnings


def check_conflicts(entries: Iterable[ValidatedEntry], existing_versions: Iterable[str]) -> List[str]:
	"""Versions of valid candidate entries that already exist in the project."""
	existing = {version_key(v) for v in existing_versions if version_key(v)}
	out: List[str] = []
	for e in entries:
		if e.is_valid and version_key(e.version) in existing and e.version not in out:
			out.append(e.version)
	return out
