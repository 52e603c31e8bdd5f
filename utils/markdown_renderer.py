#!/usr/bin/env python3
from __future__ import annotations

import re
from datetime import date
from typing import Dict, Iterable, List, Optional

from utils.changelog_models import ChangelogEntry
from utils.commit_models import CATEGORY_ORDER, Category

EMPTY_CHANGELOG_LINE = "No significant changes found."

CATEGORY_EMOJI: Dict[Category, str] = {
	Category.BREAKING_CHANGES: "💥",
	Category.FEATURES: "🚀",
	Category.BUG_FIXES: "🐛",
	Category.PERFORMANCE: "⚡",
	Category.REFACTORING: "♻️",
	Category.DOCUMENTATION: "📚",
	Category.OTHER: "📝",
}

_WS = re.compile(r"\s+")


def one_line(text: str) -> str:
	return _WS.sub(" ", text or "").strip()


def group_by_category(entries: Iterable[ChangelogEntry]) -> Dict[Category, List[ChangelogEntry]]:
	"""Bucket entries by category, keeping their incoming order inside each bucket."""
	grouped: Dict[Category, List[ChangelogEntry]] = {c: [] for c in CATEGORY_ORDER}
	for entry in entries:
		grouped[Category(entry.category)].append(entry)
	return grouped


def section_heading(category: Category, *, emoji: bool = True) -> str:
	if emoji:
		return f"## {CATEGORY_EMOJI[category]} {category.value}"
	return f"## {category.value}"


def entry_lines(
	entry: ChangelogEntry,
	*,
	include_impact: bool = True,
	include_technical: bool = True,
	include_commit_link: bool = False,
) -> List[str]:
	lines = [f"- {one_line(entry.description)}"]
	if include_impact and entry.impact:
		lines.append(f"  - **Impact**: {one_line(entry.impact)}")
	if include_technical and entry.technical_detail:
		lines.append(f"  - **Technical**: {one_line(entry.technical_detail)}")
	if include_commit_link and entry.commit_url:
		lines.append(f"  - **Commit**: [{entry.commit_ref[:7]}]({entry.commit_url})")
	return lines


def render_changelog(
	entries: List[ChangelogEntry],
	*,
	generated_on: date,
	version: Optional[str] = None,
	include_impact: bool = True,
	include_technical: bool = True,
	include_commit_links: bool = False,
	emoji: bool = True,
) -> str:
	"""Render entries as a Markdown changelog.

	Sections follow CATEGORY_ORDER and empty ones are omitted. An empty entry
	list still yields the header plus a fixed placeholder line.
	"""
	title = f"Changelog {version}" if version else "Changelog"
	out: List[str] = [f"# {title} ({generated_on.isoformat()})", ""]
	if not entries:
		out.append(EMPTY_CHANGELOG_LINE)
		return "\n".join(out) + "\n"

	grouped = group_by_category(entries)
	for category in CATEGORY_ORDER:
		items = grouped[category]
		if not items:
			continue
		out.append(section_heading(category, emoji=emoji))
		out.append("")
		for entry in items:
			out.extend(
				entry_lines(
					entry,
					include_impact=include_impact,
					include_technical=include_technical,
					include_commit_link=include_commit_links,
				)
			)
		out.append("")
	return "\n".join(out).rstrip("\n") + "\n"
