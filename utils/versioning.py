#!/usr/bin/env python3
"""Semantic version helpers shared by synthesis and reconciliation."""

from __future__ import annotations

import re
from typing import Iterable, Literal, Optional, Tuple

from utils.commit_models import ParsedCommit

Bump = Literal["major", "minor", "patch"]

_SEMVER_RE = re.compile(r"^\s*[vV]?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?\s*$")
STRICT_VERSION_RE = re.compile(r"^v?\d+\.\d+\.\d+(?:-[a-zA-Z0-9.-]+)?$")
INITIAL_VERSION = "0.0.1"


def parse_version(version: Optional[str]) -> Optional[Tuple[int, int, int]]:
	"""Numeric (major, minor, patch) or None when the string is not semver-like."""
	if not version:
		return None
	match = _SEMVER_RE.match(version)
	if not match:
		return None
	return int(match.group(1)), int(match.group(2)), int(match.group(3))


def highest_version(versions: Iterable[Optional[str]]) -> Optional[Tuple[int, int, int]]:
	parsed = [p for p in (parse_version(v) for v in versions) if p is not None]
	return max(parsed) if parsed else None


def next_patch(versions: Iterable[Optional[str]]) -> str:
	"""Next patch after the highest parsable version, or 0.0.1 when none parse."""
	top = highest_version(versions)
	if top is None:
		return INITIAL_VERSION
	return f"{top[0]}.{top[1]}.{top[2] + 1}"


def increment_version(version: Optional[str], bump: Bump) -> str:
	parsed = parse_version(version) or (0, 0, 0)
	major, minor, patch = parsed
	if bump == "major":
		return f"{major + 1}.0.0"
	if bump == "minor":
		return f"{major}.{minor + 1}.0"
	return f"{major}.{minor}.{patch + 1}"


def infer_bump(parsed: Iterable[ParsedCommit]) -> Bump:
	bump: Bump = "patch"
	for p in parsed:
		if p.is_breaking:
			return "major"
		if p.type in ("feat", "feature"):
			bump = "minor"
	return bump


def latest_version_tag(tags: Iterable[str]) -> Optional[str]:
	"""Highest x.y.z tag without its ``v`` prefix; None when no tag is semver."""
	top = highest_version(t for t in tags if t and re.match(r"^[vV]?\d+\.\d+\.\d+$", t.strip()))
	return f"{top[0]}.{top[1]}.{top[2]}" if top else None


def infer_version(parsed: Iterable[ParsedCommit], latest_tag: Optional[str]) -> Optional[str]:
	"""Next version from the latest tag and the kinds of change since it."""
	if parse_version(latest_tag) is None:
		return None
	return increment_version(latest_tag, infer_bump(parsed))


def sanitize_version(version: Optional[str]) -> Optional[str]:
	"""Coerce a loose version label (``Version 2.1``, ``v3``) into x.y.z form."""
	if not version:
		return None
	clean = re.sub(r"^(version|release|v)\s*", "", version.strip(), flags=re.IGNORECASE)
	match = re.search(r"(\d+)\.?(\d+)?\.?(\d+)?(?:-(.+))?", clean)
	if not match:
		return None
	major, minor, patch, pre = match.group(1), match.group(2) or "0", match.group(3) or "0", match.group(4)
	result = f"{major}.{minor}.{patch}"
	if pre:
		pre = re.sub(r"[^\w.-]", "", pre)
		if pre:
			result += f"-{pre}"
	return result


def version_key(version: Optional[str]) -> Optional[str]:
	"""Collision key: ``v1.2.0`` and ``1.2.0`` name the same release."""
	if not version or not version.strip():
		return None
	return version.strip().lstrip("vV").lower()
