#!/usr/bin/env python3
"""Commit inclusion rules and category mapping.

``should_include`` and ``categorize`` are deliberately separate: the filter
drops commits of unknown type (unless ``unknown_type_policy`` says otherwise)
while the categorizer sends anything unknown to ``Other``.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from configs.config import Config
from utils.commit_models import Category, ParsedCommit


class UnknownTypePolicy(str, Enum):
	DROP = "drop"
	INCLUDE = "include"


class CommitFilterSettings(BaseModel):
	include_features: bool = True
	include_fixes: bool = True
	include_chores: bool = False
	include_breaking_changes: bool = True
	custom_commit_types: List[str] = Field(default_factory=list, description="Literal type strings always allowed")
	unknown_type_policy: UnknownTypePolicy = Field(
		default_factory=lambda: UnknownTypePolicy.INCLUDE if Config.INCLUDE_UNKNOWN_TYPES else UnknownTypePolicy.DROP,
		description="What to do with types that map to no switch and no custom entry",
	)

	model_config = ConfigDict(frozen=True)


_TYPE_TO_CATEGORY: Dict[str, Category] = {
	"feat": Category.FEATURES,
	"fix": Category.BUG_FIXES,
	"docs": Category.DOCUMENTATION,
	"refactor": Category.REFACTORING,
	"perf": Category.PERFORMANCE,
}

_FEATURE_TYPES = ("feat", "feature")


def should_include(parsed: ParsedCommit, settings: CommitFilterSettings) -> bool:
	if parsed.is_breaking and settings.include_breaking_changes:
		return True
	if parsed.type in settings.custom_commit_types:
		return True
	if parsed.type in _FEATURE_TYPES:
		return settings.include_features
	if parsed.type == "fix":
		return settings.include_fixes
	if parsed.type == "chore":
		return settings.include_chores
	return settings.unknown_type_policy == UnknownTypePolicy.INCLUDE


def categorize(parsed: ParsedCommit) -> Category:
	"""Map a parsed commit to its changelog section; breaking wins over type."""
	if parsed.is_breaking:
		return Category.BREAKING_CHANGES
	return _TYPE_TO_CATEGORY.get(parsed.type, Category.OTHER)
