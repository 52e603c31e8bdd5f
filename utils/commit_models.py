#!/usr/bin/env python3
"""Pydantic models for commit data flowing through changelog generation.

Commits are normalized once per provider and then treated as immutable
values by the parser, filter, and synthesizer.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


FileStatus = Literal["added", "modified", "removed", "renamed"]
Provider = Literal["github", "gitlab"]


class FileChange(BaseModel):
    """A single file touched by a commit."""

    path: str = Field(..., description="Repository-relative file path")
    status: FileStatus = Field("modified", description="Change kind")
    additions: int = Field(0, ge=0, description="Lines added")
    deletions: int = Field(0, ge=0, description="Lines deleted")
    patch: Optional[str] = Field(None, description="Unified diff hunk, when the provider returns one")

    model_config = ConfigDict(frozen=True, extra="ignore")


class NormalizedCommit(BaseModel):
    """Provider-independent commit shape."""

    id: str = Field(..., min_length=1, description="VCS-specific commit hash")
    message: str = Field("", description="Full commit message")
    author_name: str = Field("Unknown", description="Commit author display name")
    author_date: datetime = Field(..., description="Authoring timestamp")
    url: str = Field("", description="Web URL of the commit")
    files_changed: List[FileChange] = Field(default_factory=list, description="Files touched, empty when not fetched")

    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def short_id(self) -> str:
        return self.id[:7]


class ParsedCommit(BaseModel):
    """Structured view of one commit message."""

    type: str = Field(..., description="Lower-cased conventional type, or 'other'")
    scope: Optional[str] = Field(None, description="Parenthesized scope, if any")
    description: str = Field(..., min_length=1, description="Subject text, never empty")
    is_breaking: bool = Field(False, description="Marked with '!' or a BREAKING CHANGE footer")
    body: Optional[str] = Field(None, description="Message lines after the subject")

    model_config = ConfigDict(frozen=True)


class Category(str, Enum):
    BREAKING_CHANGES = "Breaking Changes"
    FEATURES = "Features"
    BUG_FIXES = "Bug Fixes"
    PERFORMANCE = "Performance"
    REFACTORING = "Refactoring"
    DOCUMENTATION = "Documentation"
    OTHER = "Other"

    @property
    def slug(self) -> str:
        return self.value.lower().replace(" ", "-")


# Rendering order of changelog sections
CATEGORY_ORDER: List[Category] = [
    Category.BREAKING_CHANGES,
    Category.FEATURES,
    Category.BUG_FIXES,
    Category.PERFORMANCE,
    Category.REFACTORING,
    Category.DOCUMENTATION,
    Category.OTHER,
]
