#!/usr/bin/env python3
"""Changelog entry, import, and reconciliation models.

Both the commit-synthesis path and the import path produce ``ValidatedEntry``
records; the reconciliation engine consumes only that shape.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.commit_models import Category, NormalizedCommit, Provider


class _FrozenModel(BaseModel):
	model_config = ConfigDict(frozen=True, extra="forbid")


class ChangelogEntry(BaseModel):
	"""One rendered line of a generated changelog."""

	category: Category
	description: str = Field(..., min_length=1)
	related_files: List[str] = Field(default_factory=list)
	commit_ref: str = Field(..., description="Full commit hash the entry was built from")
	commit_url: Optional[str] = Field(None, description="Provider URL of the commit, when known")
	impact: Optional[str] = None
	technical_detail: Optional[str] = None

	model_config = ConfigDict(extra="forbid")


class ChangelogMetadata(BaseModel):
	total_commits: int = 0
	processed_commits: int = 0
	ai_generated: bool = False
	enrichment_failures: int = 0
	tokens_used: int = 0
	generated_at: datetime
	provider: Optional[Provider] = None


class GeneratedChangelog(BaseModel):
	content: str
	version: Optional[str] = None
	entries: List[ChangelogEntry] = Field(default_factory=list)
	commits: List[NormalizedCommit] = Field(default_factory=list)
	metadata: ChangelogMetadata


class ValidatedEntry(BaseModel):
	"""Candidate changelog entry plus its validation outcome."""

	title: str = ""
	content: str = ""
	version: Optional[str] = None
	tags: List[str] = Field(default_factory=list)
	published_at: Optional[datetime] = None
	is_valid: bool = True
	validation_errors: List[str] = Field(default_factory=list)
	warnings: List[str] = Field(default_factory=list)
	suggested_fixes: Dict[str, str] = Field(default_factory=dict)
	# carried over from synthesized entries
	category: Optional[Category] = None
	commit_ref: Optional[str] = None
	metadata: Dict[str, Any] = Field(default_factory=dict)

	model_config = {"extra": "ignore"}


class ImportPreview(_FrozenModel):
	"""Aggregate view over one candidate batch. Derived, never edited."""

	total_entries: int = 0
	valid_entries: int = 0
	invalid_entries: int = 0
	duplicate_versions: List[str] = Field(default_factory=list)
	missing_titles: int = 0
	missing_content: int = 0
	warnings: List[str] = Field(default_factory=list)
	errors: List[str] = Field(default_factory=list)
	suggested_version_mappings: Dict[str, str] = Field(default_factory=dict)
	suggested_tag_mappings: Dict[str, str] = Field(default_factory=dict)


class ImportStrategy(str, Enum):
	MERGE = "merge"
	APPEND = "append"
	REPLACE = "replace"


class ConflictResolution(str, Enum):
	SKIP = "skip"
	OVERWRITE = "overwrite"
	PROMPT = "prompt"


class DateHandling(str, Enum):
	PRESERVE = "preserve"
	CURRENT = "current"
	SEQUENCE = "sequence"


class ImportOptions(_FrozenModel):
	"""Reconciliation policy for one import batch."""

	strategy: ImportStrategy = ImportStrategy.MERGE
	preserve_existing_entries: bool = True
	conflict_resolution: ConflictResolution = ConflictResolution.SKIP
	date_handling: DateHandling = DateHandling.PRESERVE
	auto_generate_versions: bool = False
	publish_imported_entries: bool = False
	default_tags: List[str] = Field(default_factory=list)


class StoredEntry(BaseModel):
	"""An entry as held by an entry store."""

	id: str
	project_id: str
	title: str
	content: str
	version: Optional[str] = None
	tags: List[str] = Field(default_factory=list)
	published_at: Optional[datetime] = None
	published: bool = False
	created_at: datetime
	updated_at: Optional[datetime] = None

	model_config = {"extra": "ignore"}


class EntryDraft(BaseModel):
	"""Write intent issued by the reconciliation engine to an entry store."""

	title: str
	content: str
	version: Optional[str] = None
	tags: List[str] = Field(default_factory=list)
	published_at: Optional[datetime] = None
	published: bool = False


class ReconciliationFailure(_FrozenModel):
	"""Per-entry write failure recorded during an import batch."""

	index: int
	title: str
	version: Optional[str] = None
	message: str


class ImportResult(_FrozenModel):
	"""Terminal report of one reconciliation batch."""

	success: bool
	imported_count: int = 0
	error_count: int = 0
	skipped_count: int = 0
	created_entry_ids: List[str] = Field(default_factory=list)
	updated_entry_ids: List[str] = Field(default_factory=list)
	deleted_entry_ids: List[str] = Field(default_factory=list)
	warnings: List[str] = Field(default_factory=list)
	errors: List[ReconciliationFailure] = Field(default_factory=list)
	processing_time_s: float = 0.0
