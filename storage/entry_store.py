#!/usr/bin/env python3
from __future__ import annotations

import json
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from configs.config import Config
from utils.changelog_models import EntryDraft, StoredEntry
from utils.errors import EntryNotFoundError, EntryStoreError, StoreUnavailableError


def _now() -> datetime:
	return datetime.now(timezone.utc)


class EntryStore(ABC):
	"""Persistence operations the reconciliation engine needs.

	Each call may fail on its own. ``StoreUnavailableError`` means the store
	cannot be reached at all; ``EntryStoreError`` means only that call failed.
	"""

	@abstractmethod
	def list_entries(self, project_id: str) -> List[StoredEntry]:
		...

	@abstractmethod
	def get_entry(self, entry_id: str) -> StoredEntry:
		...

	@abstractmethod
	def create_entry(self, project_id: str, draft: EntryDraft) -> str:
		...

	@abstractmethod
	def update_entry(self, entry_id: str, draft: EntryDraft) -> None:
		...

	@abstractmethod
	def delete_entry(self, entry_id: str) -> None:
		...

	def set_published(self, entry_id: str, published: bool = True, when: Optional[datetime] = None) -> StoredEntry:
		current = self.get_entry(entry_id)
		draft = EntryDraft(
			title=current.title,
			content=current.content,
			version=current.version,
			tags=current.tags,
			published_at=(when or current.published_at or _now()) if published else current.published_at,
			published=published,
		)
		self.update_entry(entry_id, draft)
		return self.get_entry(entry_id)


class InMemoryEntryStore(EntryStore):
	"""Process-local store, mainly for tests and dry runs."""

	def __init__(self) -> None:
		self._entries: Dict[str, StoredEntry] = {}
		self._lock = threading.Lock()

	def list_entries(self, project_id: str) -> List[StoredEntry]:
		with self._lock:
			return [e for e in self._entries.values() if e.project_id == project_id]

	def get_entry(self, entry_id: str) -> StoredEntry:
		with self._lock:
			if entry_id not in self._entries:
				raise EntryNotFoundError(entry_id)
			return self._entries[entry_id]

	def create_entry(self, project_id: str, draft: EntryDraft) -> str:
		entry_id = uuid.uuid4().hex
		with self._lock:
			self._entries[entry_id] = StoredEntry(id=entry_id, project_id=project_id, created_at=_now(), **draft.model_dump())
		return entry_id

	def update_entry(self, entry_id: str, draft: EntryDraft) -> None:
		with self._lock:
			current = self._entries.get(entry_id)
			if current is None:
				raise EntryNotFoundError(entry_id)
			self._entries[entry_id] = current.model_copy(update={**draft.model_dump(), "updated_at": _now()})

	def delete_entry(self, entry_id: str) -> None:
		with self._lock:
			if self._entries.pop(entry_id, None) is None:
				raise EntryNotFoundError(entry_id)


class JsonFileEntryStore(EntryStore):
	"""Single JSON document on disk, rewritten atomically on every change."""

	def __init__(self, path: Optional[str] = None, atomic: bool = True) -> None:
		self.path = path or Config.ENTRY_STORE_PATH
		self.atomic = atomic
		self._lock = threading.Lock()

	def _load(self) -> Dict[str, Dict]:
		if not os.path.exists(self.path):
			return {}
		try:
			with open(self.path, "r", encoding="utf-8") as f:
				data = json.load(f)
		except (OSError, ValueError) as e:
			raise StoreUnavailableError(f"Cannot read entry store {self.path}: {e}") from e
		return data.get("entries", {}) if isinstance(data, dict) else {}

	def _save(self, entries: Dict[str, Dict]) -> None:
		body = json.dumps({"entries": entries}, indent=2, default=str)
		dirname = os.path.dirname(os.path.abspath(self.path))
		try:
			os.makedirs(dirname, exist_ok=True)
			if not self.atomic:
				with open(self.path, "w", encoding="utf-8") as f:
					f.write(body)
				return
			# Atomic via temp file and rename
			tmp_fd, tmp_path = tempfile.mkstemp(dir=dirname, prefix=".tmp_", suffix=".json")
			try:
				with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
					f.write(body)
					f.flush()
					os.fsync(f.fileno())
				os.replace(tmp_path, self.path)
			except OSError:
				# Leave no orphaned temp file next to the store
				if os.path.exists(tmp_path):
					os.remove(tmp_path)
				raise
		except OSError as e:
			raise EntryStoreError(f"Failed to write entry store {self.path}: {e}") from e

	def list_entries(self, project_id: str) -> List[StoredEntry]:
		with self._lock:
			return [StoredEntry.model_validate(v) for v in self._load().values() if v.get("project_id") == project_id]

	def get_entry(self, entry_id: str) -> StoredEntry:
		with self._lock:
			raw = self._load().get(entry_id)
		if raw is None:
			raise EntryNotFoundError(entry_id)
		return StoredEntry.model_validate(raw)

	def create_entry(self, project_id: str, draft: EntryDraft) -> str:
		entry_id = uuid.uuid4().hex
		with self._lock:
			entries = self._load()
			entry = StoredEntry(id=entry_id, project_id=project_id, created_at=_now(), **draft.model_dump())
			entries[entry_id] = entry.model_dump(mode="json")
			self._save(entries)
		return entry_id

	def update_entry(self, entry_id: str, draft: EntryDraft) -> None:
		with self._lock:
			entries = self._load()
			if entry_id not in entries:
				raise EntryNotFoundError(entry_id)
			current = StoredEntry.model_validate(entries[entry_id])
			updated = current.model_copy(update={**draft.model_dump(), "updated_at": _now()})
			entries[entry_id] = updated.model_dump(mode="json")
			self._save(entries)

	def delete_entry(self, entry_id: str) -> None:
		with self._lock:
			entries = self._load()
			if entries.pop(entry_id, None) is None:
				raise EntryNotFoundError(entry_id)
			self._save(entries)
