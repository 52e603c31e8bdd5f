#!/usr/bin/env python3
"""Reconciliation of imported changelog entries against a project's entries.

``ReconciliationEngine.reconcile`` applies one batch under an ImportOptions
policy and returns an ImportResult. ``ImportSession`` is the caller-owned
state machine around it:

    source_selected -> previewed -> configured -> importing -> completed | failed

Only ``importing`` writes to the store, and a session enters it at most once.
"""

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from configs.config import Config
from storage.entry_store import EntryStore
from utils.audit_log import audit_import_batch
from utils.changelog_models import (
    ConflictResolution,
    DateHandling,
    EntryDraft,
    ImportOptions,
    ImportPreview,
    ImportResult,
    ImportStrategy,
    ReconciliationFailure,
    StoredEntry,
    ValidatedEntry,
)
from utils.errors import BatchAbortError, InvalidTransitionError, StoreUnavailableError
from utils.idempotency import batch_key as make_batch_key
from utils.markdown_import import ImportParseOutcome, MarkdownImportParser
from utils.metrics import Timer, incr
from utils.validation import build_preview, check_conflicts, validate_import_options
from utils.versioning import next_patch, version_key

logger = logging.getLogger(__name__)

# resolver(candidate, existing) -> "skip" | "overwrite"
ConflictResolver = Callable[[ValidatedEntry, StoredEntry], Union[str, ConflictResolution]]


def merge_tags(entry_tags: List[str], default_tags: List[str]) -> List[str]:
    out: List[str] = []
    for tag in list(entry_tags or []) + list(default_tags or []):
        low = (tag or "").strip().lower()
        if low and low not in out:
            out.append(low)
    return out


class ProjectLockRegistry:
    """One lock per project so two batches never interleave on the same project."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, project_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(project_id, threading.Lock())

    @contextmanager
    def hold(self, project_id: str, timeout_s: float = -1) -> Iterator[None]:
        lock = self.lock_for(project_id)
        if not lock.acquire(timeout=timeout_s):
            raise BatchAbortError(f"Another import is running for project {project_id}")
        try:
            yield
        finally:
            lock.release()


class _Batch:
    """Mutable accumulator for one reconcile call."""

    def __init__(self) -> None:
        self.imported = 0
        self.skipped = 0
        self.created: List[str] = []
        self.updated: List[str] = []
        self.deleted: List[str] = []
        self.warnings: List[str] = []
        self.errors: List[ReconciliationFailure] = []

    def fail(self, index: int, entry: ValidatedEntry, message: str, version: Optional[str] = None) -> None:
        self.errors.append(
            ReconciliationFailure(index=index, title=entry.title, version=version or entry.version, message=message)
        )


class ReconciliationEngine:
    """Decides create/skip/overwrite per entry and issues writes to an EntryStore."""

    def __init__(
        self,
        store: EntryStore,
        locks: Optional[ProjectLockRegistry] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sequence_unit: Optional[timedelta] = None,
        audit_root: Optional[str] = None,
    ):
        self.store = store
        self.locks = locks or ProjectLockRegistry()
        self.clock = clock
        self.sequence_unit = sequence_unit or timedelta(seconds=Config.IMPORT_SEQUENCE_UNIT_S)
        self.audit_root = audit_root

    def reconcile(
        self,
        project_id: str,
        entries: List[ValidatedEntry],
        options: ImportOptions,
        resolver: Optional[ConflictResolver] = None,
        batch_key: Optional[str] = None,
    ) -> ImportResult:
        """Apply one batch and report what happened.

        Per-entry store failures are counted and the batch continues.

        Raises:
            BatchAbortError: The store is unreachable (snapshot or mid-batch)
        """
        key = batch_key or make_batch_key(project_id, entries, options)
        logger.info(f"Reconciling {len(entries)} entries into project {project_id} ({options.strategy.value})")
        with self.locks.hold(project_id):
            with Timer("reconcile.batch", project=project_id):
                try:
                    result = self._run(project_id, entries, options, resolver)
                except BatchAbortError as e:
                    incr("reconcile.abort", project=project_id)
                    audit_import_batch(project_id, key, "import", "aborted", {"error": str(e)}, root=self.audit_root)
                    raise
        audit_import_batch(
            project_id,
            key,
            "import",
            "success" if result.success else "partial",
            {
                "imported": result.imported_count,
                "skipped": result.skipped_count,
                "errors": result.error_count,
                "deleted": len(result.deleted_entry_ids),
            },
            root=self.audit_root,
        )
        incr("reconcile.imported", value=result.imported_count, project=project_id)
        incr("reconcile.skipped", value=result.skipped_count, project=project_id)
        incr("reconcile.errors", value=result.error_count, project=project_id)
        logger.info(
            f"✓ Import into {project_id}: {result.imported_count} imported, "
            f"{result.skipped_count} skipped, {result.error_count} errors"
        )
        return result

    def _run(
        self,
        project_id: str,
        entries: List[ValidatedEntry],
        options: ImportOptions,
        resolver: Optional[ConflictResolver],
    ) -> ImportResult:
        t0 = time.perf_counter()
        now = self.clock()
        batch = _Batch()
        batch.warnings.extend(validate_import_options(options))

        candidates: List[Tuple[int, ValidatedEntry]] = []
        for i, entry in enumerate(entries):
            if entry.is_valid:
                candidates.append((i, entry))
            else:
                batch.skipped += 1
                batch.warnings.append(f"Skipped invalid entry '{entry.title or f'#{i + 1}'}'")

        try:
            snapshot = self.store.list_entries(project_id)
        except Exception as e:  # noqa: BLE001
            raise BatchAbortError(f"Cannot read existing entries of project {project_id}: {e}") from e

        existing: Dict[str, StoredEntry] = {}
        for stored in snapshot:
            k = version_key(stored.version)
            if k and k not in existing:
                existing[k] = stored

        if options.strategy == ImportStrategy.REPLACE and not options.preserve_existing_entries:
            existing = self._delete_all(snapshot, batch)

        known_versions: List[Optional[str]] = [s.version for s in snapshot] + [e.version for _, e in candidates]
        n = len(candidates)
        for position, (index, entry) in enumerate(candidates):
            version = entry.version
            if not version_key(version) and options.auto_generate_versions:
                version = next_patch(known_versions)
                known_versions.append(version)
                logger.debug(f"Generated version {version} for '{entry.title}'")

            draft = EntryDraft(
                title=entry.title,
                content=entry.content,
                version=version,
                tags=merge_tags(entry.tags, options.default_tags),
                published_at=self._entry_date(entry, options, now, position, n),
                published=options.publish_imported_entries,
            )

            k = version_key(version)
            collision = existing.get(k) if k else None
            if collision is None:
                entry_id = self._write(batch, index, entry, version, lambda: self.store.create_entry(project_id, draft))
                if entry_id is not None:
                    batch.imported += 1
                    batch.created.append(entry_id)
                    if k:
                        existing[k] = StoredEntry(id=entry_id, project_id=project_id, created_at=now, **draft.model_dump())
                continue

            decision = self._resolve(options.conflict_resolution, entry, collision, resolver, batch)
            if decision == ConflictResolution.SKIP:
                batch.skipped += 1
                continue
            done = self._write(batch, index, entry, version, lambda: self.store.update_entry(collision.id, draft) or True)
            if done:
                batch.imported += 1
                if collision.id not in batch.created and collision.id not in batch.updated:
                    batch.updated.append(collision.id)

        return ImportResult(
            success=not batch.errors,
            imported_count=batch.imported,
            error_count=len(batch.errors),
            skipped_count=batch.skipped,
            created_entry_ids=batch.created,
            updated_entry_ids=batch.updated,
            deleted_entry_ids=batch.deleted,
            warnings=batch.warnings,
            errors=batch.errors,
            processing_time_s=round(time.perf_counter() - t0, 6),
        )

    def _delete_all(self, snapshot: List[StoredEntry], batch: _Batch) -> Dict[str, StoredEntry]:
        """Delete every existing entry; entries that fail to delete stay collidable."""
        survivors: Dict[str, StoredEntry] = {}
        for stored in snapshot:
            try:
                self.store.delete_entry(stored.id)
                batch.deleted.append(stored.id)
            except StoreUnavailableError as e:
                raise BatchAbortError(f"Entry store became unavailable: {e}", imported_so_far=0) from e
            except Exception as e:  # noqa: BLE001
                logger.error(f"Failed to delete entry {stored.id}: {e}")
                batch.errors.append(
                    ReconciliationFailure(index=-1, title=stored.title, version=stored.version, message=f"delete failed: {e}")
                )
                k = version_key(stored.version)
                if k and k not in survivors:
                    survivors[k] = stored
        if batch.deleted:
            batch.warnings.append(f"Replaced {len(batch.deleted)} existing entries")
        return survivors

    def _write(self, batch: _Batch, index: int, entry: ValidatedEntry, version: Optional[str], op: Callable[[], object]):
        try:
            return op()
        except StoreUnavailableError as e:
            raise BatchAbortError(f"Entry store became unavailable: {e}", imported_so_far=batch.imported) from e
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to import entry '{entry.title}': {e}")
            batch.fail(index, entry, str(e), version)
            return None

    def _resolve(
        self,
        mode: ConflictResolution,
        entry: ValidatedEntry,
        existing: StoredEntry,
        resolver: Optional[ConflictResolver],
        batch: _Batch,
    ) -> ConflictResolution:
        if mode == ConflictResolution.SKIP:
            batch.warnings.append(f"Skipped entry with duplicate version: {existing.version}")
            return ConflictResolution.SKIP
        if mode == ConflictResolution.OVERWRITE:
            return ConflictResolution.OVERWRITE
        if resolver is None:
            batch.warnings.append(f"Conflict on version {existing.version} skipped: no resolver to prompt")
            return ConflictResolution.SKIP
        try:
            answer = ConflictResolution(resolver(entry, existing))
        except ValueError:
            batch.warnings.append(f"Conflict on version {existing.version} skipped: resolver gave no usable answer")
            return ConflictResolution.SKIP
        if answer == ConflictResolution.PROMPT:
            batch.warnings.append(f"Conflict on version {existing.version} skipped: resolver deferred")
            return ConflictResolution.SKIP
        return answer

    def _entry_date(self, entry: ValidatedEntry, options: ImportOptions, now: datetime, position: int, total: int) -> datetime:
        if options.date_handling == DateHandling.CURRENT:
            return now
        if options.date_handling == DateHandling.SEQUENCE:
            # First parsed entry is oldest; the last lands one unit before now
            return now - (total - position) * self.sequence_unit
        return entry.published_at or now


class SessionState(str, Enum):
    SOURCE_SELECTED = "source_selected"
    PREVIEWED = "previewed"
    CONFIGURED = "configured"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_ALLOWED = {
    SessionState.SOURCE_SELECTED: {SessionState.PREVIEWED, SessionState.CANCELLED},
    SessionState.PREVIEWED: {SessionState.PREVIEWED, SessionState.CONFIGURED, SessionState.CANCELLED},
    SessionState.CONFIGURED: {SessionState.PREVIEWED, SessionState.CONFIGURED, SessionState.IMPORTING, SessionState.CANCELLED},
    SessionState.IMPORTING: {SessionState.COMPLETED, SessionState.FAILED},
    SessionState.COMPLETED: set(),
    SessionState.FAILED: set(),
    SessionState.CANCELLED: set(),
}


class ImportSession:
    """Caller-owned import wizard state machine; every step is an explicit call."""

    def __init__(self, project_id: str, engine: ReconciliationEngine, loader: Callable[[], ImportParseOutcome], source: str = "markdown"):
        self.project_id = project_id
        self.engine = engine
        self.source = source
        self._loader = loader
        self.state = SessionState.SOURCE_SELECTED
        self.outcome: Optional[ImportParseOutcome] = None
        self.entries: List[ValidatedEntry] = []
        self.preview_report: Optional[ImportPreview] = None
        self.options: Optional[ImportOptions] = None
        self.option_warnings: List[str] = []
        self.result: Optional[ImportResult] = None
        self.error: Optional[Exception] = None
        self.batch_key: Optional[str] = None

    @classmethod
    def from_markdown(cls, project_id: str, engine: ReconciliationEngine, text: str) -> "ImportSession":
        return cls(project_id, engine, lambda: MarkdownImportParser().parse(text), source="markdown")

    @classmethod
    def from_outcome(cls, project_id: str, engine: ReconciliationEngine, outcome: ImportParseOutcome, source: str) -> "ImportSession":
        return cls(project_id, engine, lambda: outcome, source=source)

    def _move(self, target: SessionState) -> None:
        if target not in _ALLOWED[self.state]:
            raise InvalidTransitionError(self.state.value, target.value)
        logger.debug(f"Import session {self.project_id}: {self.state.value} -> {target.value}")
        self.state = target

    def preview(self) -> ImportPreview:
        """Load and validate the source. Allowed again to reload before importing."""
        if self.state not in (SessionState.SOURCE_SELECTED, SessionState.PREVIEWED, SessionState.CONFIGURED):
            raise InvalidTransitionError(self.state.value, SessionState.PREVIEWED.value)
        outcome = self._loader()
        self._move(SessionState.PREVIEWED)
        self.outcome = outcome
        self.entries = list(outcome.entries)
        self.preview_report = outcome.preview
        return self.preview_report

    def replace_entries(self, entries: List[ValidatedEntry]) -> ImportPreview:
        """Swap in an edited candidate set; the preview is recomputed and options must be confirmed again."""
        self._move(SessionState.PREVIEWED)
        self.entries = list(entries)
        self.preview_report = build_preview(self.entries)
        return self.preview_report

    def conflicting_versions(self) -> List[str]:
        """Candidate versions the project already has; read-only, safe before configuring."""
        if self.state not in (SessionState.PREVIEWED, SessionState.CONFIGURED):
            raise InvalidTransitionError(self.state.value, "conflict check")
        try:
            existing = self.engine.store.list_entries(self.project_id)
        except Exception as e:  # noqa: BLE001
            raise BatchAbortError(f"Cannot read existing entries of project {self.project_id}: {e}") from e
        return check_conflicts(self.entries, [s.version for s in existing])

    def configure(self, options: ImportOptions) -> List[str]:
        self._move(SessionState.CONFIGURED)
        self.options = options
        self.option_warnings = validate_import_options(options)
        return self.option_warnings

    def cancel(self) -> None:
        self._move(SessionState.CANCELLED)

    def run(self, resolver: Optional[ConflictResolver] = None) -> ImportResult:
        """Apply the configured batch exactly once.

        Raises:
            InvalidTransitionError: Not configured, or already run
            BatchAbortError: Store unreachable; session ends in ``failed``
        """
        self._move(SessionState.IMPORTING)
        self.batch_key = make_batch_key(self.project_id, self.entries, self.options)
        try:
            self.result = self.engine.reconcile(self.project_id, self.entries, self.options, resolver=resolver, batch_key=self.batch_key)
        except BatchAbortError as e:
            self.error = e
            self._move(SessionState.FAILED)
            raise
        self._move(SessionState.COMPLETED)
        return self.result
