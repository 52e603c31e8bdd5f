#!/usr/bin/env python3
"""Scheduled job execution: publish changelog entries that came due."""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from configs.config import Config
from storage.entry_store import EntryStore
from utils.audit_log import audit_import_batch
from utils.metrics import incr

logger = logging.getLogger(__name__)


class ScheduledJobExecutor(ABC):
    """Runs one job for one entity; raises to mark the job failed."""

    @abstractmethod
    def execute(self, entity_id: str) -> None:
        ...


class ChangelogPublishExecutor(ScheduledJobExecutor):
    def __init__(self, store: EntryStore, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.store = store
        self.clock = clock

    def execute(self, entity_id: str) -> None:
        entry = self.store.get_entry(entity_id)
        if entry.published:
            logger.info(f"Changelog entry already published: {entity_id}")
            return
        self.store.set_published(entity_id, True, when=self.clock())
        logger.info(f"✓ Published scheduled entry: {entry.title} ({entity_id})")


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ScheduledJob(BaseModel):
    id: str
    type: str
    entity_id: str
    project_id: str = "system"
    scheduled_at: datetime
    status: JobStatus = JobStatus.PENDING
    retry_count: int = 0
    max_retries: int = Field(default=3, ge=0)
    last_error: Optional[str] = None
    executed_at: Optional[datetime] = None


class JobRunner:
    """Runs due jobs in chunks of ``concurrency`` and records the outcome on each job.

    A failed job goes back to pending until it has been retried ``max_retries`` times.
    """

    def __init__(
        self,
        executors: Dict[str, ScheduledJobExecutor],
        concurrency: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        audit_root: Optional[str] = None,
    ):
        self.executors = executors
        self.concurrency = max(1, int(concurrency or Config.JOB_CONCURRENCY))
        self.clock = clock
        self.audit_root = audit_root

    def due_jobs(self, jobs: List[ScheduledJob]) -> List[ScheduledJob]:
        now = self.clock()
        return [j for j in jobs if j.status == JobStatus.PENDING and j.scheduled_at <= now]

    def run_due(self, jobs: List[ScheduledJob]) -> List[ScheduledJob]:
        """Execute every due job; returns the jobs that ran, updated in place."""
        due = self.due_jobs(jobs)
        if not due:
            return []
        logger.info(f"Found {len(due)} due jobs to execute")
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for start in range(0, len(due), self.concurrency):
                chunk = due[start : start + self.concurrency]
                list(pool.map(self._run_one, chunk))
        return due

    def _run_one(self, job: ScheduledJob) -> None:
        executor = self.executors.get(job.type)
        try:
            if executor is None:
                raise ValueError(f"No executor registered for job type '{job.type}'")
            executor.execute(job.entity_id)
        except Exception as e:  # noqa: BLE001
            job.retry_count += 1
            job.last_error = str(e)
            job.status = JobStatus.FAILED if job.retry_count >= job.max_retries else JobStatus.PENDING
            logger.error(f"Failed to execute job {job.id} ({job.type}): {e}")
            incr("jobs.failed", type=job.type)
            audit_import_batch(
                job.project_id, job.id, job.type, "failed",
                {"entity_id": job.entity_id, "error": str(e), "retry_count": job.retry_count},
                root=self.audit_root,
            )
            return
        job.status = JobStatus.COMPLETED
        job.executed_at = self.clock()
        job.last_error = None
        incr("jobs.executed", type=job.type)
        audit_import_batch(
            job.project_id, job.id, job.type, "success",
            {
                "entity_id": job.entity_id,
                "scheduled_at": job.scheduled_at.isoformat(),
                "retry_count": job.retry_count,
            },
            root=self.audit_root,
        )
        logger.info(f"✓ Executed job {job.id} ({job.type})")
