#!/usr/bin/env python3
"""Tests for scheduled publishing jobs."""

from datetime import datetime, timedelta, timezone

import pytest

from storage.entry_store import InMemoryEntryStore
from utils.audit_log import read_audit
from utils.changelog_models import EntryDraft
from utils.errors import EntryNotFoundError
from utils.job_executor import ChangelogPublishExecutor, JobRunner, JobStatus, ScheduledJob, ScheduledJobExecutor

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_publish_executor_publishes_draft():
    store = InMemoryEntryStore()
    entry_id = store.create_entry("web", EntryDraft(title="Draft", content="c"))
    ChangelogPublishExecutor(store, clock=lambda: NOW).execute(entry_id)
    entry = store.get_entry(entry_id)
    assert entry.published is True
    assert entry.published_at == NOW


def test_publish_executor_is_idempotent():
    store = InMemoryEntryStore()
    earlier = NOW - timedelta(days=1)
    entry_id = store.create_entry("web", EntryDraft(title="Live", content="c", published=True, published_at=earlier))
    ChangelogPublishExecutor(store, clock=lambda: NOW).execute(entry_id)
    assert store.get_entry(entry_id).published_at == earlier


def test_publish_executor_raises_for_missing_entry():
    with pytest.raises(EntryNotFoundError):
        ChangelogPublishExecutor(InMemoryEntryStore()).execute("missing")


class CountingExecutor(ScheduledJobExecutor):
    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.seen = []

    def execute(self, entity_id):
        self.seen.append(entity_id)
        if entity_id in self.fail_ids:
            raise RuntimeError(f"cannot publish {entity_id}")


def job(i, offset_min=-1, **kw):
    return ScheduledJob(id=f"job{i}", type="publish", entity_id=f"entry{i}", scheduled_at=NOW + timedelta(minutes=offset_min), **kw)


def test_runner_executes_only_due_pending_jobs(tmp_path):
    executor = CountingExecutor()
    runner = JobRunner({"publish": executor}, concurrency=2, clock=lambda: NOW, audit_root=str(tmp_path))
    jobs = [job(1), job(2), job(3, offset_min=10), job(4, status=JobStatus.COMPLETED)]
    ran = runner.run_due(jobs)
    assert [j.id for j in ran] == ["job1", "job2"]
    assert sorted(executor.seen) == ["entry1", "entry2"]
    assert jobs[0].status == JobStatus.COMPLETED
    assert jobs[0].executed_at == NOW
    assert jobs[2].status == JobStatus.PENDING
    assert len(read_audit("system", root=str(tmp_path))) == 2


def test_runner_retries_then_fails(tmp_path):
    runner = JobRunner({"publish": CountingExecutor(fail_ids={"entry1"})}, clock=lambda: NOW, audit_root=str(tmp_path))
    jobs = [job(1, max_retries=2)]
    runner.run_due(jobs)
    assert jobs[0].status == JobStatus.PENDING
    assert jobs[0].retry_count == 1
    runner.run_due(jobs)
    assert jobs[0].status == JobStatus.FAILED
    assert "cannot publish entry1" in jobs[0].last_error
    assert runner.run_due(jobs) == []


def test_unknown_job_type_fails(tmp_path):
    runner = JobRunner({}, clock=lambda: NOW, audit_root=str(tmp_path))
    jobs = [job(1, max_retries=1)]
    runner.run_due(jobs)
    assert jobs[0].status == JobStatus.FAILED
    assert "No executor registered" in jobs[0].last_error
