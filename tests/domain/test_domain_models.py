from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.domain.log import LogEntry, LogLevel
from backup_scheduler.domain.outcome import AttemptOutcome


def test_job_defaults() -> None:
    job = BackupJob(id=1, folder_path="/data", frequency_minutes=10)
    assert job.status == JobStatus.PENDING
    assert job.retries == 0
    assert job.active is True
    assert job.last_run is None
    assert job.created_at.tzinfo is not None


def test_job_rejects_non_positive_frequency() -> None:
    with pytest.raises(ValidationError):
        BackupJob(id=1, folder_path="/data", frequency_minutes=0)


def test_job_rejects_negative_retries() -> None:
    with pytest.raises(ValidationError):
        BackupJob(id=1, folder_path="/data", frequency_minutes=5, retries=-1)


def test_naive_datetimes_are_read_as_utc() -> None:
    naive = datetime(2024, 1, 1, 12, 0, 0)
    job = BackupJob(id=1, folder_path="/data", frequency_minutes=5, last_run=naive, created_at=naive)
    assert job.last_run == naive.replace(tzinfo=timezone.utc)
    assert job.created_at.utcoffset().total_seconds() == 0

    entry = LogEntry(id=1, job_id=None, message="boot", timestamp=naive)
    assert entry.timestamp.tzinfo is not None


def test_log_level_maps_to_logging_levels() -> None:
    import logging

    assert LogLevel.INFO.logging_level == logging.INFO
    assert LogLevel.WARNING.logging_level == logging.WARNING
    assert LogLevel.ERROR.logging_level == logging.ERROR


def test_log_entry_readable_string() -> None:
    entry = LogEntry(id=3, job_id=None, message="scheduler started", level=LogLevel.WARNING)
    assert "WARNING system: scheduler started" in entry.readable_string

    entry = LogEntry(id=4, job_id=7, message="done")
    assert "INFO job 7: done" in entry.readable_string


def test_outcome_needs_retry() -> None:
    assert AttemptOutcome(job_id=1, success=False, retries=1).needs_retry
    assert not AttemptOutcome(job_id=1, success=True).needs_retry
    assert not AttemptOutcome(job_id=1, success=False, retries=3, terminal=True).needs_retry
