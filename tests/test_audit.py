import logging

import pytest
import pytest_asyncio

from backup_scheduler.audit import AuditLog
from backup_scheduler.domain.log import LogLevel
from backup_scheduler.storages.sqlalchemy import InMemoryStorage


@pytest_asyncio.fixture(scope="function")
async def storage():
    storage = InMemoryStorage()
    await storage.create_tables()
    yield storage
    await storage.dispose()


@pytest.mark.asyncio
async def test_records_entry_and_python_log(storage, caplog):
    audit = AuditLog(storage)
    job = await storage.create_job("/srv/photos", 60)

    with caplog.at_level(logging.INFO, logger="backup_scheduler.audit"):
        entry = await audit.warning(job.id, "Backup failed, retry 1/3: disk full")

    assert entry.job_id == job.id
    assert entry.level == LogLevel.WARNING
    assert entry.message == "Backup failed, retry 1/3: disk full"
    assert (await storage.list_logs(job_id=job.id))[0].id == entry.id

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.getMessage() == f"[job {job.id}] Backup failed, retry 1/3: disk full"


@pytest.mark.asyncio
async def test_system_messages_have_no_job(storage, caplog):
    audit = AuditLog(storage)

    with caplog.at_level(logging.INFO, logger="backup_scheduler.audit"):
        info = await audit.info(None, "scheduler started")
        error = await audit.error(None, "backup root unavailable")

    assert info.job_id is None and info.level == LogLevel.INFO
    assert error.level == LogLevel.ERROR
    assert "[system] backup root unavailable" in caplog.text
