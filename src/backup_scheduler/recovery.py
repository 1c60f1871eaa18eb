import asyncio
import logging
from typing import List, Optional

from backup_scheduler.audit import AuditLog
from backup_scheduler.domain.job import JobStatus
from backup_scheduler.executors.folder import source_accessible
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)


async def recover_error_jobs(storage: Storage, audit: Optional[AuditLog] = None) -> List[int]:
    """
    Re-arm active jobs stuck in the error state whose source folder is
    reachable again. Returns the IDs of the recovered jobs.

    Runs once when the scheduler starts; jobs that are still unreachable
    keep their error state until the next start or a manual fix.
    """
    audit = audit or AuditLog(storage)
    recovered: List[int] = []

    for job in await storage.list_error_jobs(active=True):
        if not job.active or job.status != JobStatus.ERROR:
            continue
        if not await asyncio.to_thread(source_accessible, job.folder_path):
            logger.info("Job %s stays in error: %s is not accessible", job.id, job.folder_path)
            continue

        await storage.update_job_status(job.id, JobStatus.PENDING, retries=0)
        await audit.info(job.id, "Job recovered: source folder is now accessible")
        recovered.append(job.id)

    return recovered
