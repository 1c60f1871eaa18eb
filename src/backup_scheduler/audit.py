import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from backup_scheduler.domain.log import LogEntry, LogLevel
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Records job state transitions.

    Every message is appended to the store as a LogEntry, which is what the
    dashboard reads, and mirrored onto the Python logger at the same level.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def record(self, job_id: Optional[int], message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        scope = f"job {job_id}" if job_id is not None else "system"
        logger.log(level.logging_level, "[%s] %s", scope, message)
        return await self.storage.append_log(job_id, message, level, datetime.now(ZoneInfo("UTC")))

    async def info(self, job_id: Optional[int], message: str) -> LogEntry:
        return await self.record(job_id, message, LogLevel.INFO)

    async def warning(self, job_id: Optional[int], message: str) -> LogEntry:
        return await self.record(job_id, message, LogLevel.WARNING)

    async def error(self, job_id: Optional[int], message: str) -> LogEntry:
        return await self.record(job_id, message, LogLevel.ERROR)
