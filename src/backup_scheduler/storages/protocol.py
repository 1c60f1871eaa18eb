from datetime import datetime
from typing import List, Optional, Protocol

from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.domain.log import LogEntry, LogLevel


class Storage(Protocol):
    async def create_tables(self) -> None:
        """Create the schema if it does not exist yet."""
        ...

    async def create_job(self, folder_path: str, frequency_minutes: int, active: bool = True) -> BackupJob:
        """Create a new job and return it with its assigned ID."""
        ...

    async def get_job(self, job_id: int) -> Optional[BackupJob]:
        """Retrieve a job by its ID."""
        ...

    async def list_jobs(self) -> List[BackupJob]:
        """List every job, newest first."""
        ...

    async def list_active_jobs(self) -> List[BackupJob]:
        """List active jobs ordered by ID."""
        ...

    async def list_error_jobs(self, active: bool = True) -> List[BackupJob]:
        """List jobs in the error state with the given active flag."""
        ...

    async def update_job_status(self, job_id: int, status: JobStatus, retries: Optional[int] = None) -> bool:
        """Update status (and retries when given). Return True if the job exists."""
        ...

    async def update_last_run(self, job_id: int, timestamp: datetime) -> bool:
        """Record the completion time of a successful run."""
        ...

    async def set_job_active(self, job_id: int, active: bool) -> bool:
        """Enable or disable a job. Return True if the job exists."""
        ...

    async def update_job(
        self,
        job_id: int,
        folder_path: Optional[str] = None,
        frequency_minutes: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> Optional[BackupJob]:
        """Change the given fields, leaving the others as they are. Return the updated job, or None if it does not exist."""
        ...

    async def release_running_job(self, job_id: int) -> bool:
        """Move a job from running back to pending, keeping its retries. Return False if it was not running."""
        ...

    async def delete_job(self, job_id: int) -> bool:
        """Delete a job by its ID. Return True if successful, False otherwise."""
        ...

    async def append_log(self, job_id: Optional[int], message: str, level: LogLevel, timestamp: datetime) -> LogEntry:
        """Append an audit entry. Entries are never updated or deleted."""
        ...

    async def list_logs(self, limit: int = 100, job_id: Optional[int] = None) -> List[LogEntry]:
        """List audit entries, newest first."""
        ...
