from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel

from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.domain.log import LogEntry
from backup_scheduler.executors.protocol import BackupExecutor
from backup_scheduler.storages.protocol import Storage


class SchedulerStatus(BaseModel):
    is_running: bool
    in_flight_jobs: int
    started_at: Optional[datetime] = None


class BaseBackend(ABC):
    def __init__(self, storage: Storage, executor: BackupExecutor):
        self.storage: Storage = storage
        self.executor: BackupExecutor = executor

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass

    @abstractmethod
    def status(self) -> SchedulerStatus:
        pass

    @staticmethod
    def should_run(job: BackupJob, now: datetime) -> bool:
        """
        Decide whether a job is due, from the snapshot read at tick time.

        Failed jobs wait for the recovery sweep or a manual reset.
        """
        if job.status in (JobStatus.RUNNING, JobStatus.ERROR):
            return False
        if job.last_run is None:
            return True
        return now - job.last_run >= timedelta(minutes=job.frequency_minutes)

    async def create_job(self, folder_path: str, frequency_minutes: int) -> BackupJob:
        if frequency_minutes <= 0:
            raise ValueError("frequency_minutes must be a positive integer")
        return await self.storage.create_job(folder_path, frequency_minutes)

    async def get_job(self, job_id: int) -> Optional[BackupJob]:
        return await self.storage.get_job(job_id)

    async def list_jobs(self) -> List[BackupJob]:
        return await self.storage.list_jobs()

    async def activate_job(self, job_id: int) -> bool:
        return await self.storage.set_job_active(job_id, True)

    async def deactivate_job(self, job_id: int) -> bool:
        return await self.storage.set_job_active(job_id, False)

    async def update_job(
        self,
        job_id: int,
        folder_path: Optional[str] = None,
        frequency_minutes: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> Optional[BackupJob]:
        return await self.storage.update_job(
            job_id, folder_path=folder_path, frequency_minutes=frequency_minutes, active=active
        )

    async def delete_job(self, job_id: int) -> bool:
        return await self.storage.delete_job(job_id)

    async def list_logs(self, limit: int = 100, job_id: Optional[int] = None) -> List[LogEntry]:
        return await self.storage.list_logs(limit, job_id)
