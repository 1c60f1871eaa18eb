import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from croniter import croniter

from backup_scheduler.audit import AuditLog
from backup_scheduler.backends.base import BaseBackend, SchedulerStatus
from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.errors import StartupError
from backup_scheduler.executors.folder import FolderBackupExecutor
from backup_scheduler.executors.protocol import BackupExecutor
from backup_scheduler.recovery import recover_error_jobs
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)

# Every minute, on the minute.
TICK_CRON = "* * * * *"


class LocalBackend(BaseBackend):
    """
    Single-process scheduler driven by an asyncio tick loop.

    Each tick lists the active jobs and dispatches the due ones as
    independent asyncio tasks; the loop never waits for a backup to finish.
    A job is never dispatched while its persisted status is ``running`` or
    while this process still holds a task for it.
    """

    def __init__(
        self,
        storage: Storage,
        backup_root: Union[str, Path],
        executor: Optional[BackupExecutor] = None,
    ):
        super().__init__(storage, executor or FolderBackupExecutor(storage, backup_root))
        self.backup_root: Path = Path(backup_root)
        self.audit: AuditLog = AuditLog(storage)
        self.scheduler_task: Optional[asyncio.Task] = None
        self.is_running: bool = False
        self.started_at: Optional[datetime] = None
        self.job_futures: Dict[int, asyncio.Task] = {}
        self._lifecycle_lock = asyncio.Lock()

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    async def start(self) -> None:
        """
        Start the backend scheduler.
        """
        async with self._lifecycle_lock:
            if self.is_running:
                logger.info("Backup scheduler is already running")
                return

            logger.info("Starting backup scheduler...")
            self._ensure_backup_root()
            recovered = await recover_error_jobs(self.storage, self.audit)
            if recovered:
                logger.info("Recovered %d job(s) from the error state", len(recovered))

            self.is_running = True
            self.started_at = self._now()
            self.scheduler_task = asyncio.create_task(self._scheduler_loop())
            logger.info("Backup scheduler started")

    async def stop(self) -> None:
        """
        Stop the backend scheduler and every pending retry.
        """
        async with self._lifecycle_lock:
            if not self.is_running:
                logger.info("Backup scheduler is not running")
                return

            logger.info("Stopping backup scheduler...")
            self.is_running = False
            if self.scheduler_task:
                self.scheduler_task.cancel()
                try:
                    await self.scheduler_task
                except asyncio.CancelledError:
                    pass
                self.scheduler_task = None

            futures = list(self.job_futures.values())
            for future in futures:
                if not future.done():
                    future.cancel()
            await asyncio.gather(*futures, return_exceptions=True)
            self.job_futures.clear()
            self.started_at = None
            logger.info("Backup scheduler stopped")

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            in_flight_jobs=len(self.job_futures),
            started_at=self.started_at,
        )

    async def wait_for_idle(self) -> None:
        """
        Wait until every dispatched backup, retries included, has finished.
        """
        while self.job_futures:
            await asyncio.gather(*list(self.job_futures.values()), return_exceptions=True)

    def _ensure_backup_root(self) -> None:
        try:
            self.backup_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StartupError(f"Cannot create backup directory {self.backup_root}: {e}") from e
        if not os.access(self.backup_root, os.W_OK | os.X_OK):
            raise StartupError(f"Backup directory {self.backup_root} is not writable")

    async def _scheduler_loop(self) -> None:
        """
        Main scheduler loop, firing one tick per minute.
        """
        try:
            while self.is_running:
                next_tick = croniter(TICK_CRON, self._now()).get_next(datetime)
                await asyncio.sleep(max((next_tick - self._now()).total_seconds(), 0))
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Error checking backup jobs")
        except asyncio.CancelledError:
            pass

    async def tick(self, now: Optional[datetime] = None) -> List[int]:
        """
        Run one scheduling pass and return the IDs of the dispatched jobs.
        """
        now = now or self._now()
        dispatched: List[int] = []
        seen = set()

        for job in await self.storage.list_active_jobs():
            if job.id in seen:
                continue
            seen.add(job.id)

            # Checked right before acting on the job: an earlier job's awaits
            # may have let this one finish since the listing was read.
            if job.id in self.job_futures:
                continue
            if job.status == JobStatus.RUNNING:
                await self._release_orphan(job)
                continue
            if self.should_run(job, now):
                logger.info("Running backup job %s...", job.id)
                self._schedule_job_execution(job)
                dispatched.append(job.id)

        return dispatched

    async def _release_orphan(self, job: BackupJob) -> bool:
        # Listed as running but no task of ours owns it. Either it was left
        # behind by a crash, a stop during a retry wait or a failed store
        # write, or its task finished after the listing; the conditional
        # update only matches the first case.
        if not await self.storage.release_running_job(job.id):
            return False
        await self.audit.warning(job.id, "Released interrupted backup run")
        return True

    def _schedule_job_execution(self, job: BackupJob) -> None:
        future = asyncio.create_task(self.executor.async_execute(job))
        self.job_futures[job.id] = future
        future.add_done_callback(lambda f, job_id=job.id: self._handle_job_completion(job_id, f))

    def _handle_job_completion(self, job_id: int, future: asyncio.Future) -> None:
        """
        Handle job completion, including cancellation and unexpected errors.
        """
        if self.job_futures.get(job_id) is future:
            del self.job_futures[job_id]

        if future.cancelled():
            logger.info("Backup job %s cancelled", job_id)
            return
        error = future.exception()
        if error is not None:
            logger.error("Backup job %s aborted: %s", job_id, error, exc_info=error)
