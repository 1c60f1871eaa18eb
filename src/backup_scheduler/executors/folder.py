import asyncio
import logging
import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from backup_scheduler.audit import AuditLog
from backup_scheduler.domain.job import BackupJob, JobStatus
from backup_scheduler.domain.outcome import AttemptOutcome
from backup_scheduler.errors import AttemptError, CopyFailedError, SourceUnavailableError
from backup_scheduler.executors.protocol import BackupExecutor
from backup_scheduler.storages.protocol import Storage

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 30
SNAPSHOT_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"


def source_accessible(folder_path: Union[str, Path]) -> bool:
    return os.path.exists(folder_path) and os.access(folder_path, os.R_OK)


def copy_tree(source: Path, destination: Path) -> None:
    destination.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination, dirs_exist_ok=True)


class FolderBackupExecutor(BackupExecutor):
    """
    Copies a job's source folder into ``<backup_root>/job_<id>/<timestamp>``.

    One call to ``async_execute`` is one retry episode: the job stays
    ``running`` from the first attempt until it either succeeds or fails
    ``max_retries`` times in a row, waiting ``retry_delay`` seconds between
    attempts. Cancelling the call during a wait stops the episode; an attempt
    that is already copying is allowed to finish and record its outcome.
    """

    def __init__(
        self,
        storage: Storage,
        backup_root: Union[str, Path],
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        copy_timeout: Optional[float] = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.storage: Storage = storage
        self.audit: AuditLog = AuditLog(storage)
        self.backup_root: Path = Path(backup_root)
        self.max_retries: int = max_retries
        self.retry_delay: float = retry_delay
        self.copy_timeout: Optional[float] = copy_timeout
        self._last_snapshot: Dict[int, datetime] = {}

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def snapshot_name(self, job_id: int, started_at: datetime) -> str:
        """
        Folder name for an attempt started at ``started_at``, strictly
        greater than every name previously handed out for the same job.
        """
        started_at = started_at.astimezone(timezone.utc)
        previous = self._last_snapshot.get(job_id)
        if previous is not None and started_at <= previous:
            started_at = previous + timedelta(microseconds=1)
        self._last_snapshot[job_id] = started_at
        return started_at.strftime(SNAPSHOT_TIMESTAMP_FORMAT)

    def destination_for(self, job: BackupJob, snapshot: str) -> Path:
        return self.backup_root / f"job_{job.id}" / snapshot

    async def async_execute(self, job: BackupJob) -> AttemptOutcome:
        retries = job.retries
        try:
            while True:
                outcome = await self._shielded_attempt(job, retries)
                if not outcome.needs_retry:
                    return outcome

                retries = outcome.retries
                await asyncio.sleep(self.retry_delay)

                refreshed = await self._refresh(job.id, retries)
                if refreshed is None:
                    return outcome
                job = refreshed
        except asyncio.CancelledError:
            logger.info("Backup of job %s cancelled after %d failed attempt(s)", job.id, retries)
            raise

    async def _shielded_attempt(self, job: BackupJob, retries: int) -> AttemptOutcome:
        attempt = asyncio.ensure_future(self.attempt(job, retries))
        try:
            return await asyncio.shield(attempt)
        except asyncio.CancelledError:
            await attempt
            raise

    async def _refresh(self, job_id: int, retries: int) -> Optional[BackupJob]:
        """
        Re-read the job before a retry. Returns None when the retry must not
        happen because the job was deleted or deactivated in the meantime.
        """
        job = await self.storage.get_job(job_id)
        if job is None:
            logger.info("Job %s was deleted while waiting to retry", job_id)
            return None
        if not job.active:
            await self.storage.update_job_status(job_id, JobStatus.PENDING, retries=retries)
            await self.audit.info(job_id, "Retry abandoned: job was deactivated")
            return None
        return job.model_copy(update={"retries": retries})

    async def attempt(self, job: BackupJob, retries: int) -> AttemptOutcome:
        """
        Perform exactly one backup attempt and persist its outcome.

        Args:
            job (BackupJob): The job to back up.
            retries (int): Failed attempts so far in this episode.

        Returns:
            AttemptOutcome: Success, a retryable failure or a terminal failure.
        """
        started_at = self._now()
        await self.storage.update_job_status(job.id, JobStatus.RUNNING)
        await self.audit.info(job.id, f"Starting backup of {job.folder_path}")

        destination = self.destination_for(job, self.snapshot_name(job.id, started_at))
        try:
            await self._copy(Path(job.folder_path), destination)
        except AttemptError as e:
            return await self._handle_failure(job, retries, e)

        await self.storage.update_job_status(job.id, JobStatus.OK, retries=0)
        await self.storage.update_last_run(job.id, self._now())
        await self.audit.info(job.id, f"Backup completed successfully to {destination}")
        return AttemptOutcome(job_id=job.id, success=True, backup_path=str(destination), retries=0)

    async def _copy(self, source: Path, destination: Path) -> None:
        if not await asyncio.to_thread(source_accessible, source):
            raise SourceUnavailableError(f"Source folder does not exist: {source}")

        copying = asyncio.to_thread(copy_tree, source, destination)
        if not self.copy_timeout:
            try:
                await copying
            except OSError as e:
                raise CopyFailedError(f"Copy to {destination} failed: {e}") from e
            return

        try:
            await asyncio.wait_for(copying, timeout=self.copy_timeout)
        # Must come first: from 3.11 on asyncio.TimeoutError is the builtin
        # TimeoutError, itself an OSError.
        except asyncio.TimeoutError as e:
            raise CopyFailedError(f"Copy did not finish within {self.copy_timeout} seconds") from e
        except OSError as e:
            raise CopyFailedError(f"Copy to {destination} failed: {e}") from e

    async def _handle_failure(self, job: BackupJob, retries: int, error: AttemptError) -> AttemptOutcome:
        retries += 1
        reason = str(error)

        if retries < self.max_retries:
            await self.storage.update_job_status(job.id, JobStatus.RUNNING, retries=retries)
            await self.audit.warning(job.id, f"Backup failed, retry {retries}/{self.max_retries}: {reason}")
            return AttemptOutcome(job_id=job.id, success=False, error=reason, retries=retries)

        await self.storage.update_job_status(job.id, JobStatus.ERROR, retries=self.max_retries)
        await self.audit.error(job.id, f"Backup failed after {self.max_retries} attempts: {reason}")
        return AttemptOutcome(job_id=job.id, success=False, error=reason, retries=self.max_retries, terminal=True)
