from typing import Protocol

from backup_scheduler.domain.job import BackupJob
from backup_scheduler.domain.outcome import AttemptOutcome


class BackupExecutor(Protocol):
    """
    Protocol class for backup executors.
    """

    async def async_execute(self, job: BackupJob) -> AttemptOutcome:
        """
        Run a backup episode for the given job, retrying failed attempts
        until one succeeds or the retry budget is exhausted.

        Args:
            job (BackupJob): Snapshot of the job, including its current retries.

        Returns:
            AttemptOutcome: How the last attempt ended.
        """
        ...
