class BackupSchedulerError(Exception):
    pass


class StartupError(BackupSchedulerError):
    """The scheduler cannot start, e.g. the backup root is not usable."""


class StoreError(BackupSchedulerError):
    """A read or write against the job store failed."""


class AttemptError(BackupSchedulerError):
    """A single backup attempt failed; callers retry these."""


class SourceUnavailableError(AttemptError):
    pass


class CopyFailedError(AttemptError):
    pass
