from .job import BackupJob, JobStatus
from .log import LogEntry, LogLevel
from .outcome import AttemptOutcome

__all__ = ["BackupJob", "JobStatus", "LogEntry", "LogLevel", "AttemptOutcome"]
