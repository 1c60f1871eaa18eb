"""
Folder Backup Scheduler

This module defines the core concepts and components of a periodic folder backup system.

Core Concepts:

Job:
    A Job pairs a source folder with a backup frequency and carries its execution state
    (status, retries, last successful run). Its `running` status doubles as a persisted
    mutex: a job is never executed twice at the same time.

Attempt:
    One copy of the job's source folder into `<backup_root>/job_<id>/<timestamp>`.

Retry episode:
    The attempts made during one `running` window. Failed attempts are retried after a
    fixed delay until one succeeds (`ok`) or the retry budget is exhausted (`error`).

Recovery sweep:
    On startup, jobs left in `error` whose source folder is reachable again are re-armed.

Relationships:
    - A backend (scheduler) ticks once per minute and dispatches due jobs to an executor.
    - Every state transition is appended to the audit log of the job store.
"""

from .backends import BaseBackend, LocalBackend
from .executors import FolderBackupExecutor
from .storages import InMemoryStorage, SqlAlchemyStorage

__all__ = ["BaseBackend", "LocalBackend", "FolderBackupExecutor", "SqlAlchemyStorage", "InMemoryStorage"]
