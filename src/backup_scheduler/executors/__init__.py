from .folder import FolderBackupExecutor, MAX_RETRIES, RETRY_DELAY_SECONDS
from .protocol import BackupExecutor

__all__ = ["BackupExecutor", "FolderBackupExecutor", "MAX_RETRIES", "RETRY_DELAY_SECONDS"]
