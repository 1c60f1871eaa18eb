from typing import Optional

from pydantic import BaseModel, Field


class AttemptOutcome(BaseModel):
    """
    Represents how an execution of a backup job ended.

    Attributes:
        job_id (int): The job that was executed.
        success (bool): Whether the last attempt copied the source folder.
        backup_path (Optional[str]): Destination of the snapshot when successful.
        error (Optional[str]): Reason of the last failed attempt.
        retries (int): Retry count persisted after the last attempt.
        terminal (bool): True when the job ended in the error state.
    """
    job_id: int
    success: bool
    backup_path: Optional[str] = Field(None, description="Snapshot directory written by a successful attempt")
    error: Optional[str] = Field(None, description="Reason of the last failed attempt")
    retries: int = 0
    terminal: bool = False

    @property
    def needs_retry(self) -> bool:
        return not self.success and not self.terminal
