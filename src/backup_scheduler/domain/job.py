import logging
from datetime import datetime
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, PositiveInt, field_validator


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    OK = "ok"
    ERROR = "error"


class BackupJob(BaseModel):
    """
    A configured (source folder, frequency) pair plus its execution state.
    """
    id: int = Field(..., description="Store-assigned job identifier")
    folder_path: str = Field(..., description="Source directory to back up")
    frequency_minutes: PositiveInt = Field(..., description="Minutes between two successful runs")
    last_run: Optional[datetime] = Field(None, description="Completion time of the last successful run")
    status: JobStatus = JobStatus.PENDING
    retries: int = Field(default=0, ge=0, description="Consecutive failed attempts in the current failure episode")
    active: bool = Field(default=True, description="Inactive jobs are never scheduled or swept")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(ZoneInfo("UTC")),
        description="Job creation timestamp with UTC timezone"
    )

    @field_validator('last_run', 'created_at')
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            logging.debug("Naive datetime on job, assuming UTC (SQLite drops timezone information)")
            return v.replace(tzinfo=ZoneInfo("UTC"))
        return v

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.RUNNING

    @property
    def is_failed(self) -> bool:
        return self.status == JobStatus.ERROR
