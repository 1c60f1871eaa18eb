import logging
from datetime import datetime
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def logging_level(self) -> int:
        return {
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
        }[self]


class LogEntry(BaseModel):
    """
    Append-only audit record of a job state transition.
    """
    id: int
    job_id: Optional[int] = Field(None, description="Owning job, absent for system-level messages")
    message: str
    level: LogLevel = LogLevel.INFO
    timestamp: datetime = Field(default_factory=lambda: datetime.now(ZoneInfo("UTC")))
    folder_path: Optional[str] = Field(None, description="Source folder of the owning job, filled in when listing")

    @field_validator('timestamp')
    def check_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=ZoneInfo("UTC"))
        return v

    @property
    def readable_string(self) -> str:
        scope = f"job {self.job_id}" if self.job_id is not None else "system"
        return f"[{self.timestamp.isoformat()}] {self.level.value.upper()} {scope}: {self.message}"
