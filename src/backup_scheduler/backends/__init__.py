from .base import BaseBackend, SchedulerStatus
from .local import LocalBackend, TICK_CRON

__all__ = ["BaseBackend", "SchedulerStatus", "LocalBackend", "TICK_CRON"]
