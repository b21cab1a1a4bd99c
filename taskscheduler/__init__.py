"""
Task Scheduler

Cron scheduling for a web backend, built on APScheduler.

Features:
- Always-on jobs registered in code at boot
- Named tasks persisted in a database and enabled, disabled or
  reconfigured by an operator at runtime
- Per-task configuration validated with pydantic models
- Boot reconciliation that disables tasks whose stored state no longer validates
- Handler failures logged and isolated from the scheduler and other units
"""

from taskscheduler.service import SchedulerService
from taskscheduler.config import SchedulerConfig
from taskscheduler.store import TaskStore
from taskscheduler.triggers import TriggerManager
from taskscheduler.registry import TaskRegistry
from taskscheduler.errors import (
    SchedulerError,
    TaskNotRegistered,
    TaskNotFound,
    MissingCron,
    InvalidTaskConfig,
    InvalidCronError,
)

__version__ = "0.1.0"
__all__ = [
    "SchedulerService",
    "SchedulerConfig",
    "TaskStore",
    "TriggerManager",
    "TaskRegistry",
    "SchedulerError",
    "TaskNotRegistered",
    "TaskNotFound",
    "MissingCron",
    "InvalidTaskConfig",
    "InvalidCronError",
]
