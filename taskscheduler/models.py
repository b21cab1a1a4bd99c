"""
Data models for scheduled jobs and tasks.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

JobHandler = Callable[[], Awaitable[None]]
TaskHandler = Callable[[Any, 'Task'], Awaitable[None]]


@dataclass
class Task:
    """Persisted task record"""
    name: str
    is_enabled: bool = False
    cron: Optional[str] = None
    config: Optional[Any] = None  # Opaque JSON value, validated per task
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Serialize for admin responses"""
        return {
            'name': self.name,
            'isEnabled': self.is_enabled,
            'cron': self.cron,
            'config': self.config,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class JobDefinition:
    """Always-on job registered at boot"""
    name: str
    cron: str
    handler: JobHandler


@dataclass
class TaskDefinition:
    """Operator-controlled task registered at boot"""
    name: str
    handler: TaskHandler
    config_validator: Optional[Any] = None  # pydantic model class or validator callable
    description: Optional[str] = None


@dataclass
class RunStats:
    """Last-run statistics for a job or task"""
    name: str
    kind: str  # 'job' or 'task'
    status: Optional[str] = None  # 'success', 'failed', 'skipped'
    runs: int = 0
    failures: int = 0
    duration_seconds: Optional[float] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None
