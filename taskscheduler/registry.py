"""
In-process registry of the tasks this build knows how to run.

Written once per task name during boot and read for the rest of the
process lifetime. The persisted task rows say what the operator wants
enabled; this registry says which of those names have a handler.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from taskscheduler.errors import TaskNotRegistered
from taskscheduler.models import TaskHandler
from taskscheduler.validation import ConfigValidator, as_validator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskRegistryRecord:
    handler: TaskHandler
    config_validator: Optional[ConfigValidator] = None


class TaskRegistry:
    """Lock-guarded mapping of task name to handler and config validator."""

    def __init__(self):
        self._records: Dict[str, TaskRegistryRecord] = {}
        self._lock = threading.Lock()

    def register(self, name: str, handler: TaskHandler, config_validator=None) -> TaskRegistryRecord:
        """
        Register a task handler. The last registration for a name wins.

        Args:
            name: Task name
            handler: Coroutine function called as ``handler(config, task)``
            config_validator: pydantic model class, validator callable, or None
        """
        record = TaskRegistryRecord(handler=handler, config_validator=as_validator(config_validator))
        with self._lock:
            if name in self._records:
                logger.debug(f"Re-registering task '{name}'")
            self._records[name] = record
        return record

    def get(self, name: str) -> TaskRegistryRecord:
        """
        Raises:
            TaskNotRegistered: If no handler is registered for ``name``
        """
        with self._lock:
            record = self._records.get(name)
        if record is None:
            raise TaskNotRegistered(name)
        return record

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
