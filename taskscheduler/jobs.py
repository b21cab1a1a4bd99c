"""
Execution wrappers for scheduled jobs and tasks.

Every trigger callback goes through JobExecutor so that a failing handler
is logged and recorded, never propagated to APScheduler, and never stops
the trigger from firing again.
"""

import asyncio
import inspect
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from taskscheduler.errors import TaskNotRegistered
from taskscheduler.models import JobHandler, RunStats

logger = logging.getLogger(__name__)


def job_trigger_name(name: str) -> str:
    return f"job:{name}"


def task_trigger_name(name: str) -> str:
    return f"task:{name}"


class JobExecutor:
    """
    Runs handlers with error isolation and statistics tracking.

    Statistics are kept per trigger name and only for the lifetime of
    the process.
    """

    def __init__(self):
        self.job_stats: Dict[str, RunStats] = {}

    def _record(
        self,
        label: str,
        kind: str,
        status: str,
        duration: Optional[float] = None,
        error: Optional[str] = None
    ) -> RunStats:
        stats = self.job_stats.setdefault(label, RunStats(name=label, kind=kind))
        stats.status = status
        stats.error = error
        stats.duration_seconds = round(duration, 3) if duration is not None else None
        stats.timestamp = datetime.now().isoformat()
        if status != 'skipped':
            stats.runs += 1
        if status == 'failed':
            stats.failures += 1
        return stats

    async def execute(self, label: str, kind: str, handler: Callable[..., Any], *args) -> RunStats:
        """
        Run a handler once, catching and logging any error.

        Args:
            label: Trigger name used in logs and statistics
            kind: 'job' or 'task'
            handler: Callable, sync or async
            *args: Positional arguments for the handler

        Returns:
            Statistics for the trigger after this run
        """
        run_id = str(uuid.uuid4())[:8]
        log_prefix = f"[{label}:{run_id}]"

        logger.debug(f"{log_prefix} Executing scheduled {kind}")
        start_time = time.monotonic()

        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            duration = time.monotonic() - start_time
            logger.error(f"{log_prefix} Failed after {duration:.2f}s: {e}", exc_info=True)
            return self._record(label, kind, 'failed', duration, str(e))

        duration = time.monotonic() - start_time
        logger.info(f"{log_prefix} Completed successfully in {duration:.2f}s")
        return self._record(label, kind, 'success', duration)

    def wrap_job(self, name: str, handler: JobHandler) -> Callable[[], Awaitable[None]]:
        """Build the trigger callback for an always-on job."""
        label = job_trigger_name(name)

        async def run_job():
            await self.execute(label, 'job', handler)

        run_job.__name__ = f"run_job_{name}"
        return run_job

    def wrap_task(self, name: str, store, registry) -> Callable[[], Awaitable[None]]:
        """
        Build the trigger callback for a task.

        The task row is re-read on every fire, so a task disabled out of
        band (another process, a direct database edit) is skipped even if
        its trigger is still live in this process.
        """
        label = task_trigger_name(name)

        async def run_task():
            try:
                task = await asyncio.to_thread(store.find_by_name, name)
            except Exception as e:
                logger.error(f"[{label}] Failed to load task row: {e}", exc_info=True)
                self._record(label, 'task', 'failed', error=str(e))
                return

            if task is None:
                logger.error(f"[{label}] Task row no longer exists, skipping execution")
                self._record(label, 'task', 'skipped', error='task row missing')
                return

            if not task.is_enabled:
                logger.warning(f"[{label}] Task is disabled, skipping execution")
                self._record(label, 'task', 'skipped')
                return

            try:
                record = registry.get(name)
            except TaskNotRegistered as e:
                logger.error(f"[{label}] {e}")
                self._record(label, 'task', 'skipped', error=str(e))
                return

            await self.execute(label, 'task', record.handler, task.config, task)

        run_task.__name__ = f"run_task_{name}"
        return run_task

    def get_job_stats(self, label: Optional[str] = None):
        """
        Get execution statistics.

        Args:
            label: Specific trigger name, or None for all triggers

        Returns:
            RunStats for one trigger (None if it never ran), or a dict of all
        """
        if label:
            return self.job_stats.get(label)
        return dict(self.job_stats)
