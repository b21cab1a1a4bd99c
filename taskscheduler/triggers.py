"""
Trigger management on top of APScheduler.

Each trigger is an APScheduler job identified by a namespaced name
(``job:<name>`` or ``task:<name>``) and bound to a cron expression and a
zero-argument coroutine function. Jobs live in the in-memory job store;
durable task state is kept by the task store, not by APScheduler.
"""

import asyncio
import logging
import re
import threading
from typing import Any, Callable, Dict, List, Optional

from apscheduler.events import (
    EVENT_JOB_ADDED,
    EVENT_JOB_ERROR,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    EVENT_JOB_REMOVED,
)
from apscheduler.job import Job
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from taskscheduler.errors import InvalidCronError

logger = logging.getLogger(__name__)

CRON_FIELDS = ('minute', 'hour', 'day', 'month', 'day_of_week')

SHUTDOWN_POLL_ITERATIONS = 10

# Standard cron numbering: 0 and 7 are Sunday
WEEKDAY_NAMES = ('sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat')

_NUMERIC_WEEKDAY_RE = re.compile(r'^(\*|\d+)(?:-(\d+))?(?:/(\d+))?$')


def _translate_day_of_week(cron_expr: str, field: str) -> str:
    """
    Rewrite numeric day-of-week values as day names.

    APScheduler numbers weekdays from Monday=0, so numeric values, ranges
    and steps are expanded to explicit names (``1-5`` -> ``mon,...,fri``).
    Named values are passed through unchanged.
    """
    if field == '*':
        return field

    translated = []
    for part in field.split(','):
        match = _NUMERIC_WEEKDAY_RE.match(part)
        if not match:
            translated.append(part)
            continue

        start, end, step = match.groups()
        if start == '*':
            first, last = 0, 6
        else:
            first = int(start)
            last = int(end) if end is not None else (6 if step and first <= 6 else first)
        step = int(step) if step is not None else 1

        if first > 7 or last > 7 or first > last or step < 1:
            raise InvalidCronError(cron_expr, f"invalid day of week value '{part}'")

        days = sorted({day % 7 for day in range(first, last + 1, step)})
        translated.extend(WEEKDAY_NAMES[day] for day in days)

    return ','.join(translated)


def _parse_cron_expression(cron_expr: str) -> Dict[str, str]:
    """
    Split a cron expression into APScheduler cron kwargs.

    Five fields are ``minute hour day month day_of_week``; six fields
    carry a leading ``second``.
    """
    parts = cron_expr.split()
    if len(parts) == 5:
        kwargs = {'second': '0', **dict(zip(CRON_FIELDS, parts))}
    elif len(parts) == 6:
        kwargs = {'second': parts[0], **dict(zip(CRON_FIELDS, parts[1:]))}
    else:
        raise InvalidCronError(cron_expr, f"expected 5 or 6 fields, got {len(parts)}")

    kwargs['day_of_week'] = _translate_day_of_week(cron_expr, kwargs['day_of_week'])
    return kwargs


def parse_cron(cron_expr: Optional[str], timezone: Any = "UTC") -> CronTrigger:
    """
    Build a CronTrigger from a cron expression.

    Raises:
        InvalidCronError: If the expression is empty or unparseable
    """
    if not isinstance(cron_expr, str) or not cron_expr.strip():
        raise InvalidCronError(cron_expr, "empty expression")

    kwargs = _parse_cron_expression(cron_expr)
    try:
        return CronTrigger(timezone=timezone, **kwargs)
    except (ValueError, LookupError, TypeError) as e:
        raise InvalidCronError(cron_expr, str(e)) from e


class TriggerManager:
    """
    Owns the mapping from trigger name to live APScheduler job.

    Replacing a trigger removes the old job before the new one is added,
    under a lock, so a name never has two live jobs.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        job_defaults: Optional[Dict[str, Any]] = None,
        scheduler: Optional[AsyncIOScheduler] = None
    ):
        self.timezone = timezone
        self.scheduler = scheduler or AsyncIOScheduler(
            jobstores={'default': MemoryJobStore()},
            job_defaults=job_defaults or {},
            timezone=timezone
        )
        self._lock = threading.RLock()
        self._setup_event_listeners()

    def _setup_event_listeners(self):
        """Setup APScheduler event listeners for logging."""

        def job_error_listener(event):
            logger.error(
                f"Trigger '{event.job_id}' raised exception: {event.exception}",
                exc_info=event.exception
            )

        def job_missed_listener(event):
            logger.warning(f"Trigger '{event.job_id}' missed scheduled run time")

        def job_max_instances_listener(event):
            logger.warning(
                f"Trigger '{event.job_id}' is still running, skipping this fire"
            )

        def job_added_listener(event):
            logger.info(f"Trigger '{event.job_id}' added to scheduler")

        def job_removed_listener(event):
            logger.info(f"Trigger '{event.job_id}' removed from scheduler")

        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_missed_listener, EVENT_JOB_MISSED)
        self.scheduler.add_listener(job_max_instances_listener, EVENT_JOB_MAX_INSTANCES)
        self.scheduler.add_listener(job_added_listener, EVENT_JOB_ADDED)
        self.scheduler.add_listener(job_removed_listener, EVENT_JOB_REMOVED)

    def upsert(self, name: str, cron: str, callback: Callable[[], Any]) -> Job:
        """
        Replace or create the trigger named ``name``.

        The expression is parsed before the existing trigger is touched, so
        an invalid cron leaves the current trigger in place.

        Raises:
            InvalidCronError: If ``cron`` is unparseable
        """
        trigger = parse_cron(cron, self.timezone)

        with self._lock:
            if self.scheduler.get_job(name) is not None:
                self.scheduler.remove_job(name)
            job = self.scheduler.add_job(
                callback,
                trigger,
                id=name,
                name=name,
                replace_existing=False
            )

        logger.debug(f"Trigger '{name}' scheduled with cron '{cron}'")
        return job

    def remove(self, name: str) -> bool:
        """
        Stop and remove a trigger.

        Returns:
            True if removed, False if no such trigger existed
        """
        with self._lock:
            if self.scheduler.get_job(name) is None:
                return False
            self.scheduler.remove_job(name)
        return True

    def exists(self, name: str) -> bool:
        return self.scheduler.get_job(name) is not None

    def get(self, name: str) -> Optional[Job]:
        return self.scheduler.get_job(name)

    def names(self) -> List[str]:
        return sorted(job.id for job in self.scheduler.get_jobs())

    def start(self):
        """Start firing triggers. Must be called with a running event loop."""
        if not self.scheduler.running:
            self.scheduler.start()

    def remove_all(self):
        """Remove every trigger without touching the scheduler state."""
        with self._lock:
            self.scheduler.remove_all_jobs()

    async def shutdown(self):
        """
        Remove every trigger and stop the scheduler.

        Handlers already running are not waited for. Returns once the
        scheduler reports it is no longer running.
        """
        with self._lock:
            self.scheduler.remove_all_jobs()
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)

        # Newer AsyncIOScheduler releases stop on the next loop iteration
        for _ in range(SHUTDOWN_POLL_ITERATIONS):
            if not self.scheduler.running:
                break
            await asyncio.sleep(0)
        else:
            logger.warning("Scheduler still reports running after shutdown")
