"""
Core scheduler service.

Runs two kinds of scheduled units on one APScheduler instance:

- jobs: code-defined, always on, cadence fixed at boot
- tasks: named and persisted; operators enable, disable and reconfigure
  them at runtime without restarting the process

At boot every known task is reconciled against its persisted row. A task
whose stored cron or configuration no longer validates is disabled rather
than allowed to crash the process.
"""

import logging
from typing import Optional, Dict, Any, List

from apscheduler.job import Job

from taskscheduler.config import SchedulerConfig
from taskscheduler.errors import InvalidCronError, InvalidTaskConfig, MissingCron, TaskNotFound
from taskscheduler.jobs import JobExecutor, job_trigger_name, task_trigger_name
from taskscheduler.models import JobHandler, Task, TaskHandler
from taskscheduler.registry import TaskRegistry, TaskRegistryRecord
from taskscheduler.store import TaskStore
from taskscheduler.triggers import TriggerManager, parse_cron

logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Main scheduler service managing jobs and tasks.

    The task store is the source of truth for what the operator wants
    enabled; the registry is the source of truth for what this build can
    run. Every code path that changes ``is_enabled`` also adds or removes
    the matching live trigger.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        store: Optional[TaskStore] = None,
        triggers: Optional[TriggerManager] = None
    ):
        """
        Initialize scheduler service.

        Args:
            config: Scheduler configuration (loaded from default locations if None)
            store: Task store (built from config.database_url if None)
            triggers: Trigger manager (built from config timezone and executor defaults if None)
        """
        self.config = config or SchedulerConfig()
        self.store = store or TaskStore(self.config.database_url)
        self.triggers = triggers or TriggerManager(
            timezone=self.config.timezone,
            job_defaults=self.config.executor.job_defaults()
        )
        self.registry = TaskRegistry()
        self.executor = JobExecutor()

        logger.info(f"Scheduler initialized with task store: {self.store.database_url}")

    # Jobs

    def schedule_job(self, name: str, cron: str, handler: JobHandler) -> Job:
        """
        Schedule an always-on job.

        Handler errors are logged and never remove the trigger.

        Raises:
            InvalidCronError: If ``cron`` is unparseable
        """
        job = self.triggers.upsert(job_trigger_name(name), cron, self.executor.wrap_job(name, handler))
        logger.info(f"Scheduled job '{name}' with cron '{cron}'")
        return job

    # Tasks

    def _upsert_task_trigger(self, name: str, cron: str) -> Job:
        return self.triggers.upsert(
            task_trigger_name(name),
            cron,
            self.executor.wrap_task(name, self.store, self.registry)
        )

    def _boot_check(self, task: Task, record: TaskRegistryRecord) -> Optional[str]:
        """Return why an enabled task cannot run, or None if it can."""
        if not task.cron:
            return "no cron expression stored"

        try:
            parse_cron(task.cron, self.triggers.timezone)
        except InvalidCronError as e:
            return str(e)

        if record.config_validator is not None:
            result = record.config_validator(task.config)
            if not result.ok:
                return f"stored configuration is invalid: {result.errors}"

        return None

    async def _boot_task(self, record: TaskRegistryRecord, task: Task) -> Task:
        if not task.is_enabled:
            logger.debug(f"Task '{task.name}' is disabled, no trigger created")
            return task

        reason = self._boot_check(task, record)
        if reason:
            logger.warning(f"Disabling task '{task.name}' at boot: {reason}")
            return self.store.update(task.name, is_enabled=False)

        self._upsert_task_trigger(task.name, task.cron)
        logger.info(f"Scheduled task '{task.name}' with cron '{task.cron}'")
        return task

    async def schedule_task(self, name: str, handler: TaskHandler, config_validator=None) -> Task:
        """
        Register a task and reconcile it with its persisted row.

        Must be called once per known task name at boot, before the admin
        operations are served.

        Args:
            name: Task name
            handler: Coroutine function called as ``handler(config, task)``
            config_validator: pydantic model class, validator callable, or None

        Returns:
            The task row after reconciliation
        """
        record = self.registry.register(name, handler, config_validator)

        task = self.store.find_by_name(name)
        if task is None:
            logger.info(f"Registered new task '{name}' (disabled until enabled by an operator)")
            return self.store.create(name, is_enabled=False)

        return await self._boot_task(record, task)

    async def enable_task(
        self,
        name: str,
        cron: Optional[str] = None,
        config: Optional[Any] = None
    ) -> Dict[str, bool]:
        """
        Enable a task, optionally changing its cron and configuration.

        Args:
            name: Task name
            cron: New cron expression (keeps the stored one if None)
            config: New configuration (validates and keeps the stored one if None)

        Raises:
            TaskNotRegistered: If no handler is registered for ``name``
            TaskNotFound: If the task has no persisted row
            MissingCron: If neither ``cron`` nor a stored cron is available
            InvalidCronError: If the effective cron is unparseable
            InvalidTaskConfig: If the configuration fails validation
        """
        record = self.registry.get(name)

        task = self.store.find_by_name(name)
        if task is None:
            raise TaskNotFound(name)

        effective_cron = cron or task.cron
        if not effective_cron:
            raise MissingCron(name)
        parse_cron(effective_cron, self.triggers.timezone)

        if record.config_validator is not None:
            if config is not None:
                result = record.config_validator(config, forbid_extra=True)
            else:
                result = record.config_validator(task.config)
            if not result.ok:
                raise InvalidTaskConfig(name, result.errors)
            effective_config = result.config
        else:
            effective_config = config if config is not None else task.config

        self.store.update(name, is_enabled=True, cron=effective_cron, config=effective_config)
        self._upsert_task_trigger(name, effective_cron)

        logger.info(f"Enabled task '{name}' with cron '{effective_cron}'")
        return {'success': True}

    async def disable_task(self, name: str) -> Dict[str, bool]:
        """
        Disable a task and remove its live trigger.

        Raises:
            TaskNotRegistered: If no handler is registered for ``name``
            TaskNotFound: If the task has no persisted row
        """
        self.registry.get(name)

        self.store.update(name, is_enabled=False)
        removed = self.triggers.remove(task_trigger_name(name))

        logger.info(f"Disabled task '{name}'" + ("" if removed else " (no live trigger)"))
        return {'success': True}

    async def list_tasks(self, name: Optional[str] = None, is_enabled: Optional[bool] = None) -> Dict[str, Any]:
        """
        List persisted tasks ordered by name.

        Returns:
            ``{'data': [task dicts], 'meta': {'total': n}}``
        """
        tasks = self.store.find_many(name=name, is_enabled=is_enabled)
        total = self.store.count(name=name, is_enabled=is_enabled)
        return {
            'data': [task.to_dict() for task in tasks],
            'meta': {'total': total},
        }

    # Lifecycle and introspection

    def start(self):
        """Start firing triggers. Must be called from a running event loop."""
        if self.triggers.scheduler.running:
            logger.warning("Scheduler is already running")
            return

        logger.info("Starting scheduler...")
        self.triggers.start()
        logger.info("Scheduler started successfully")

        jobs = self.get_jobs()
        if jobs:
            logger.info(f"Loaded {len(jobs)} trigger(s):")
            for job in jobs:
                logger.info(f"  - {job['id']}: next run at {job['next_run']}")
        else:
            logger.warning("No triggers loaded")

    async def stop(self):
        """
        Stop every trigger so no new fire occurs.

        Handlers already running are left to finish on their own.
        """
        logger.info("Stopping scheduler...")
        await self.triggers.shutdown()
        self.store.close()
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        return self.triggers.scheduler.running

    def get_jobs(self) -> List[Dict[str, Any]]:
        """
        Get list of all live triggers.

        Returns:
            List of trigger information dictionaries
        """
        jobs = []
        for job in self.triggers.scheduler.get_jobs():
            next_run = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(job.trigger)
            })
        return jobs

    def get_stats(self) -> Dict[str, Any]:
        return self.executor.get_job_stats()
