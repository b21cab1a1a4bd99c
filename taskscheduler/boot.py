"""
Boot-time registration of every job and task this build knows about.

The domain work itself (session cleanup, game version and forge
ingestion) lives outside the scheduler and is reached through a
handlers object exposing:

- ``cleanup_sessions()``
- ``parse_game_versions(config)``
- ``parse_game_forges(config)``

All three may be coroutine functions or plain functions.
"""

import importlib
import inspect
import logging
from typing import Any, List, Tuple

from pydantic import BaseModel, Field

from taskscheduler.config import SchedulerConfig
from taskscheduler.models import JobDefinition, Task, TaskDefinition

logger = logging.getLogger(__name__)


class UrlSourceConfig(BaseModel):
    """Configuration of tasks that ingest a document from a URL."""
    url: str = Field(..., min_length=1)


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


def build_definitions(handlers: Any, config: SchedulerConfig) -> Tuple[List[JobDefinition], List[TaskDefinition]]:
    """
    Describe the jobs and tasks to register.

    Args:
        handlers: Object exposing the domain handlers
        config: Scheduler configuration (provides job crons)

    Returns:
        Tuple of (job definitions, task definitions)
    """

    async def cleanup_sessions():
        await _maybe_await(handlers.cleanup_sessions())

    async def parse_game_versions(task_config: dict, task: Task):
        await _maybe_await(handlers.parse_game_versions(task_config))

    async def parse_game_forges(task_config: dict, task: Task):
        await _maybe_await(handlers.parse_game_forges(task_config))

    jobs = [
        JobDefinition(
            name='auth_cleanup_sessions',
            cron=config.get_job_cron('auth_cleanup_sessions'),
            handler=cleanup_sessions
        ),
    ]

    tasks = [
        TaskDefinition(
            name='parse_game_versions',
            handler=parse_game_versions,
            config_validator=UrlSourceConfig,
            description="Ingest the game version manifest from a URL"
        ),
        TaskDefinition(
            name='parse_game_forges',
            handler=parse_game_forges,
            config_validator=UrlSourceConfig,
            description="Ingest forge promotions from a URL"
        ),
    ]

    return jobs, tasks


async def boot(service, handlers: Any, config: SchedulerConfig = None) -> List[Task]:
    """
    Register all jobs and tasks with the scheduler service.

    Jobs start firing as soon as the service is started; tasks only get a
    trigger if their persisted row is enabled and still valid.

    Returns:
        The task rows after reconciliation
    """
    config = config or service.config
    jobs, tasks = build_definitions(handlers, config)

    for job in jobs:
        service.schedule_job(job.name, job.cron, job.handler)

    reconciled = []
    for task in tasks:
        logger.debug(f"Registering task '{task.name}': {task.description or 'no description'}")
        reconciled.append(await service.schedule_task(task.name, task.handler, task.config_validator))

    enabled = sum(1 for task in reconciled if task.is_enabled)
    logger.info(f"Boot complete: {len(jobs)} job(s), {len(reconciled)} task(s), {enabled} enabled")
    return reconciled


def load_handlers(path: str) -> Any:
    """
    Resolve a handlers object from a ``module:attribute`` path.

    Classes are instantiated without arguments.

    Raises:
        ValueError: If the path is malformed
        ImportError / AttributeError: If it cannot be resolved
    """
    module_name, sep, attribute = (path or '').partition(':')
    if not module_name or not sep or not attribute:
        raise ValueError(f"Handlers path must look like 'package.module:attribute', got {path!r}")

    obj = importlib.import_module(module_name)
    for part in attribute.split('.'):
        obj = getattr(obj, part)

    if inspect.isclass(obj):
        obj = obj()
    return obj
