"""
Scheduler configuration management.

Handles loading, saving, and validating scheduler configuration: where
tasks are persisted, the cadence of always-on jobs, executor defaults,
the handlers object wired in at boot, and logging.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, List, Any

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_JOBS = {
    'auth_cleanup_sessions': '0 0 * * *',
}

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def get_data_dir() -> Path:
    """Get the data directory for scheduler files."""
    data_dir = os.environ.get('SCHEDULER_DATA_DIR')
    if data_dir:
        return Path(data_dir).expanduser()
    return Path.home() / ".task_scheduler"


def _get_default_log_file() -> str:
    """Get default log file path from environment or default."""
    if os.environ.get('SCHEDULER_LOG_DIR'):
        return str(Path(os.environ['SCHEDULER_LOG_DIR']).expanduser() / "scheduler.log")
    return str(get_data_dir() / "logs" / "scheduler.log")


def _get_default_database_url() -> str:
    """Get default task database URL from environment or default."""
    if os.environ.get('SCHEDULER_DATABASE_URL'):
        return os.environ['SCHEDULER_DATABASE_URL']
    return f"sqlite:///{get_data_dir() / 'tasks.db'}"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: str = None  # Set dynamically in __post_init__
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    def __post_init__(self):
        if self.file is None:
            self.file = _get_default_log_file()


@dataclass
class ExecutorConfig:
    """Defaults applied to every trigger."""
    coalesce: bool = True  # Combine multiple missed runs into one
    max_instances: int = 1  # Skip a fire while the previous one is still running
    misfire_grace_time: int = 300  # 5 minutes grace period

    def job_defaults(self) -> Dict[str, Any]:
        return asdict(self)


class SchedulerConfig:
    """
    Scheduler configuration manager.

    Loads and manages scheduler configuration from JSON file,
    with support for validation and defaults.

    Configuration path priority:
    1. Explicit config_path argument
    2. SCHEDULER_CONFIG_PATH environment variable
    3. Default: ~/.task_scheduler/scheduler_config.json
    """

    DEFAULT_CONFIG_PATH = Path.home() / ".task_scheduler" / "scheduler_config.json"

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize scheduler configuration.

        Args:
            config_path: Path to configuration file. If None, uses env var or default.
        """
        if config_path:
            self.config_path = Path(config_path).expanduser()
        elif os.environ.get('SCHEDULER_CONFIG_PATH'):
            self.config_path = Path(os.environ['SCHEDULER_CONFIG_PATH']).expanduser()
        else:
            self.config_path = self.DEFAULT_CONFIG_PATH

        self.database_url: str = _get_default_database_url()
        self.timezone: str = "UTC"
        self.jobs: Dict[str, str] = dict(DEFAULT_JOBS)
        self.handlers: Optional[str] = os.environ.get('SCHEDULER_HANDLERS')
        self.executor: ExecutorConfig = ExecutorConfig()
        self.logging: LoggingConfig = LoggingConfig()

        if self.config_path.exists():
            self.load()
        else:
            logger.info(f"No config found at {self.config_path}, using defaults")

    def load(self):
        """Load configuration from JSON file."""
        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)

            if 'database_url' in data and not os.environ.get('SCHEDULER_DATABASE_URL'):
                self.database_url = data['database_url']
            self.timezone = data.get('timezone', self.timezone)

            # Configured crons override the defaults job by job
            self.jobs = {**DEFAULT_JOBS, **data.get('jobs', {})}

            if data.get('handlers') and not os.environ.get('SCHEDULER_HANDLERS'):
                self.handlers = data['handlers']

            if 'executor' in data:
                self.executor = ExecutorConfig(**data['executor'])

            if 'logging' in data:
                self.logging = LoggingConfig(**data['logging'])

            logger.info(f"Loaded configuration with {len(self.jobs)} job(s) from {self.config_path}")

        except Exception as e:
            logger.error(f"Failed to load config from {self.config_path}: {e}")
            raise

    def to_dict(self) -> Dict[str, Any]:
        return {
            'database_url': self.database_url,
            'timezone': self.timezone,
            'jobs': dict(self.jobs),
            'handlers': self.handlers,
            'executor': asdict(self.executor),
            'logging': asdict(self.logging),
        }

    def save(self):
        """Save configuration to JSON file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Saved configuration to {self.config_path}")

    def get_job_cron(self, name: str) -> str:
        """Get the cron expression configured for an always-on job."""
        try:
            return self.jobs[name]
        except KeyError:
            raise ValueError(f"No cron configured for job '{name}'") from None

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        # Imported here to keep config importable without the trigger machinery
        from taskscheduler.errors import InvalidCronError
        from taskscheduler.triggers import parse_cron

        errors = []

        for name, cron in self.jobs.items():
            if not cron or not str(cron).strip():
                errors.append(f"Job {name}: 'cron' cannot be empty")
                continue
            try:
                parse_cron(cron, self.timezone)
            except InvalidCronError as e:
                errors.append(f"Job {name}: {e}")

        if self.executor.max_instances <= 0:
            errors.append("Executor: 'max_instances' must be positive")
        if self.executor.misfire_grace_time <= 0:
            errors.append("Executor: 'misfire_grace_time' must be positive")

        if self.logging.level.upper() not in LOG_LEVELS:
            errors.append(f"Logging: unknown level '{self.logging.level}'")

        if not self.database_url:
            errors.append("'database_url' cannot be empty")

        return errors

    def __repr__(self):
        return f"SchedulerConfig(jobs={len(self.jobs)}, path={self.config_path})"
