# tests/conftest.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from taskscheduler.config import SchedulerConfig
from taskscheduler.service import SchedulerService
from taskscheduler.store import TaskStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the real home directory and process environment."""
    for var in (
        "SCHEDULER_CONFIG_PATH",
        "SCHEDULER_DATABASE_URL",
        "SCHEDULER_HANDLERS",
        "SCHEDULER_LOG_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("SCHEDULER_DATA_DIR", str(tmp_path / "data"))


@pytest.fixture()
def config(tmp_path: Path) -> SchedulerConfig:
    """Default configuration pointing at a per-test SQLite database."""
    config = SchedulerConfig(str(tmp_path / "scheduler_config.json"))
    config.database_url = f"sqlite:///{tmp_path / 'tasks.db'}"
    config.logging.file = str(tmp_path / "logs" / "scheduler.log")
    return config


@pytest.fixture()
def store(config: SchedulerConfig):
    store = TaskStore(config.database_url)
    yield store
    store.close()


@pytest.fixture()
def service(config: SchedulerConfig, store: TaskStore):
    """
    Scheduler service that is never started.

    Triggers are registered with APScheduler but only fire when a test
    awaits their callback directly (see fakes.fire).
    """
    service = SchedulerService(config, store=store)
    yield service
    service.triggers.remove_all()


@pytest.fixture()
def restore_logging():
    """CLI commands reconfigure the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
