# tests/test_service.py

from __future__ import annotations

import pytest

from taskscheduler.errors import (
    InvalidCronError,
    InvalidTaskConfig,
    MissingCron,
    TaskNotFound,
    TaskNotRegistered,
)
from taskscheduler.service import SchedulerService
from taskscheduler.store import TaskStore

from .fakes import CleanupConfig, RecordingHandler, fire


# ---- schedule_task: boot reconciliation ----


@pytest.mark.asyncio
async def test_schedule_task_creates_disabled_row_when_missing(service: SchedulerService, store: TaskStore) -> None:
    task = await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert task.name == "cleanup"
    row = store.find_by_name("cleanup")
    assert row is not None
    assert row.is_enabled is False
    assert row.cron is None
    assert row.config is None
    assert not service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_schedule_task_leaves_disabled_row_untouched(service: SchedulerService, store: TaskStore) -> None:
    store.create("cleanup", is_enabled=False, cron="*/5 * * * *", config={"retries": 1})

    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    row = store.find_by_name("cleanup")
    assert row.is_enabled is False
    assert row.cron == "*/5 * * * *"
    assert row.config == {"retries": 1}
    assert not service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_schedule_task_starts_trigger_for_valid_enabled_row(service: SchedulerService, store: TaskStore) -> None:
    store.create("cleanup", is_enabled=True, cron="*/5 * * * *", config={"retries": 2})

    task = await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert task.is_enabled is True
    assert service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_schedule_task_without_validator_starts_trigger(service: SchedulerService, store: TaskStore) -> None:
    store.create("cleanup", is_enabled=True, cron="0 0 * * *")

    await service.schedule_task("cleanup", RecordingHandler())

    assert store.find_by_name("cleanup").is_enabled is True
    assert service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("cron", "stored_config"),
    [
        ("bad cron", None),
        (None, {"retries": 2}),
        ("*/5 * * * *", {"retries": "many"}),
        ("*/5 * * * *", None),
    ],
)
async def test_schedule_task_self_heals_invalid_enabled_row(
    service: SchedulerService, store: TaskStore, cron, stored_config
) -> None:
    store.create("cleanup", is_enabled=True, cron=cron, config=stored_config)

    task = await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert task.is_enabled is False
    assert store.find_by_name("cleanup").is_enabled is False
    assert not service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_stale_bad_cron_row_without_validator_is_disabled(service: SchedulerService, store: TaskStore) -> None:
    store.create("cleanup", is_enabled=True, cron="bad cron", config=None)

    await service.schedule_task("cleanup", RecordingHandler())

    assert store.find_by_name("cleanup").is_enabled is False
    assert not service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
@pytest.mark.parametrize("cron", ["0 0 * * 0", "0 0 * * 7", "0 9 * * 1-5", "0 0 * * */2"])
async def test_standard_day_of_week_crons_survive_boot(service: SchedulerService, store: TaskStore, cron) -> None:
    store.create("cleanup", is_enabled=True, cron=cron, config={"retries": 1})

    task = await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert task.is_enabled is True
    assert store.find_by_name("cleanup").is_enabled is True
    assert service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_enable_accepts_sunday_as_seven(service: SchedulerService, store: TaskStore) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert await service.enable_task("cleanup", "30 4 * * 7", {"retries": 1}) == {"success": True}

    assert store.find_by_name("cleanup").cron == "30 4 * * 7"
    assert "sun" in str(service.triggers.get("task:cleanup").trigger)


@pytest.mark.asyncio
async def test_boot_validation_ignores_unknown_stored_keys(service: SchedulerService, store: TaskStore) -> None:
    store.create("cleanup", is_enabled=True, cron="*/5 * * * *", config={"retries": 2, "legacy": True})

    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert service.triggers.exists("task:cleanup")


# ---- enable_task ----


@pytest.mark.asyncio
async def test_enable_cleanup_scenario(service: SchedulerService) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    result = await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})
    assert result == {"success": True}

    listing = await service.list_tasks(name="cleanup")
    assert listing["meta"] == {"total": 1}
    [row] = listing["data"]
    assert row["name"] == "cleanup"
    assert row["isEnabled"] is True
    assert row["cron"] == "*/5 * * * *"
    assert row["config"] == {"retries": 3}
    assert service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_enable_with_invalid_config_leaves_row_unchanged(service: SchedulerService, store: TaskStore) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})
    await service.disable_task("cleanup")
    before = store.find_by_name("cleanup")

    with pytest.raises(InvalidTaskConfig) as excinfo:
        await service.enable_task("cleanup", None, {"retries": "x"})

    assert excinfo.value.status_code == 400
    assert excinfo.value.details
    assert excinfo.value.details[0]["loc"] == "retries"

    after = store.find_by_name("cleanup")
    assert after.is_enabled == before.is_enabled is False
    assert after.cron == before.cron == "*/5 * * * *"
    assert after.config == before.config == {"retries": 3}
    assert not service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_enable_rejects_unknown_config_fields(service: SchedulerService) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    with pytest.raises(InvalidTaskConfig) as excinfo:
        await service.enable_task("cleanup", "* * * * *", {"retries": 1, "extra": True})

    assert any(error["type"] == "extra_forbidden" for error in excinfo.value.errors)


@pytest.mark.asyncio
async def test_enable_unknown_task_is_not_registered(service: SchedulerService) -> None:
    with pytest.raises(TaskNotRegistered) as excinfo:
        await service.enable_task("unknown-task", "* * * * *")

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_enable_registered_task_without_row_fails_hard(service: SchedulerService) -> None:
    service.registry.register("orphan-handler", RecordingHandler())

    with pytest.raises(TaskNotFound):
        await service.enable_task("orphan-handler", "* * * * *")


@pytest.mark.asyncio
async def test_enable_without_any_cron_is_missing_cron(service: SchedulerService) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    with pytest.raises(MissingCron) as excinfo:
        await service.enable_task("cleanup", None, {"retries": 1})

    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_enable_with_unparseable_cron_persists_nothing(service: SchedulerService, store: TaskStore) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    with pytest.raises(InvalidCronError) as excinfo:
        await service.enable_task("cleanup", "61 * * * *", {"retries": 1})

    assert excinfo.value.status_code == 400
    assert store.find_by_name("cleanup").is_enabled is False
    assert not service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_enable_reuses_stored_cron_and_config(service: SchedulerService, store: TaskStore) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})
    await service.disable_task("cleanup")

    await service.enable_task("cleanup")

    row = store.find_by_name("cleanup")
    assert row.is_enabled is True
    assert row.cron == "*/5 * * * *"
    assert row.config == {"retries": 3}
    assert service.triggers.exists("task:cleanup")


@pytest.mark.asyncio
async def test_enable_without_validator_keeps_stored_config(service: SchedulerService, store: TaskStore) -> None:
    store.create("report", is_enabled=False, cron="0 0 * * *", config={"to": "ops"})
    await service.schedule_task("report", RecordingHandler())

    await service.enable_task("report")
    assert store.find_by_name("report").config == {"to": "ops"}

    await service.enable_task("report", config={"to": "dev"})
    assert store.find_by_name("report").config == {"to": "dev"}


@pytest.mark.asyncio
async def test_enable_twice_keeps_a_single_trigger(service: SchedulerService) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 1})
    await service.enable_task("cleanup", "*/10 * * * *", {"retries": 2})

    names = service.triggers.names()
    assert names.count("task:cleanup") == 1
    assert "*/10" in str(service.triggers.get("task:cleanup").trigger)


# ---- disable_task ----


@pytest.mark.asyncio
async def test_enable_then_disable_leaves_no_trigger(service: SchedulerService, store: TaskStore) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})

    result = await service.disable_task("cleanup")

    assert result == {"success": True}
    assert not service.triggers.exists("task:cleanup")
    row = store.find_by_name("cleanup")
    assert row.is_enabled is False
    assert row.cron == "*/5 * * * *"


@pytest.mark.asyncio
async def test_disable_without_live_trigger_is_fine(service: SchedulerService) -> None:
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)

    assert await service.disable_task("cleanup") == {"success": True}


@pytest.mark.asyncio
async def test_disable_unknown_task_is_not_registered(service: SchedulerService) -> None:
    with pytest.raises(TaskNotRegistered):
        await service.disable_task("unknown-task")


# ---- firing ----


@pytest.mark.asyncio
async def test_handler_receives_exactly_the_enabled_config(service: SchedulerService) -> None:
    handler = RecordingHandler()
    await service.schedule_task("cleanup", handler, CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})

    await fire(service, "task:cleanup")

    [(config, task)] = handler.calls
    assert config == {"retries": 3}
    assert task.name == "cleanup"
    assert task.is_enabled is True


@pytest.mark.asyncio
async def test_throwing_task_handler_keeps_firing(service: SchedulerService) -> None:
    handler = RecordingHandler(error=RuntimeError("boom"))
    await service.schedule_task("cleanup", handler, CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})

    await fire(service, "task:cleanup")
    await fire(service, "task:cleanup")

    assert len(handler.calls) == 2
    assert service.triggers.exists("task:cleanup")
    stats = service.get_stats()["task:cleanup"]
    assert stats.runs == 2
    assert stats.failures == 2
    assert stats.status == "failed"
    assert stats.error == "boom"


@pytest.mark.asyncio
async def test_fire_skips_task_disabled_out_of_band(service: SchedulerService, store: TaskStore) -> None:
    handler = RecordingHandler()
    await service.schedule_task("cleanup", handler, CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})

    store.update("cleanup", is_enabled=False)
    await fire(service, "task:cleanup")

    assert handler.calls == []
    assert service.get_stats()["task:cleanup"].status == "skipped"


@pytest.mark.asyncio
async def test_fire_reads_fresh_config(service: SchedulerService, store: TaskStore) -> None:
    handler = RecordingHandler()
    await service.schedule_task("cleanup", handler, CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 3})

    store.update("cleanup", config={"retries": 9})
    await fire(service, "task:cleanup")

    assert handler.calls[0][0] == {"retries": 9}


@pytest.mark.asyncio
async def test_throwing_job_keeps_its_trigger(service: SchedulerService) -> None:
    calls = []

    async def flaky() -> None:
        calls.append(1)
        raise ValueError("job failed")

    service.schedule_job("flaky", "* * * * *", flaky)

    await fire(service, "job:flaky")
    await fire(service, "job:flaky")

    assert len(calls) == 2
    assert service.triggers.exists("job:flaky")
    assert service.get_stats()["job:flaky"].failures == 2


def test_schedule_job_rejects_bad_cron(service: SchedulerService) -> None:
    async def noop() -> None:
        return None

    with pytest.raises(InvalidCronError):
        service.schedule_job("noop", "not a cron", noop)

    assert not service.triggers.exists("job:noop")


# ---- list_tasks / lifecycle ----


@pytest.mark.asyncio
async def test_list_tasks_filters_and_orders_by_name(service: SchedulerService) -> None:
    for name in ("zeta", "alpha", "mid"):
        await service.schedule_task(name, RecordingHandler())
    await service.enable_task("mid", "0 * * * *")

    everything = await service.list_tasks()
    assert [row["name"] for row in everything["data"]] == ["alpha", "mid", "zeta"]
    assert everything["meta"]["total"] == 3

    enabled = await service.list_tasks(is_enabled=True)
    assert [row["name"] for row in enabled["data"]] == ["mid"]
    assert enabled["meta"]["total"] == 1

    disabled = await service.list_tasks(is_enabled=False)
    assert disabled["meta"]["total"] == 2


@pytest.mark.asyncio
async def test_list_tasks_includes_orphaned_rows(service: SchedulerService, store: TaskStore) -> None:
    store.create("retired", is_enabled=True, cron="0 0 * * *")

    listing = await service.list_tasks()

    assert [row["name"] for row in listing["data"]] == ["retired"]
    assert not service.triggers.exists("task:retired")


@pytest.mark.asyncio
async def test_stop_removes_every_trigger(config, store: TaskStore) -> None:
    service = SchedulerService(config, store=store)

    async def noop() -> None:
        return None

    service.schedule_job("noop", "* * * * *", noop)
    await service.schedule_task("cleanup", RecordingHandler(), CleanupConfig)
    await service.enable_task("cleanup", "*/5 * * * *", {"retries": 1})

    service.start()
    assert service.is_running()
    assert {job["id"] for job in service.get_jobs()} == {"job:noop", "task:cleanup"}

    await service.stop()

    assert not service.is_running()
    assert service.triggers.names() == []
