"""Tests for the scheduler manager and task guard."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from grabarr.config import Config, SchedulerConfig, SettingsConfig
from grabarr.scheduler import (
    TASK_PENDING_GRABS,
    TASK_RSS_SYNC,
    TASK_SEARCH_MONITORED,
    ItemDecision,
    ItemState,
    RunStatus,
    SchedulerManager,
    TaskGuard,
    TaskRunRecord,
)


def make_record(name: str) -> TaskRunRecord:
    return TaskRunRecord(
        task_name=name, started_at=datetime.now(UTC), status=RunStatus.COMPLETED
    )


def make_orchestrator() -> MagicMock:
    """Create an orchestrator whose task runners return completed records."""
    orchestrator = MagicMock()
    runners = {
        name: AsyncMock(return_value=make_record(name))
        for name in (TASK_SEARCH_MONITORED, TASK_RSS_SYNC, TASK_PENDING_GRABS)
    }
    orchestrator.task_runners.return_value = runners
    orchestrator.runners = runners
    return orchestrator


class TestTaskGuard:
    """Tests for TaskGuard."""

    def test_claim_and_release(self) -> None:
        """A task name can only be claimed once until released."""
        guard = TaskGuard()

        assert guard.try_claim("rss-sync") is True
        assert guard.try_claim("rss-sync") is False
        assert guard.running() == {"rss-sync"}

        guard.release("rss-sync")
        assert guard.try_claim("rss-sync") is True

    def test_claim_context_manager(self) -> None:
        """The context manager releases on exit, even after an error."""
        guard = TaskGuard()

        with pytest.raises(RuntimeError), guard.claim("rss-sync") as claimed:
            assert claimed is True
            assert guard.running() == {"rss-sync"}
            raise RuntimeError("boom")

        assert guard.running() == set()

    def test_failed_claim_does_not_release_owner(self) -> None:
        """A rejected claim leaves the owner's claim in place."""
        guard = TaskGuard()
        guard.try_claim("rss-sync")

        with guard.claim("rss-sync") as claimed:
            assert claimed is False

        assert guard.running() == {"rss-sync"}

    def test_release_unknown_is_noop(self) -> None:
        """Releasing an unclaimed name does nothing."""
        TaskGuard().release("never-claimed")


class TestItemDecision:
    """Tests for ItemDecision."""

    def test_advance_records_transitions(self) -> None:
        """Each stage is appended in order."""
        decision = ItemDecision(item_id=1)
        decision.advance(ItemState.SEARCHING)
        decision.advance(ItemState.NO_RESULT)

        assert decision.state == ItemState.NO_RESULT
        assert decision.transitions == [ItemState.SEARCHING, ItemState.NO_RESULT]
        assert decision.selected is None
        assert decision.deferred is None


class TestSchedulerManager:
    """Tests for SchedulerManager."""

    def test_task_definitions_follow_config(self) -> None:
        """Intervals come from the scheduler config in seconds."""
        config = Config(
            scheduler=SchedulerConfig(
                search_interval_minutes=30, rss_interval_minutes=10, pending_interval_minutes=2
            ),
            settings=SettingsConfig(auto_search=False),
        )
        manager = SchedulerManager(config, make_orchestrator())

        tasks = {task.name: task for task in manager.get_all_tasks()}

        assert tasks[TASK_SEARCH_MONITORED].interval_seconds == 1800
        assert tasks[TASK_SEARCH_MONITORED].enabled is False
        assert tasks[TASK_RSS_SYNC].interval_seconds == 600
        assert tasks[TASK_PENDING_GRABS].interval_seconds == 120

    @pytest.mark.asyncio
    async def test_run_task(self) -> None:
        """Running a task returns its record."""
        orchestrator = make_orchestrator()
        manager = SchedulerManager(Config(), orchestrator)

        record = await manager.run_task(TASK_RSS_SYNC)

        assert record is not None
        assert record.task_name == TASK_RSS_SYNC
        orchestrator.runners[TASK_RSS_SYNC].assert_awaited_once()
        assert manager.get_running_tasks() == set()

    @pytest.mark.asyncio
    async def test_run_unknown_task(self) -> None:
        """Unknown task names raise KeyError."""
        manager = SchedulerManager(Config(), make_orchestrator())

        with pytest.raises(KeyError):
            await manager.run_task("nope")

    @pytest.mark.asyncio
    async def test_overlapping_run_rejected(self) -> None:
        """A task already in flight is not started again."""
        orchestrator = make_orchestrator()
        release = asyncio.Event()

        async def slow() -> TaskRunRecord:
            await release.wait()
            return make_record(TASK_RSS_SYNC)

        orchestrator.runners[TASK_RSS_SYNC].side_effect = slow
        manager = SchedulerManager(Config(), orchestrator)

        first = asyncio.create_task(manager.run_task(TASK_RSS_SYNC))
        await asyncio.sleep(0)
        assert manager.get_running_tasks() == {TASK_RSS_SYNC}

        assert await manager.run_task(TASK_RSS_SYNC) is None

        release.set()
        assert await first is not None
        assert manager.get_running_tasks() == set()

    @pytest.mark.asyncio
    async def test_shared_guard(self) -> None:
        """A guard claimed elsewhere blocks the scheduler's run."""
        guard = TaskGuard()
        guard.try_claim(TASK_PENDING_GRABS)
        manager = SchedulerManager(Config(), make_orchestrator(), guard)

        assert await manager.run_task(TASK_PENDING_GRABS) is None
        assert manager.guard is guard

    @pytest.mark.asyncio
    async def test_start_runs_enabled_tasks_then_stop(self) -> None:
        """Start runs each enabled task once immediately; stop ends the loops."""
        orchestrator = make_orchestrator()
        config = Config(settings=SettingsConfig(auto_search=False))
        manager = SchedulerManager(config, orchestrator)

        await manager.start()
        assert manager.is_running is True
        for _ in range(5):
            await asyncio.sleep(0)

        await manager.stop(wait=True)

        assert manager.is_running is False
        orchestrator.runners[TASK_RSS_SYNC].assert_awaited_once()
        orchestrator.runners[TASK_PENDING_GRABS].assert_awaited_once()
        orchestrator.runners[TASK_SEARCH_MONITORED].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_disabled(self) -> None:
        """A disabled scheduler starts no loops."""
        manager = SchedulerManager(
            Config(scheduler=SchedulerConfig(enabled=False)), make_orchestrator()
        )

        await manager.start()

        assert manager.is_running is False
        await manager.stop()

    @pytest.mark.asyncio
    async def test_loop_survives_task_error(self) -> None:
        """An exception in a task does not end its loop."""
        orchestrator = make_orchestrator()
        orchestrator.runners[TASK_RSS_SYNC].side_effect = RuntimeError("boom")
        manager = SchedulerManager(Config(), orchestrator)

        await manager.start()
        for _ in range(5):
            await asyncio.sleep(0)

        assert manager.is_running is True
        await manager.stop(wait=False)
        assert manager.get_running_tasks() == set()

    def test_get_history(self) -> None:
        """History is read from the state store, skipping unreadable runs."""
        orchestrator = make_orchestrator()
        orchestrator.state_manager.get_task_history.return_value = [
            make_record(TASK_RSS_SYNC).model_dump(mode="json"),
            {"task_name": TASK_RSS_SYNC},
        ]
        manager = SchedulerManager(Config(), orchestrator)

        history = manager.get_history(limit=5)

        assert len(history) == 1
        assert history[0].status == RunStatus.COMPLETED
        orchestrator.state_manager.get_task_history.assert_called_once_with(limit=5)
