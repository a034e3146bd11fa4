"""Scheduler manager running the periodic decision tasks."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import TYPE_CHECKING

from grabarr.scheduler.models import (
    TASK_PENDING_GRABS,
    TASK_RSS_SYNC,
    TASK_SEARCH_MONITORED,
    TaskDefinition,
    TaskRunRecord,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from grabarr.config import Config
    from grabarr.scheduler.executor import DecisionOrchestrator

logger = logging.getLogger(__name__)


class TaskGuard:
    """Tracks in-flight task names so a task never overlaps itself."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[str] = set()

    def try_claim(self, task_name: str) -> bool:
        """Claim a task name.

        Returns:
            False if the task is already running
        """
        with self._lock:
            if task_name in self._running:
                return False
            self._running.add(task_name)
            return True

    def release(self, task_name: str) -> None:
        """Release a claimed task name."""
        with self._lock:
            self._running.discard(task_name)

    @contextlib.contextmanager
    def claim(self, task_name: str) -> Iterator[bool]:
        """Claim a task name for the duration of a block.

        Yields:
            True if the claim succeeded; the block should skip its work otherwise
        """
        claimed = self.try_claim(task_name)
        try:
            yield claimed
        finally:
            if claimed:
                self.release(task_name)

    def running(self) -> set[str]:
        """Get a snapshot of in-flight task names."""
        with self._lock:
            return set(self._running)


class SchedulerManager:
    """Runs each periodic task in its own asyncio loop.

    Each task runs once at start and then every interval until stopped.
    Stopping lets in-flight runs finish and schedules nothing further.
    """

    def __init__(
        self,
        config: Config,
        orchestrator: DecisionOrchestrator,
        guard: TaskGuard | None = None,
    ) -> None:
        """Initialize the scheduler manager.

        Args:
            config: Application configuration
            orchestrator: Orchestrator whose task methods are scheduled
            guard: Overlap guard shared with on-demand task runs
        """
        self._config = config
        self._orchestrator = orchestrator
        self._guard = guard or TaskGuard()
        self._stop_event = asyncio.Event()
        self._loops: list[asyncio.Task[None]] = []

    @property
    def is_running(self) -> bool:
        """Check if the task loops are active."""
        return bool(self._loops) and not self._stop_event.is_set()

    @property
    def guard(self) -> TaskGuard:
        return self._guard

    def get_all_tasks(self) -> list[TaskDefinition]:
        """Get every task definition with its configured interval."""
        scheduler = self._config.scheduler
        return [
            TaskDefinition(
                name=TASK_SEARCH_MONITORED,
                interval_seconds=scheduler.search_interval_minutes * 60,
                enabled=self._config.settings.auto_search,
                description="Search indexers for every monitored item that is due",
            ),
            TaskDefinition(
                name=TASK_RSS_SYNC,
                interval_seconds=scheduler.rss_interval_minutes * 60,
                description="Match recent indexer releases against monitored items",
            ),
            TaskDefinition(
                name=TASK_PENDING_GRABS,
                interval_seconds=scheduler.pending_interval_minutes * 60,
                description="Grab deferred releases whose delay has elapsed",
            ),
        ]

    def get_running_tasks(self) -> set[str]:
        """Get the names of tasks currently executing."""
        return self._guard.running()

    def get_history(self, limit: int = 20) -> list[TaskRunRecord]:
        """Get recent task runs, newest first."""
        records = []
        for run in self._orchestrator.state_manager.get_task_history(limit=limit):
            try:
                records.append(TaskRunRecord.model_validate(run))
            except ValueError as e:
                logger.debug("Skipping unreadable task run record: %s", e)
        return records

    async def run_task(self, task_name: str) -> TaskRunRecord | None:
        """Run a task now.

        Args:
            task_name: One of the task names from get_all_tasks()

        Returns:
            The run record, or None if the task is already running

        Raises:
            KeyError: If the task name is unknown
        """
        runner = self._orchestrator.task_runners()[task_name]
        with self._guard.claim(task_name) as claimed:
            if not claimed:
                logger.info("Task %s is already running, skipping", task_name)
                return None
            return await runner()

    async def _task_loop(self, task: TaskDefinition) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_task(task.name)
            except Exception:
                logger.exception("Unhandled error in task %s", task.name)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=task.interval_seconds)
            except TimeoutError:
                continue

    async def start(self) -> None:
        """Start one loop per enabled task."""
        if self._loops:
            logger.warning("Scheduler already started")
            return
        if not self._config.scheduler.enabled:
            logger.info("Scheduler disabled in configuration")
            return

        self._stop_event.clear()
        for task in self.get_all_tasks():
            if not task.enabled:
                logger.info("Task %s disabled", task.name)
                continue
            logger.info("Starting task %s every %.0fs", task.name, task.interval_seconds)
            self._loops.append(asyncio.create_task(self._task_loop(task), name=task.name))

    async def stop(self, wait: bool = True) -> None:
        """Stop scheduling new runs.

        Args:
            wait: Wait for in-flight runs to finish; otherwise cancel them
        """
        self._stop_event.set()
        loops, self._loops = self._loops, []
        if not wait:
            for loop in loops:
                loop.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        logger.info("Scheduler stopped")
