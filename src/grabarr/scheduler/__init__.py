"""Periodic decision tasks for grabarr."""

from grabarr.scheduler.executor import DecisionOrchestrator, build_query, matches_item
from grabarr.scheduler.manager import SchedulerManager, TaskGuard
from grabarr.scheduler.models import (
    TASK_PENDING_GRABS,
    TASK_RSS_SYNC,
    TASK_SEARCH_MONITORED,
    ItemDecision,
    ItemState,
    RunStatus,
    TaskDefinition,
    TaskRunRecord,
)

__all__ = [
    "TASK_PENDING_GRABS",
    "TASK_RSS_SYNC",
    "TASK_SEARCH_MONITORED",
    "DecisionOrchestrator",
    "ItemDecision",
    "ItemState",
    "RunStatus",
    "SchedulerManager",
    "TaskDefinition",
    "TaskGuard",
    "TaskRunRecord",
    "build_query",
    "matches_item",
]
