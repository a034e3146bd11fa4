"""Models for scheduled tasks and per-item decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from grabarr.ranker import Candidate, DeferredCandidate, RankOutcome

TASK_SEARCH_MONITORED = "search-monitored"
TASK_RSS_SYNC = "rss-sync"
TASK_PENDING_GRABS = "pending-grabs"


class RunStatus(str, Enum):
    """Status of a task run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ItemState(str, Enum):
    """Stages a monitored item passes through in one decision cycle."""

    IDLE = "idle"
    SEARCHING = "searching"
    SCORING = "scoring"
    RANKING = "ranking"
    GRABBING = "grabbing"
    DEFERRED = "deferred"
    NO_RESULT = "no_result"


class TaskRunRecord(BaseModel):
    """Record of a single task execution."""

    task_name: str
    started_at: datetime
    completed_at: datetime | None = None
    status: RunStatus = RunStatus.RUNNING
    items_processed: int = 0
    items_grabbed: int = 0
    items_deferred: int = 0
    errors: list[str] = Field(default_factory=list)


@dataclass
class TaskDefinition:
    """A named periodic task."""

    name: str
    interval_seconds: float
    enabled: bool = True
    description: str = ""


@dataclass
class ItemDecision:
    """What happened to one monitored item in a decision cycle."""

    item_id: int
    state: ItemState = ItemState.IDLE
    skipped_reason: str | None = None
    results_found: int = 0
    outcome: RankOutcome | None = None
    grabbed: bool = False
    error: str | None = None
    transitions: list[ItemState] = field(default_factory=list)

    def advance(self, state: ItemState) -> None:
        """Move to the next stage."""
        self.state = state
        self.transitions.append(state)

    @property
    def selected(self) -> Candidate | None:
        return self.outcome.selected if self.outcome else None

    @property
    def deferred(self) -> DeferredCandidate | None:
        return self.outcome.deferred if self.outcome else None
