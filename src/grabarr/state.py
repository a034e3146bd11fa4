"""State file management for monitored items, pending grabs and history."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from pydantic import ValidationError

from grabarr.models.records import (
    BlocklistEntry,
    GrabRecord,
    IndexerExclusion,
    MediaExclusion,
    MediaType,
    MonitoredItem,
    PendingGrab,
)
from grabarr.parser import normalize_release_title

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _load_records(data: dict[str, Any], key: str, model: Any) -> list[Any]:
    """Validate a list of records, skipping malformed entries."""
    raw = data.get(key, [])
    if not isinstance(raw, list):
        return []
    records = []
    for entry in raw:
        try:
            records.append(model.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping invalid %s entry in state file: %s", key, e)
    return records


@dataclass
class StateFile:
    """Everything grabarr persists between runs."""

    version: int = STATE_VERSION
    monitored: dict[int, MonitoredItem] = field(default_factory=dict)
    blocklist: list[BlocklistEntry] = field(default_factory=list)
    indexer_exclusions: list[IndexerExclusion] = field(default_factory=list)
    media_exclusions: list[MediaExclusion] = field(default_factory=list)
    pending_grabs: dict[int, PendingGrab] = field(default_factory=dict)
    grab_history: list[GrabRecord] = field(default_factory=list)
    task_history: list[dict[str, Any]] = field(default_factory=list)

    def is_release_blocklisted(self, release_title: str, now: datetime | None = None) -> bool:
        """Check if an equivalent title has an active blocklist entry."""
        wanted = normalize_release_title(release_title)
        return any(
            entry.is_active(now) and normalize_release_title(entry.release_title) == wanted
            for entry in self.blocklist
        )

    def is_indexer_excluded(self, indexer_id: int, library_id: int | None) -> bool:
        """Check if an indexer is excluded for a library."""
        if library_id is None:
            return False
        return any(
            exclusion.indexer_id == indexer_id and exclusion.library_id == library_id
            for exclusion in self.indexer_exclusions
        )

    def is_media_excluded(self, tmdb_id: int, media_type: MediaType) -> bool:
        """Check if a title is excluded from searching."""
        return any(
            exclusion.tmdb_id == tmdb_id and exclusion.media_type == media_type
            for exclusion in self.media_exclusions
        )

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "monitored": [item.model_dump(mode="json") for item in self.monitored.values()],
            "blocklist": [entry.model_dump(mode="json") for entry in self.blocklist],
            "indexer_exclusions": [e.model_dump(mode="json") for e in self.indexer_exclusions],
            "media_exclusions": [e.model_dump(mode="json") for e in self.media_exclusions],
            "pending_grabs": [g.model_dump(mode="json") for g in self.pending_grabs.values()],
            "grab_history": [r.model_dump(mode="json") for r in self.grab_history],
            "task_history": self.task_history,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StateFile:
        """Create from dictionary."""
        version = data.get("version", STATE_VERSION)
        if not isinstance(version, int):
            version = STATE_VERSION

        task_history = data.get("task_history", [])
        if not isinstance(task_history, list):
            task_history = []

        monitored: list[MonitoredItem] = _load_records(data, "monitored", MonitoredItem)
        pending: list[PendingGrab] = _load_records(data, "pending_grabs", PendingGrab)

        return cls(
            version=version,
            monitored={item.id: item for item in monitored},
            blocklist=_load_records(data, "blocklist", BlocklistEntry),
            indexer_exclusions=_load_records(data, "indexer_exclusions", IndexerExclusion),
            media_exclusions=_load_records(data, "media_exclusions", MediaExclusion),
            pending_grabs={grab.media_id: grab for grab in pending},
            grab_history=_load_records(data, "grab_history", GrabRecord),
            task_history=[run for run in task_history if isinstance(run, dict)],
        )


class StateManager:
    """Manager for loading and saving the state file.

    Also serves as the ranker's gating store (blocklist and indexer
    exclusion lookups).
    """

    def __init__(self, path: Path) -> None:
        """Initialize the state manager.

        Args:
            path: Path to the state file
        """
        self.path = path
        self._state: StateFile | None = None

    def load(self) -> StateFile:
        """Load state from file, creating empty state if file doesn't exist.

        Returns:
            The loaded or empty StateFile
        """
        if self._state is not None:
            return self._state

        if not self.path.exists():
            self._state = StateFile()
            return self._state

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            self._state = StateFile.from_dict(data)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load state file %s: %s", self.path, e)
            self._state = StateFile()

        return self._state

    def save(self) -> None:
        """Save state to file."""
        if self._state is None:
            return

        # Ensure directory exists
        self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(self._state.to_dict(), f, indent=2)
        except OSError as e:
            logger.error("Failed to save state file %s: %s", self.path, e)

    # --- Monitored items ---

    def add_monitored_item(self, item: MonitoredItem) -> None:
        """Add or replace a monitored item."""
        state = self.load()
        state.monitored[item.id] = item
        self.save()

    def remove_monitored_item(self, item_id: int) -> bool:
        """Remove a monitored item.

        Returns:
            True if the item existed
        """
        state = self.load()
        removed = state.monitored.pop(item_id, None) is not None
        if removed:
            self.save()
        return removed

    def get_monitored_item(self, item_id: int) -> MonitoredItem | None:
        """Get a monitored item by ID."""
        return self.load().monitored.get(item_id)

    def get_monitored_items(self, *, include_unmonitored: bool = False) -> list[MonitoredItem]:
        """Get monitored items in ID order."""
        items = sorted(self.load().monitored.values(), key=lambda item: item.id)
        if include_unmonitored:
            return items
        return [item for item in items if item.monitored]

    def update_monitored_item(self, item_id: int, **updates: Any) -> MonitoredItem | None:
        """Update fields of a monitored item.

        Returns:
            The updated item, or None if it does not exist
        """
        state = self.load()
        item = state.monitored.get(item_id)
        if item is None:
            return None
        updated = item.model_copy(update=updates)
        state.monitored[item_id] = updated
        self.save()
        return updated

    def mark_searched(self, item_id: int, when: datetime | None = None) -> None:
        """Record that an item was just searched."""
        self.update_monitored_item(item_id, last_searched_at=when or datetime.now(UTC))

    # --- Blocklist and exclusions ---

    def add_to_blocklist(
        self,
        release_title: str,
        reason: str = "",
        *,
        indexer_id: int | None = None,
        expires_at: datetime | None = None,
    ) -> BlocklistEntry:
        """Blocklist a release title."""
        entry = BlocklistEntry(
            release_title=release_title,
            reason=reason,
            indexer_id=indexer_id,
            expires_at=expires_at,
        )
        state = self.load()
        state.blocklist.append(entry)
        self.save()
        return entry

    def remove_from_blocklist(self, release_title: str) -> int:
        """Remove every entry equivalent to a release title.

        Returns:
            Number of entries removed
        """
        state = self.load()
        wanted = normalize_release_title(release_title)
        kept = [e for e in state.blocklist if normalize_release_title(e.release_title) != wanted]
        removed = len(state.blocklist) - len(kept)
        if removed:
            state.blocklist = kept
            self.save()
        return removed

    def get_blocklist(self) -> list[BlocklistEntry]:
        """Get all blocklist entries."""
        return list(self.load().blocklist)

    def is_release_blocklisted(self, release_title: str) -> bool:
        """Check if an equivalent release title is blocklisted."""
        return self.load().is_release_blocklisted(release_title)

    def add_indexer_exclusion(self, indexer_id: int, library_id: int) -> None:
        """Exclude an indexer for a library."""
        state = self.load()
        if not state.is_indexer_excluded(indexer_id, library_id):
            state.indexer_exclusions.append(
                IndexerExclusion(indexer_id=indexer_id, library_id=library_id)
            )
            self.save()

    def is_indexer_excluded(self, indexer_id: int, library_id: int | None) -> bool:
        """Check if an indexer is excluded for a library."""
        return self.load().is_indexer_excluded(indexer_id, library_id)

    def add_media_exclusion(self, tmdb_id: int, media_type: MediaType) -> None:
        """Exclude a title from searching."""
        state = self.load()
        if not state.is_media_excluded(tmdb_id, media_type):
            state.media_exclusions.append(MediaExclusion(tmdb_id=tmdb_id, media_type=media_type))
            self.save()

    def is_media_excluded(self, tmdb_id: int, media_type: MediaType) -> bool:
        """Check if a title is excluded from searching."""
        return self.load().is_media_excluded(tmdb_id, media_type)

    # --- Pending grabs ---

    def upsert_pending_grab(self, grab: PendingGrab) -> PendingGrab:
        """Store a pending grab, keeping one per media item.

        An existing grab keeps its delay window and creation time, so
        deferring the same item again never pushes the grab further out. Its
        release is only replaced by a higher-scoring one.

        Returns:
            The pending grab now stored for the media item
        """
        state = self.load()
        existing = state.pending_grabs.get(grab.media_id)
        if existing is not None:
            if grab.score <= existing.score:
                return existing
            grab = grab.model_copy(
                update={
                    "available_at": min(existing.available_at, grab.available_at),
                    "created_at": existing.created_at,
                }
            )
        state.pending_grabs[grab.media_id] = grab
        self.save()
        return grab

    def get_pending_grabs(self) -> list[PendingGrab]:
        """Get all pending grabs, soonest first."""
        return sorted(self.load().pending_grabs.values(), key=lambda g: g.available_at)

    def get_due_pending_grabs(self, now: datetime | None = None) -> list[PendingGrab]:
        """Get pending grabs whose delay window has elapsed."""
        return [grab for grab in self.get_pending_grabs() if grab.is_due(now)]

    def remove_pending_grab(self, media_id: int) -> bool:
        """Remove the pending grab for a media item.

        Returns:
            True if a pending grab existed
        """
        state = self.load()
        removed = state.pending_grabs.pop(media_id, None) is not None
        if removed:
            self.save()
        return removed

    # --- History ---

    def record_grab(self, record: GrabRecord, history_limit: int = 500) -> None:
        """Append a grab attempt to the history."""
        state = self.load()
        state.grab_history.append(record)
        if len(state.grab_history) > history_limit:
            state.grab_history = state.grab_history[-history_limit:]
        self.save()

    def get_grab_history(self, limit: int = 50) -> list[GrabRecord]:
        """Get the most recent grab attempts, newest first."""
        return list(reversed(self.load().grab_history))[:limit]

    def add_task_run(self, run: dict[str, Any]) -> None:
        """Record the start of a task run."""
        state = self.load()
        state.task_history.append(run)
        self.save()

    def update_task_run(self, task_name: str, started_at: str, updates: dict[str, Any]) -> None:
        """Update a task run identified by task name and start time."""
        state = self.load()
        for run in reversed(state.task_history):
            if run.get("task_name") == task_name and run.get("started_at") == started_at:
                run.update(updates)
                self.save()
                return
        logger.warning("Task run %s started at %s not found in history", task_name, started_at)

    def prune_task_history(self, limit: int) -> None:
        """Keep only the most recent task runs."""
        state = self.load()
        if len(state.task_history) > limit:
            state.task_history = state.task_history[-limit:]
            self.save()

    def get_task_history(
        self, task_name: str | None = None, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Get recent task runs, newest first."""
        runs = [
            run
            for run in reversed(self.load().task_history)
            if task_name is None or run.get("task_name") == task_name
        ]
        return runs[:limit]
