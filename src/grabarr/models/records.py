"""Persisted records: monitored items, pending grabs, blocklist and exclusions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

MediaType = Literal["movie", "show", "anime"]


def _now() -> datetime:
    return datetime.now(UTC)


class MonitoredItem(BaseModel):
    """A movie, show or episode the scheduler searches for."""

    id: int
    tmdb_id: int
    media_type: MediaType = "movie"
    title: str
    year: int | None = None
    imdb_id: str | None = None
    tvdb_id: int | None = None
    season: int | None = None
    episode: int | None = None
    quality_profile_id: int | None = None
    library_id: int | None = None
    owned_score: int | None = None
    last_searched_at: datetime | None = None
    monitored: bool = True


class BlocklistEntry(BaseModel):
    """A release title that must not be grabbed again."""

    release_title: str
    reason: str = ""
    indexer_id: int | None = None
    created_at: datetime = Field(default_factory=_now)
    expires_at: datetime | None = None

    def is_active(self, now: datetime | None = None) -> bool:
        """Check if the entry has not expired."""
        if self.expires_at is None:
            return True
        return self.expires_at > (now or _now())


class IndexerExclusion(BaseModel):
    """An indexer that must not be used for a library."""

    indexer_id: int
    library_id: int


class MediaExclusion(BaseModel):
    """A title that must never be searched or grabbed."""

    tmdb_id: int
    media_type: MediaType


class PendingGrab(BaseModel):
    """A release whose grab was deferred by a delay profile."""

    media_id: int
    media_type: MediaType
    release_title: str
    release_data: dict[str, Any] = Field(default_factory=dict)
    score: int
    indexer_id: int | None = None
    available_at: datetime
    created_at: datetime = Field(default_factory=_now)

    def is_due(self, now: datetime | None = None) -> bool:
        """Check if the delay window has elapsed."""
        return self.available_at <= (now or _now())


class GrabRecord(BaseModel):
    """Outcome of a hand-off to a download client."""

    media_id: int
    release_title: str
    indexer_id: int | None = None
    download_client_id: int | None = None
    protocol: Literal["torrent", "usenet"]
    score: int
    success: bool
    error: str | None = None
    grabbed_at: datetime = Field(default_factory=_now)
