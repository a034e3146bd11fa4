"""Interfaces of the external collaborators the decision engine drives."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    from grabarr.models.search import SearchResult


@dataclass
class SearchQuery:
    """An indexer search request."""

    query: str = ""
    search_type: Literal["search", "movie", "tvsearch"] = "search"
    tmdb_id: int | None = None
    imdb_id: str | None = None
    tvdb_id: int | None = None
    season: int | None = None
    episode: int | None = None
    categories: list[int] = field(default_factory=list)
    limit: int = 100


class SearchProvider(Protocol):
    """Indexer aggregate search."""

    async def search(self, query: SearchQuery) -> list[SearchResult]:
        """Search all configured indexers."""
        ...

    async def fetch_rss(self) -> list[SearchResult]:
        """Fetch the most recent releases from all indexers."""
        ...


class AcquisitionBackend(Protocol):
    """Hand-off to download clients. Raising signals a failed hand-off."""

    async def add_torrent(self, client_id: int, url: str, category: str) -> None:
        """Add a torrent or magnet link to a torrent client."""
        ...

    async def add_nzb(self, client_id: int, url: str, category: str) -> None:
        """Add an NZB to a usenet client."""
        ...


class GatingStore(Protocol):
    """Persistence lookups used by the candidate ranker."""

    def is_release_blocklisted(self, release_title: str) -> bool:
        """Check if an equivalent release title is blocklisted."""
        ...

    def is_indexer_excluded(self, indexer_id: int, library_id: int | None) -> bool:
        """Check if an indexer is excluded for a library."""
        ...
