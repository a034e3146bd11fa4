"""Prowlarr API client implementing the search provider."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from grabarr.clients.base import BaseArrClient
from grabarr.models.search import SearchResult

if TYPE_CHECKING:
    from grabarr.collaborators import SearchQuery

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "/api/v1/search"

RSS_LIMIT = 100


def _parse_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _first_category(item: dict[str, Any]) -> tuple[int | None, str]:
    categories = item.get("categories") or []
    for category in categories:
        if isinstance(category, dict) and isinstance(category.get("id"), int):
            return category["id"], category.get("name") or ""
    return None, ""


def parse_release(item: dict[str, Any]) -> SearchResult:
    """Convert a Prowlarr release payload to a SearchResult.

    Args:
        item: One element of the /api/v1/search response

    Returns:
        The normalized search result
    """
    category_id, category_name = _first_category(item)
    imdb_id = item.get("imdbId")
    if isinstance(imdb_id, int):
        imdb_id = f"tt{imdb_id:07d}" if imdb_id else None

    return SearchResult(
        title=item.get("title") or "",
        guid=item.get("guid") or "",
        link=item.get("downloadUrl") or item.get("infoUrl") or "",
        magnet_link=item.get("magnetUrl") or None,
        size=item.get("size") or 0,
        seeders=item.get("seeders") or 0,
        leechers=item.get("leechers") or 0,
        publish_date=_parse_datetime(item.get("publishDate")),
        indexer_id=item.get("indexerId") or 0,
        indexer_name=item.get("indexer") or "",
        indexer_type="prowlarr",
        protocol=item.get("protocol") or None,
        category=category_name,
        category_id=category_id,
        imdb_id=imdb_id or None,
        tmdb_id=item.get("tmdbId") or None,
        tvdb_id=item.get("tvdbId") or None,
    )


def build_search_params(query: SearchQuery) -> dict[str, Any]:
    """Build Prowlarr search parameters.

    IDs, season and episode are passed as Prowlarr query tokens so every
    indexer type receives them.
    """
    terms = [query.query] if query.query else []
    if query.imdb_id:
        terms.append(f"{{ImdbId:{query.imdb_id}}}")
    if query.tmdb_id:
        terms.append(f"{{TmdbId:{query.tmdb_id}}}")
    if query.tvdb_id:
        terms.append(f"{{TvdbId:{query.tvdb_id}}}")
    if query.season is not None:
        terms.append(f"{{Season:{query.season:02d}}}")
    if query.episode is not None:
        terms.append(f"{{Episode:{query.episode:02d}}}")

    params: dict[str, Any] = {
        "query": " ".join(terms),
        "type": query.search_type,
        "limit": query.limit,
    }
    if query.categories:
        params["categories"] = list(query.categories)
    return params


class ProwlarrClient(BaseArrClient):
    """Client for the Prowlarr search API.

    Inherits retry and caching functionality from BaseArrClient.

    Example:
        async with ProwlarrClient("http://localhost:9696", "api-key") as client:
            results = await client.search(SearchQuery(query="Movie Name 2020"))
    """

    async def search(self, query: SearchQuery) -> list[SearchResult]:
        """Search all enabled indexers.

        Args:
            query: The search request

        Returns:
            Results in the order Prowlarr returned them
        """
        data = await self._get(SEARCH_ENDPOINT, params=build_search_params(query))
        results = self._parse_results(data)
        logger.debug("Prowlarr returned %d results for %r", len(results), query.query)
        return results

    async def fetch_rss(self) -> list[SearchResult]:
        """Fetch the most recent releases from all indexers (never cached)."""
        data = await self._get_uncached(
            SEARCH_ENDPOINT, params={"query": "", "type": "search", "limit": RSS_LIMIT}
        )
        return self._parse_results(data)

    @staticmethod
    def _parse_results(data: Any) -> list[SearchResult]:
        results = []
        for item in data or []:
            if not isinstance(item, dict) or not item.get("title"):
                continue
            results.append(parse_release(item))
        return results
