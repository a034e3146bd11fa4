"""Indexer search results and the scored search result wire format."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic needs it at runtime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from grabarr.scoring import ScoredRelease

ADULT_CATEGORY_MIN = 6000
ADULT_CATEGORY_MAX = 6999

TORRENT_INDEXER_TYPES: frozenset[str] = frozenset({"torznab", "prowlarr"})


class SearchResult(BaseModel):
    """A raw release advertised by an indexer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    guid: str = ""
    link: str = ""
    magnet_link: str | None = None
    size: int = 0
    seeders: int = 0
    leechers: int = 0
    publish_date: datetime | None = None
    indexer_id: int = 0
    indexer_name: str = ""
    indexer_type: str = ""
    protocol: str | None = None
    category: str = ""
    category_id: int | None = None
    imdb_id: str | None = None
    tmdb_id: int | None = None
    tvdb_id: int | None = None

    @property
    def is_torrent(self) -> bool:
        """Check if this release is handed to a torrent client."""
        if self.magnet_link:
            return True
        if self.protocol:
            return self.protocol == "torrent"
        return self.indexer_type.lower() in TORRENT_INDEXER_TYPES

    @property
    def download_url(self) -> str:
        """The URL handed to the download client."""
        return self.magnet_link or self.link

    def is_adult(self) -> bool:
        """Check if the result is in the adult category range."""
        if self.category_id is None:
            return False
        return ADULT_CATEGORY_MIN <= self.category_id <= ADULT_CATEGORY_MAX


class CustomFormatHit(BaseModel):
    """A matched custom format and the weight the profile gave it."""

    name: str
    score: int


class ScoredSearchResult(BaseModel):
    """Wire representation of a scored search result.

    All keys are always serialized; unknown values are emitted as ``null``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    indexer_id: int
    indexer_name: str
    size: int
    seeders: int
    leechers: int
    publish_date: datetime | None
    category: str
    quality: str
    resolution: str | None
    source: str | None
    codec: str | None
    audio_codec: str | None
    audio_feature: str | None
    hdr: list[str] = Field(default_factory=list)
    release_group: str | None
    proper: bool
    repack: bool
    base_score: int
    custom_format_hits: list[CustomFormatHit] = Field(default_factory=list)
    total_score: int
    rejected: bool
    rejection_reason: str | None

    @classmethod
    def from_scored(cls, result: SearchResult, scored: ScoredRelease) -> ScoredSearchResult:
        """Build the wire model from a search result and its score."""
        parsed = scored.parsed
        return cls(
            title=result.title,
            indexer_id=result.indexer_id,
            indexer_name=result.indexer_name,
            size=result.size,
            seeders=result.seeders,
            leechers=result.leechers,
            publish_date=result.publish_date,
            category=result.category,
            quality=scored.quality_tier.value,
            resolution=parsed.resolution,
            source=parsed.source,
            codec=parsed.codec,
            audio_codec=parsed.audio_codec,
            audio_feature=parsed.audio_channels,
            hdr=list(parsed.hdr_formats),
            release_group=parsed.release_group,
            proper=parsed.is_proper,
            repack=parsed.is_repack,
            base_score=scored.base_score,
            custom_format_hits=[
                CustomFormatHit(name=hit.name, score=hit.score) for hit in scored.custom_format_hits
            ],
            total_score=scored.total_score,
            rejected=scored.rejected,
            rejection_reason=scored.rejection_reason,
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
