"""Rule definitions: quality profiles, custom formats, delay profiles and filters."""

from __future__ import annotations

import re
from enum import Enum
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from grabarr.models.conditions import Condition  # noqa: TC001 - pydantic needs it at runtime
from grabarr.models.quality import QualityTier


class _RuleModel(BaseModel):
    """Accepts both snake_case (TOML) and camelCase (JSON) keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CustomFormatDef(_RuleModel):
    """A named rule-set; it matches when every condition holds.

    A format without conditions never matches.
    """

    id: int
    name: str
    conditions: list[Condition] = Field(default_factory=list)


class QualityProfile(_RuleModel):
    """Accepted tiers, score thresholds and custom format weights."""

    id: int
    name: str
    allowed_quality_tiers: list[QualityTier] = Field(default_factory=list)
    upgrade_allowed: bool = True
    upgrade_until_score: int = 0
    min_format_score: int = 0
    cutoff_format_score: int = 0
    custom_format_scores: dict[int, int] = Field(default_factory=dict)
    reject_flagged_releases: bool = True

    def allows(self, tier: QualityTier) -> bool:
        """Check if a tier is accepted. An empty allowed list accepts every tier."""
        if not self.allowed_quality_tiers:
            return True
        return tier in self.allowed_quality_tiers


class DelayProfile(_RuleModel):
    """Postpone grabbing so better releases get a chance to appear."""

    id: int
    name: str = ""
    library_id: int | None = None
    delay_minutes: int = 0
    bypass_if_resolution: str | None = None
    bypass_if_source: str | None = None
    bypass_if_score_above: int | None = None
    enabled: bool = True

    def applies_to(self, library_id: int | None) -> bool:
        """Check if this profile is in scope for a library.

        Global profiles apply everywhere; library profiles also apply when the
        target library is unknown.
        """
        if not self.enabled or self.delay_minutes <= 0:
            return False
        return self.library_id is None or library_id is None or self.library_id == library_id


class FilterType(str, Enum):
    """Direction of a release filter."""

    MUST_CONTAIN = "must_contain"
    MUST_NOT_CONTAIN = "must_not_contain"


class ReleaseFilter(_RuleModel):
    """Textual requirement on release titles for a quality profile."""

    profile_id: int
    filter_type: FilterType
    value: str
    is_regex: bool = False

    @model_validator(mode="after")
    def _check_regex(self) -> Self:
        if self.is_regex:
            try:
                re.compile(self.value)
            except re.error as e:
                raise ValueError(f"Invalid filter regex {self.value!r}: {e}") from e
        return self

    def matches(self, title: str) -> bool:
        """Check if the filter value occurs in a title (case-insensitive)."""
        if self.is_regex:
            return re.search(self.value, title, re.IGNORECASE) is not None
        return self.value.casefold() in title.casefold()

    def violated_by(self, title: str) -> bool:
        """Check if a title breaks this filter."""
        found = self.matches(title)
        if self.filter_type == FilterType.MUST_CONTAIN:
            return not found
        return found


class IndexerDefinition(_RuleModel):
    """Indexer priority; lower numbers are preferred on score ties."""

    id: int
    name: str = ""
    priority: int = 25


class DownloadClientDefinition(_RuleModel):
    """A configured download client and its per-media-type categories."""

    id: int
    name: str = ""
    type: Literal["qbittorrent", "transmission", "sabnzbd", "nzbget"]
    enabled: bool = True
    priority: int = 1
    movie_category: str = "movies"
    tv_category: str = "tv"
    anime_category: str = "anime"

    @property
    def protocol(self) -> Literal["torrent", "usenet"]:
        """Protocol this client accepts."""
        if self.type in ("qbittorrent", "transmission"):
            return "torrent"
        return "usenet"

    def category_for(self, media_type: str) -> str:
        """Get the download category for a media type."""
        if media_type == "movie":
            return self.movie_category
        if media_type == "anime":
            return self.anime_category
        return self.tv_category


class LibraryDefinition(_RuleModel):
    """A media library root folder."""

    id: int
    name: str = ""
    path: str
    media_type: Literal["movie", "show", "anime"] = "movie"
