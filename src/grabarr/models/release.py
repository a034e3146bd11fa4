"""Structured attributes extracted from a release title."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ParsedRelease(BaseModel):
    """Attributes recognised in a release title.

    Every attribute other than ``title`` and ``raw_title`` is optional; an
    unset value means the parser did not recognise it, never that parsing
    failed.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    raw_title: str = ""
    year: int | None = None
    resolution: str | None = None
    source: str | None = None
    codec: str | None = None
    audio_codec: str | None = None
    audio_channels: str | None = None
    hdr_formats: list[str] = Field(default_factory=list)
    release_group: str | None = None
    is_proper: bool = False
    is_repack: bool = False
    edition: str | None = None
    season: int | None = None
    episode: int | None = None
    is_season_pack: bool = False
    streaming_service: str | None = None

    # Warning flags
    is_blocked_source: bool = False
    is_sample: bool = False
    is_upscaled: bool = False
    has_hardcoded_subs: bool = False
    is_nuked: bool = False

    @property
    def block_reason(self) -> str | None:
        """The first warning flag that makes this release undesirable, if any."""
        if self.is_blocked_source:
            return f"blocked source ({self.source})"
        if self.has_hardcoded_subs:
            return "hardcoded subtitles"
        if self.is_upscaled:
            return "upscaled"
        if self.is_sample:
            return "sample"
        if self.is_nuked:
            return "nuked"
        return None

    @property
    def is_episode(self) -> bool:
        """Check if this release targets a single episode."""
        return self.season is not None and self.episode is not None
