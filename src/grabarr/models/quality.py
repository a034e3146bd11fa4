"""Quality tier enumeration."""

from __future__ import annotations

from enum import Enum


class QualityTier(Enum):
    """Ordered resolution and source combinations, highest first.

    Declaration order is the tier order; ``base_score`` is strictly
    decreasing along it.
    """

    REMUX_2160P = "Remux-2160p"
    BLURAY_2160P = "Bluray-2160p"
    WEBDL_2160P = "WEBDL-2160p"
    WEBRIP_2160P = "WEBRip-2160p"
    HDTV_2160P = "HDTV-2160p"
    REMUX_1080P = "Remux-1080p"
    BLURAY_1080P = "Bluray-1080p"
    WEBDL_1080P = "WEBDL-1080p"
    WEBRIP_1080P = "WEBRip-1080p"
    HDTV_1080P = "HDTV-1080p"
    BLURAY_720P = "Bluray-720p"
    WEBDL_720P = "WEBDL-720p"
    WEBRIP_720P = "WEBRip-720p"
    HDTV_720P = "HDTV-720p"
    DVD = "DVD"
    SDTV = "SDTV"
    UNKNOWN = "Unknown"

    @property
    def base_score(self) -> int:
        """Immutable base score for this tier."""
        return BASE_SCORES[self]

    @property
    def rank(self) -> int:
        """Position in the tier order (0 is best)."""
        return _RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, QualityTier):
            return NotImplemented
        return self.base_score < other.base_score


BASE_SCORES: dict[QualityTier, int] = {
    QualityTier.REMUX_2160P: 100000,
    QualityTier.BLURAY_2160P: 90000,
    QualityTier.WEBDL_2160P: 80000,
    QualityTier.WEBRIP_2160P: 75000,
    QualityTier.HDTV_2160P: 70000,
    QualityTier.REMUX_1080P: 60000,
    QualityTier.BLURAY_1080P: 50000,
    QualityTier.WEBDL_1080P: 40000,
    QualityTier.WEBRIP_1080P: 35000,
    QualityTier.HDTV_1080P: 30000,
    QualityTier.BLURAY_720P: 25000,
    QualityTier.WEBDL_720P: 20000,
    QualityTier.WEBRIP_720P: 18000,
    QualityTier.HDTV_720P: 15000,
    QualityTier.DVD: 10000,
    QualityTier.SDTV: 5000,
    QualityTier.UNKNOWN: 1000,
}

_RANKS: dict[QualityTier, int] = {tier: index for index, tier in enumerate(QualityTier)}
