"""Quality tier classification."""

from __future__ import annotations

from typing import TYPE_CHECKING

from grabarr.models.quality import QualityTier

if TYPE_CHECKING:
    from grabarr.models.release import ParsedRelease

# Parser source -> tier family
_SOURCE_FAMILIES: dict[str, str] = {
    "REMUX": "Remux",
    "BluRay": "Bluray",
    "WEB-DL": "WEBDL",
    "WEBRip": "WEBRip",
    "HDTV": "HDTV",
}

_TIERS_BY_KEY: dict[tuple[str, str], QualityTier] = {
    ("Remux", "2160p"): QualityTier.REMUX_2160P,
    ("Bluray", "2160p"): QualityTier.BLURAY_2160P,
    ("WEBDL", "2160p"): QualityTier.WEBDL_2160P,
    ("WEBRip", "2160p"): QualityTier.WEBRIP_2160P,
    ("HDTV", "2160p"): QualityTier.HDTV_2160P,
    ("Remux", "1080p"): QualityTier.REMUX_1080P,
    ("Bluray", "1080p"): QualityTier.BLURAY_1080P,
    ("WEBDL", "1080p"): QualityTier.WEBDL_1080P,
    ("WEBRip", "1080p"): QualityTier.WEBRIP_1080P,
    ("HDTV", "1080p"): QualityTier.HDTV_1080P,
    ("Remux", "720p"): QualityTier.BLURAY_720P,
    ("Bluray", "720p"): QualityTier.BLURAY_720P,
    ("WEBDL", "720p"): QualityTier.WEBDL_720P,
    ("WEBRip", "720p"): QualityTier.WEBRIP_720P,
    ("HDTV", "720p"): QualityTier.HDTV_720P,
}


def classify_tier(parsed: ParsedRelease) -> tuple[QualityTier, int]:
    """Classify a parsed release into a quality tier.

    Classification is total: every input maps to exactly one tier.

    - A resolution with no recognised source is treated as a WEB-DL.
    - REMUX at 720p counts as Bluray-720p.
    - DVD sources are DVD; SDTV sources and 480p releases are SDTV.
    - Blocked sources (CAM, TELESYNC, ...) and releases with nothing
      recognisable are Unknown.

    Args:
        parsed: The parsed release

    Returns:
        Tuple of (tier, base score)
    """
    tier = _classify(parsed.source, parsed.resolution)
    return tier, tier.base_score


def _classify(source: str | None, resolution: str | None) -> QualityTier:
    if source == "DVD":
        return QualityTier.DVD
    if source == "SDTV":
        return QualityTier.SDTV
    if source is not None and source not in _SOURCE_FAMILIES:
        return QualityTier.UNKNOWN
    if resolution is None:
        return QualityTier.UNKNOWN
    if resolution == "480p":
        return QualityTier.SDTV
    family = _SOURCE_FAMILIES.get(source, "WEBDL") if source else "WEBDL"
    return _TIERS_BY_KEY.get((family, resolution), QualityTier.UNKNOWN)

