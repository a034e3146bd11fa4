"""Release scoring against a quality profile and custom formats."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from grabarr.criteria import match_formats
from grabarr.quality import classify_tier

if TYPE_CHECKING:
    from collections.abc import Sequence

    from grabarr.models.profiles import CustomFormatDef, QualityProfile
    from grabarr.models.quality import QualityTier
    from grabarr.models.release import ParsedRelease

REASON_UNSUPPORTED_QUALITY = "unsupported quality"
REASON_BELOW_MIN_SCORE = "below minimum format score"
REASON_NO_UPGRADE = "no upgrade needed"


@dataclass(frozen=True)
class FormatHit:
    """A matched custom format and its weight in the profile."""

    name: str
    score: int


@dataclass(frozen=True)
class ScoredRelease:
    """A parsed release with its tier, score and verdict."""

    parsed: ParsedRelease
    quality_tier: QualityTier
    base_score: int
    custom_format_hits: tuple[FormatHit, ...] = field(default_factory=tuple)
    total_score: int = 0
    rejected: bool = False
    rejection_reason: str | None = None


def score_release(
    parsed: ParsedRelease,
    profile: QualityProfile | None,
    formats: Sequence[CustomFormatDef],
    *,
    owned_score: int | None = None,
) -> ScoredRelease:
    """Score a release.

    The total is the tier base score plus the profile weight of every
    matched custom format. Checks run in a fixed order and the first failure
    becomes the rejection reason:

    1. the tier is not allowed by the profile
    2. the total is below the profile minimum
    3. an owned copy exists and this release is not enough of an upgrade
    4. the release carries a warning flag (CAM, sample, hardcoded subs, ...)
       and the profile rejects flagged releases

    Without a profile only the base score is computed and nothing is rejected.

    Args:
        parsed: The parsed release
        profile: Quality profile, or None when the target has none assigned
        formats: Custom format definitions
        owned_score: Score of the copy already owned, if any

    Returns:
        ScoredRelease with the verdict
    """
    tier, base_score = classify_tier(parsed)
    if profile is None:
        return ScoredRelease(
            parsed=parsed,
            quality_tier=tier,
            base_score=base_score,
            total_score=base_score,
        )

    scores = profile.custom_format_scores
    hits = tuple(
        FormatHit(name=custom_format.name, score=scores.get(custom_format.id, 0))
        for custom_format in match_formats(parsed, formats)
    )
    total_score = base_score + sum(hit.score for hit in hits)
    reason = _rejection_reason(parsed, tier, total_score, profile, owned_score)

    return ScoredRelease(
        parsed=parsed,
        quality_tier=tier,
        base_score=base_score,
        custom_format_hits=hits,
        total_score=total_score,
        rejected=reason is not None,
        rejection_reason=reason,
    )


def _rejection_reason(
    parsed: ParsedRelease,
    tier: QualityTier,
    total_score: int,
    profile: QualityProfile,
    owned_score: int | None,
) -> str | None:
    if not profile.allows(tier):
        return REASON_UNSUPPORTED_QUALITY
    if total_score < profile.min_format_score:
        return REASON_BELOW_MIN_SCORE
    if owned_score is not None and not (
        profile.upgrade_allowed and total_score >= owned_score + profile.upgrade_until_score
    ):
        return REASON_NO_UPGRADE
    if profile.reject_flagged_releases and parsed.block_reason:
        return f"blocked: {parsed.block_reason}"
    return None


def cutoff_met(scored: ScoredRelease, profile: QualityProfile) -> bool:
    """Check if a release reaches the profile's cutoff score."""
    return scored.total_score >= profile.cutoff_format_score
