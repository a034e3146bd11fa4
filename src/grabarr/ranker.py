"""Candidate ranking and gating."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from grabarr.collaborators import GatingStore
    from grabarr.models.profiles import DelayProfile, ReleaseFilter
    from grabarr.models.search import SearchResult
    from grabarr.scoring import ScoredRelease

logger = logging.getLogger(__name__)

DEFAULT_INDEXER_PRIORITY = 25

GATE_BLOCKLIST = "blocklisted"
GATE_INDEXER_EXCLUDED = "indexer excluded for library"


@dataclass
class Candidate:
    """A search result together with its score and ranking inputs."""

    result: SearchResult
    scored: ScoredRelease
    indexer_priority: int = DEFAULT_INDEXER_PRIORITY
    order: int = 0

    @property
    def total_score(self) -> int:
        return self.scored.total_score


@dataclass
class RankContext:
    """Everything the gates need besides the candidates themselves."""

    store: GatingStore
    library_id: int | None = None
    quality_profile_id: int | None = None
    release_filters: Sequence[ReleaseFilter] = ()
    delay_profiles: Sequence[DelayProfile] = ()
    now: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class GateRejection:
    """A candidate that failed a gate, and why."""

    candidate: Candidate
    reason: str


@dataclass
class DeferredCandidate:
    """A candidate held back by a delay profile."""

    candidate: Candidate
    available_at: datetime
    delay_profile_id: int


@dataclass
class RankOutcome:
    """Result of ranking: at most one of ``selected`` and ``deferred`` is set."""

    selected: Candidate | None = None
    deferred: DeferredCandidate | None = None
    ordered: list[Candidate] = field(default_factory=list)
    gated: list[GateRejection] = field(default_factory=list)

    @property
    def has_decision(self) -> bool:
        """Check if a candidate was selected or deferred."""
        return self.selected is not None or self.deferred is not None


def _publish_key(candidate: Candidate) -> float:
    """Newest first; missing dates sort last."""
    published = candidate.result.publish_date
    if published is None:
        return float("inf")
    if published.tzinfo is None:
        published = published.replace(tzinfo=UTC)
    return -published.timestamp()


def sort_candidates(candidates: Sequence[Candidate]) -> list[Candidate]:
    """Order non-rejected candidates best first.

    Ties on total score are broken by indexer priority (lower first), then
    publish date (newer first), then discovery order.
    """
    eligible = [c for c in candidates if not c.scored.rejected]
    return sorted(
        eligible,
        key=lambda c: (-c.total_score, c.indexer_priority, _publish_key(c), c.order),
    )


def _delay_profiles_in_scope(
    profiles: Sequence[DelayProfile], library_id: int | None
) -> list[DelayProfile]:
    """List the delay profiles in force for a library.

    Library-specific profiles come before global ones; the order within each
    scope is preserved.
    """
    in_scope = [p for p in profiles if p.applies_to(library_id)]
    in_scope.sort(key=lambda p: p.library_id is None)
    return in_scope


def _delaying_profile(
    profiles: Sequence[DelayProfile], candidate: Candidate
) -> DelayProfile | None:
    """Return the first profile the candidate does not bypass."""
    for profile in profiles:
        if not _bypasses_delay(profile, candidate):
            return profile
    return None


def _bypasses_delay(profile: DelayProfile, candidate: Candidate) -> bool:
    parsed = candidate.scored.parsed
    if (
        profile.bypass_if_resolution
        and parsed.resolution
        and parsed.resolution.casefold() == profile.bypass_if_resolution.casefold()
    ):
        return True
    if (
        profile.bypass_if_source
        and parsed.source
        and parsed.source.casefold() == profile.bypass_if_source.casefold()
    ):
        return True
    return (
        profile.bypass_if_score_above is not None
        and candidate.total_score > profile.bypass_if_score_above
    )


def _filter_violation(title: str, filters: Sequence[ReleaseFilter]) -> ReleaseFilter | None:
    for release_filter in filters:
        if release_filter.violated_by(title):
            return release_filter
    return None


def rank_candidates(candidates: Sequence[Candidate], context: RankContext) -> RankOutcome:
    """Rank candidates and pick a winner or defer one.

    Candidates are walked best first through the gates: blocklist, indexer
    exclusion, release filters, then the delay gate. The first candidate that
    passes every gate is selected. If the delay gate holds a candidate back,
    it is deferred and the walk stops.

    Args:
        candidates: Scored candidates
        context: Gate configuration and lookups

    Returns:
        RankOutcome; neither selected nor deferred means no acceptable release
    """
    ordered = sort_candidates(candidates)
    outcome = RankOutcome(ordered=ordered)

    filters = [
        f
        for f in context.release_filters
        if context.quality_profile_id is not None and f.profile_id == context.quality_profile_id
    ]
    delay_profiles = _delay_profiles_in_scope(context.delay_profiles, context.library_id)

    for candidate in ordered:
        title = candidate.result.title

        if context.store.is_release_blocklisted(title):
            outcome.gated.append(GateRejection(candidate, GATE_BLOCKLIST))
            continue

        if context.store.is_indexer_excluded(candidate.result.indexer_id, context.library_id):
            outcome.gated.append(GateRejection(candidate, GATE_INDEXER_EXCLUDED))
            continue

        violated = _filter_violation(title, filters)
        if violated is not None:
            reason = f"release filter {violated.filter_type.value}: {violated.value}"
            outcome.gated.append(GateRejection(candidate, reason))
            continue

        delay_profile = _delaying_profile(delay_profiles, candidate)
        if delay_profile is not None:
            available_at = context.now + timedelta(minutes=delay_profile.delay_minutes)
            logger.info("Delaying grab for %d minutes: %s", delay_profile.delay_minutes, title)
            outcome.deferred = DeferredCandidate(candidate, available_at, delay_profile.id)
            return outcome

        outcome.selected = candidate
        return outcome

    return outcome
