"""Tests for candidate ranking and gating."""

from datetime import UTC, datetime, timedelta

from grabarr.models.profiles import DelayProfile, FilterType, ReleaseFilter
from grabarr.models.quality import QualityTier
from grabarr.models.search import SearchResult
from grabarr.parser import parse_title
from grabarr.ranker import (
    GATE_BLOCKLIST,
    GATE_INDEXER_EXCLUDED,
    Candidate,
    RankContext,
    rank_candidates,
    sort_candidates,
)
from grabarr.scoring import ScoredRelease

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeStore:
    """In-memory gating store."""

    def __init__(
        self,
        blocklisted: set[str] | None = None,
        excluded: set[tuple[int, int]] | None = None,
    ) -> None:
        self.blocklisted = blocklisted or set()
        self.excluded = excluded or set()

    def is_release_blocklisted(self, release_title: str) -> bool:
        return release_title in self.blocklisted

    def is_indexer_excluded(self, indexer_id: int, library_id: int | None) -> bool:
        return library_id is not None and (indexer_id, library_id) in self.excluded


def make_candidate(
    title: str,
    score: int,
    *,
    indexer_id: int = 1,
    priority: int = 25,
    order: int = 0,
    published: datetime | None = None,
    rejected: bool = False,
) -> Candidate:
    """Build a candidate with a fixed total score."""
    scored = ScoredRelease(
        parsed=parse_title(title),
        quality_tier=QualityTier.UNKNOWN,
        base_score=score,
        total_score=score,
        rejected=rejected,
        rejection_reason="unsupported quality" if rejected else None,
    )
    result = SearchResult(title=title, indexer_id=indexer_id, publish_date=published)
    return Candidate(result=result, scored=scored, indexer_priority=priority, order=order)


def make_context(store: FakeStore | None = None, **kwargs: object) -> RankContext:
    return RankContext(store=store or FakeStore(), now=NOW, **kwargs)  # type: ignore[arg-type]


class TestSortCandidates:
    """Tests for candidate ordering."""

    def test_score_descending(self) -> None:
        """Higher totals sort first."""
        low = make_candidate("Low.1080p-A", 100, order=0)
        high = make_candidate("High.1080p-B", 200, order=1)

        assert sort_candidates([low, high]) == [high, low]

    def test_rejected_candidates_excluded(self) -> None:
        """Rejected candidates never appear in the ordering."""
        rejected = make_candidate("Rejected.2160p-A", 999, rejected=True)
        ok = make_candidate("Ok.1080p-B", 1)

        assert sort_candidates([rejected, ok]) == [ok]

    def test_tie_broken_by_indexer_priority(self) -> None:
        """Equal scores prefer the lower priority number."""
        first = make_candidate("Movie.2020.1080p-A", 500, indexer_id=1, priority=50, order=0)
        second = make_candidate("Movie.2020.1080p-B", 500, indexer_id=2, priority=10, order=1)

        assert sort_candidates([first, second]) == [second, first]

    def test_tie_broken_by_publish_date(self) -> None:
        """Equal score and priority prefer the newer release; missing dates last."""
        undated = make_candidate("Undated-A", 500, order=0)
        old = make_candidate("Old-B", 500, order=1, published=NOW - timedelta(days=2))
        new = make_candidate("New-C", 500, order=2, published=NOW - timedelta(hours=1))

        assert sort_candidates([undated, old, new]) == [new, old, undated]

    def test_naive_publish_dates_treated_as_utc(self) -> None:
        """Naive timestamps compare against aware ones as UTC."""
        naive = make_candidate("Naive-A", 500, order=0, published=datetime(2026, 1, 2))
        aware = make_candidate("Aware-B", 500, order=1, published=NOW)

        assert sort_candidates([aware, naive]) == [naive, aware]

    def test_tie_broken_by_discovery_order(self) -> None:
        """Fully tied candidates keep discovery order."""
        a = make_candidate("A", 500, order=0)
        b = make_candidate("B", 500, order=1)

        assert sort_candidates([b, a]) == [a, b]


class TestRankCandidates:
    """Tests for rank_candidates."""

    def test_selects_best(self) -> None:
        """Without gates the best candidate is selected."""
        best = make_candidate("Best-A", 300)
        outcome = rank_candidates([make_candidate("Other-B", 100), best], make_context())

        assert outcome.selected is best
        assert outcome.deferred is None
        assert outcome.has_decision is True

    def test_equal_scores_select_preferred_indexer(self) -> None:
        """Indexer priority decides between equal scores."""
        a = make_candidate("Movie.2020.1080p-A", 500, indexer_id=1, priority=30, order=0)
        b = make_candidate("Movie.2020.1080p-B", 500, indexer_id=2, priority=5, order=1)

        assert rank_candidates([a, b], make_context()).selected is b

    def test_no_candidates(self) -> None:
        """No eligible candidates means no decision."""
        outcome = rank_candidates(
            [make_candidate("Rejected-A", 100, rejected=True)], make_context()
        )

        assert outcome.selected is None
        assert outcome.deferred is None
        assert outcome.has_decision is False
        assert outcome.ordered == []

    def test_blocklisted_candidate_skipped(self) -> None:
        """Blocklisted titles fall through to the next candidate."""
        blocked = make_candidate("Blocked-A", 300)
        fallback = make_candidate("Fallback-B", 200)
        store = FakeStore(blocklisted={"Blocked-A"})

        outcome = rank_candidates([blocked, fallback], make_context(store))

        assert outcome.selected is fallback
        assert outcome.gated[0].candidate is blocked
        assert outcome.gated[0].reason == GATE_BLOCKLIST

    def test_indexer_excluded_for_library(self) -> None:
        """Indexer exclusions apply only to their library."""
        candidate = make_candidate("Movie-A", 300, indexer_id=7)
        store = FakeStore(excluded={(7, 2)})

        outcome = rank_candidates([candidate], make_context(store, library_id=2))
        assert outcome.selected is None
        assert outcome.gated[0].reason == GATE_INDEXER_EXCLUDED

        outcome = rank_candidates([candidate], make_context(store, library_id=3))
        assert outcome.selected is candidate

    def test_release_filters_for_profile(self) -> None:
        """Only filters of the target profile apply."""
        plain = make_candidate("Movie.2020.1080p.BluRay-A", 300)
        french = make_candidate("Movie.2020.FRENCH.1080p.BluRay-B", 400)
        filters = [
            ReleaseFilter(
                profile_id=1, filter_type=FilterType.MUST_NOT_CONTAIN, value="french"
            ),
            ReleaseFilter(profile_id=2, filter_type=FilterType.MUST_CONTAIN, value="x265"),
        ]

        outcome = rank_candidates(
            [plain, french], make_context(quality_profile_id=1, release_filters=filters)
        )

        assert outcome.selected is plain
        assert outcome.gated[0].candidate is french
        assert outcome.gated[0].reason == "release filter must_not_contain: french"

    def test_must_contain_regex_filter(self) -> None:
        """Regex filters require a match for must_contain."""
        hevc = make_candidate("Movie.2020.1080p.x265-A", 100)
        avc = make_candidate("Movie.2020.1080p.x264-B", 200)
        filters = [
            ReleaseFilter(
                profile_id=1, filter_type=FilterType.MUST_CONTAIN, value=r"x26[5]", is_regex=True
            )
        ]

        outcome = rank_candidates(
            [hevc, avc], make_context(quality_profile_id=1, release_filters=filters)
        )
        assert outcome.selected is hevc

    def test_filters_ignored_without_profile(self) -> None:
        """Without a target profile no filter applies."""
        candidate = make_candidate("Movie.FRENCH-A", 100)
        filters = [
            ReleaseFilter(profile_id=1, filter_type=FilterType.MUST_NOT_CONTAIN, value="french")
        ]

        outcome = rank_candidates([candidate], make_context(release_filters=filters))
        assert outcome.selected is candidate


class TestDelayGate:
    """Tests for delay profiles."""

    def test_score_above_bypass_not_deferred(self) -> None:
        """A candidate above the bypass score is selected immediately."""
        delay = DelayProfile(id=1, delay_minutes=60, bypass_if_score_above=150)
        candidate = make_candidate("Movie-A", 200)

        outcome = rank_candidates([candidate], make_context(delay_profiles=[delay]))

        assert outcome.selected is candidate
        assert outcome.deferred is None

    def test_score_below_bypass_deferred(self) -> None:
        """A candidate below the bypass score is deferred by the delay."""
        delay = DelayProfile(id=1, delay_minutes=60, bypass_if_score_above=150)
        candidate = make_candidate("Movie-A", 100)

        outcome = rank_candidates([candidate], make_context(delay_profiles=[delay]))

        assert outcome.selected is None
        assert outcome.deferred is not None
        assert outcome.deferred.candidate is candidate
        assert outcome.deferred.available_at == NOW + timedelta(minutes=60)
        assert outcome.deferred.delay_profile_id == 1

    def test_deferral_stops_the_walk(self) -> None:
        """Lower candidates are not considered once one is deferred."""
        delay = DelayProfile(id=1, delay_minutes=30)
        best = make_candidate("Best-A", 300)
        other = make_candidate("Other-B", 100)

        outcome = rank_candidates([best, other], make_context(delay_profiles=[delay]))

        assert outcome.deferred is not None
        assert outcome.deferred.candidate is best
        assert outcome.selected is None

    def test_resolution_and_source_bypass(self) -> None:
        """Matching the bypass resolution or source skips the delay."""
        by_resolution = DelayProfile(id=1, delay_minutes=30, bypass_if_resolution="2160P")
        by_source = DelayProfile(id=2, delay_minutes=30, bypass_if_source="remux")
        candidate = make_candidate("Movie.2160p.REMUX-A", 100)

        for delay in (by_resolution, by_source):
            outcome = rank_candidates([candidate], make_context(delay_profiles=[delay]))
            assert outcome.selected is candidate

    def test_zero_delay_is_no_delay(self) -> None:
        """A non-positive delay never defers."""
        delay = DelayProfile(id=1, delay_minutes=0)
        candidate = make_candidate("Movie-A", 100)

        assert rank_candidates([candidate], make_context(delay_profiles=[delay])).selected

    def test_disabled_profile_ignored(self) -> None:
        """Disabled delay profiles never defer."""
        delay = DelayProfile(id=1, delay_minutes=60, enabled=False)
        candidate = make_candidate("Movie-A", 100)

        assert rank_candidates([candidate], make_context(delay_profiles=[delay])).selected

    def test_library_profile_wins_over_global(self) -> None:
        """A library-specific delay profile takes precedence."""
        global_delay = DelayProfile(id=1, delay_minutes=60)
        library_delay = DelayProfile(id=2, library_id=4, delay_minutes=15)
        candidate = make_candidate("Movie-A", 100)

        outcome = rank_candidates(
            [candidate],
            make_context(library_id=4, delay_profiles=[global_delay, library_delay]),
        )

        assert outcome.deferred is not None
        assert outcome.deferred.delay_profile_id == 2
        assert outcome.deferred.available_at == NOW + timedelta(minutes=15)

    def test_bypassed_profile_does_not_hide_later_profile(self) -> None:
        """Every in-scope profile is checked; the first one not bypassed defers."""
        bypassable = DelayProfile(id=1, delay_minutes=60, bypass_if_score_above=150)
        strict = DelayProfile(id=2, delay_minutes=30)
        candidate = make_candidate("Movie-A", 200)

        outcome = rank_candidates(
            [candidate], make_context(delay_profiles=[bypassable, strict])
        )

        assert outcome.selected is None
        assert outcome.deferred is not None
        assert outcome.deferred.delay_profile_id == 2
        assert outcome.deferred.available_at == NOW + timedelta(minutes=30)

    def test_global_profile_applies_when_library_profile_bypassed(self) -> None:
        """A bypassed library profile falls through to the global one."""
        global_delay = DelayProfile(id=1, delay_minutes=45)
        library_delay = DelayProfile(
            id=2, library_id=4, delay_minutes=15, bypass_if_score_above=150
        )
        candidate = make_candidate("Movie-A", 200)

        outcome = rank_candidates(
            [candidate],
            make_context(library_id=4, delay_profiles=[global_delay, library_delay]),
        )

        assert outcome.deferred is not None
        assert outcome.deferred.delay_profile_id == 1

    def test_all_profiles_bypassed_selects(self) -> None:
        """A candidate bypassing every profile is selected."""
        profiles = [
            DelayProfile(id=1, delay_minutes=60, bypass_if_score_above=150),
            DelayProfile(id=2, delay_minutes=30, bypass_if_resolution="2160p"),
        ]
        candidate = make_candidate("Movie.2160p.WEB-DL-A", 200)

        outcome = rank_candidates([candidate], make_context(delay_profiles=profiles))

        assert outcome.selected is candidate

    def test_other_library_profile_ignored(self) -> None:
        """Profiles for another library do not apply."""
        delay = DelayProfile(id=2, library_id=4, delay_minutes=15)
        candidate = make_candidate("Movie-A", 100)

        outcome = rank_candidates([candidate], make_context(library_id=5, delay_profiles=[delay]))
        assert outcome.selected is candidate

    def test_gates_run_before_delay(self) -> None:
        """A blocklisted candidate is never deferred."""
        delay = DelayProfile(id=1, delay_minutes=60)
        blocked = make_candidate("Blocked-A", 300)
        store = FakeStore(blocklisted={"Blocked-A"})

        outcome = rank_candidates([blocked], make_context(store, delay_profiles=[delay]))

        assert outcome.deferred is None
        assert outcome.selected is None
