"""Decision orchestrator: drives search, scoring, ranking and hand-off."""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import ValidationError

from grabarr.collaborators import SearchQuery
from grabarr.models.records import GrabRecord, PendingGrab
from grabarr.models.search import ScoredSearchResult, SearchResult
from grabarr.parser import normalize_release_title, parse_title
from grabarr.ranker import Candidate, RankContext, rank_candidates, sort_candidates
from grabarr.scheduler.models import (
    TASK_PENDING_GRABS,
    TASK_RSS_SYNC,
    TASK_SEARCH_MONITORED,
    ItemDecision,
    ItemState,
    RunStatus,
    TaskRunRecord,
)
from grabarr.scoring import cutoff_met, score_release

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from grabarr.collaborators import AcquisitionBackend, SearchProvider
    from grabarr.config import Config
    from grabarr.models.records import MonitoredItem
    from grabarr.models.release import ParsedRelease
    from grabarr.scoring import ScoredRelease
    from grabarr.state import StateManager

logger = logging.getLogger(__name__)

MOVIE_CATEGORIES = [2000]
TV_CATEGORIES = [5000]
ANIME_CATEGORIES = [5070]

_BYTES_PER_GB = 1024**3


def build_query(item: MonitoredItem) -> SearchQuery:
    """Build the indexer query for a monitored item."""
    if item.media_type == "movie":
        return SearchQuery(
            query=f"{item.title} {item.year}" if item.year else item.title,
            search_type="movie",
            tmdb_id=item.tmdb_id,
            imdb_id=item.imdb_id,
            categories=MOVIE_CATEGORIES,
        )
    return SearchQuery(
        query=item.title,
        search_type="tvsearch",
        tmdb_id=item.tmdb_id,
        tvdb_id=item.tvdb_id,
        season=item.season,
        episode=item.episode,
        categories=ANIME_CATEGORIES if item.media_type == "anime" else TV_CATEGORIES,
    )


def matches_item(parsed: ParsedRelease, item: MonitoredItem) -> bool:
    """Check if a parsed release is for the monitored item.

    Titles are compared after normalization, years may differ by one, and
    for shows the season and episode must agree when both sides have them.
    A season pack satisfies any episode of its season.
    """
    wanted = normalize_release_title(item.title)
    found = normalize_release_title(parsed.title)
    if wanted and found and wanted != found:
        return False
    if item.year and parsed.year and abs(item.year - parsed.year) > 1:
        return False
    if item.media_type == "movie" or item.season is None:
        return True
    if parsed.season is not None and parsed.season != item.season:
        return False
    return item.episode is None or parsed.episode is None or parsed.episode == item.episode


class DecisionOrchestrator:
    """Runs the decision pipeline for monitored items.

    The same methods serve the periodic scheduler tasks and on-demand
    requests from the CLI or HTTP server.
    """

    def __init__(
        self,
        config: Config,
        state_manager: StateManager,
        provider: SearchProvider,
        backend: AcquisitionBackend | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Application configuration (rules and settings)
            state_manager: State store for items, pending grabs and history
            provider: Indexer search provider
            backend: Download client hand-off; without one, decisions are
                reported but never acted on
        """
        self._config = config
        self._state = state_manager
        self._provider = provider
        self._backend = backend

    @property
    def state_manager(self) -> StateManager:
        return self._state

    @property
    def can_grab(self) -> bool:
        """Check if winners are handed off rather than only reported."""
        return self._config.settings.auto_grab and self._backend is not None

    # --- Guards ---

    def storage_paused(self) -> bool:
        """Check if any library path is below the free space threshold."""
        storage = self._config.storage
        if not storage.pause_enabled:
            return False
        threshold = storage.threshold_gb * _BYTES_PER_GB
        for path in self._config.library_paths():
            try:
                usage = shutil.disk_usage(path)
            except OSError as e:
                logger.warning("Cannot read free space for %s: %s", path, e)
                continue
            if usage.free < threshold:
                logger.warning(
                    "Storage low on %s (%.1f GB free, threshold %.1f GB): grabbing paused",
                    path,
                    usage.free / _BYTES_PER_GB,
                    storage.threshold_gb,
                )
                return True
        return False

    def _searched_recently(self, item: MonitoredItem, now: datetime) -> bool:
        if item.last_searched_at is None:
            return False
        interval = timedelta(minutes=self._config.scheduler.search_interval_minutes)
        return now - item.last_searched_at < interval

    # --- Scoring and ranking ---

    def score_results(
        self, item: MonitoredItem, results: Sequence[SearchResult]
    ) -> list[Candidate]:
        """Parse and score results for an item.

        Adult categories, results for other titles and results below the
        configured minimum score are dropped.

        Args:
            item: The monitored item
            results: Raw search results in discovery order

        Returns:
            Candidates ready for ranking
        """
        profile = self._config.get_quality_profile(item.quality_profile_id)
        min_score = self._config.settings.min_score
        candidates: list[Candidate] = []

        for order, result in enumerate(results):
            if result.is_adult():
                logger.debug("Skipping adult category result: %s", result.title)
                continue
            parsed = parse_title(result.title)
            if not matches_item(parsed, item):
                logger.debug("Skipping result for another title: %s", result.title)
                continue
            scored = score_release(
                parsed, profile, self._config.custom_formats, owned_score=item.owned_score
            )
            if scored.total_score < min_score:
                logger.debug(
                    "Skipping %s: score %d below minimum %d",
                    result.title,
                    scored.total_score,
                    min_score,
                )
                continue
            candidates.append(
                Candidate(
                    result=result,
                    scored=scored,
                    indexer_priority=self._config.get_indexer_priority(result.indexer_id),
                    order=order,
                )
            )

        return candidates

    def _rank_context(self, item: MonitoredItem) -> RankContext:
        return RankContext(
            store=self._state,
            library_id=item.library_id,
            quality_profile_id=item.quality_profile_id,
            release_filters=self._config.release_filters,
            delay_profiles=self._config.delay_profiles,
        )

    # --- Per-item decision ---

    async def decide(self, item: MonitoredItem, *, force: bool = False) -> ItemDecision:
        """Run one decision cycle for an item.

        Args:
            item: The monitored item
            force: Ignore the per-item search interval

        Returns:
            ItemDecision describing how far the item got and why
        """
        decision = ItemDecision(item_id=item.id)
        now = datetime.now(UTC)

        if not force and self._searched_recently(item, now):
            decision.skipped_reason = "searched recently"
            return decision
        if self._state.is_media_excluded(item.tmdb_id, item.media_type):
            decision.skipped_reason = "excluded"
            return decision
        if self.storage_paused():
            decision.skipped_reason = "storage low"
            return decision

        decision.advance(ItemState.SEARCHING)
        try:
            results = await self._provider.search(build_query(item))
        except Exception as e:
            error_msg = f"Search failed for {item.title} (id={item.id}): {e}"
            logger.error(error_msg)
            decision.error = error_msg
            decision.advance(ItemState.NO_RESULT)
            return decision
        finally:
            self._state.mark_searched(item.id, now)

        return await self._decide_from_results(item, results, decision)

    async def _decide_from_results(
        self, item: MonitoredItem, results: Sequence[SearchResult], decision: ItemDecision
    ) -> ItemDecision:
        decision.results_found = len(results)

        decision.advance(ItemState.SCORING)
        candidates = self.score_results(item, results)

        decision.advance(ItemState.RANKING)
        outcome = rank_candidates(candidates, self._rank_context(item))
        decision.outcome = outcome

        if not self.can_grab:
            if outcome.selected is not None:
                logger.info(
                    "Best release for %s: %s (score %d), not grabbing",
                    item.title,
                    outcome.selected.result.title,
                    outcome.selected.total_score,
                )
            return decision

        if outcome.selected is not None:
            decision.advance(ItemState.GRABBING)
            decision.grabbed = await self.grab(
                item, outcome.selected.result, outcome.selected.scored
            )
        elif outcome.deferred is not None:
            decision.advance(ItemState.DEFERRED)
            deferred = outcome.deferred
            result = deferred.candidate.result
            pending = self._state.upsert_pending_grab(
                PendingGrab(
                    media_id=item.id,
                    media_type=item.media_type,
                    release_title=result.title,
                    release_data=result.model_dump(mode="json", by_alias=True),
                    score=deferred.candidate.total_score,
                    indexer_id=result.indexer_id,
                    available_at=deferred.available_at,
                )
            )
            logger.info("Pending grab for %s due at %s", item.title, pending.available_at)
        else:
            logger.info("No acceptable release for %s (%d results)", item.title, len(results))
            decision.advance(ItemState.NO_RESULT)

        return decision

    async def grab(
        self, item: MonitoredItem, result: SearchResult, scored: ScoredRelease
    ) -> bool:
        """Hand a release to the matching download client.

        Failures are logged and recorded in grab history, never retried here.
        On success the item records the new owned score and stops being
        monitored once the profile cutoff is reached.

        Returns:
            True if the download client accepted the release
        """
        protocol = "torrent" if result.is_torrent else "usenet"
        client = self._config.pick_download_client(protocol)
        error: str | None = None

        if self._backend is None:
            error = "No acquisition backend configured"
        elif client is None:
            error = f"No enabled {protocol} download client configured"
        else:
            category = client.category_for(item.media_type)
            try:
                if protocol == "torrent":
                    await self._backend.add_torrent(client.id, result.download_url, category)
                else:
                    await self._backend.add_nzb(client.id, result.download_url, category)
            except Exception as e:
                error = f"Download client {client.name or client.id} rejected {result.title}: {e}"

        score = scored.total_score
        if error:
            logger.error(error)
        else:
            logger.info("Grabbed %s for %s (score %d)", result.title, item.title, score)
            self._mark_owned(item, scored)

        self._state.record_grab(
            GrabRecord(
                media_id=item.id,
                release_title=result.title,
                indexer_id=result.indexer_id,
                download_client_id=client.id if client else None,
                protocol=protocol,
                score=score,
                success=error is None,
                error=error,
            )
        )
        return error is None

    def _mark_owned(self, item: MonitoredItem, scored: ScoredRelease) -> None:
        profile = self._config.get_quality_profile(item.quality_profile_id)
        done = (
            profile is not None
            and profile.cutoff_format_score > 0
            and cutoff_met(scored, profile)
        )
        if done:
            logger.info("Cutoff reached for %s, no longer monitored", item.title)
        self._state.update_monitored_item(
            item.id, owned_score=scored.total_score, monitored=item.monitored and not done
        )

    async def search_scored(
        self,
        query: SearchQuery,
        *,
        profile_id: int | None = None,
        owned_score: int | None = None,
    ) -> list[ScoredSearchResult]:
        """Search and score without gating or grabbing.

        Returns:
            Scored results, best first; rejected results are included
        """
        results = await self._provider.search(query)
        profile = self._config.get_quality_profile(profile_id)
        candidates = [
            Candidate(
                result=result,
                scored=score_release(
                    parse_title(result.title),
                    profile,
                    self._config.custom_formats,
                    owned_score=owned_score,
                ),
                indexer_priority=self._config.get_indexer_priority(result.indexer_id),
                order=order,
            )
            for order, result in enumerate(results)
            if not result.is_adult()
        ]
        rejected = sorted(
            (c for c in candidates if c.scored.rejected), key=lambda c: (-c.total_score, c.order)
        )
        return [
            ScoredSearchResult.from_scored(c.result, c.scored)
            for c in [*sort_candidates(candidates), *rejected]
        ]

    # --- Periodic tasks ---

    async def _run_task(
        self, task_name: str, body: Callable[[TaskRunRecord], Awaitable[RunStatus]]
    ) -> TaskRunRecord:
        """Run a task body and record it in the task history."""
        record = TaskRunRecord(task_name=task_name, started_at=datetime.now(UTC))
        started = record.model_dump(mode="json")
        self._state.add_task_run(started)

        try:
            status = await body(record)
        except Exception as e:
            error_msg = f"Task {task_name} failed: {e}"
            logger.exception(error_msg)
            record.errors.append(error_msg)
            status = RunStatus.FAILED

        record.status = status
        record.completed_at = datetime.now(UTC)
        dumped = record.model_dump(mode="json")
        self._state.update_task_run(
            task_name,
            started["started_at"],
            {key: dumped[key] for key in dumped if key not in ("task_name", "started_at")},
        )
        self._state.prune_task_history(self._config.scheduler.history_limit)

        logger.info(
            "Task %s %s: %d processed, %d grabbed, %d deferred, %d errors",
            task_name,
            status.value,
            record.items_processed,
            record.items_grabbed,
            record.items_deferred,
            len(record.errors),
        )
        return record

    @staticmethod
    def _tally(record: TaskRunRecord, decision: ItemDecision) -> None:
        record.items_processed += 1
        if decision.grabbed:
            record.items_grabbed += 1
        if decision.state == ItemState.DEFERRED:
            record.items_deferred += 1
        if decision.error:
            record.errors.append(decision.error)

    async def search_monitored(self) -> TaskRunRecord:
        """Search every monitored item that is due."""

        async def body(record: TaskRunRecord) -> RunStatus:
            if not self._config.settings.auto_search:
                logger.info("Automatic search disabled, skipping")
                return RunStatus.SKIPPED
            if self.storage_paused():
                return RunStatus.SKIPPED

            items = self._state.get_monitored_items()
            logger.info("Searching %d monitored items", len(items))
            delay = self._config.scheduler.item_delay

            for item in items:
                try:
                    decision = await self.decide(item)
                except Exception as e:
                    error_msg = f"Error processing {item.title} (id={item.id}): {e}"
                    logger.error(error_msg)
                    record.errors.append(error_msg)
                    continue
                if decision.skipped_reason:
                    continue
                self._tally(record, decision)
                if delay > 0:
                    await asyncio.sleep(delay)

            if record.items_processed > 0 and len(record.errors) >= record.items_processed:
                return RunStatus.FAILED
            return RunStatus.COMPLETED

        return await self._run_task(TASK_SEARCH_MONITORED, body)

    async def rss_sync(self) -> TaskRunRecord:
        """Match recent releases against monitored items."""

        async def body(record: TaskRunRecord) -> RunStatus:
            if self.storage_paused():
                return RunStatus.SKIPPED
            try:
                results = await self._provider.fetch_rss()
            except Exception as e:
                error_msg = f"RSS fetch failed: {e}"
                logger.error(error_msg)
                record.errors.append(error_msg)
                return RunStatus.FAILED

            releases = [(r, parse_title(r.title)) for r in results if not r.is_adult()]
            for item in self._state.get_monitored_items():
                if self._state.is_media_excluded(item.tmdb_id, item.media_type):
                    continue
                matches = [result for result, parsed in releases if matches_item(parsed, item)]
                if not matches:
                    continue
                decision = await self._decide_from_results(
                    item, matches, ItemDecision(item_id=item.id)
                )
                self._tally(record, decision)

            return RunStatus.COMPLETED

        return await self._run_task(TASK_RSS_SYNC, body)

    async def process_pending_grabs(self) -> TaskRunRecord:
        """Grab deferred releases whose delay window has elapsed."""

        async def body(record: TaskRunRecord) -> RunStatus:
            if not self.can_grab or self.storage_paused():
                return RunStatus.SKIPPED

            for pending in self._state.get_due_pending_grabs():
                item = self._state.get_monitored_item(pending.media_id)
                if item is None:
                    self._state.remove_pending_grab(pending.media_id)
                    continue
                try:
                    result = SearchResult.model_validate(pending.release_data)
                except ValidationError as e:
                    error_msg = f"Dropping unreadable pending grab {pending.release_title}: {e}"
                    logger.error(error_msg)
                    record.errors.append(error_msg)
                    self._state.remove_pending_grab(pending.media_id)
                    continue
                if self._state.is_release_blocklisted(result.title):
                    logger.info("Dropping blocklisted pending grab %s", result.title)
                    self._state.remove_pending_grab(pending.media_id)
                    continue

                scored = score_release(
                    parse_title(result.title),
                    self._config.get_quality_profile(item.quality_profile_id),
                    self._config.custom_formats,
                    owned_score=item.owned_score,
                )
                record.items_processed += 1
                if scored.rejected:
                    logger.info(
                        "Dropping pending grab %s: %s", result.title, scored.rejection_reason
                    )
                    self._state.remove_pending_grab(pending.media_id)
                    continue
                if await self.grab(item, result, scored):
                    record.items_grabbed += 1
                else:
                    logger.warning(
                        "Dropping pending grab %s after failed hand-off", result.title
                    )
                self._state.remove_pending_grab(pending.media_id)

            return RunStatus.COMPLETED

        return await self._run_task(TASK_PENDING_GRABS, body)

    def task_runners(self) -> dict[str, Callable[[], Awaitable[TaskRunRecord]]]:
        """Map task names to their coroutine functions."""
        return {
            TASK_SEARCH_MONITORED: self.search_monitored,
            TASK_RSS_SYNC: self.rss_sync,
            TASK_PENDING_GRABS: self.process_pending_grabs,
        }
