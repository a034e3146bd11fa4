"""grabarr - Decide which media release to grab.

A Python library and service that parses indexer release titles, scores
them against quality profiles and custom formats, ranks the candidates and
hands the winner to a download client, honoring blocklists, release
filters and delay profiles.

Quick Start
-----------
Parse a release title::

    from grabarr import parse_title

    parsed = parse_title("Movie.Name.2020.1080p.BluRay.x264-GROUP")
    print(parsed.year, parsed.resolution, parsed.source, parsed.release_group)

Score it against a quality profile::

    from grabarr import QualityProfile, QualityTier, score_release

    profile = QualityProfile(
        id=1,
        name="HD",
        allowed_quality_tiers=[QualityTier.BLURAY_1080P, QualityTier.WEBDL_1080P],
    )
    scored = score_release(parsed, profile, formats=[])
    print(scored.total_score, scored.rejected, scored.rejection_reason)

Search Prowlarr and score every result::

    from grabarr import Config, DecisionOrchestrator, ProwlarrClient, SearchQuery
    from grabarr.state import StateManager

    config = Config.load()
    async with ProwlarrClient(config.prowlarr.url, config.prowlarr.api_key) as client:
        orchestrator = DecisionOrchestrator(config, StateManager(config.state.path), client)
        results = await orchestrator.search_scored(
            SearchQuery(query="Movie Name 2020", search_type="movie"), profile_id=1
        )

CLI Usage
---------
::

    grabarr parse "Show.Name.S02E05.720p.WEB-DL.DDP5.1.H.264-TEAM"
    grabarr score "Movie.2160p.REMUX.HDR10.DV.TrueHD.7.1-XYZ" --profile 1
    grabarr search "Movie Name 2020" --type movie --profile 1
    grabarr serve --port 8080

Classes
-------
ParsedRelease
    Attributes extracted from a release title.
QualityProfile
    Allowed tiers, thresholds and custom format weights.
ScoredRelease
    A parsed release with its tier, score and verdict.
DecisionOrchestrator
    Drives search, scoring, ranking and hand-off for monitored items.
ProwlarrClient
    Async client for the Prowlarr search API.
"""

from grabarr.clients.prowlarr import ProwlarrClient
from grabarr.collaborators import SearchQuery
from grabarr.config import Config, ConfigurationError
from grabarr.models import (
    CustomFormatDef,
    ParsedRelease,
    QualityProfile,
    QualityTier,
    ScoredSearchResult,
    SearchResult,
)
from grabarr.parser import parse_title
from grabarr.ranker import Candidate, RankContext, RankOutcome, rank_candidates
from grabarr.scheduler import DecisionOrchestrator
from grabarr.scoring import ScoredRelease, score_release

__version__ = "0.1.0"

__all__ = [
    "Candidate",
    "Config",
    "ConfigurationError",
    "CustomFormatDef",
    "DecisionOrchestrator",
    "ParsedRelease",
    "ProwlarrClient",
    "QualityProfile",
    "QualityTier",
    "RankContext",
    "RankOutcome",
    "ScoredRelease",
    "ScoredSearchResult",
    "SearchQuery",
    "SearchResult",
    "__version__",
    "parse_title",
    "rank_candidates",
    "score_release",
]
