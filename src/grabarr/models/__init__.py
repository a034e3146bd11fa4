"""Pydantic models for releases, rules, search results and persisted records."""

from grabarr.models.api import (
    ParseRequest,
    ScoredSearchRequest,
    ScoreRequest,
    TaskRunResponse,
)
from grabarr.models.conditions import Condition
from grabarr.models.profiles import (
    CustomFormatDef,
    DelayProfile,
    DownloadClientDefinition,
    FilterType,
    IndexerDefinition,
    LibraryDefinition,
    QualityProfile,
    ReleaseFilter,
)
from grabarr.models.quality import QualityTier
from grabarr.models.records import (
    BlocklistEntry,
    GrabRecord,
    IndexerExclusion,
    MediaExclusion,
    MediaType,
    MonitoredItem,
    PendingGrab,
)
from grabarr.models.release import ParsedRelease
from grabarr.models.search import CustomFormatHit, ScoredSearchResult, SearchResult

__all__ = [
    "BlocklistEntry",
    "Condition",
    "CustomFormatDef",
    "CustomFormatHit",
    "DelayProfile",
    "DownloadClientDefinition",
    "FilterType",
    "GrabRecord",
    "IndexerDefinition",
    "IndexerExclusion",
    "LibraryDefinition",
    "MediaExclusion",
    "MediaType",
    "MonitoredItem",
    "ParseRequest",
    "ParsedRelease",
    "PendingGrab",
    "QualityProfile",
    "QualityTier",
    "ReleaseFilter",
    "ScoreRequest",
    "ScoredSearchRequest",
    "ScoredSearchResult",
    "SearchResult",
    "TaskRunResponse",
]
