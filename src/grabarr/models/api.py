"""Request and response models for the HTTP API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParseRequest(_ApiModel):
    """Body of POST /api/release/parse."""

    title: str = Field(min_length=1)


class ScoreRequest(_ApiModel):
    """Body of POST /api/release/score."""

    title: str = Field(min_length=1)
    quality_profile_id: int | None = None
    owned_score: int | None = None


class ScoredSearchRequest(_ApiModel):
    """Body of POST /api/search/scored."""

    query: str = ""
    type: Literal["search", "movie", "tvsearch"] = "search"
    tmdb_id: int | None = None
    imdb_id: str | None = None
    tvdb_id: int | None = None
    season: int | None = None
    episode: int | None = None
    categories: list[int] = Field(default_factory=list)
    limit: int = Field(default=100, ge=1, le=1000)
    quality_profile_id: int | None = None
    owned_score: int | None = None


class TaskRunResponse(_ApiModel):
    """Response of POST /api/tasks/{name}/run."""

    status: Literal["running", "completed", "failed", "skipped"]
    task_name: str
    items_processed: int = 0
    items_grabbed: int = 0
    items_deferred: int = 0
    errors: list[str] = Field(default_factory=list)
