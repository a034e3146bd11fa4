"""HTTP API for parsing, scoring and scored search."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from grabarr.collaborators import SearchQuery
from grabarr.config import Config
from grabarr.models.api import ParseRequest, ScoredSearchRequest, ScoreRequest, TaskRunResponse
from grabarr.models.search import ScoredSearchResult, SearchResult
from grabarr.parser import parse_title
from grabarr.scoring import score_release

if TYPE_CHECKING:
    from grabarr.scheduler import DecisionOrchestrator, SchedulerManager

logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    orchestrator: DecisionOrchestrator | None = None,
    scheduler_manager: SchedulerManager | None = None,
) -> Any:
    """Create the FastAPI application.

    Args:
        config: Application configuration. If None, loads from default sources.
        orchestrator: Orchestrator for scored search. Without one, search
            endpoints answer 503.
        scheduler_manager: Scheduler for task status and on-demand task runs.

    Returns:
        Configured FastAPI application.
    """
    try:
        from fastapi import FastAPI, HTTPException, Request
        from fastapi.responses import JSONResponse
    except ImportError as e:
        raise ImportError(
            "FastAPI is required for the server. Install with: pip install grabarr[server]"
        ) from e

    from grabarr import __version__

    if config is None:
        config = Config.load()

    app = FastAPI(
        title="grabarr",
        description="Parse, score and rank media releases",
        version=__version__,
    )

    def _profile_or_404(profile_id: int | None) -> Any:
        profile = config.get_quality_profile(profile_id)
        if profile_id is not None and profile is None:
            raise HTTPException(status_code=404, detail=f"Unknown quality profile {profile_id}")
        return profile

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/status")
    async def status() -> dict[str, Any]:
        """Status endpoint showing configuration and scheduler state."""
        result: dict[str, Any] = {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "prowlarr_configured": config.prowlarr is not None,
            "auto_search": config.settings.auto_search,
            "auto_grab": config.settings.auto_grab,
            "quality_profiles": len(config.quality_profiles),
            "custom_formats": len(config.custom_formats),
            "scheduler": None,
        }

        if scheduler_manager is not None:
            tasks = scheduler_manager.get_all_tasks()
            result["scheduler"] = {
                "enabled": config.scheduler.enabled,
                "running": scheduler_manager.is_running,
                "tasks": [
                    {
                        "name": task.name,
                        "enabled": task.enabled,
                        "interval_seconds": task.interval_seconds,
                    }
                    for task in tasks
                ],
                "currently_running": sorted(scheduler_manager.get_running_tasks()),
                "recent_runs": [
                    {
                        "task": r.task_name,
                        "status": r.status.value,
                        "started_at": r.started_at.isoformat(),
                        "items_processed": r.items_processed,
                        "items_grabbed": r.items_grabbed,
                        "items_deferred": r.items_deferred,
                    }
                    for r in scheduler_manager.get_history(limit=5)
                ],
            }
        else:
            result["scheduler"] = {"enabled": False}

        return result

    @app.post("/api/release/parse")
    async def parse_release(request: ParseRequest) -> dict[str, Any]:
        """Parse a release title into its attributes."""
        parsed = parse_title(request.title)
        data = parsed.model_dump(mode="json", by_alias=True)
        data["blockReason"] = parsed.block_reason
        return data

    @app.post("/api/release/score")
    async def score_release_title(request: ScoreRequest) -> dict[str, Any]:
        """Score a single release title against a quality profile."""
        profile = _profile_or_404(request.quality_profile_id)
        scored = score_release(
            parse_title(request.title),
            profile,
            config.custom_formats,
            owned_score=request.owned_score,
        )
        return ScoredSearchResult.from_scored(SearchResult(title=request.title), scored).to_wire()

    @app.post("/api/search/scored")
    async def search_scored(request: ScoredSearchRequest) -> list[dict[str, Any]]:
        """Search indexers and return every result scored, best first."""
        if orchestrator is None:
            raise HTTPException(status_code=503, detail="Prowlarr is not configured")
        _profile_or_404(request.quality_profile_id)

        query = SearchQuery(
            query=request.query,
            search_type=request.type,
            tmdb_id=request.tmdb_id,
            imdb_id=request.imdb_id,
            tvdb_id=request.tvdb_id,
            season=request.season,
            episode=request.episode,
            categories=request.categories,
            limit=request.limit,
        )
        results = await orchestrator.search_scored(
            query,
            profile_id=request.quality_profile_id,
            owned_score=request.owned_score,
        )
        return [r.to_wire() for r in results]

    @app.post("/api/tasks/{name}/run", response_model=TaskRunResponse)
    async def run_task(name: str) -> TaskRunResponse:
        """Run a periodic task now.

        Answers 409 if the task is already running.
        """
        if scheduler_manager is None:
            raise HTTPException(status_code=503, detail="Scheduler is not available")
        known = {task.name for task in scheduler_manager.get_all_tasks()}
        if name not in known:
            raise HTTPException(status_code=404, detail=f"Unknown task '{name}'")

        record = await scheduler_manager.run_task(name)
        if record is None:
            raise HTTPException(status_code=409, detail=f"Task '{name}' is already running")

        return TaskRunResponse(
            status=record.status.value,
            task_name=record.task_name,
            items_processed=record.items_processed,
            items_grabbed=record.items_grabbed,
            items_deferred=record.items_deferred,
            errors=record.errors,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,  # noqa: ARG001
        exc: Exception,  # noqa: ARG001
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception in API handler")
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Internal server error"},
        )

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 8080,
    config: Config | None = None,
    log_level: str = "info",
    scheduler_enabled: bool = True,
) -> None:
    """Run the API server with the periodic task scheduler.

    Args:
        host: Host to bind to.
        port: Port to listen on.
        config: Application configuration.
        log_level: Logging level for uvicorn.
        scheduler_enabled: Whether to start the periodic tasks.
    """
    try:
        import uvicorn
    except ImportError as e:
        raise ImportError(
            "uvicorn is required for the server. Install with: pip install grabarr[server]"
        ) from e

    from grabarr.clients.prowlarr import ProwlarrClient
    from grabarr.scheduler import DecisionOrchestrator, SchedulerManager
    from grabarr.state import StateManager

    if config is None:
        config = Config.load()

    async def serve() -> None:
        """Run uvicorn with scheduler lifecycle management."""
        state_manager = StateManager(config.state.path)

        async with contextlib.AsyncExitStack() as stack:
            orchestrator: DecisionOrchestrator | None = None
            scheduler_manager: SchedulerManager | None = None
            if config.prowlarr is not None:
                provider = await stack.enter_async_context(
                    ProwlarrClient(
                        config.prowlarr.url, config.prowlarr.api_key, timeout=config.timeout
                    )
                )
                orchestrator = DecisionOrchestrator(config, state_manager, provider)
                scheduler_manager = SchedulerManager(config, orchestrator)
            else:
                logger.warning("Prowlarr is not configured; search endpoints and tasks disabled")

            app = create_app(config, orchestrator, scheduler_manager)
            server = uvicorn.Server(
                uvicorn.Config(app, host=host, port=port, log_level=log_level)
            )

            if scheduler_manager is not None and scheduler_enabled:
                try:
                    await scheduler_manager.start()
                except Exception as e:
                    logger.error("Failed to start scheduler: %s", e)

            try:
                await server.serve()
            finally:
                if scheduler_manager is not None:
                    try:
                        await scheduler_manager.stop(wait=True)
                    except Exception as e:
                        logger.error("Error stopping scheduler: %s", e)

    asyncio.run(serve())
