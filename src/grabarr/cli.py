"""Command-line interface for grabarr."""

from __future__ import annotations

import asyncio
import json
import os
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from grabarr.clients.prowlarr import ProwlarrClient
from grabarr.collaborators import SearchQuery
from grabarr.config import Config, ConfigurationError
from grabarr.logging_config import configure_logging
from grabarr.models.records import MonitoredItem
from grabarr.models.search import ScoredSearchResult, SearchResult
from grabarr.parser import parse_title
from grabarr.scheduler import DecisionOrchestrator
from grabarr.scoring import score_release
from grabarr.state import StateManager

if TYPE_CHECKING:
    from grabarr.models.release import ParsedRelease

app = typer.Typer(
    name="grabarr",
    help="Parse, score and rank media releases from your indexers.",
    no_args_is_help=True,
)
monitor_app = typer.Typer(help="Manage monitored movies and shows.")
app.add_typer(monitor_app, name="monitor")

blocklist_app = typer.Typer(help="Manage blocklisted releases.")
app.add_typer(blocklist_app, name="blocklist")

console = Console()
error_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Output format options."""

    JSON = "json"
    TABLE = "table"
    SIMPLE = "simple"


class MediaKind(str, Enum):
    """Monitored media types."""

    MOVIE = "movie"
    SHOW = "show"
    ANIME = "anime"


class SearchType(str, Enum):
    """Indexer search types."""

    SEARCH = "search"
    MOVIE = "movie"
    TV = "tvsearch"


def _resolve_log_level(cli_level: str | None) -> str:
    """Resolve the log level: CLI flag > GRABARR_LOG_LEVEL > config file > info."""
    if cli_level:
        return cli_level
    env_level = os.environ.get("GRABARR_LOG_LEVEL")
    if env_level:
        return env_level
    try:
        return Config.load().logging.level
    except ConfigurationError:
        # Reported by the command that needs the config
        return "info"


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-l",
            help="Logging level (debug, info, warning, error, critical).",
        ),
    ] = None,
) -> None:
    """Parse, score and rank media releases from your indexers."""
    level = _resolve_log_level(log_level)
    try:
        configure_logging(level)
    except ValueError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    ctx.obj = {"log_level": level.lower()}


def get_state_manager(config: Config) -> StateManager:
    """Create a state manager for the configured state file."""
    return StateManager(config.state.path)


def get_provider(config: Config) -> ProwlarrClient:
    """Create a Prowlarr client.

    Raises:
        ConfigurationError: If Prowlarr is not configured
    """
    prowlarr = config.require_prowlarr()
    return ProwlarrClient(prowlarr.url, prowlarr.api_key, timeout=config.timeout)


def _load_config() -> Config:
    try:
        return Config.load()
    except ConfigurationError as e:
        error_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from e


def _dash(value: object) -> str:
    if value is None or value == [] or value == "":
        return "-"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def format_parsed_table(parsed: ParsedRelease) -> Table:
    """Format a parsed release as a rich table."""
    table = Table(title=f"Parsed: {escape(parsed.raw_title)}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    rows: list[tuple[str, object]] = [
        ("Title", parsed.title),
        ("Year", parsed.year),
        ("Season", parsed.season),
        ("Episode", parsed.episode),
        ("Resolution", parsed.resolution),
        ("Source", parsed.source),
        ("Codec", parsed.codec),
        ("Audio", parsed.audio_codec),
        ("Channels", parsed.audio_channels),
        ("HDR", parsed.hdr_formats),
        ("Edition", parsed.edition),
        ("Streaming Service", parsed.streaming_service),
        ("Release Group", parsed.release_group),
    ]
    for name, value in rows:
        table.add_row(name, escape(_dash(value)))
    if parsed.is_proper or parsed.is_repack:
        table.add_row("Revision", "PROPER" if parsed.is_proper else "REPACK")
    if parsed.block_reason:
        table.add_row("Flagged", f"[red]{parsed.block_reason}[/red]")
    return table


def format_parsed_simple(parsed: ParsedRelease) -> str:
    """Format a parsed release as one line."""
    parts = [parsed.title or "?"]
    if parsed.year:
        parts.append(f"({parsed.year})")
    if parsed.season is not None:
        episode = f"E{parsed.episode:02d}" if parsed.episode is not None else ""
        parts.append(f"S{parsed.season:02d}{episode}")
    parts.extend(v for v in (parsed.resolution, parsed.source, parsed.codec) if v)
    if parsed.release_group:
        parts.append(f"-{parsed.release_group}")
    return " ".join(parts)


def format_scored_table(results: list[ScoredSearchResult], title: str) -> Table:
    """Format scored results as a rich table."""
    table = Table(title=escape(title))
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Quality", style="cyan")
    table.add_column("Title")
    table.add_column("Indexer", style="dim")
    table.add_column("Seeders", justify="right")
    table.add_column("Formats", style="magenta")
    table.add_column("Verdict")

    for result in results:
        verdict = (
            f"[red]{result.rejection_reason}[/red]" if result.rejected else "[green]ok[/green]"
        )
        formats = ", ".join(f"{hit.name} ({hit.score:+d})" for hit in result.custom_format_hits)
        table.add_row(
            str(result.total_score),
            result.quality,
            escape(result.title),
            escape(result.indexer_name or "-"),
            str(result.seeders),
            formats or "-",
            verdict,
        )
    return table


def format_scored_simple(result: ScoredSearchResult) -> str:
    """Format a scored result as one line."""
    verdict = f"rejected: {result.rejection_reason}" if result.rejected else "ok"
    return f"{result.total_score} {result.quality} {result.title} [{verdict}]"


def print_scored(
    results: list[ScoredSearchResult], output_format: OutputFormat, title: str
) -> None:
    """Print scored results in the specified format."""
    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps([r.to_wire() for r in results]))
    elif output_format == OutputFormat.TABLE:
        console.print(format_scored_table(results, title))
    else:
        for result in results:
            console.print(
                format_scored_simple(result), markup=False, highlight=False, soft_wrap=True
            )


@app.command()
def parse(
    title: Annotated[str, typer.Argument(help="Release title to parse")],
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.TABLE,
) -> None:
    """Parse a release title into its attributes."""
    parsed = parse_title(title)

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps(parsed.model_dump(mode="json", by_alias=True)))
    elif output_format == OutputFormat.TABLE:
        console.print(format_parsed_table(parsed))
    else:
        console.print(
            format_parsed_simple(parsed), markup=False, highlight=False, soft_wrap=True
        )


@app.command()
def score(
    title: Annotated[str, typer.Argument(help="Release title to score")],
    profile: Annotated[
        int | None, typer.Option("--profile", "-p", help="Quality profile ID")
    ] = None,
    owned_score: Annotated[
        int | None, typer.Option("--owned-score", help="Score of the copy already owned")
    ] = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.TABLE,
) -> None:
    """Score a release title against a quality profile and custom formats.

    Example:
        grabarr score "Movie.2020.2160p.UHD.BluRay.REMUX.HDR10.TrueHD.7.1-GRP" -p 1
    """
    config = _load_config()
    quality_profile = config.get_quality_profile(profile)
    if profile is not None and quality_profile is None:
        error_console.print(f"[red]Quality profile not found:[/red] {profile}")
        raise typer.Exit(1)

    scored = score_release(
        parse_title(title), quality_profile, config.custom_formats, owned_score=owned_score
    )
    result = ScoredSearchResult.from_scored(SearchResult(title=title), scored)
    print_scored([result], output_format, title=f"Score: {title}")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search terms")] = "",
    search_type: Annotated[
        SearchType, typer.Option("--type", "-t", help="Search type")
    ] = SearchType.SEARCH,
    tmdb_id: Annotated[int | None, typer.Option("--tmdb-id", help="TMDB ID")] = None,
    imdb_id: Annotated[str | None, typer.Option("--imdb-id", help="IMDb ID (tt...)")] = None,
    tvdb_id: Annotated[int | None, typer.Option("--tvdb-id", help="TVDB ID")] = None,
    season: Annotated[int | None, typer.Option("--season", "-s", help="Season number")] = None,
    episode: Annotated[int | None, typer.Option("--episode", "-e", help="Episode number")] = None,
    category: Annotated[
        list[int] | None, typer.Option("--category", "-c", help="Newznab category (repeatable)")
    ] = None,
    profile: Annotated[
        int | None, typer.Option("--profile", "-p", help="Quality profile ID")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", help="Maximum results to request")] = 100,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.TABLE,
) -> None:
    """Search indexers through Prowlarr and score every result.

    Examples:
        grabarr search "Movie Name 2020" --type movie -p 1
        grabarr search "Show Name" --type tvsearch -s 2 -e 5 --format json
    """
    config = _load_config()
    if profile is not None and config.get_quality_profile(profile) is None:
        error_console.print(f"[red]Quality profile not found:[/red] {profile}")
        raise typer.Exit(1)

    search_query = SearchQuery(
        query=query,
        search_type=search_type.value,
        tmdb_id=tmdb_id,
        imdb_id=imdb_id,
        tvdb_id=tvdb_id,
        season=season,
        episode=episode,
        categories=category or [],
        limit=limit,
    )

    async def run_search() -> list[ScoredSearchResult]:
        async with get_provider(config) as provider:
            orchestrator = DecisionOrchestrator(config, get_state_manager(config), provider)
            return await orchestrator.search_scored(search_query, profile_id=profile)

    try:
        results = asyncio.run(run_search())
    except ConfigurationError as e:
        error_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from e
    except Exception as e:
        error_console.print(f"[red]Search failed:[/red] {e}")
        raise typer.Exit(1) from e

    if not results:
        error_console.print("[yellow]No results[/yellow]")
        raise typer.Exit(0)

    print_scored(results, output_format, title=f"Results: {query or search_type.value}")


@app.command()
def pending(
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.TABLE,
) -> None:
    """List releases waiting out a delay profile."""
    config = _load_config()
    state_manager = get_state_manager(config)
    grabs = state_manager.get_pending_grabs()

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps([g.model_dump(mode="json") for g in grabs]))
        return

    if not grabs:
        console.print("[dim]No pending grabs[/dim]")
        return

    if output_format == OutputFormat.SIMPLE:
        for grab in grabs:
            console.print(
                f"{grab.media_id}: {grab.release_title} ({grab.score}) "
                f"at {grab.available_at.strftime('%Y-%m-%d %H:%M')}",
                markup=False,
                highlight=False,
                soft_wrap=True,
            )
        return

    now = datetime.now(UTC)
    table = Table(title="Pending Grabs")
    table.add_column("Media", justify="right")
    table.add_column("Release")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Available At", style="cyan")
    table.add_column("Status")

    for grab in grabs:
        item = state_manager.get_monitored_item(grab.media_id)
        media = f"{item.title} ({grab.media_id})" if item else str(grab.media_id)
        table.add_row(
            escape(media),
            escape(grab.release_title),
            str(grab.score),
            grab.available_at.strftime("%Y-%m-%d %H:%M"),
            "[green]due[/green]" if grab.is_due(now) else "[yellow]waiting[/yellow]",
        )
    console.print(table)


@monitor_app.command("add")
def monitor_add(
    title: Annotated[str, typer.Argument(help="Movie or show title")],
    tmdb_id: Annotated[int, typer.Option("--tmdb-id", help="TMDB ID")],
    media_type: Annotated[MediaKind, typer.Option("--type", "-t", help="Media type")] = (
        MediaKind.MOVIE
    ),
    year: Annotated[int | None, typer.Option("--year", "-y", help="Release year")] = None,
    imdb_id: Annotated[str | None, typer.Option("--imdb-id", help="IMDb ID (tt...)")] = None,
    tvdb_id: Annotated[int | None, typer.Option("--tvdb-id", help="TVDB ID")] = None,
    season: Annotated[int | None, typer.Option("--season", "-s", help="Season number")] = None,
    episode: Annotated[int | None, typer.Option("--episode", "-e", help="Episode number")] = None,
    profile: Annotated[
        int | None, typer.Option("--profile", "-p", help="Quality profile ID")
    ] = None,
    library: Annotated[int | None, typer.Option("--library", help="Library ID")] = None,
    owned_score: Annotated[
        int | None, typer.Option("--owned-score", help="Score of the copy already owned")
    ] = None,
) -> None:
    """Start monitoring a movie, show season or episode."""
    config = _load_config()
    if profile is not None and config.get_quality_profile(profile) is None:
        error_console.print(f"[red]Quality profile not found:[/red] {profile}")
        raise typer.Exit(1)

    state_manager = get_state_manager(config)
    existing = state_manager.get_monitored_items(include_unmonitored=True)
    item = MonitoredItem(
        id=max((i.id for i in existing), default=0) + 1,
        tmdb_id=tmdb_id,
        media_type=media_type.value,
        title=title,
        year=year,
        imdb_id=imdb_id,
        tvdb_id=tvdb_id,
        season=season,
        episode=episode,
        quality_profile_id=profile,
        library_id=library,
        owned_score=owned_score,
    )
    state_manager.add_monitored_item(item)
    console.print(f"[green]Monitoring:[/green] {escape(title)} (id={item.id})")


@monitor_app.command("list")
def monitor_list(
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.TABLE,
) -> None:
    """List monitored items."""
    config = _load_config()
    items = get_state_manager(config).get_monitored_items(include_unmonitored=True)

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps([i.model_dump(mode="json") for i in items]))
        return
    if not items:
        console.print("[dim]No monitored items[/dim]")
        return

    table = Table(title="Monitored Items")
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Type", style="cyan")
    table.add_column("Profile", justify="right")
    table.add_column("Owned", justify="right")
    table.add_column("Last Searched", style="dim")

    for item in items:
        title = escape(f"{item.title} ({item.year})" if item.year else item.title)
        if item.season is not None:
            title += f" S{item.season:02d}"
            if item.episode is not None:
                title += f"E{item.episode:02d}"
        if not item.monitored:
            title = f"[dim]{title}[/dim]"
        table.add_row(
            str(item.id),
            title,
            item.media_type,
            _dash(item.quality_profile_id),
            _dash(item.owned_score),
            item.last_searched_at.strftime("%Y-%m-%d %H:%M") if item.last_searched_at else "never",
        )
    console.print(table)


@monitor_app.command("remove")
def monitor_remove(
    item_id: Annotated[int, typer.Argument(help="Monitored item ID")],
) -> None:
    """Stop monitoring an item."""
    config = _load_config()
    state_manager = get_state_manager(config)
    if not state_manager.remove_monitored_item(item_id):
        error_console.print(f"[red]Monitored item not found:[/red] {item_id}")
        raise typer.Exit(1)
    state_manager.remove_pending_grab(item_id)
    console.print(f"[green]Removed monitored item {item_id}[/green]")


@blocklist_app.command("add")
def blocklist_add(
    release_title: Annotated[str, typer.Argument(help="Release title to block")],
    reason: Annotated[str, typer.Option("--reason", "-r", help="Why it is blocked")] = "",
    days: Annotated[
        int | None, typer.Option("--days", "-d", help="Expire after this many days")
    ] = None,
) -> None:
    """Blocklist a release so it is never grabbed."""
    config = _load_config()
    expires_at = datetime.now(UTC) + timedelta(days=days) if days else None
    get_state_manager(config).add_to_blocklist(release_title, reason, expires_at=expires_at)
    console.print(f"[green]Blocklisted:[/green] {escape(release_title)}")


@blocklist_app.command("remove")
def blocklist_remove(
    release_title: Annotated[str, typer.Argument(help="Release title to unblock")],
) -> None:
    """Remove a release from the blocklist."""
    config = _load_config()
    removed = get_state_manager(config).remove_from_blocklist(release_title)
    if not removed:
        error_console.print(f"[red]Not blocklisted:[/red] {escape(release_title)}")
        raise typer.Exit(1)
    noun = "entry" if removed == 1 else "entries"
    console.print(f"[green]Removed {removed} blocklist {noun}[/green]")


@blocklist_app.command("list")
def blocklist_list() -> None:
    """List blocklisted releases."""
    config = _load_config()
    entries = get_state_manager(config).get_blocklist()
    if not entries:
        console.print("[dim]Blocklist is empty[/dim]")
        return

    now = datetime.now(UTC)
    table = Table(title="Blocklist")
    table.add_column("Release")
    table.add_column("Reason")
    table.add_column("Added", style="dim")
    table.add_column("Expires", style="cyan")
    for entry in entries:
        if entry.expires_at is None:
            expires = "never"
        elif entry.is_active(now):
            expires = entry.expires_at.strftime("%Y-%m-%d %H:%M")
        else:
            expires = "[dim]expired[/dim]"
        table.add_row(
            escape(entry.release_title),
            escape(entry.reason or "-"),
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
            expires,
        )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from grabarr import __version__

    console.print(f"grabarr version {__version__}")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host to bind the server to."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to listen on."),
    ] = None,
    scheduler: Annotated[
        bool,
        typer.Option("--scheduler/--no-scheduler", help="Enable or disable the periodic tasks."),
    ] = True,
) -> None:
    """Start the HTTP API server and the periodic tasks.

    The periodic tasks search monitored items, sync indexer RSS and grab
    releases whose delay has elapsed. Disable them with --no-scheduler to
    serve only the parse, score and search endpoints.

    Example:
        grabarr serve --port 8080
        grabarr -l debug serve --host 0.0.0.0 --port 9000
        grabarr serve --no-scheduler
    """
    try:
        from grabarr.server import run_server
    except ImportError:
        error_console.print(
            "[red]Error:[/red] The server requires additional dependencies.\n"
            "Install with: [bold]pip install grabarr[server][/bold]"
        )
        raise typer.Exit(1) from None

    config = _load_config()

    server_host = host or config.server.host
    server_port = port or config.server.port
    scheduler_enabled = scheduler and config.scheduler.enabled

    console.print("[bold green]Starting grabarr server[/bold green]")
    console.print(f"  Host: {server_host}")
    console.print(f"  Port: {server_port}")
    console.print(f"  Prowlarr configured: {'Yes' if config.prowlarr else 'No'}")
    console.print(f"  Quality profiles: {len(config.quality_profiles)}")
    console.print(f"  Auto grab: {'Enabled' if config.settings.auto_grab else 'Disabled'}")
    console.print(f"  Scheduler: {'Enabled' if scheduler_enabled else 'Disabled'}")
    console.print()
    console.print(f"  Status: http://{server_host}:{server_port}/status")
    console.print()

    run_server(
        host=server_host,
        port=server_port,
        config=config,
        log_level=(ctx.obj or {}).get("log_level", "info"),
        scheduler_enabled=scheduler_enabled,
    )


if __name__ == "__main__":
    app()
