"""Configuration loading for grabarr."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self, TypeVar

from pydantic import BaseModel, ValidationError

from grabarr.models.profiles import (
    CustomFormatDef,
    DelayProfile,
    DownloadClientDefinition,
    IndexerDefinition,
    LibraryDefinition,
    QualityProfile,
    ReleaseFilter,
)
from grabarr.ranker import DEFAULT_INDEXER_PRIORITY

if TYPE_CHECKING:
    from typing import Literal


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""


@dataclass
class ProwlarrConfig:
    """Prowlarr connection configuration."""

    url: str
    api_key: str


def _default_state_path() -> Path:
    """Get the default state file path."""
    return Path.home() / ".config" / "grabarr" / "state.json"


@dataclass
class StateConfig:
    """Configuration for state persistence."""

    path: Path = field(default_factory=_default_state_path)


@dataclass
class ServerConfig:
    """Configuration for the HTTP server."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "info"


@dataclass
class SchedulerConfig:
    """Intervals and pacing of the periodic tasks."""

    enabled: bool = True
    search_interval_minutes: int = 60
    rss_interval_minutes: int = 15
    pending_interval_minutes: int = 1
    item_delay: float = 5.0
    history_limit: int = 100


@dataclass
class SettingsConfig:
    """Automation switches for the scheduler."""

    auto_search: bool = True
    auto_grab: bool = False
    min_score: int = 0


@dataclass
class StorageConfig:
    """Pause grabbing when a library path is low on free space."""

    pause_enabled: bool = False
    threshold_gb: float = 100.0


DEFAULT_TIMEOUT = 120.0

_TRUE_VALUES = ("true", "1", "yes")

ModelT = TypeVar("ModelT", bound=BaseModel)


# --- Helper functions for parsing config sections ---


def _parse_prowlarr_from_dict(data: dict[str, Any]) -> ProwlarrConfig | None:
    """Parse Prowlarr URL and API key from a config dict.

    Args:
        data: The full config dictionary

    Returns:
        ProwlarrConfig if both URL and API key are present, None otherwise
    """
    section = data.get("prowlarr", {})
    url = section.get("url")
    api_key = section.get("api_key")
    if url and api_key:
        return ProwlarrConfig(url=url, api_key=api_key)
    return None


def _parse_prowlarr_from_env(base: ProwlarrConfig | None) -> ProwlarrConfig | None:
    """Parse Prowlarr URL and API key from environment variables.

    Args:
        base: Config to keep when the variables are not both set

    Returns:
        ProwlarrConfig instance or base
    """
    url = os.environ.get("GRABARR_PROWLARR_URL")
    api_key = os.environ.get("GRABARR_PROWLARR_API_KEY")
    if url and api_key:
        return ProwlarrConfig(url=url, api_key=api_key)
    return base


def _parse_scheduler_from_dict(data: dict[str, Any]) -> SchedulerConfig:
    """Parse SchedulerConfig from a config dictionary."""
    defaults = SchedulerConfig()
    if "scheduler" not in data:
        return defaults
    section = data["scheduler"]
    return SchedulerConfig(
        enabled=section.get("enabled", defaults.enabled),
        search_interval_minutes=int(
            section.get("search_interval_minutes", defaults.search_interval_minutes)
        ),
        rss_interval_minutes=int(
            section.get("rss_interval_minutes", defaults.rss_interval_minutes)
        ),
        pending_interval_minutes=int(
            section.get("pending_interval_minutes", defaults.pending_interval_minutes)
        ),
        item_delay=float(section.get("item_delay", defaults.item_delay)),
        history_limit=int(section.get("history_limit", defaults.history_limit)),
    )


def _parse_settings_from_dict(data: dict[str, Any]) -> SettingsConfig:
    """Parse SettingsConfig from a config dictionary."""
    defaults = SettingsConfig()
    if "settings" not in data:
        return defaults
    section = data["settings"]
    return SettingsConfig(
        auto_search=section.get("auto_search", defaults.auto_search),
        auto_grab=section.get("auto_grab", defaults.auto_grab),
        min_score=int(section.get("min_score", defaults.min_score)),
    )


def _parse_settings_from_env(base: SettingsConfig) -> SettingsConfig:
    """Parse SettingsConfig from environment variables.

    Args:
        base: Base SettingsConfig to use for defaults

    Returns:
        SettingsConfig instance with environment overrides
    """
    auto_search = os.environ.get("GRABARR_AUTO_SEARCH")
    auto_grab = os.environ.get("GRABARR_AUTO_GRAB")
    min_score = os.environ.get("GRABARR_MIN_SCORE")
    return SettingsConfig(
        auto_search=(
            auto_search.lower() in _TRUE_VALUES if auto_search is not None else base.auto_search
        ),
        auto_grab=auto_grab.lower() in _TRUE_VALUES if auto_grab is not None else base.auto_grab,
        min_score=int(min_score) if min_score else base.min_score,
    )


def _parse_storage_from_dict(data: dict[str, Any]) -> StorageConfig:
    """Parse StorageConfig from a config dictionary."""
    defaults = StorageConfig()
    if "storage" not in data:
        return defaults
    section = data["storage"]
    return StorageConfig(
        pause_enabled=section.get("pause_enabled", defaults.pause_enabled),
        threshold_gb=float(section.get("threshold_gb", defaults.threshold_gb)),
    )


def _parse_state_from_dict(data: dict[str, Any]) -> StateConfig:
    """Parse StateConfig from a config dictionary."""
    if "state" in data and "path" in data["state"]:
        return StateConfig(path=Path(data["state"]["path"]).expanduser())
    return StateConfig()


def _parse_state_from_env(base: StateConfig) -> StateConfig:
    """Parse StateConfig from environment variables."""
    path = os.environ.get("GRABARR_STATE_PATH")
    if path:
        return StateConfig(path=Path(path).expanduser())
    return base


def _parse_server_from_dict(data: dict[str, Any]) -> ServerConfig:
    """Parse ServerConfig from a config dictionary."""
    defaults = ServerConfig()
    if "server" not in data:
        return defaults
    section = data["server"]
    return ServerConfig(
        host=section.get("host", defaults.host),
        port=int(section.get("port", defaults.port)),
    )


def _parse_server_from_env(base: ServerConfig) -> ServerConfig:
    """Parse ServerConfig from environment variables."""
    host = os.environ.get("GRABARR_SERVER_HOST")
    port_str = os.environ.get("GRABARR_SERVER_PORT")
    return ServerConfig(
        host=host or base.host,
        port=int(port_str) if port_str else base.port,
    )


def _parse_logging_from_dict(data: dict[str, Any]) -> LoggingConfig:
    """Parse LoggingConfig from a config dictionary."""
    if "logging" in data and "level" in data["logging"]:
        return LoggingConfig(level=str(data["logging"]["level"]))
    return LoggingConfig()


def _parse_rules(
    data: dict[str, Any], section: str, model: type[ModelT]
) -> list[ModelT]:
    """Validate an array-of-tables section into rule models.

    Args:
        data: The full config dictionary
        section: Section name, e.g. "quality_profiles"
        model: Pydantic model to validate each entry with

    Returns:
        List of validated models

    Raises:
        ConfigurationError: If any entry is invalid
    """
    entries = data.get(section, [])
    if not isinstance(entries, list):
        raise ConfigurationError(f"[{section}] must be an array of tables ([[{section}]])")
    try:
        return [model.model_validate(entry) for entry in entries]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid [[{section}]] entry: {e}") from e


@dataclass
class Config:
    """Application configuration."""

    prowlarr: ProwlarrConfig | None = None
    timeout: float = DEFAULT_TIMEOUT
    state: StateConfig = field(default_factory=StateConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    settings: SettingsConfig = field(default_factory=SettingsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    quality_profiles: list[QualityProfile] = field(default_factory=list)
    custom_formats: list[CustomFormatDef] = field(default_factory=list)
    delay_profiles: list[DelayProfile] = field(default_factory=list)
    release_filters: list[ReleaseFilter] = field(default_factory=list)
    indexers: list[IndexerDefinition] = field(default_factory=list)
    download_clients: list[DownloadClientDefinition] = field(default_factory=list)
    libraries: list[LibraryDefinition] = field(default_factory=list)

    @classmethod
    def load(cls, config_file: Path | None = None) -> Self:
        """Load configuration from environment and config file.

        Configuration precedence (highest to lowest):
        1. Environment variables
        2. Config file (~/.config/grabarr/config.toml)

        Environment variables:
        - GRABARR_PROWLARR_URL
        - GRABARR_PROWLARR_API_KEY
        - GRABARR_TIMEOUT (request timeout in seconds)
        - GRABARR_STATE_PATH
        - GRABARR_SERVER_HOST, GRABARR_SERVER_PORT
        - GRABARR_AUTO_SEARCH, GRABARR_AUTO_GRAB, GRABARR_MIN_SCORE

        GRABARR_LOG_LEVEL is resolved by the CLI, which gives the
        --log-level flag precedence over it.

        Args:
            config_file: Alternative config file location

        Returns:
            Config instance with loaded values

        Raises:
            ConfigurationError: If config file exists but is invalid
        """
        config = cls()

        # Load from config file first (lower precedence)
        if config_file is None:
            config_file = Path.home() / ".config" / "grabarr" / "config.toml"
        if config_file.exists():
            config = cls._load_from_file(config_file)

        # Override with environment variables (higher precedence)
        return cls._load_from_env(config)

    @classmethod
    def _load_from_file(cls, path: Path) -> Self:
        """Load configuration from TOML file.

        Args:
            path: Path to the TOML config file

        Returns:
            Config instance

        Raises:
            ConfigurationError: If file cannot be parsed
        """
        data = _load_toml_file(path)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build configuration from a parsed TOML document.

        Raises:
            ConfigurationError: If a rule section is invalid
        """
        config = cls(
            prowlarr=_parse_prowlarr_from_dict(data),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
            state=_parse_state_from_dict(data),
            server=_parse_server_from_dict(data),
            logging=_parse_logging_from_dict(data),
            scheduler=_parse_scheduler_from_dict(data),
            settings=_parse_settings_from_dict(data),
            storage=_parse_storage_from_dict(data),
            quality_profiles=_parse_rules(data, "quality_profiles", QualityProfile),
            custom_formats=_parse_rules(data, "custom_formats", CustomFormatDef),
            delay_profiles=_parse_rules(data, "delay_profiles", DelayProfile),
            release_filters=_parse_rules(data, "release_filters", ReleaseFilter),
            indexers=_parse_rules(data, "indexers", IndexerDefinition),
            download_clients=_parse_rules(data, "download_clients", DownloadClientDefinition),
            libraries=_parse_rules(data, "libraries", LibraryDefinition),
        )
        config._check_references()
        return config

    @classmethod
    def _load_from_env(cls, base: Self) -> Self:
        """Override configuration with environment variables.

        Args:
            base: Base config to override

        Returns:
            Config instance with environment overrides
        """
        timeout_str = os.environ.get("GRABARR_TIMEOUT")
        return cls(
            prowlarr=_parse_prowlarr_from_env(base.prowlarr),
            timeout=float(timeout_str) if timeout_str else base.timeout,
            state=_parse_state_from_env(base.state),
            server=_parse_server_from_env(base.server),
            logging=base.logging,
            scheduler=base.scheduler,
            settings=_parse_settings_from_env(base.settings),
            storage=base.storage,
            quality_profiles=base.quality_profiles,
            custom_formats=base.custom_formats,
            delay_profiles=base.delay_profiles,
            release_filters=base.release_filters,
            indexers=base.indexers,
            download_clients=base.download_clients,
            libraries=base.libraries,
        )

    def _check_references(self) -> None:
        """Validate that release filters point at existing quality profiles.

        Raises:
            ConfigurationError: If a filter references an unknown profile
        """
        profile_ids = {profile.id for profile in self.quality_profiles}
        for release_filter in self.release_filters:
            if release_filter.profile_id not in profile_ids:
                raise ConfigurationError(
                    f"Release filter {release_filter.value!r} references unknown "
                    f"quality profile {release_filter.profile_id}"
                )

    def require_prowlarr(self) -> ProwlarrConfig:
        """Get Prowlarr config, raising if not configured.

        Returns:
            ProwlarrConfig instance

        Raises:
            ConfigurationError: If Prowlarr is not configured
        """
        if self.prowlarr is None:
            raise ConfigurationError(
                "Prowlarr is not configured. Set GRABARR_PROWLARR_URL and "
                "GRABARR_PROWLARR_API_KEY environment variables, or create "
                "~/.config/grabarr/config.toml"
            )
        return self.prowlarr

    def get_quality_profile(self, profile_id: int | None) -> QualityProfile | None:
        """Look up a quality profile by ID."""
        if profile_id is None:
            return None
        for profile in self.quality_profiles:
            if profile.id == profile_id:
                return profile
        return None

    def get_indexer_priority(self, indexer_id: int) -> int:
        """Get the priority of an indexer, defaulting when it is not configured."""
        for indexer in self.indexers:
            if indexer.id == indexer_id:
                return indexer.priority
        return DEFAULT_INDEXER_PRIORITY

    def pick_download_client(
        self, protocol: Literal["torrent", "usenet"]
    ) -> DownloadClientDefinition | None:
        """Get the enabled download client with the best priority for a protocol."""
        candidates = [
            client
            for client in self.download_clients
            if client.enabled and client.protocol == protocol
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda client: client.priority)

    def library_paths(self) -> list[Path]:
        """All configured library root folders."""
        return [Path(library.path).expanduser() for library in self.libraries]


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file.

    Args:
        path: Path to the TOML file

    Returns:
        Parsed TOML data as dictionary

    Raises:
        ConfigurationError: If file cannot be parsed
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid config file: {e}") from e
