# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.settings",
#   "purpose": "Layered configuration models and loaders",
#   "sections": [
#     {
#       "id": "http-settings",
#       "name": "HttpSettings",
#       "anchor": "class-http-settings",
#       "kind": "class"
#     },
#     {
#       "id": "retry-settings",
#       "name": "RetrySettings",
#       "anchor": "class-retry-settings",
#       "kind": "class"
#     },
#     {
#       "id": "harvest-settings",
#       "name": "HarvestSettings",
#       "anchor": "class-harvest-settings",
#       "kind": "class"
#     },
#     {
#       "id": "agentverse-settings",
#       "name": "AgentverseSettings",
#       "anchor": "class-agentverse-settings",
#       "kind": "class"
#     },
#     {
#       "id": "hol-settings",
#       "name": "HolSettings",
#       "anchor": "class-hol-settings",
#       "kind": "class"
#     },
#     {
#       "id": "nanda-settings",
#       "name": "NandaSettings",
#       "anchor": "class-nanda-settings",
#       "kind": "class"
#     },
#     {
#       "id": "registry-settings",
#       "name": "RegistrySettings",
#       "anchor": "class-registry-settings",
#       "kind": "class"
#     },
#     {
#       "id": "storage-settings",
#       "name": "StorageSettings",
#       "anchor": "class-storage-settings",
#       "kind": "class"
#     },
#     {
#       "id": "graph-store-settings",
#       "name": "GraphStoreSettings",
#       "anchor": "class-graph-store-settings",
#       "kind": "class"
#     },
#     {
#       "id": "logging-settings",
#       "name": "LoggingSettings",
#       "anchor": "class-logging-settings",
#       "kind": "class"
#     },
#     {
#       "id": "agents-to-kg-settings",
#       "name": "AgentsToKGSettings",
#       "anchor": "class-agents-to-kg-settings",
#       "kind": "class"
#     },
#     {
#       "id": "environment-overrides",
#       "name": "EnvironmentOverrides",
#       "anchor": "class-environment-overrides",
#       "kind": "class"
#     },
#     {
#       "id": "load-raw-yaml",
#       "name": "load_raw_yaml",
#       "anchor": "function-load-raw-yaml",
#       "kind": "function"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     },
#     {
#       "id": "get-settings",
#       "name": "get_settings",
#       "anchor": "function-get-settings",
#       "kind": "function"
#     },
#     {
#       "id": "invalidate-settings-cache",
#       "name": "invalidate_settings_cache",
#       "anchor": "function-invalidate-settings-cache",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Configuration models and loaders for the agent knowledge-graph pipeline.

Configuration is layered the same way for every command:

1. Defaults encoded on the pydantic models below.
2. An optional YAML file (``load_config``) whose top-level keys mirror the
   section names of :class:`AgentsToKGSettings`.
3. Environment overrides collected by :class:`EnvironmentOverrides`
   (``AGENTKG_*`` plus the registry/graph-store credentials that the hosted
   services already publish under their own names).

``get_settings()`` memoises the resolved settings under a lock; tests call
``invalidate_settings_cache()`` between cases.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

__all__ = [
    "DEFAULT_CONTEXT",
    "HttpSettings",
    "RetrySettings",
    "HarvestSettings",
    "AgentverseSettings",
    "HolSettings",
    "NandaSettings",
    "RegistrySettings",
    "StorageSettings",
    "GraphStoreSettings",
    "LoggingSettings",
    "AgentsToKGSettings",
    "EnvironmentOverrides",
    "load_raw_yaml",
    "load_config",
    "get_settings",
    "invalidate_settings_cache",
]

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = "https://www.agentictrust.io/graph/data/agents"
DEFAULT_HOL_REGISTRIES = (
    "a2a-registry",
    "agentverse",
    "coinbase-x402-bazaar",
    "erc-8004",
    "erc-8004-solana",
    "hashgraph-online",
    "hol",
)
LOG_DIR = Path.home() / ".data" / "agentkg" / "logs"


# ============================================================================
# Section models
# ============================================================================


class HttpSettings(BaseModel):
    """HTTP client settings shared by every outbound call."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    timeout_connect: float = Field(default=10.0, gt=0.0, le=120.0, description="Connect timeout in seconds")
    timeout_read: float = Field(default=30.0, gt=0.0, le=600.0, description="Read timeout in seconds")
    pool_max_connections: int = Field(default=16, ge=1, le=1024, description="Max concurrent connections")
    pool_keepalive_max: int = Field(default=8, ge=0, le=1024, description="Keepalive pool size")
    user_agent: str = Field(
        default="AgentsToKG/0.1 (+https://www.agentictrust.io)",
        description="User-Agent header value",
    )


class RetrySettings(BaseModel):
    """Retry policy for registry and graph-store requests."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    retries: int = Field(default=4, ge=0, le=20, description="Retries after the first attempt")
    min_backoff_seconds: float = Field(default=0.5, ge=0.0, le=60.0, description="Backoff start")
    max_backoff_seconds: float = Field(default=30.0, ge=0.0, le=600.0, description="Backoff cap")
    retry_on_statuses: List[int] = Field(
        default_factory=lambda: [429, 500, 502, 503, 504],
        description="HTTP statuses that trigger a retry",
    )


class HarvestSettings(BaseModel):
    """Page-loop behaviour shared by every harvester."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    page_size: int = Field(default=100, ge=1, le=1000)
    page_delay_seconds: float = Field(default=0.2, ge=0.0, le=60.0)
    page_retries: int = Field(default=6, ge=0, le=50, description="Page refetch attempts")
    page_retry_max_sleep_seconds: float = Field(default=60.0, ge=0.0)


class AgentverseSettings(BaseModel):
    """Agentverse marketplace endpoint and credentials."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    base_url: str = "https://agentverse.ai"
    jwt: Optional[str] = Field(default=None, repr=False)


class HolSettings(BaseModel):
    """HOL universal-search endpoint and sub-registry selection."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    base_url: str = "https://hol.org"
    registries: List[str] = Field(default_factory=lambda: list(DEFAULT_HOL_REGISTRIES))
    available_only: bool = True
    capability: Optional[str] = None
    trust: Optional[str] = None
    query: Optional[str] = None

    @field_validator("registries", mode="before")
    @classmethod
    def split_registries(cls, value: Any) -> Any:
        """Accept a comma separated string as well as a list."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class NandaSettings(BaseModel):
    """NANDA registry endpoint and optional filters."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    base_url: str = "https://nanda-registry.com"
    jwt: Optional[str] = Field(default=None, repr=False)
    mode: Literal["servers", "discovery"] = "servers"
    search: Optional[str] = None
    types: Optional[str] = None
    tags: Optional[str] = None
    verified: Optional[bool] = None
    fetch_details: bool = False


class RegistrySettings(BaseModel):
    """Per-registry settings grouped under one section."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    agentverse: AgentverseSettings = Field(default_factory=AgentverseSettings)
    hol: HolSettings = Field(default_factory=HolSettings)
    nanda: NandaSettings = Field(default_factory=NandaSettings)


class StorageSettings(BaseModel):
    """Relational store selection and SQL-over-HTTP credentials."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    backend: Literal["sqlite", "d1"] = "sqlite"
    path: Path = Field(default_factory=lambda: Path.home() / ".data" / "agentkg" / "agents.sqlite")
    api_base: str = "https://api.cloudflare.com/client/v4"
    account_id: Optional[str] = None
    database_id: Optional[str] = None
    api_token: Optional[str] = Field(default=None, repr=False)
    max_batch_statements: int = Field(default=50, ge=1, le=1000)
    batch_enabled: bool = True

    @field_validator("path", mode="before")
    @classmethod
    def normalize_path(cls, value: Any) -> Path:
        """Expand ``~`` in store paths."""
        return Path(value).expanduser()


class GraphStoreSettings(BaseModel):
    """Triple store endpoint, repository, and credentials."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    base_url: str = "https://graphdb.agentkg.io"
    repository: str = "agentkg"
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    access_client_id: Optional[str] = Field(default=None, repr=False)
    access_client_secret: Optional[str] = Field(default=None, repr=False)
    context: str = DEFAULT_CONTEXT

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Drop trailing slashes so path joins stay predictable."""
        return value.rstrip("/")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_dir: Optional[Path] = None
    max_log_size_mb: int = Field(default=50, gt=0)
    retention_days: int = Field(default=14, ge=1)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize and validate logging level."""
        upper = str(v).upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}, got '{v}'")
        return upper


class AgentsToKGSettings(BaseModel):
    """Fully resolved settings for one pipeline invocation."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    http: HttpSettings = Field(default_factory=HttpSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    harvest: HarvestSettings = Field(default_factory=HarvestSettings)
    registries: RegistrySettings = Field(default_factory=RegistrySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    graph: GraphStoreSettings = Field(default_factory=GraphStoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ============================================================================
# Environment overrides
# ============================================================================


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    log_level: Optional[str] = Field(default=None, alias="AGENTKG_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="AGENTKG_LOG_DIR")
    page_size: Optional[int] = Field(default=None, alias="AGENTKG_PAGE_SIZE")
    max_retries: Optional[int] = Field(default=None, alias="AGENTKG_MAX_RETRIES")
    timeout_sec: Optional[float] = Field(default=None, alias="AGENTKG_TIMEOUT_SEC")
    store_backend: Optional[str] = Field(default=None, alias="AGENTKG_STORE_BACKEND")
    store_path: Optional[Path] = Field(default=None, alias="AGENTKG_STORE_PATH")
    graph_context: Optional[str] = Field(default=None, alias="AGENTKG_GRAPH_CONTEXT")

    agentverse_base_url: Optional[str] = Field(default=None, alias="AGENTVERSE_BASE_URL")
    agentverse_jwt: Optional[str] = Field(default=None, alias="AGENTVERSE_JWT")
    hol_base_url: Optional[str] = Field(default=None, alias="HOL_BASE_URL")
    hol_registries: Optional[str] = Field(default=None, alias="HOL_REGISTRIES")
    nanda_base_url: Optional[str] = Field(default=None, alias="NANDA_BASE_URL")
    nanda_jwt: Optional[str] = Field(default=None, alias="NANDA_JWT")

    graphdb_base_url: Optional[str] = Field(default=None, alias="GRAPHDB_BASE_URL")
    graphdb_repository: Optional[str] = Field(default=None, alias="GRAPHDB_REPOSITORY")
    graphdb_username: Optional[str] = Field(default=None, alias="GRAPHDB_USERNAME")
    graphdb_password: Optional[str] = Field(default=None, alias="GRAPHDB_PASSWORD")
    cf_access_client_id: Optional[str] = Field(default=None, alias="GRAPHDB_CF_ACCESS_CLIENT_ID")
    cf_access_client_secret: Optional[str] = Field(
        default=None, alias="GRAPHDB_CF_ACCESS_CLIENT_SECRET"
    )

    cloudflare_account_id: Optional[str] = Field(default=None, alias="CLOUDFLARE_ACCOUNT_ID")
    cloudflare_d1_database_id: Optional[str] = Field(default=None, alias="CLOUDFLARE_D1_DATABASE_ID")
    cloudflare_api_token: Optional[str] = Field(default=None, alias="CLOUDFLARE_API_TOKEN")

    model_config = SettingsConfigDict(env_prefix="AGENTKG_", case_sensitive=False, extra="ignore")


_ENV_TARGETS: Dict[str, tuple] = {
    "log_level": ("logging", "level"),
    "log_dir": ("logging", "log_dir"),
    "page_size": ("harvest", "page_size"),
    "max_retries": ("retry", "retries"),
    "timeout_sec": ("http", "timeout_read"),
    "store_backend": ("storage", "backend"),
    "store_path": ("storage", "path"),
    "graph_context": ("graph", "context"),
    "agentverse_base_url": ("registries", "agentverse", "base_url"),
    "agentverse_jwt": ("registries", "agentverse", "jwt"),
    "hol_base_url": ("registries", "hol", "base_url"),
    "hol_registries": ("registries", "hol", "registries"),
    "nanda_base_url": ("registries", "nanda", "base_url"),
    "nanda_jwt": ("registries", "nanda", "jwt"),
    "graphdb_base_url": ("graph", "base_url"),
    "graphdb_repository": ("graph", "repository"),
    "graphdb_username": ("graph", "username"),
    "graphdb_password": ("graph", "password"),
    "cf_access_client_id": ("graph", "access_client_id"),
    "cf_access_client_secret": ("graph", "access_client_secret"),
    "cloudflare_account_id": ("storage", "account_id"),
    "cloudflare_d1_database_id": ("storage", "database_id"),
    "cloudflare_api_token": ("storage", "api_token"),
}


def _apply_env_overrides(raw: Dict[str, Any], overrides: EnvironmentOverrides) -> Dict[str, Any]:
    """Merge non-empty environment overrides into a raw configuration mapping."""

    merged: Dict[str, Any] = {key: value for key, value in raw.items()}
    for field_name, value in overrides.model_dump(exclude_none=True).items():
        if isinstance(value, str) and not value.strip():
            continue
        path = _ENV_TARGETS.get(field_name)
        if path is None:
            continue
        cursor = merged
        for part in path[:-1]:
            nested = cursor.get(part)
            nested = dict(nested) if isinstance(nested, Mapping) else {}
            cursor[part] = nested
            cursor = nested
        cursor[path[-1]] = value
    return merged


# ============================================================================
# Loading
# ============================================================================


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = Path(config_path).expanduser()
    if not normalized_path.exists():
        raise ConfigurationError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Configuration file '{normalized_path}' contains invalid YAML"
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return data


def load_config(
    config_path: Optional[Path] = None,
    *,
    overrides: Optional[EnvironmentOverrides] = None,
) -> AgentsToKGSettings:
    """Load YAML (when given), apply environment overrides, and validate.

    Args:
        config_path: Optional YAML file whose keys mirror the settings sections.
        overrides: Pre-built overrides; read from the environment when omitted.

    Returns:
        AgentsToKGSettings: Frozen, validated settings.

    Raises:
        ConfigurationError: When the YAML is unreadable or fails validation.
    """

    raw: Dict[str, Any] = dict(load_raw_yaml(config_path)) if config_path else {}
    try:
        env = overrides if overrides is not None else EnvironmentOverrides()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid environment override: {exc}") from exc
    merged = _apply_env_overrides(raw, env)
    try:
        return AgentsToKGSettings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


_SETTINGS_CACHE: Optional[AgentsToKGSettings] = None
_SETTINGS_LOCK = threading.Lock()


def get_settings(config_path: Optional[Path] = None) -> AgentsToKGSettings:
    """Return process-wide settings, loading them on first use."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None or config_path is not None:
            _SETTINGS_CACHE = load_config(config_path)
            logger.debug("settings loaded", extra={"stage": "config"})
        return _SETTINGS_CACHE


def invalidate_settings_cache() -> None:
    """Drop memoised settings so the next ``get_settings`` call reloads them."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None
