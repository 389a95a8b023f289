# === NAVMAP v1 ===
# {
#   "module": "APIDirectory.Registry.settings",
#   "purpose": "Configuration models, environment overrides, and run options for registry runs",
#   "sections": [
#     {"id": "constants", "name": "Constants", "anchor": "CONST", "kind": "constants"},
#     {"id": "models", "name": "Configuration Models", "anchor": "MOD", "kind": "api"},
#     {"id": "env", "name": "Environment Overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "options", "name": "Run Options", "anchor": "OPT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models, environment overrides, and per-run options.

Static configuration (HTTP behaviour, logging, filesystem layout) is expressed
as pydantic models so assignments are validated the same way everywhere.  The
per-invocation CLI surface lives in :class:`RunOptions`, a plain dataclass that
commands copy with :func:`dataclasses.replace` when they need to ingest a lead
with different hints.
"""

from __future__ import annotations

import copy as _copy
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "DRIVER_NAMES",
    "DEFAULT_PATHSPEC",
    "RUN_KINDS_SORTED_ON_LOAD",
    "LoggingConfiguration",
    "HttpConfiguration",
    "PathsConfiguration",
    "RegistryConfig",
    "EnvironmentOverrides",
    "RunOptions",
    "get_env_overrides",
    "get_default_config",
    "reset_default_config",
]

# --- Constants ---

DRIVER_NAMES: FrozenSet[str] = frozenset(
    {"nop", "url", "external", "apisjson", "catalog", "google", "github", "zip", "blob", "html"}
)
DEFAULT_PATHSPEC = "APIs"
RUN_KINDS_SORTED_ON_LOAD: FrozenSet[str] = frozenset({"ci", "deploy"})

_DEFAULT_USER_AGENT = "APIDirectory-Registry/1.0 (+https://github.com/APIs-guru/openapi-directory)"


# --- Configuration Models ---


class LoggingConfiguration(BaseModel):
    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class HttpConfiguration(BaseModel):
    """HTTP behaviour shared by drivers and document retrieval."""

    timeout_sec: float = Field(default=5.0, gt=0, le=300)
    slow_timeout_sec: float = Field(default=15.0, gt=0, le=600)
    connect_timeout_sec: float = Field(default=5.0, gt=0, le=60)
    max_retries: int = Field(default=0, ge=0, le=10)
    http2_enabled: bool = Field(default=False)
    verify_tls: bool = Field(default=True)
    follow_redirects: bool = Field(default=True)
    polite_headers: Dict[str, str] = Field(
        default_factory=lambda: {"User-Agent": _DEFAULT_USER_AGENT, "Accept": "*/*"}
    )

    def request_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {str(k): str(v) for k, v in self.polite_headers.items() if str(v).strip()}
        if not any(key.lower() == "user-agent" for key in headers):
            headers["User-Agent"] = _DEFAULT_USER_AGENT
        if extra:
            headers.update(extra)
        return headers

    model_config = {"validate_assignment": True}


class PathsConfiguration(BaseModel):
    """Filesystem layout of a registry checkout, relative to ``root``."""

    root: Path = Field(default_factory=Path.cwd)
    apis_dir: str = Field(default=DEFAULT_PATHSPEC)
    metadata_dir: str = Field(default="metadata")
    registry_file: str = Field(default="registry.yaml")

    @property
    def metadata_path(self) -> Path:
        return self.root / self.metadata_dir

    @property
    def registry_path(self) -> Path:
        return self.metadata_path / self.registry_file

    @property
    def debug_dump_path(self) -> Path:
        return self.metadata_path / "temp.py.txt"

    @property
    def index_cache(self) -> Path:
        return self.metadata_path / "index.cache"

    @property
    def archive_cache(self) -> Path:
        return self.metadata_path / "archive.cache"

    @property
    def main_cache(self) -> Path:
        return self.metadata_path / "main.cache"

    @property
    def log_dir(self) -> Path:
        return self.metadata_path / "logs"

    def failures_path(self, run_kind: str) -> Path:
        return self.metadata_path / f"{run_kind}_failures.yaml"

    def provider_cache(self, provider: str) -> Path:
        return self.metadata_path / f"{provider}.cache"

    def resolve(self, relative: str) -> Path:
        """Return ``relative`` anchored at the registry root."""

        candidate = Path(relative)
        return candidate if candidate.is_absolute() else self.root / candidate

    def relative(self, path: Path) -> str:
        """Return ``path`` as a POSIX string relative to the registry root."""

        resolved = Path(path)
        if not resolved.is_absolute():
            resolved = self.root / resolved
        try:
            return resolved.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return resolved.as_posix()

    model_config = {"validate_assignment": True}


class RegistryConfig(BaseModel):
    http: HttpConfiguration = Field(default_factory=HttpConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    paths: PathsConfiguration = Field(default_factory=PathsConfiguration)
    small_provider_cap: int = Field(default=50, ge=1)
    default_openapi_version: str = Field(default="3.0.0")
    default_api_version: str = Field(default="1.0.0")
    ci_window_days: float = Field(default=1.1, gt=0)
    validator: str = Field(default="structural", description="Name of the document validator plugin")

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",
    }


# --- Environment Overrides ---


class EnvironmentOverrides(BaseSettings):
    log_level: Optional[str] = Field(default=None, alias="APIREG_LOG_LEVEL")
    timeout_sec: Optional[float] = Field(default=None, alias="APIREG_TIMEOUT_SEC")
    root: Optional[Path] = Field(default=None, alias="APIREG_ROOT")

    model_config = SettingsConfigDict(env_prefix="APIREG_", case_sensitive=False, extra="ignore")


def get_env_overrides() -> Dict[str, str]:
    """Return the environment overrides that are currently set."""

    env = EnvironmentOverrides()
    return {key: str(value) for key, value in env.model_dump(by_alias=False).items() if value is not None}


def _apply_env_overrides(config: RegistryConfig) -> RegistryConfig:
    env = EnvironmentOverrides()
    if env.log_level:
        config.logging.level = env.log_level
    if env.timeout_sec:
        config.http.timeout_sec = env.timeout_sec
    if env.root:
        config.paths.root = env.root
    return config


_DEFAULT_CONFIG: Optional[RegistryConfig] = None
_DEFAULT_CONFIG_LOCK = threading.Lock()


def get_default_config(*, copy: bool = False) -> RegistryConfig:
    """Return the cached default configuration with environment overrides applied."""

    global _DEFAULT_CONFIG
    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG is None:
            _DEFAULT_CONFIG = _apply_env_overrides(RegistryConfig())
        config = _DEFAULT_CONFIG
    return _copy.deepcopy(config) if copy else config


def reset_default_config() -> None:
    """Forget the cached default configuration (test helper)."""

    global _DEFAULT_CONFIG
    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG = None


# --- Run Options ---


@dataclass
class RunOptions:
    """Per-invocation overrides supplied on the command line."""

    service: Optional[str] = None
    host: Optional[str] = None
    logo: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    force: bool = False
    debug: bool = False
    unofficial: bool = False
    driver: Optional[str] = None
    small: bool = False
    skip_drivers: bool = False
    auto_upgrade: Optional[str] = None
    desclang: Optional[str] = None
    cached: Optional[str] = None
    provider_key: Optional[str] = None
    save_invalid: bool = False
