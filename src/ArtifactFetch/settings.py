# === NAVMAP v1 ===
# {
#   "module": "ArtifactFetch.settings",
#   "purpose": "Define the immutable fetch configuration, environment credentials, and YAML loading",
#   "sections": [
#     {"id": "defaults", "name": "Defaults", "anchor": "DEF", "kind": "constants"},
#     {"id": "fetchsettings", "name": "FetchSettings", "anchor": "class-fetchsettings", "kind": "class"},
#     {"id": "credentials", "name": "Credentials", "anchor": "class-credentials", "kind": "class"},
#     {"id": "load-raw-yaml", "name": "load_raw_yaml", "anchor": "function-load-raw-yaml", "kind": "function"},
#     {"id": "load-settings", "name": "load_settings", "anchor": "function-load-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the artifact fetcher.

Settings are resolved once at startup from an optional YAML file plus CLI
overrides and then frozen; every component receives the resulting
:class:`FetchSettings` explicitly.  Credentials never travel through the CLI or
the YAML file and are read from the environment by :class:`Credentials`.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import platformdirs
import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .models import RepoRef

__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_PATTERN",
    "FetchSettings",
    "Credentials",
    "default_cache_dir",
    "load_raw_yaml",
    "load_settings",
]

LOGGER = logging.getLogger("ArtifactFetch.settings")

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_PATTERN = ".*"
APP_NAME = "artifact-fetch"


def default_cache_dir() -> Path:
    """Return the per-user directory used for the HTTP cache."""

    return Path(platformdirs.user_cache_dir(APP_NAME)) / "http"


class FetchSettings(BaseModel):
    """Immutable configuration for one invocation of the fetcher."""

    repo: str = Field(description="Repository in the form <org>/<repository>")
    since_run_id: int = Field(
        default=0, ge=0, description="Exclusive lower bound; runs at or below it are skipped"
    )
    run_id: Optional[int] = Field(
        default=None, gt=0, description="Fetch a single run instead of enumerating"
    )
    branch: Optional[str] = Field(default=None, description="Only list runs for this branch")
    event: Optional[str] = Field(default=None, description="Only list runs triggered by this event")
    pattern: str = Field(
        default=DEFAULT_PATTERN, description="Regular expression for artifact names"
    )
    unpack: bool = Field(default=True, description="Extract downloaded zip archives")
    output: Optional[Path] = Field(
        default=None, description="Output directory; print download URLs when unset"
    )
    api_url: str = Field(default=DEFAULT_API_URL)
    timeout_sec: float = Field(default=30.0, gt=0.0, le=3600.0)
    connect_timeout_sec: float = Field(default=10.0, gt=0.0, le=300.0)
    connect_retries: int = Field(default=0, ge=0, le=10)
    per_page: int = Field(default=50, ge=1, le=100)
    http_cache: bool = Field(default=False, description="Revalidate API listings through hishel")
    http_cache_dir: Optional[Path] = Field(default=None)
    log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(default=None)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("repo")
    @classmethod
    def validate_repo(cls, value: str) -> str:
        ref = RepoRef.parse(value)
        return str(ref)

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid artifact pattern {value!r}: {exc}") from exc
        return value

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, value: str) -> str:
        stripped = value.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("api_url must be an http(s) URL")
        return stripped

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"log_level must be one of {sorted(valid_levels)}")
        return upper

    @property
    def repo_ref(self) -> RepoRef:
        return RepoRef.parse(self.repo)

    @property
    def single_run(self) -> bool:
        return self.run_id is not None

    def resolved_cache_dir(self) -> Path:
        return self.http_cache_dir or default_cache_dir()


class Credentials(BaseSettings):
    """GitHub credentials read from ``GITHUB_TOKEN`` and ``GITHUB_USER``."""

    token: Optional[SecretStr] = Field(default=None, alias="GITHUB_TOKEN")
    user: Optional[str] = Field(default=None, alias="GITHUB_USER")

    model_config = SettingsConfigDict(
        case_sensitive=False, extra="ignore", populate_by_name=True
    )

    @property
    def has_token(self) -> bool:
        return self.token is not None and bool(self.token.get_secret_value())


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    path = config_path.expanduser()
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Configuration file '{path}' contains invalid YAML") from exc
    except OSError as exc:
        raise ConfigError(f"Configuration file '{path}' could not be read: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration file must contain a mapping at the root")
    return data


def _describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "settings"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> FetchSettings:
    """Merge the YAML file at ``config_path`` with ``overrides`` and validate.

    ``None`` values in ``overrides`` mean "not given" and never replace a value
    from the file.
    """

    merged: dict[str, Any] = {}
    if config_path is not None:
        merged.update(load_raw_yaml(config_path))
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value

    if not merged.get("repo"):
        raise ConfigError("must set repo (--repo or GITHUB_REPO)")

    try:
        settings = FetchSettings.model_validate(merged)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid configuration: {_describe_validation_error(exc)}") from exc

    LOGGER.debug(
        "settings resolved",
        extra={"stage": "config", "repo": settings.repo, "single_run": settings.single_run},
    )
    return settings
