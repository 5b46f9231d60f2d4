"""Configuration management for GridStream.

Handles the TOML config file, environment variables, named connection
profiles, and the adapter settings that drive fetching and persistence.

Connection precedence (highest to lowest):
1. CLI flags (--host, --port, etc.)
2. --dsn flag (parsed into components)
3. Environment variables (PGHOST, PGPORT, PGDATABASE, PGUSER, PGPASSWORD)
4. Named profile (--profile or GRIDSTREAM_PROFILE env var)
5. Built-in defaults

Adapter settings come from the ``[adapter]`` table and may be overridden
with GRIDSTREAM_* environment variables.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from gridstream.core.exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "gridstream" / "config.toml"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "gridstream" / "tabs"

_PG_ENV_VARS: dict[str, str] = {
    "PGHOST": "host",
    "PGPORT": "port",
    "PGDATABASE": "dbname",
    "PGUSER": "user",
    "PGPASSWORD": "password",  # pragma: allowlist secret
}

_ADAPTER_ENV_VARS: dict[str, str] = {
    "GRIDSTREAM_BATCH_SIZE": "batch_size",
    "GRIDSTREAM_MAX_PERSISTED_ROWS": "max_persisted_rows",
    "GRIDSTREAM_CACHE_DIR": "cache_dir",
    "GRIDSTREAM_POOL_TIMEOUT": "pool_timeout",
    "GRIDSTREAM_STRICT_INVARIANTS": "strict_invariants",
}

_VALID_SSLMODES = frozenset(
    {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}
)


def parse_dsn(dsn: str) -> dict[str, Any]:
    """Supports postgresql:// and postgres:// schemes with query params."""
    parsed = urlparse(dsn)
    if parsed.scheme not in ("postgresql", "postgres"):
        msg = f"Invalid DSN scheme: '{parsed.scheme}'. Expected 'postgresql' or 'postgres'"
        raise ConfigError(msg)

    result: dict[str, Any] = {}
    if parsed.hostname:
        result["host"] = parsed.hostname
    if parsed.port:
        result["port"] = parsed.port
    if parsed.path and parsed.path.strip("/"):
        result["dbname"] = parsed.path.strip("/")
    if parsed.username:
        result["user"] = parsed.username
    if parsed.password:
        result["password"] = parsed.password
    query_params = parse_qs(parsed.query)
    for key in ("sslmode", "application_name"):
        if key in query_params:
            result[key] = query_params[key][0]
    if "connect_timeout" in query_params:
        result["connect_timeout"] = int(query_params["connect_timeout"][0])
    return result


class ConnectionProfile(BaseModel):
    dsn: str | None = None
    host: str = "localhost"
    port: int = 5432
    dbname: str = "postgres"
    user: str | None = None
    password: str | None = None
    sslmode: str = "prefer"
    connect_timeout: int = 10
    application_name: str = "gridstream"

    @model_validator(mode="before")
    @classmethod
    def parse_dsn_into_components(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("dsn"):
            for key, value in parse_dsn(data["dsn"]).items():
                data.setdefault(key, value)
        return data

    @field_validator("sslmode")
    @classmethod
    def validate_sslmode(cls, v: str) -> str:
        if v not in _VALID_SSLMODES:
            msg = f"Invalid sslmode: '{v}'. Must be one of: {', '.join(sorted(_VALID_SSLMODES))}"
            raise ValueError(msg)
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v


class AdapterSettings(BaseModel):
    """Knobs for the data adapter and the engine pool behind it."""

    batch_size: int = Field(default=1000, ge=1)
    max_persisted_rows: int = Field(default=1000, ge=0)
    cache_dir: Path = DEFAULT_CACHE_DIR
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=4, ge=1)
    pool_timeout: float = Field(default=30.0, gt=0)
    statement_timeout: float = Field(default=0.0, ge=0)
    strict_invariants: bool = False

    @model_validator(mode="after")
    def check_pool_bounds(self) -> AdapterSettings:
        if self.pool_min_size > self.pool_max_size:
            msg = (
                f"pool_min_size ({self.pool_min_size}) must not exceed "
                f"pool_max_size ({self.pool_max_size})"
            )
            raise ValueError(msg)
        return self


class AppConfig(BaseModel):
    default_format: str = "table"
    default_profile: str | None = None
    sentry_dsn: str | None = None
    adapter: AdapterSettings = AdapterSettings()
    profiles: dict[str, ConnectionProfile] = {}


class ResolvedConfig(BaseModel):
    host: str = "localhost"
    port: int = 5432
    dbname: str = "postgres"
    user: str | None = None
    password: str | None = None
    sslmode: str = "prefer"
    connect_timeout: int = 10
    application_name: str = "gridstream"
    default_format: str = "table"
    active_profile: str | None = None
    adapter: AdapterSettings = AdapterSettings()
    sources: dict[str, str] = {}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def conninfo(self) -> str:
        """libpq keyword/value connection string (password excluded)."""
        parts = [
            f"host={self.host}",
            f"port={self.port}",
            f"dbname={self.dbname}",
            f"sslmode={self.sslmode}",
            f"connect_timeout={self.connect_timeout}",
            f"application_name={self.application_name}",
        ]
        if self.user:
            parts.append(f"user={self.user}")
        return " ".join(parts)


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Returns the default AppConfig if the file doesn't exist.
    Raises ConfigError on malformed TOML or invalid config.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigError(msg) from e


def _resolve_adapter_settings(
    config: AppConfig, sources: dict[str, str]
) -> AdapterSettings:
    values = config.adapter.model_dump()
    for key in values:
        sources[f"adapter.{key}"] = (
            "config" if key in config.adapter.model_fields_set else "default"
        )

    for env_var, field_name in _ADAPTER_ENV_VARS.items():
        raw = os.environ.get(env_var)
        if raw is None:
            continue
        values[field_name] = raw
        sources[f"adapter.{field_name}"] = f"env: {env_var}"

    try:
        return AdapterSettings.model_validate(values)
    except ValueError as e:
        raise ConfigError(f"Invalid adapter settings: {e}") from e


def resolve_config(
    config: AppConfig,
    profile_name: str | None = None,
    dsn: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConfig:
    """Resolve configuration using the precedence chain.

    CLI > DSN > env > profile > built-in defaults.
    """
    sources: dict[str, str] = {}
    resolved: dict[str, Any] = ConnectionProfile().model_dump(exclude={"dsn"})
    for key in resolved:
        sources[key] = "default"

    resolved["default_format"] = config.default_format
    sources["default_format"] = (
        "config" if "default_format" in config.model_fields_set else "default"
    )

    # Named profile
    effective_profile = (
        profile_name
        or os.environ.get("GRIDSTREAM_PROFILE")
        or config.default_profile
    )
    if effective_profile:
        if effective_profile not in config.profiles:
            available = ", ".join(sorted(config.profiles)) or "none"
            msg = f"Unknown profile: '{effective_profile}'. Available profiles: {available}"
            raise ConfigError(msg)
        profile = config.profiles[effective_profile]
        for key in profile.model_fields_set:
            if key in resolved:
                resolved[key] = getattr(profile, key)
                sources[key] = f"profile: {effective_profile}"

    # Environment variables
    for env_var, field_name in _PG_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        if field_name == "port":
            try:
                resolved[field_name] = int(value)
            except ValueError:
                msg = f"Invalid {env_var} value: '{value}'. Must be an integer"
                raise ConfigError(msg) from None
        else:
            resolved[field_name] = value
        sources[field_name] = f"env: {env_var}"

    # DSN flag
    if dsn:
        for key, value in parse_dsn(dsn).items():
            if key in resolved:
                resolved[key] = value
                sources[key] = "dsn"

    # CLI flags
    cli_to_field = {
        "host": "host",
        "port": "port",
        "database": "dbname",
        "user": "user",
        "password": "password",  # pragma: allowlist secret
        "sslmode": "sslmode",
    }
    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            resolved[field_name] = value
            sources[field_name] = f"cli: --{cli_name}"

    resolved["adapter"] = _resolve_adapter_settings(config, sources)
    resolved["active_profile"] = effective_profile
    resolved["sources"] = sources
    return ResolvedConfig(**resolved)
