"""
TEMPESTWATCH Configuration System

Unified configuration management for the ingestion service using pydantic
for type-safe validation and YAML for human-readable config files.

Configuration loading priority:
1. Environment variables (TEMPESTWATCH_*)
2. Config file specified via --config CLI argument
3. ./tempestwatch.yaml (current directory)
4. ~/.tempestwatch/config.yaml (user home)
5. Built-in defaults

Usage:
    from tempestwatch.config import load_config, TempestWatchConfig

    # Load with automatic discovery
    config = load_config()

    # Load from specific file
    config = load_config("/path/to/config.yaml")

    # Access configuration
    print(config.connection.mode)
    print(config.broadcast.port)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.tempest.models import ConnectionMode
from tempestwatch.constants import (
    BROADCAST_BUFFER_SIZE,
    BROADCAST_PORT,
    BROADCAST_RETRY_DELAY_SEC,
    CLOUD_CONNECT_TIMEOUT_SEC,
    CLOUD_REQUEST_TIMEOUT_SEC,
    CLOUD_REST_URL,
    CLOUD_USER_AGENT,
    CLOUD_WEBSOCKET_URL,
    SHUTDOWN_TIMEOUT_SEC,
    SUMMARY_REFRESH_INTERVAL_SEC,
)
from tempestwatch.exceptions import ConfigurationError

__all__ = [
    "TempestWatchConfig",
    "ConnectionConfig",
    "BroadcastConfig",
    "CloudConfig",
    "load_config",
    "get_config_paths",
]


# =============================================================================
# Configuration Sections
# =============================================================================


class ConnectionConfig(BaseModel):
    """Channel selection and cloud credentials."""

    mode: ConnectionMode = Field(
        default=ConnectionMode.LOCAL_ONLY,
        description="Which ingestion channels run and which one wins",
    )
    access_token: str = Field(
        default="",
        description="Personal access token for the WeatherFlow cloud APIs",
    )
    station_id: Optional[int] = Field(
        default=None,
        description="Preferred station; the first station on the account is used if unset",
    )

    @field_validator("access_token")
    @classmethod
    def strip_token(cls, v: str) -> str:
        """Tokens pasted from a browser often carry whitespace."""
        return v.strip()


class BroadcastConfig(BaseModel):
    """Local hub UDP broadcast listener settings."""

    port: int = Field(
        default=BROADCAST_PORT,
        ge=0,
        le=65535,
        description="UDP port the hub broadcasts on (0 binds an ephemeral port)",
    )
    bind_address: str = Field(
        default="",
        description="Interface address to bind; empty binds all interfaces",
    )
    buffer_size: int = Field(
        default=BROADCAST_BUFFER_SIZE,
        ge=512,
        le=65535,
        description="Maximum datagram size read per receive",
    )
    retry_delay: float = Field(
        default=BROADCAST_RETRY_DELAY_SEC,
        ge=0.1,
        le=30.0,
        description="Backoff after a receive fault (seconds)",
    )


class CloudConfig(BaseModel):
    """Cloud REST and WebSocket endpoint settings."""

    rest_url: str = Field(
        default=CLOUD_REST_URL,
        description="Base URL of the REST query API",
    )
    websocket_url: str = Field(
        default=CLOUD_WEBSOCKET_URL,
        description="URL of the streaming WebSocket API",
    )
    request_timeout: float = Field(
        default=CLOUD_REQUEST_TIMEOUT_SEC,
        ge=1.0,
        le=120.0,
        description="Total timeout for a REST request (seconds)",
    )
    connect_timeout: float = Field(
        default=CLOUD_CONNECT_TIMEOUT_SEC,
        ge=1.0,
        le=120.0,
        description="Timeout for the WebSocket opening handshake (seconds)",
    )
    summary_refresh_interval: float = Field(
        default=SUMMARY_REFRESH_INTERVAL_SEC,
        ge=10.0,
        le=3600.0,
        description="Interval between device summary refreshes (seconds)",
    )
    user_agent: str = Field(
        default=CLOUD_USER_AGENT,
        description="User-Agent header sent with REST requests",
    )

    @field_validator("rest_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Relative endpoint paths are joined onto the base URL."""
        return v if v.endswith("/") else v + "/"


# =============================================================================
# Master Configuration
# =============================================================================


class TempestWatchConfig(BaseModel):
    """Master configuration aggregating all section configs."""

    model_config = ConfigDict(extra="ignore")

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)

    shutdown_timeout: float = Field(
        default=SHUTDOWN_TIMEOUT_SEC,
        ge=0.5,
        le=60.0,
        description="Bounded wait for synchronous shutdown (seconds)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Global logging level",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional rotating log file path",
    )


# =============================================================================
# Configuration Loading
# =============================================================================


def get_config_paths() -> list[Path]:
    """Get list of config file paths to search.

    Returns paths in priority order (first found wins).
    """
    paths = []

    # Current directory
    paths.append(Path("./tempestwatch.yaml"))
    paths.append(Path("./tempestwatch.yml"))

    # User home directory
    home = Path.home()
    paths.append(home / ".tempestwatch" / "config.yaml")
    paths.append(home / ".tempestwatch" / "config.yml")

    # System config (Linux)
    paths.append(Path("/etc/tempestwatch/config.yaml"))

    return paths


def _apply_env_overrides(config_dict: dict) -> dict:
    """Apply environment variable overrides.

    Environment variables are in format: TEMPESTWATCH_SECTION_KEY
    Example: TEMPESTWATCH_CONNECTION_ACCESS_TOKEN=abc123
    """
    prefix = "TEMPESTWATCH_"

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        # Parse key: TEMPESTWATCH_BROADCAST_PORT -> broadcast.port
        parts = key[len(prefix) :].lower().split("_")
        if len(parts) < 2:
            continue

        section = parts[0]
        setting = "_".join(parts[1:])

        if section not in config_dict or not isinstance(config_dict[section], dict):
            config_dict[section] = {}

        # Tokens are opaque strings even when they look numeric
        if setting == "access_token":
            config_dict[section][setting] = value
            continue

        # Type conversion for common types
        if value.lower() in ("true", "false"):
            value = value.lower() == "true"
        elif value.isdigit():
            value = int(value)
        else:
            try:
                value = float(value)
            except ValueError:
                pass  # Keep as string

        config_dict[section][setting] = value

    return config_dict


def load_config(config_path: Optional[str | Path] = None) -> TempestWatchConfig:
    """Load configuration from file with validation.

    Args:
        config_path: Explicit config file path, or None for auto-discovery

    Returns:
        Validated TempestWatchConfig object

    Raises:
        ConfigurationError: If config file is invalid or cannot be loaded
    """
    config_dict: dict = {}

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        config_files = [path]
    else:
        config_files = get_config_paths()

    # Load first found config file
    for path in config_files:
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    config_dict = yaml.safe_load(f) or {}
                break
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    config_dict = _apply_env_overrides(config_dict)

    try:
        return TempestWatchConfig(**config_dict)
    except Exception as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
