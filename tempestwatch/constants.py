"""
TEMPESTWATCH Shared Constants

Centralizes magic numbers, default values, and protocol constants used
across the TEMPESTWATCH ingestion service. This module eliminates scattered
literals and provides a single source of truth for system parameters.

Constants are organized by category:
    - Version and identity
    - Network endpoints and ports
    - Wire protocol tags and layouts
    - Timing and intervals
    - File paths and formats

Protocol values follow the WeatherFlow Tempest UDP API (v171) and the
WeatherFlow Smart Weather REST/WebSocket APIs.
"""

from typing import Final

# =============================================================================
# Version and Identity
# =============================================================================

TEMPESTWATCH_VERSION: Final[str] = "0.1.0"
TEMPESTWATCH_NAME: Final[str] = "TEMPESTWATCH"

# =============================================================================
# Network Defaults
# =============================================================================

# Local hub broadcast
BROADCAST_PORT: Final[int] = 50222
BROADCAST_BUFFER_SIZE: Final[int] = 4096

# Cloud endpoints
CLOUD_REST_URL: Final[str] = "https://swd.weatherflow.com/swd/rest/"
CLOUD_WEBSOCKET_URL: Final[str] = "wss://ws.weatherflow.com/swd/data"
CLOUD_USER_AGENT: Final[str] = f"tempestwatch/{TEMPESTWATCH_VERSION}"

# =============================================================================
# Protocol Constants
# =============================================================================

# Inbound message tags
MSG_OBSERVATION: Final[str] = "obs_st"
MSG_RAPID_WIND: Final[str] = "rapid_wind"
MSG_DEVICE_STATUS: Final[str] = "device_status"
MSG_HUB_STATUS: Final[str] = "hub_status"
MSG_RAIN_START: Final[str] = "evt_precip"
MSG_LIGHTNING_STRIKE: Final[str] = "evt_strike"
MSG_ACK: Final[str] = "ack"

# Outbound control tags (cloud stream)
CTRL_LISTEN_START: Final[str] = "listen_start"
CTRL_LISTEN_RAPID_START: Final[str] = "listen_rapid_start"
CTRL_LISTEN_STOP: Final[str] = "listen_stop"

# Observation row layout
OBSERVATION_FIELD_COUNT: Final[int] = 18
RAPID_WIND_FIELD_COUNT: Final[int] = 3

# Device types
DEVICE_TYPE_SENSOR: Final[str] = "ST"
DEVICE_TYPE_HUB: Final[str] = "HB"

# =============================================================================
# Timing Constants
# =============================================================================

# Broadcast receive loop backoff after a receive fault (seconds)
BROADCAST_RETRY_DELAY_SEC: Final[float] = 1.0

# Broadcast data older than this means the hub has gone quiet (seconds)
BROADCAST_STALE_SEC: Final[float] = 300.0

# Cloud timeouts (seconds)
CLOUD_REQUEST_TIMEOUT_SEC: Final[float] = 10.0
CLOUD_CONNECT_TIMEOUT_SEC: Final[float] = 10.0

# Device summary refresh from the query channel (seconds)
SUMMARY_REFRESH_INTERVAL_SEC: Final[float] = 300.0

# Bounded wait for synchronous shutdown (seconds)
SHUTDOWN_TIMEOUT_SEC: Final[float] = 5.0

# =============================================================================
# Physical Constants
# =============================================================================

# Magnus formula coefficients for dew point
MAGNUS_A: Final[float] = 17.27
MAGNUS_B: Final[float] = 237.7

# Standard atmosphere lapse rate (K/m) and barometric exponent
LAPSE_RATE_K_PER_M: Final[float] = 0.0065
BAROMETRIC_EXPONENT: Final[float] = 5.257

# =============================================================================
# File Paths and Formats
# =============================================================================

CONFIG_FILENAME: Final[str] = "tempestwatch.yaml"

# Log settings
LOG_MAX_BYTES: Final[int] = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT: Final[int] = 5
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
