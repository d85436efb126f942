"""
TEMPESTWATCH Tempest Ingestion Service

Weather telemetry from a WeatherFlow Tempest station over three channels:
- Local hub UDP broadcast (BroadcastListener)
- Cloud WebSocket stream (CloudStreamClient)
- Cloud REST queries (CloudQueryClient)

Every channel is normalized into the canonical model (WeatherSnapshot,
WindSample, DeviceStatus, StationConfig) before publication.
"""

from .models import (
    ConnectionMode,
    DataSource,
    PrecipType,
    SensorStatus,
    ObservationSummary,
    WeatherSnapshot,
    WindSample,
    DeviceStatus,
    Device,
    StationConfig,
    DeviceObservation,
    StationObservation,
    derive_snapshot,
    derive_wind_sample,
)
from .messages import (
    MessageDecodeError,
    decode_message,
    control_message,
)
from .events import EventChannel
from .broadcast_listener import BroadcastListener
from .stream_client import CloudStreamClient
from .query_client import CloudQueryClient

__all__ = [
    # Model
    "ConnectionMode",
    "DataSource",
    "PrecipType",
    "SensorStatus",
    "ObservationSummary",
    "WeatherSnapshot",
    "WindSample",
    "DeviceStatus",
    "Device",
    "StationConfig",
    "DeviceObservation",
    "StationObservation",
    "derive_snapshot",
    "derive_wind_sample",
    # Wire
    "MessageDecodeError",
    "decode_message",
    "control_message",
    "EventChannel",
    # Channels
    "BroadcastListener",
    "CloudStreamClient",
    "CloudQueryClient",
]
