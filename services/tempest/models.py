"""
TEMPESTWATCH Canonical Weather Model

Shared value types every ingestion channel is normalized into before being
published to the consumer:

- WeatherSnapshot: one full observation (18 fields) plus an optional
  composed ObservationSummary from the cloud query channel
- WindSample: one rapid-wind reading
- DeviceStatus: advisory sensor health
- StationConfig / Device: account metadata from the cloud query channel
- ConnectionMode / DataSource: channel selection and the active-source label

Row layouts follow the Tempest UDP API v171 ``obs_st`` and ``rapid_wind``
messages; the same layout is used by the cloud stream and the device-level
REST observation endpoint.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum, IntFlag
from typing import Any, Dict, List, Optional, Sequence

from tempestwatch.constants import (
    BAROMETRIC_EXPONENT,
    DEVICE_TYPE_HUB,
    DEVICE_TYPE_SENSOR,
    LAPSE_RATE_K_PER_M,
    MAGNUS_A,
    MAGNUS_B,
    OBSERVATION_FIELD_COUNT,
    RAPID_WIND_FIELD_COUNT,
)

__all__ = [
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
    "epoch_to_datetime",
]


# =============================================================================
# Enumerations
# =============================================================================


class ConnectionMode(Enum):
    """Which ingestion channels run, and which one backs the published data."""
    LOCAL_ONLY = "local_only"
    CLOUD_WITH_LOCAL_FALLBACK = "cloud_with_local_fallback"
    CLOUD_ONLY = "cloud_only"

    @property
    def requires_cloud(self) -> bool:
        """Check if this mode needs a credential and a station."""
        return self is not ConnectionMode.LOCAL_ONLY


class DataSource(Enum):
    """Human-readable label of the channel currently backing the snapshot."""
    NONE = "None"
    LOCAL = "Local broadcast"
    CLOUD = "Cloud stream"
    CLOUD_WITH_LOCAL_BACKUP = "Cloud stream (local backup)"
    LOCAL_CLOUD_FAILED = "Local broadcast (cloud failed)"
    LOCAL_CLOUD_ERROR = "Local broadcast (cloud error)"
    LOCAL_CLOUD_DISCONNECTED = "Local broadcast (cloud disconnected)"


class PrecipType(IntEnum):
    """Precipitation type reported in position 13 of an observation row."""
    NONE = 0
    RAIN = 1
    HAIL = 2
    RAIN_AND_HAIL = 3


class SensorStatus(IntFlag):
    """Sensor status bitmask carried by device_status messages."""
    OK = 0x0
    LIGHTNING_FAILED = 0x1
    LIGHTNING_NOISE = 0x2
    LIGHTNING_DISTURBER = 0x4
    PRESSURE_FAILED = 0x8
    TEMPERATURE_FAILED = 0x10
    HUMIDITY_FAILED = 0x20
    WIND_FAILED = 0x40
    PRECIP_FAILED = 0x80
    LIGHT_UV_FAILED = 0x100
    POWER_BOOSTER_DEPLETED = 0x8000
    POWER_BOOSTER_SHORE_POWER = 0x10000


# Bits that describe a broken sensor rather than a power state
_SENSOR_FAULT_BITS = (
    SensorStatus.LIGHTNING_FAILED,
    SensorStatus.LIGHTNING_NOISE,
    SensorStatus.LIGHTNING_DISTURBER,
    SensorStatus.PRESSURE_FAILED,
    SensorStatus.TEMPERATURE_FAILED,
    SensorStatus.HUMIDITY_FAILED,
    SensorStatus.WIND_FAILED,
    SensorStatus.PRECIP_FAILED,
    SensorStatus.LIGHT_UV_FAILED,
)


# =============================================================================
# Helpers
# =============================================================================


def epoch_to_datetime(epoch: float) -> datetime:
    """
    Convert epoch seconds to a UTC-aware datetime.

    Raises:
        OverflowError, OSError, ValueError: if the epoch is outside the
            platform's time range
    """
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc)


def _valid_epoch(epoch: float) -> Optional[datetime]:
    try:
        return epoch_to_datetime(epoch)
    except (OverflowError, OSError, ValueError):
        return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _optional_float(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    return float(value) if _is_number(value) else None


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    return int(value) if _is_number(value) else None


# =============================================================================
# Observation Summary
# =============================================================================


@dataclass(frozen=True)
class ObservationSummary:
    """
    Derived values computed by the cloud for the latest observation.

    Sourced from the query channel (and occasionally carried on stream
    frames); composed onto a WeatherSnapshot, never merged into it.
    """
    pressure_trend: Optional[str] = None
    strike_count_1h: Optional[int] = None
    strike_count_3h: Optional[int] = None
    strike_last_distance: Optional[float] = None
    strike_last_epoch: Optional[int] = None
    precip_total_1h: Optional[float] = None
    precip_accum_local_yesterday: Optional[float] = None
    precip_accum_local_yesterday_final: Optional[float] = None
    precip_analysis_type_yesterday: Optional[int] = None
    feels_like: Optional[float] = None
    heat_index: Optional[float] = None
    wind_chill: Optional[float] = None
    wet_bulb_temperature: Optional[float] = None
    delta_t: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObservationSummary":
        """Build a summary from the API ``summary`` object; absent keys are None."""
        trend = data.get("pressure_trend")
        return cls(
            pressure_trend=trend if isinstance(trend, str) else None,
            strike_count_1h=_optional_int(data, "strike_count_1h"),
            strike_count_3h=_optional_int(data, "strike_count_3h"),
            strike_last_distance=_optional_float(data, "strike_last_dist"),
            strike_last_epoch=_optional_int(data, "strike_last_epoch"),
            precip_total_1h=_optional_float(data, "precip_total_1h"),
            precip_accum_local_yesterday=_optional_float(data, "precip_accum_local_yesterday"),
            precip_accum_local_yesterday_final=_optional_float(
                data, "precip_accum_local_yesterday_final"
            ),
            precip_analysis_type_yesterday=_optional_int(data, "precip_analysis_type_yesterday"),
            feels_like=_optional_float(data, "feels_like"),
            heat_index=_optional_float(data, "heat_index"),
            wind_chill=_optional_float(data, "wind_chill"),
            wet_bulb_temperature=_optional_float(data, "wet_bulb_temperature"),
            delta_t=_optional_float(data, "delta_t"),
        )


# =============================================================================
# Weather Snapshot
# =============================================================================


@dataclass(frozen=True)
class WeatherSnapshot:
    """Canonical full observation from the integrated sensor head."""
    timestamp: datetime

    # Wind (m/s, degrees, seconds)
    wind_lull: float
    wind_avg: float
    wind_gust: float
    wind_direction: float
    wind_sample_interval: float

    # Air (mb, °C, %)
    station_pressure: float
    air_temperature: float
    relative_humidity: float

    # Light (lux, index, W/m²)
    illuminance: float
    uv: float
    solar_radiation: float

    # Precipitation (mm over the report interval)
    precip_accumulated: float
    precip_type: PrecipType

    # Lightning (km, count)
    lightning_avg_distance: float
    lightning_strike_count: int

    # Device (volts, minutes)
    battery: float
    report_interval: int

    summary: Optional[ObservationSummary] = None

    def with_summary(self, summary: Optional[ObservationSummary]) -> "WeatherSnapshot":
        """Return a copy with ``summary`` attached; the observation is unchanged."""
        return replace(self, summary=summary)

    def dew_point(self) -> float:
        """Dew point in °C from temperature and humidity (Magnus formula)."""
        alpha = (MAGNUS_A * self.air_temperature) / (MAGNUS_B + self.air_temperature)
        alpha += math.log(self.relative_humidity / 100.0)
        return (MAGNUS_B * alpha) / (MAGNUS_A - alpha)

    def sea_level_pressure(self, elevation_m: float) -> float:
        """Reduce station pressure to sea level for the given elevation."""
        temp_k = self.air_temperature + 273.15
        factor = (1 - (LAPSE_RATE_K_PER_M * elevation_m / temp_k)) ** BAROMETRIC_EXPONENT
        return self.station_pressure / factor


def derive_snapshot(row: Sequence[Any]) -> Optional[WeatherSnapshot]:
    """
    Derive a WeatherSnapshot from one raw observation row.

    The first 18 positions map, in order, to the snapshot fields. Rows that
    are too short, carry a non-numeric value in any of those positions, or
    report an unknown precipitation type yield None; no partial snapshot is
    ever built.

    Args:
        row: Observation row (list of numbers) from obs_st or the REST API

    Returns:
        WeatherSnapshot, or None if the row is unusable
    """
    if not isinstance(row, (list, tuple)) or len(row) < OBSERVATION_FIELD_COUNT:
        return None

    values = row[:OBSERVATION_FIELD_COUNT]
    if not all(_is_number(v) for v in values):
        return None

    try:
        precip_type = PrecipType(int(values[13]))
    except ValueError:
        return None
    timestamp = _valid_epoch(values[0])
    if timestamp is None:
        return None

    return WeatherSnapshot(
        timestamp=timestamp,
        wind_lull=float(values[1]),
        wind_avg=float(values[2]),
        wind_gust=float(values[3]),
        wind_direction=float(values[4]),
        wind_sample_interval=float(values[5]),
        station_pressure=float(values[6]),
        air_temperature=float(values[7]),
        relative_humidity=float(values[8]),
        illuminance=float(values[9]),
        uv=float(values[10]),
        solar_radiation=float(values[11]),
        precip_accumulated=float(values[12]),
        precip_type=precip_type,
        lightning_avg_distance=float(values[14]),
        lightning_strike_count=int(values[15]),
        battery=float(values[16]),
        report_interval=int(values[17]),
    )


# =============================================================================
# Wind Sample
# =============================================================================


@dataclass(frozen=True)
class WindSample:
    """One rapid-wind reading (m/s, degrees)."""
    timestamp: datetime
    speed: float
    direction: float


def derive_wind_sample(ob: Sequence[Any]) -> Optional[WindSample]:
    """
    Derive a WindSample from a rapid_wind ``ob`` array.

    Args:
        ob: [epoch seconds, speed, direction]

    Returns:
        WindSample, or None if the array is not exactly three numbers
    """
    if not isinstance(ob, (list, tuple)) or len(ob) != RAPID_WIND_FIELD_COUNT:
        return None
    if not all(_is_number(v) for v in ob):
        return None
    timestamp = _valid_epoch(ob[0])
    if timestamp is None:
        return None
    return WindSample(
        timestamp=timestamp,
        speed=float(ob[1]),
        direction=float(ob[2]),
    )


# =============================================================================
# Device Status
# =============================================================================


@dataclass(frozen=True)
class DeviceStatus:
    """Advisory health report from the sensor head; not used for safety."""
    serial_number: str
    hub_serial_number: str
    timestamp: datetime
    uptime: int
    voltage: float
    firmware_revision: int
    rssi: int
    hub_rssi: int
    sensor_status: int

    @property
    def sensor_flags(self) -> SensorStatus:
        """Sensor status bitmask as flags."""
        return SensorStatus(self.sensor_status)

    @property
    def failed_sensors(self) -> List[SensorStatus]:
        """Sensor-failure bits that are set, excluding power-booster state."""
        return [bit for bit in _SENSOR_FAULT_BITS if self.sensor_status & bit]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceStatus":
        """
        Build from a device_status payload.

        Raises:
            ValueError: if ``timestamp`` is missing or not a number
                or out of range
        """
        timestamp = data.get("timestamp")
        if not _is_number(timestamp):
            raise ValueError("device_status without a numeric timestamp")
        reported_at = _valid_epoch(timestamp)
        if reported_at is None:
            raise ValueError(f"device_status timestamp out of range: {timestamp}")
        return cls(
            serial_number=str(data.get("serial_number") or ""),
            hub_serial_number=str(data.get("hub_sn") or ""),
            timestamp=reported_at,
            uptime=_optional_int(data, "uptime") or 0,
            voltage=_optional_float(data, "voltage") or 0.0,
            firmware_revision=_optional_int(data, "firmware_revision") or 0,
            rssi=_optional_int(data, "rssi") or 0,
            hub_rssi=_optional_int(data, "hub_rssi") or 0,
            sensor_status=_optional_int(data, "sensor_status") or 0,
        )


# =============================================================================
# Station Metadata
# =============================================================================


@dataclass(frozen=True)
class Device:
    """A physical unit registered to a station."""
    device_id: int
    device_type: str
    serial_number: str = ""
    hardware_revision: str = ""
    firmware_revision: str = ""

    @property
    def is_sensor(self) -> bool:
        """The integrated sensor head; the canonical telemetry source."""
        return self.device_type == DEVICE_TYPE_SENSOR

    @property
    def is_hub(self) -> bool:
        """The relay hub; carries no telemetry of its own."""
        return self.device_type == DEVICE_TYPE_HUB

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        if not isinstance(data, dict):
            raise TypeError(f"device entry is not an object: {data!r}")
        return cls(
            device_id=int(data["device_id"]),
            device_type=str(data.get("device_type") or ""),
            serial_number=str(data.get("serial_number") or ""),
            hardware_revision=str(data.get("hardware_revision") or ""),
            firmware_revision=str(data.get("firmware_revision") or ""),
        )


@dataclass(frozen=True)
class StationConfig:
    """A weather-station account entity and its devices."""
    station_id: int
    name: str = ""
    public_name: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    elevation: float = 0.0
    timezone: str = ""
    devices: tuple = field(default_factory=tuple)

    @property
    def display_name(self) -> str:
        return self.name or self.public_name or f"Station {self.station_id}"

    @property
    def sensor_devices(self) -> List[Device]:
        """Devices of type ST, in account order."""
        return [d for d in self.devices if d.is_sensor]

    @property
    def hub_device(self) -> Optional[Device]:
        return next((d for d in self.devices if d.is_hub), None)

    def __str__(self) -> str:
        return self.display_name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StationConfig":
        """
        Build from one entry of the ``stations`` list.

        Raises:
            KeyError, TypeError, ValueError: if required keys are missing
                or mistyped
        """
        if not isinstance(data, dict):
            raise TypeError(f"station entry is not an object: {data!r}")
        devices = data.get("devices") or []
        if not isinstance(devices, list):
            raise TypeError("station 'devices' is not a list")
        return cls(
            station_id=int(data["station_id"]),
            name=str(data.get("name") or ""),
            public_name=str(data.get("public_name") or ""),
            latitude=_optional_float(data, "latitude") or 0.0,
            longitude=_optional_float(data, "longitude") or 0.0,
            elevation=_optional_float(data, "elevation") or 0.0,
            timezone=str(data.get("timezone") or ""),
            devices=tuple(Device.from_dict(d) for d in devices),
        )


# =============================================================================
# Query Responses
# =============================================================================


@dataclass(frozen=True)
class DeviceObservation:
    """Latest observation for one device from the query channel."""
    device_id: int
    source: str = ""
    summary: Optional[ObservationSummary] = None
    observations: tuple = field(default_factory=tuple)

    def latest_snapshot(self) -> Optional[WeatherSnapshot]:
        """Snapshot of the newest row with the summary composed onto it."""
        if not self.observations:
            return None
        snapshot = derive_snapshot(self.observations[0])
        if snapshot is None:
            return None
        return snapshot.with_summary(self.summary)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceObservation":
        summary = data.get("summary")
        obs = data.get("obs") or []
        if not isinstance(obs, list):
            raise TypeError("device observation 'obs' is not a list")
        return cls(
            device_id=int(data["device_id"]),
            source=str(data.get("source") or ""),
            summary=ObservationSummary.from_dict(summary) if isinstance(summary, dict) else None,
            observations=tuple(obs),
        )


@dataclass(frozen=True)
class StationObservation:
    """Latest station-level observation from the query channel."""
    station_id: int
    observations: tuple = field(default_factory=tuple)
    status_code: Optional[int] = None
    status_message: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StationObservation":
        status = data.get("status")
        if not isinstance(status, dict):
            status = {}
        obs = data.get("obs") or []
        if not isinstance(obs, list):
            raise TypeError("station observation 'obs' is not a list")
        return cls(
            station_id=int(data["station_id"]),
            observations=tuple(obs),
            status_code=_optional_int(status, "status_code"),
            status_message=str(status.get("status_message") or ""),
        )
