"""
TEMPESTWATCH Wire Messages

Decodes inbound JSON from the hub broadcast and the cloud stream into a
closed set of message variants keyed by the ``type`` tag. Each variant
validates its own required fields, so a decoded message is always usable;
anything that fails validation raises MessageDecodeError.

    obs_st                             -> ObservationMessage
    rapid_wind                         -> RapidWindMessage
    device_status                      -> DeviceStatusMessage
    ack                                -> AckMessage
    evt_precip, evt_strike, hub_status -> EventMessage
    anything else                      -> UnrecognizedMessage

Outbound cloud-stream control frames are built by control_message().
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from services.tempest.models import (
    DeviceStatus,
    ObservationSummary,
    WeatherSnapshot,
    WindSample,
    derive_snapshot,
    derive_wind_sample,
)
from tempestwatch.constants import (
    CTRL_LISTEN_RAPID_START,
    CTRL_LISTEN_START,
    CTRL_LISTEN_STOP,
    MSG_ACK,
    MSG_DEVICE_STATUS,
    MSG_HUB_STATUS,
    MSG_LIGHTNING_STRIKE,
    MSG_OBSERVATION,
    MSG_RAIN_START,
    MSG_RAPID_WIND,
    OBSERVATION_FIELD_COUNT,
)
from tempestwatch.exceptions import TempestWatchError

__all__ = [
    "MessageDecodeError",
    "ObservationMessage",
    "RapidWindMessage",
    "DeviceStatusMessage",
    "AckMessage",
    "EventMessage",
    "UnrecognizedMessage",
    "Message",
    "decode_message",
    "control_message",
    "CONTROL_TYPES",
]

CONTROL_TYPES = frozenset({CTRL_LISTEN_START, CTRL_LISTEN_RAPID_START, CTRL_LISTEN_STOP})


class MessageDecodeError(TempestWatchError):
    """Raised when a datagram or frame cannot be decoded into a message."""


# =============================================================================
# Message Variants
# =============================================================================


@dataclass(frozen=True)
class ObservationMessage:
    """Full observation from the sensor head (obs_st)."""
    snapshot: WeatherSnapshot
    serial_number: str = ""
    hub_serial_number: str = ""
    device_id: Optional[int] = None
    firmware_revision: Optional[int] = None
    type: str = field(default=MSG_OBSERVATION, init=False)


@dataclass(frozen=True)
class RapidWindMessage:
    """Rapid-wind reading (rapid_wind); the cloud stream also sends device_id."""
    sample: WindSample
    serial_number: str = ""
    hub_serial_number: str = ""
    device_id: Optional[int] = None
    type: str = field(default=MSG_RAPID_WIND, init=False)


@dataclass(frozen=True)
class DeviceStatusMessage:
    """Sensor head health report (device_status)."""
    status: DeviceStatus
    type: str = field(default=MSG_DEVICE_STATUS, init=False)


@dataclass(frozen=True)
class AckMessage:
    """Cloud acknowledgement of a control frame; correlation only."""
    correlation_id: Optional[str] = None
    type: str = field(default=MSG_ACK, init=False)


@dataclass(frozen=True)
class EventMessage:
    """Informational event (rain start, lightning strike, hub status)."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnrecognizedMessage:
    """Well-formed JSON with a tag this service does not handle."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


Message = Union[
    ObservationMessage,
    RapidWindMessage,
    DeviceStatusMessage,
    AckMessage,
    EventMessage,
    UnrecognizedMessage,
]


# =============================================================================
# Per-variant Decoders
# =============================================================================


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _decode_observation(payload: Dict[str, Any]) -> ObservationMessage:
    obs = payload.get("obs")
    if not isinstance(obs, list) or not obs:
        raise MessageDecodeError("obs_st without observation rows")
    for row in obs:
        if not isinstance(row, list) or len(row) < OBSERVATION_FIELD_COUNT:
            raise MessageDecodeError(
                f"obs_st row has fewer than {OBSERVATION_FIELD_COUNT} fields"
            )

    # Newest entry first
    snapshot = derive_snapshot(obs[0])
    if snapshot is None:
        raise MessageDecodeError("obs_st row has non-numeric or out-of-range fields")

    summary = payload.get("summary")
    if isinstance(summary, dict):
        snapshot = snapshot.with_summary(ObservationSummary.from_dict(summary))

    return ObservationMessage(
        snapshot=snapshot,
        serial_number=str(payload.get("serial_number") or ""),
        hub_serial_number=str(payload.get("hub_sn") or ""),
        device_id=_optional_int(payload.get("device_id")),
        firmware_revision=_optional_int(payload.get("firmware_revision")),
    )


def _decode_rapid_wind(payload: Dict[str, Any]) -> RapidWindMessage:
    sample = derive_wind_sample(payload.get("ob"))
    if sample is None:
        raise MessageDecodeError("rapid_wind 'ob' is not a 3-element numeric array")
    return RapidWindMessage(
        sample=sample,
        serial_number=str(payload.get("serial_number") or ""),
        hub_serial_number=str(payload.get("hub_sn") or ""),
        device_id=_optional_int(payload.get("device_id")),
    )


def _decode_device_status(payload: Dict[str, Any]) -> DeviceStatusMessage:
    try:
        return DeviceStatusMessage(status=DeviceStatus.from_dict(payload))
    except (TypeError, ValueError) as e:
        raise MessageDecodeError(f"device_status invalid: {e}") from e


def _decode_ack(payload: Dict[str, Any]) -> AckMessage:
    cid = payload.get("id")
    return AckMessage(correlation_id=str(cid) if cid is not None else None)


_DECODERS: Dict[str, Callable[[Dict[str, Any]], Message]] = {
    MSG_OBSERVATION: _decode_observation,
    MSG_RAPID_WIND: _decode_rapid_wind,
    MSG_DEVICE_STATUS: _decode_device_status,
    MSG_ACK: _decode_ack,
}

_EVENT_TYPES = frozenset({MSG_RAIN_START, MSG_LIGHTNING_STRIKE, MSG_HUB_STATUS})


# =============================================================================
# Public API
# =============================================================================


def decode_message(data: Union[str, bytes]) -> Message:
    """
    Decode one datagram or frame into a message variant.

    Args:
        data: UTF-8 JSON text (bytes are decoded first)

    Returns:
        The matching message variant

    Raises:
        MessageDecodeError: on invalid UTF-8/JSON, a non-object payload,
            a missing type tag, or a variant that fails validation
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MessageDecodeError(f"Not UTF-8 text: {e}") from e

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise MessageDecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MessageDecodeError("Message is not a JSON object")

    msg_type = payload.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise MessageDecodeError("Message has no type tag")

    decoder = _DECODERS.get(msg_type)
    if decoder is not None:
        return decoder(payload)
    if msg_type in _EVENT_TYPES:
        return EventMessage(type=msg_type, payload=payload)
    return UnrecognizedMessage(type=msg_type, payload=payload)


def control_message(kind: str, device_id: int, correlation_id: str) -> str:
    """
    Build an outbound cloud-stream control frame.

    Args:
        kind: listen_start, listen_rapid_start or listen_stop
        device_id: Device to (un)subscribe
        correlation_id: Fresh id echoed back in the ack

    Returns:
        JSON text ready to send
    """
    if kind not in CONTROL_TYPES:
        raise ValueError(f"Unknown control message type: {kind}")
    return json.dumps({"type": kind, "device_id": device_id, "id": correlation_id})
