"""
TEMPESTWATCH Cloud Stream Client

Persistent WebSocket connection to the WeatherFlow streaming API.

The token is carried in the connection URL. Telemetry only flows after a
control frame subscribes a device:

    {"type": "listen_start", "device_id": 12345, "id": "<correlation id>"}
    {"type": "listen_rapid_start", "device_id": 12345, "id": "..."}
    {"type": "listen_stop", "device_id": 12345, "id": "..."}

Observation and rapid-wind subscriptions are independent. Inbound frames
share the obs_st / rapid_wind / evt_* shapes of the hub broadcast plus
``ack`` frames echoing the correlation id.

The client never reconnects on its own; the orchestrator decides when to
try again.
"""

import asyncio
from typing import Optional

import aiohttp

from services.tempest.events import EventChannel
from services.tempest.messages import (
    AckMessage,
    EventMessage,
    MessageDecodeError,
    ObservationMessage,
    RapidWindMessage,
    control_message,
    decode_message,
)
from tempestwatch.constants import (
    CLOUD_CONNECT_TIMEOUT_SEC,
    CLOUD_WEBSOCKET_URL,
    CTRL_LISTEN_RAPID_START,
    CTRL_LISTEN_START,
    CTRL_LISTEN_STOP,
    MSG_LIGHTNING_STRIKE,
    MSG_RAIN_START,
)
from tempestwatch.logging_config import generate_correlation_id, get_logger

logger = get_logger(__name__)


class CloudStreamClient:
    """
    WebSocket client for real-time cloud telemetry.

    Channels:
        observation_received(WeatherSnapshot)
        wind_received(WindSample)
        connection_status_changed(bool)
        error(str)
    """

    def __init__(
        self,
        url: str = CLOUD_WEBSOCKET_URL,
        connect_timeout: float = CLOUD_CONNECT_TIMEOUT_SEC,
    ):
        self.url = url
        self.connect_timeout = connect_timeout

        self.observation_received = EventChannel("observation_received")
        self.wind_received = EventChannel("wind_received")
        self.connection_status_changed = EventChannel("connection_status_changed")
        self.error = EventChannel("error")

        self._token: str = ""
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._task: Optional[asyncio.Task] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def has_credential(self) -> bool:
        return bool(self._token)

    def set_credential(self, token: Optional[str]):
        """Set the access token used by the next connect()."""
        self._token = (token or "").strip()

    def _redact(self, text: str) -> str:
        if self._token:
            return text.replace(self._token, "***")
        return text

    async def _set_connected(self, connected: bool):
        # Notify on transitions only
        if self._connected == connected:
            return
        self._connected = connected
        await self.connection_status_changed.emit(connected)

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """
        Open the WebSocket and start the receive loop.

        Returns:
            True if connected (including when already connected)
        """
        if self._connected:
            return True

        if not self._token:
            logger.error("Cannot connect to cloud stream - no access token provided")
            await self.error.emit("No access token provided")
            return False

        # Leftovers from a connection the server closed
        await self._close_transport()

        session = aiohttp.ClientSession()
        try:
            ws = await asyncio.wait_for(
                session.ws_connect(self.url, params={"token": self._token}),
                timeout=self.connect_timeout,
            )
        except asyncio.CancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await session.close()
            reason = self._redact(str(e))
            logger.error(f"Failed to connect to cloud stream: {reason}")
            await self.error.emit(f"Connection failed: {reason}")
            await self._set_connected(False)
            return False

        self._session = session
        self._ws = ws
        self._task = asyncio.create_task(self._receive_loop(ws), name="tempest-cloud-stream")
        logger.info("Connected to cloud stream")
        await self._set_connected(True)
        return True

    async def disconnect(self):
        """Cancel the receive loop, close the socket and session; always safe."""
        was_open = self._ws is not None
        await self._set_connected(False)

        if self._task is not None:
            if self._task is not asyncio.current_task():
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.error(f"Cloud stream receive loop ended with error: {e}")
            self._task = None

        await self._close_transport()

        if was_open:
            logger.info("Disconnected from cloud stream")

    async def _close_transport(self):
        ws, self._ws = self._ws, None
        session, self._session = self._session, None

        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except (aiohttp.ClientError, OSError) as e:
                logger.error(f"Error closing cloud stream: {e}")
        if session is not None and not session.closed:
            await session.close()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe_observations(self, device_id: int) -> bool:
        """Start full-observation telemetry for a device."""
        return await self._send_control(CTRL_LISTEN_START, device_id)

    async def subscribe_rapid_wind(self, device_id: int) -> bool:
        """Start rapid-wind telemetry for a device."""
        return await self._send_control(CTRL_LISTEN_RAPID_START, device_id)

    async def unsubscribe(self, device_id: int) -> bool:
        """Stop telemetry for a device."""
        return await self._send_control(CTRL_LISTEN_STOP, device_id)

    async def _send_control(self, kind: str, device_id: int) -> bool:
        if not self._connected or self._ws is None or self._ws.closed:
            logger.error(f"Cannot send {kind} for device {device_id} - cloud stream not connected")
            return False

        frame = control_message(kind, device_id, generate_correlation_id("ws"))
        try:
            await self._ws.send_str(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            logger.error(f"Error sending {kind} for device {device_id}: {e}")
            await self.error.emit(f"Failed to send {kind}: {e}")
            return False

        logger.debug(f"Sent cloud stream frame: {frame}")
        logger.info(f"Sent {kind} for device {device_id}")
        return True

    # =========================================================================
    # Receive Loop
    # =========================================================================

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse):
        """Dispatch frames until the server closes or the transport fails."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.process_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    await self.process_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    err = ws.exception()
                    logger.error(f"Cloud stream error: {err}")
                    await self.error.emit(f"WebSocket error: {err}")
                    break
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, OSError) as e:
            logger.error(f"Cloud stream error: {e}")
            await self.error.emit(f"WebSocket error: {e}")
        except Exception as e:
            logger.error(f"Cloud stream receive loop failed: {e!r}")
            await self.error.emit(f"Cloud stream failure: {e}")
        else:
            logger.info("Cloud stream closed by server")
        finally:
            await self._set_connected(False)

    async def process_frame(self, data):
        """Decode one inbound frame and publish the canonical value it carries."""
        logger.debug(f"Cloud stream frame: {str(data)[:200]}")
        try:
            message = decode_message(data)
        except MessageDecodeError as e:
            logger.debug(f"Dropped cloud stream frame: {e}")
            return

        if isinstance(message, ObservationMessage):
            logger.debug("Cloud stream observation received")
            await self.observation_received.emit(message.snapshot)

        elif isinstance(message, RapidWindMessage):
            sample = message.sample
            logger.debug(f"Cloud stream rapid wind: {sample.speed:.1f}m/s @ {sample.direction:.0f}°")
            await self.wind_received.emit(sample)

        elif isinstance(message, AckMessage):
            logger.debug(f"Cloud stream ack: {message.correlation_id}")

        elif isinstance(message, EventMessage):
            if message.type == MSG_RAIN_START:
                logger.info("Rain event received via cloud stream")
            elif message.type == MSG_LIGHTNING_STRIKE:
                logger.info("Lightning strike received via cloud stream")

        else:
            logger.debug(f"Ignored cloud stream frame type: {message.type}")
