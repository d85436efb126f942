"""
TEMPESTWATCH Local Broadcast Listener

Receives the Tempest hub's UDP broadcasts on the local network.

The hub sends one JSON datagram per message:
- obs_st        full observation, about once a minute
- rapid_wind    wind speed/direction, every few seconds
- device_status sensor head health
- evt_precip, evt_strike, hub_status  informational

Protocol: UDP broadcast, port 50222, UTF-8 JSON, one message per datagram.
The port is bound with address reuse so several listeners on one host
(for example another weather app) can all receive the broadcasts.
"""

import asyncio
import socket
from datetime import datetime, timedelta
from typing import Optional, Tuple

from services.tempest.events import EventChannel
from services.tempest.messages import (
    DeviceStatusMessage,
    EventMessage,
    MessageDecodeError,
    ObservationMessage,
    RapidWindMessage,
    decode_message,
)
from services.tempest.models import DeviceStatus, WeatherSnapshot, WindSample
from tempestwatch.constants import (
    BROADCAST_BUFFER_SIZE,
    BROADCAST_PORT,
    BROADCAST_RETRY_DELAY_SEC,
    BROADCAST_STALE_SEC,
    MSG_HUB_STATUS,
    MSG_LIGHTNING_STRIKE,
    MSG_RAIN_START,
)
from tempestwatch.logging_config import get_logger

logger = get_logger(__name__)


class BroadcastListener:
    """
    Listener for Tempest hub UDP broadcasts.

    Decoded messages are published on event channels:
        observation_received(WeatherSnapshot)
        wind_received(WindSample)
        device_status_received(DeviceStatus)
        error(str)

    Usage:
        listener = BroadcastListener()
        listener.observation_received.subscribe(on_snapshot)
        await listener.start()
        ...
        await listener.stop()
    """

    def __init__(
        self,
        port: int = BROADCAST_PORT,
        bind_address: str = "",
        buffer_size: int = BROADCAST_BUFFER_SIZE,
        retry_delay: float = BROADCAST_RETRY_DELAY_SEC,
    ):
        """
        Initialize broadcast listener.

        Args:
            port: UDP port to bind (0 binds an ephemeral port)
            bind_address: Interface address; empty binds all interfaces
            buffer_size: Maximum datagram size read per receive
            retry_delay: Backoff after a receive fault, in seconds
        """
        self.port = port
        self.bind_address = bind_address
        self.buffer_size = buffer_size
        self.retry_delay = retry_delay

        self.observation_received = EventChannel("observation_received")
        self.wind_received = EventChannel("wind_received")
        self.device_status_received = EventChannel("device_status_received")
        self.error = EventChannel("error")

        self._socket: Optional[socket.socket] = None
        self._task: Optional[asyncio.Task] = None
        self._listening = False

        self._latest_weather: Optional[WeatherSnapshot] = None
        self._latest_wind: Optional[WindSample] = None
        self._latest_device_status: Optional[DeviceStatus] = None
        self._last_data_received: Optional[datetime] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_listening(self) -> bool:
        """Check if the receive loop is running."""
        return self._listening

    @property
    def is_receiving(self) -> bool:
        """Listening and a datagram arrived within the last five minutes."""
        if not self._listening or self._last_data_received is None:
            return False
        age = datetime.now() - self._last_data_received
        return age < timedelta(seconds=BROADCAST_STALE_SEC)

    @property
    def bound_port(self) -> Optional[int]:
        """Actual bound port, useful when port 0 was requested."""
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    @property
    def latest_weather(self) -> Optional[WeatherSnapshot]:
        return self._latest_weather

    @property
    def latest_wind(self) -> Optional[WindSample]:
        return self._latest_wind

    @property
    def latest_device_status(self) -> Optional[DeviceStatus]:
        return self._latest_device_status

    @property
    def last_data_received(self) -> Optional[datetime]:
        return self._last_data_received

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
            sock.bind((self.bind_address, self.port))
        except OSError:
            sock.close()
            raise
        return sock

    async def start(self) -> bool:
        """
        Bind the broadcast port and start the receive loop.

        Returns:
            True if listening (including when already listening)
        """
        if self._listening:
            return True

        try:
            self._socket = self._open_socket()
        except OSError as e:
            logger.error(f"Failed to start broadcast listener on port {self.port}: {e}")
            self._socket = None
            self._listening = False
            await self.error.emit(f"Failed to start broadcast listener: {e}")
            return False

        self._listening = True
        self._task = asyncio.create_task(
            self._listen_loop(), name="tempest-broadcast-listener"
        )
        logger.info(f"Broadcast listener started on port {self.bound_port}")
        return True

    async def stop(self):
        """Stop the receive loop and release the socket; safe if never started."""
        was_listening = self._listening
        self._listening = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Broadcast receive loop ended with error: {e}")
            self._task = None

        if self._socket is not None:
            self._socket.close()
            self._socket = None

        if was_listening:
            logger.info("Broadcast listener stopped")

    # =========================================================================
    # Receive Loop
    # =========================================================================

    async def _listen_loop(self):
        """Receive datagrams until stopped; faults back off and retry."""
        loop = asyncio.get_running_loop()

        while self._listening and self._socket is not None:
            try:
                data, address = await loop.sock_recvfrom(self._socket, self.buffer_size)
            except asyncio.CancelledError:
                raise
            except OSError as e:
                if not self._listening or self._socket is None or self._socket.fileno() < 0:
                    # Socket closed during shutdown
                    break
                logger.error(f"Broadcast receive error: {e}")
                await self.error.emit(f"Broadcast receive error: {e}")
                await asyncio.sleep(self.retry_delay)
                continue
            except Exception as e:
                logger.error(f"Unexpected broadcast receive error: {e}")
                await self.error.emit(f"Broadcast receive error: {e}")
                await asyncio.sleep(self.retry_delay)
                continue

            try:
                await self.process_datagram(data, address)
            except Exception as e:
                logger.error(f"Dropped datagram from {address} after processing error: {e!r}")

    async def process_datagram(self, data: bytes, address: Optional[Tuple[str, int]] = None):
        """
        Decode one datagram and publish the canonical value it carries.

        Decode failures are logged and dropped.

        Args:
            data: Raw datagram payload
            address: Sender address, for logging
        """
        self._last_data_received = datetime.now()
        logger.debug(f"Datagram from {address}: {data[:200]!r}")

        try:
            message = decode_message(data)
        except MessageDecodeError as e:
            logger.debug(f"Dropped datagram from {address}: {e}")
            return

        if isinstance(message, ObservationMessage):
            snapshot = message.snapshot
            self._latest_weather = snapshot
            logger.debug(
                f"Observation: temp={snapshot.air_temperature:.1f}°C, "
                f"humidity={snapshot.relative_humidity:.0f}%, "
                f"pressure={snapshot.station_pressure:.1f}mb"
            )
            await self.observation_received.emit(snapshot)

        elif isinstance(message, RapidWindMessage):
            sample = message.sample
            self._latest_wind = sample
            logger.debug(f"Rapid wind: {sample.speed:.1f}m/s @ {sample.direction:.0f}°")
            await self.wind_received.emit(sample)

        elif isinstance(message, DeviceStatusMessage):
            status = message.status
            self._latest_device_status = status
            logger.debug(f"Device status: battery={status.voltage:.2f}V, rssi={status.rssi}dBm")
            await self.device_status_received.emit(status)

        elif isinstance(message, EventMessage):
            if message.type == MSG_RAIN_START:
                logger.info("Rain start event received")
            elif message.type == MSG_LIGHTNING_STRIKE:
                logger.info("Lightning strike event received")
            elif message.type == MSG_HUB_STATUS:
                logger.debug("Hub status received")

        else:
            logger.debug(f"Ignored datagram type: {message.type}")
