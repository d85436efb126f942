"""
TEMPESTWATCH Connection Orchestrator
Ingestion and failover core for Tempest weather telemetry.

The orchestrator is responsible for:
- Channel lifecycle (start/stop the broadcast listener and cloud stream per mode)
- Precedence between channels, decided per incoming event
- Freshness (the newest snapshot and wind sample win)
- Station selection and device subscriptions
- Periodic summary refresh from the cloud query channel
- Republishing one unified event stream to the consumer

Architecture:
    +-------------------+   +-------------------+   +-------------------+
    | BroadcastListener |   | CloudStreamClient |   | CloudQueryClient  |
    |   (UDP 50222)     |   |   (WebSocket)     |   |   (REST, 5 min)   |
    +---------+---------+   +---------+---------+   +---------+---------+
              |                       |                       |
              +-----------+-----------+-----------------------+
                          |
                +---------v----------+
                |   Orchestrator     |  precedence + freshness
                +---------+----------+
                          |
         weather_updated / wind_updated / error / status_changed

Precedence:
    LOCAL_ONLY                 broadcast only
    CLOUD_ONLY                 cloud stream (and query refresh) only
    CLOUD_WITH_LOCAL_FALLBACK  cloud while the stream is connected,
                               broadcast whenever it is not

Usage:
    from tempestwatch.config import load_config
    from tempestwatch.orchestrator import ConnectionOrchestrator

    orchestrator = ConnectionOrchestrator(load_config())
    orchestrator.weather_updated.subscribe(on_weather)

    await orchestrator.start()
    ...
    await orchestrator.stop()
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Set

from services.tempest.broadcast_listener import BroadcastListener
from services.tempest.events import EventChannel
from services.tempest.models import (
    ConnectionMode,
    DataSource,
    DeviceObservation,
    DeviceStatus,
    ObservationSummary,
    StationConfig,
    WeatherSnapshot,
    WindSample,
)
from services.tempest.query_client import CloudQueryClient
from services.tempest.stream_client import CloudStreamClient
from tempestwatch.config import TempestWatchConfig
from tempestwatch.constants import TEMPESTWATCH_NAME, TEMPESTWATCH_VERSION
from tempestwatch.logging_config import correlation_context, get_logger, log_exception, log_timing

logger = get_logger(__name__)


__all__ = [
    "ConnectionOrchestrator",
    "BroadcastAdapter",
    "StreamAdapter",
    "QueryAdapter",
    "create_orchestrator",
]


# =============================================================================
# Adapter Protocol Definitions
# =============================================================================


class BroadcastAdapter(Protocol):
    """Protocol for the local broadcast channel."""

    observation_received: EventChannel
    wind_received: EventChannel
    device_status_received: EventChannel
    error: EventChannel

    async def start(self) -> bool:
        """Bind and start receiving."""
        ...

    async def stop(self) -> None:
        """Stop receiving and release the socket."""
        ...

    @property
    def is_listening(self) -> bool:
        """Check if the receive loop is running."""
        ...


class StreamAdapter(Protocol):
    """Protocol for the cloud stream channel."""

    observation_received: EventChannel
    wind_received: EventChannel
    connection_status_changed: EventChannel
    error: EventChannel

    def set_credential(self, token: Optional[str]) -> None:
        ...

    async def connect(self) -> bool:
        ...

    async def disconnect(self) -> None:
        ...

    async def subscribe_observations(self, device_id: int) -> bool:
        ...

    async def subscribe_rapid_wind(self, device_id: int) -> bool:
        ...

    async def unsubscribe(self, device_id: int) -> bool:
        ...

    @property
    def is_connected(self) -> bool:
        ...


class QueryAdapter(Protocol):
    """Protocol for the cloud query channel."""

    def set_credential(self, token: Optional[str]) -> None:
        ...

    @property
    def is_authenticated(self) -> bool:
        ...

    async def list_stations(self) -> List[StationConfig]:
        ...

    async def get_device_observation(self, device_id: int) -> Optional[DeviceObservation]:
        ...


# =============================================================================
# Orchestrator
# =============================================================================


class ConnectionOrchestrator:
    """
    Owns the three ingestion channels and publishes one freshest snapshot.

    Consumer channels:
        weather_updated(WeatherSnapshot)
        wind_updated(WindSample)
        error(str)
        status_changed(str)
        station_changed(Optional[StationConfig])
    """

    def __init__(
        self,
        config: Optional[TempestWatchConfig] = None,
        broadcast: Optional[BroadcastAdapter] = None,
        stream: Optional[StreamAdapter] = None,
        query: Optional[QueryAdapter] = None,
    ):
        """
        Initialize orchestrator with configuration and channel adapters.

        Args:
            config: TEMPESTWATCH configuration (defaults if None)
            broadcast: Local broadcast adapter (built from config if None)
            stream: Cloud stream adapter (built from config if None)
            query: Cloud query adapter (built from config if None)
        """
        self.config = config or TempestWatchConfig()

        self.broadcast: BroadcastAdapter = broadcast or BroadcastListener(
            port=self.config.broadcast.port,
            bind_address=self.config.broadcast.bind_address,
            buffer_size=self.config.broadcast.buffer_size,
            retry_delay=self.config.broadcast.retry_delay,
        )
        self.stream: StreamAdapter = stream or CloudStreamClient(
            url=self.config.cloud.websocket_url,
            connect_timeout=self.config.cloud.connect_timeout,
        )
        self.query: QueryAdapter = query or CloudQueryClient(
            base_url=self.config.cloud.rest_url,
            timeout=self.config.cloud.request_timeout,
            user_agent=self.config.cloud.user_agent,
        )

        # Consumer-facing channels
        self.weather_updated = EventChannel("weather_updated")
        self.wind_updated = EventChannel("wind_updated")
        self.error = EventChannel("error")
        self.status_changed = EventChannel("status_changed")
        self.station_changed = EventChannel("station_changed")

        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._stopping = False
        self._refresh_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        self._mode: ConnectionMode = self.config.connection.mode
        self._token: str = ""
        self._preferred_station_id: Optional[int] = self.config.connection.station_id
        self._selected_station: Optional[StationConfig] = None
        self._stations: List[StationConfig] = []

        self._latest_weather: Optional[WeatherSnapshot] = None
        self._latest_wind: Optional[WindSample] = None
        self._latest_summary: Optional[ObservationSummary] = None
        self._latest_device_status: Optional[DeviceStatus] = None
        self._last_data_received: Optional[datetime] = None

        self._active_source = DataSource.NONE
        self._cloud_fault: Optional[DataSource] = None
        self._status = "Stopped"

        self.broadcast.observation_received.subscribe(self._on_broadcast_observation)
        self.broadcast.wind_received.subscribe(self._on_broadcast_wind)
        self.broadcast.device_status_received.subscribe(self._on_device_status)
        self.broadcast.error.subscribe(self._on_broadcast_error)

        self.stream.observation_received.subscribe(self._on_cloud_observation)
        self.stream.wind_received.subscribe(self._on_cloud_wind)
        self.stream.connection_status_changed.subscribe(self._on_stream_connection_changed)
        self.stream.error.subscribe(self._on_stream_error)

        self._apply_credential(self.config.connection.access_token)

        logger.info(f"Orchestrator initialized ({self._mode.value})")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """Check if the orchestrator is running."""
        return self._running

    @property
    def is_connected(self) -> bool:
        """Cloud stream connected, or the query client holds a credential."""
        return self.stream.is_connected or self.query.is_authenticated

    @property
    def mode(self) -> ConnectionMode:
        return self._mode

    @property
    def has_credential(self) -> bool:
        return bool(self._token)

    @property
    def latest_weather(self) -> Optional[WeatherSnapshot]:
        return self._latest_weather

    @property
    def latest_wind(self) -> Optional[WindSample]:
        return self._latest_wind

    @property
    def latest_summary(self) -> Optional[ObservationSummary]:
        """Most recent summary seen on any accepted snapshot."""
        return self._latest_summary

    @property
    def latest_device_status(self) -> Optional[DeviceStatus]:
        return self._latest_device_status

    @property
    def last_data_received(self) -> Optional[datetime]:
        return self._last_data_received

    @property
    def active_source(self) -> DataSource:
        return self._active_source

    @property
    def active_source_label(self) -> str:
        return self._active_source.value

    @property
    def status(self) -> str:
        """Last status message published on status_changed."""
        return self._status

    @property
    def selected_station(self) -> Optional[StationConfig]:
        return self._selected_station

    @property
    def available_stations(self) -> List[StationConfig]:
        return list(self._stations)

    @property
    def driver_info(self) -> str:
        return (
            f"{TEMPESTWATCH_NAME} {TEMPESTWATCH_VERSION} - "
            f"WeatherFlow Tempest ingestion ({self._mode.value})"
        )

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def start(self) -> bool:
        """
        Start the channels for the current mode.

        Returns:
            True if running (including when already running)
        """
        async with self._lock:
            return await self._start_locked()

    async def stop(self):
        """Stop every channel and the summary refresh; safe if never started."""
        async with self._lock:
            await self._stop_locked()

    async def _start_locked(self) -> bool:
        if self._running:
            logger.debug("Orchestrator already running")
            return True

        self._loop = asyncio.get_running_loop()
        mode = self._mode

        with correlation_context(prefix="start"):
            try:
                with log_timing(logger, f"start ({mode.value})"):
                    if mode.requires_cloud and (
                        self._selected_station is None or not self._stations
                    ):
                        await self._refresh_stations()

                    logger.info(f"Starting ingestion in {mode.value} mode")
                    if mode is ConnectionMode.LOCAL_ONLY:
                        success = await self._start_local()
                    elif mode is ConnectionMode.CLOUD_ONLY:
                        success = await self._start_cloud()
                    else:
                        success = await self._start_cloud_with_fallback()
            except Exception as e:
                log_exception(logger, "Error starting ingestion", e)
                await self.error.emit(f"Failed to start: {e}")
                await self._stop_channels()
                self._running = False
                self._update_active_source()
                return False

        self._running = success
        self._update_active_source()
        if success and mode.requires_cloud:
            self._start_summary_timer()
        return success

    async def _stop_locked(self):
        if not self._running:
            return

        logger.info("Stopping ingestion")
        self._stopping = True
        try:
            await self._stop_channels()
        except Exception as e:
            log_exception(logger, "Error stopping ingestion", e)
            await self.error.emit(f"Failed to stop cleanly: {e}")
        finally:
            self._stopping = False
            self._running = False
            self._cloud_fault = None
            self._active_source = DataSource.NONE

        await self._set_status("Stopped")

    async def _stop_channels(self):
        """Tear down every channel; each step is safe when not running."""
        await self._cancel_summary_timer()
        await self.stream.disconnect()
        await self.broadcast.stop()

    async def _start_local(self) -> bool:
        await self._set_status("Starting broadcast listener...")
        if await self.broadcast.start():
            await self._set_status("Broadcast listener active")
            return True
        await self._set_status("Broadcast listener failed")
        return False

    async def _start_cloud(self) -> bool:
        if not self._token:
            logger.error("Cloud mode requires an access token")
            await self.error.emit("An access token is required for cloud modes")
            return False

        # Station discovery already ran in _start_locked()
        if self._selected_station is None:
            await self.error.emit("No station selected")
            return False

        await self._set_status("Connecting to cloud stream...")
        if not await self.stream.connect():
            await self._set_status("Cloud stream connection failed")
            return False

        await self._subscribe_station(self._selected_station)
        await self._set_status("Cloud stream active")
        return True

    async def _start_cloud_with_fallback(self) -> bool:
        cloud_ok = False
        if self._token and self._selected_station is not None:
            cloud_ok = await self._start_cloud()

        local_ok = await self.broadcast.start()

        if cloud_ok:
            self._cloud_fault = None
            await self._set_status("Cloud stream active with local backup")
        elif local_ok:
            self._cloud_fault = DataSource.LOCAL_CLOUD_FAILED
            await self._set_status("Using local broadcast fallback")
        else:
            await self._set_status("All connections failed")
            return False
        return True

    def dispose(self, timeout: Optional[float] = None) -> bool:
        """
        Stop synchronously, waiting at most ``timeout`` seconds.

        Call from a thread other than the event loop's (or after the loop
        has finished). Inside the loop use ``await stop()``.

        Returns:
            True if shutdown completed in time
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout

        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        loop = self._loop
        try:
            if loop is not None and loop.is_running():
                if current is loop:
                    logger.error("dispose() called on the event loop thread; scheduling stop()")
                    self._track(loop.create_task(self.stop()))
                    return False
                future = asyncio.run_coroutine_threadsafe(self.stop(), loop)
                try:
                    future.result(timeout)
                except concurrent.futures.TimeoutError:
                    future.cancel()
                    logger.error(f"Shutdown did not complete within {timeout}s")
                    return False
                return True

            if current is not None:
                logger.error("dispose() called inside a foreign event loop; use 'await stop()'")
                return False

            asyncio.run(asyncio.wait_for(self.stop(), timeout))
            return True
        except asyncio.TimeoutError:
            logger.error(f"Shutdown did not complete within {timeout}s")
            return False
        except Exception as e:
            log_exception(logger, "Error during shutdown", e)
            return False

    # =========================================================================
    # Configuration Operations
    # =========================================================================

    def _apply_credential(self, token: Optional[str]):
        self._token = (token or "").strip()
        self.query.set_credential(self._token)
        self.stream.set_credential(self._token)

    def set_credential(self, token: Optional[str]) -> Optional[asyncio.Task]:
        """
        Propagate an access token to both cloud channels.

        A non-empty token schedules a station-list refresh on the running
        loop.

        Returns:
            The scheduled refresh task, or None
        """
        self._apply_credential(token)
        if not self._token:
            logger.info("Access token cleared")
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; station refresh deferred to start()")
            return None

        task = loop.create_task(self.refresh_stations(), name="tempest-station-refresh")
        self._track(task)
        return task

    async def set_mode(self, mode: ConnectionMode) -> bool:
        """
        Switch connection mode by stopping and restarting under one lock.

        Cloud modes without a credential fall back to LOCAL_ONLY.

        Returns:
            Result of the restart
        """
        async with self._lock:
            if mode.requires_cloud and not self._token:
                logger.warning(
                    f"{mode.value} requires an access token, falling back to local broadcast only"
                )
                mode = ConnectionMode.LOCAL_ONLY

            if mode is not self._mode:
                logger.info(f"Connection mode: {self._mode.value} -> {mode.value}")
            self._mode = mode

            await self._stop_locked()
            return await self._start_locked()

    async def select_station(self, station: Optional[StationConfig]):
        """
        Select a station; when running in a cloud mode, resubscribe to it.

        Emits station_changed once the sequence completes.
        """
        previous = self._selected_station
        self._selected_station = station
        if station is not None:
            logger.info(f"Selected station: {station.display_name} (elevation {station.elevation} m)")

        try:
            if (
                station is not None
                and self._mode.requires_cloud
                and self._running
                and not self._stopping
            ):
                await self._switch_subscriptions(previous, station)
        except Exception as e:
            log_exception(logger, "Error selecting station", e)
            await self.error.emit(f"Failed to select station: {e}")

        await self.station_changed.emit(station)

    async def _switch_subscriptions(self, previous: Optional[StationConfig], station: StationConfig):
        if not self.stream.is_connected:
            if not await self.stream.connect():
                logger.error("Failed to connect cloud stream after selecting a station")
                await self._set_status("Cloud stream connection failed")
                return
        elif previous is not None and previous.station_id != station.station_id:
            await self._unsubscribe_station(previous)

        await self._subscribe_station(station)
        await self.refresh_summary()

    async def refresh_stations(self) -> List[StationConfig]:
        """
        Reload the account's stations from the query channel.

        Returns:
            Stations found (empty on no credential or failure)
        """
        try:
            return await self._refresh_stations()
        except Exception as e:
            log_exception(logger, "Error refreshing stations", e)
            await self.error.emit(f"Failed to refresh stations: {e}")
            return []

    async def _refresh_stations(self) -> List[StationConfig]:
        if not self._token:
            logger.warning("Cannot refresh stations - no access token provided")
            await self._set_status("No access token provided")
            return []

        await self._set_status("Refreshing stations...")
        stations = list(await self.query.list_stations())
        self._stations = stations

        if not stations:
            logger.warning("No Tempest stations found for this account")
            await self._set_status("No stations found")
            return stations

        for station in stations:
            logger.debug(f"Found station: {station.display_name}, elevation {station.elevation} m")
        logger.info(f"Found {len(stations)} Tempest stations")
        await self._set_status(f"Found {len(stations)} stations")

        if self._selected_station is None:
            self._selected_station = self._preferred_station(stations)
            logger.info(f"Selected station: {self._selected_station.display_name}")
            await self.station_changed.emit(self._selected_station)
        else:
            # Pick up device changes for the selected station
            current_id = self._selected_station.station_id
            self._selected_station = next(
                (s for s in stations if s.station_id == current_id), self._selected_station
            )

        return stations

    def _preferred_station(self, stations: List[StationConfig]) -> StationConfig:
        if self._preferred_station_id is not None:
            for station in stations:
                if station.station_id == self._preferred_station_id:
                    return station
            logger.warning(
                f"Configured station {self._preferred_station_id} not found; using {stations[0].display_name}"
            )
        return stations[0]

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def _subscribe_station(self, station: Optional[StationConfig]):
        if station is None:
            return
        sensors = station.sensor_devices
        if not sensors:
            logger.warning(f"Station {station.display_name} has no sensor devices to subscribe")
            return

        for device in sensors:
            obs_ok = await self.stream.subscribe_observations(device.device_id)
            wind_ok = await self.stream.subscribe_rapid_wind(device.device_id)
            if obs_ok and wind_ok:
                logger.info(f"Listening to Tempest device {device.device_id}")
            else:
                # Left half-subscribed; no rollback
                logger.warning(
                    f"Partial subscription for device {device.device_id} "
                    f"(observations={obs_ok}, rapid_wind={wind_ok})"
                )

    async def _unsubscribe_station(self, station: StationConfig):
        for device in station.sensor_devices:
            await self.stream.unsubscribe(device.device_id)

    # =========================================================================
    # Summary Refresh
    # =========================================================================

    def _start_summary_timer(self):
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(
            self._summary_loop(), name="tempest-summary-refresh"
        )

    async def _cancel_summary_timer(self):
        task, self._refresh_task = self._refresh_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _summary_loop(self):
        """First tick runs immediately, then every summary_refresh_interval."""
        interval = self.config.cloud.summary_refresh_interval
        while self._running:
            await self.refresh_summary()
            await asyncio.sleep(interval)

    async def refresh_summary(self) -> bool:
        """
        Pull the latest device observation and publish it as a live snapshot.

        Skipped when no station or sensor device is known.

        Returns:
            True if a snapshot was published
        """
        station = self._selected_station
        if station is None:
            return False
        sensor = next(iter(station.sensor_devices), None)
        if sensor is None:
            return False

        try:
            observation = await self.query.get_device_observation(sensor.device_id)
            if observation is None:
                return False

            snapshot = observation.latest_snapshot()
            if snapshot is None:
                if observation.summary is None or self._latest_weather is None:
                    return False
                snapshot = self._latest_weather.with_summary(observation.summary)

            published = await self._publish_weather(snapshot, "cloud query")
            if published:
                logger.debug("Refreshed observation summary from cloud query")
            return published
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to refresh observation summary: {e}")
            return False

    # =========================================================================
    # Publication
    # =========================================================================

    def _accepts_broadcast(self) -> bool:
        if self._mode is ConnectionMode.LOCAL_ONLY:
            return True
        if self._mode is ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK:
            return not self.stream.is_connected
        return False

    async def _publish_weather(self, snapshot: WeatherSnapshot, channel: str) -> bool:
        current = self._latest_weather
        if current is not None and snapshot.timestamp < current.timestamp:
            if snapshot.summary is None:
                logger.debug(f"Dropped {channel} observation older than the current one")
                return False
            snapshot = current.with_summary(snapshot.summary)

        self._latest_weather = snapshot
        if snapshot.summary is not None:
            self._latest_summary = snapshot.summary
        self._last_data_received = datetime.now()
        self._update_active_source()

        logger.debug(
            f"Weather from {channel}: {snapshot.air_temperature:.1f}°C, "
            f"{snapshot.relative_humidity:.0f}%, gust {snapshot.wind_gust:.1f}m/s"
        )
        await self.weather_updated.emit(snapshot)
        return True

    async def _publish_wind(self, sample: WindSample, channel: str) -> bool:
        current = self._latest_wind
        if current is not None and sample.timestamp < current.timestamp:
            logger.debug(f"Dropped {channel} wind sample older than the current one")
            return False

        self._latest_wind = sample
        self._last_data_received = datetime.now()
        self._update_active_source()
        await self.wind_updated.emit(sample)
        return True

    async def _set_status(self, message: str):
        self._status = message
        logger.info(f"Status: {message}")
        await self.status_changed.emit(message)

    def _compute_active_source(self) -> DataSource:
        listening = self.broadcast.is_listening
        connected = self.stream.is_connected

        if self._mode is ConnectionMode.LOCAL_ONLY:
            return DataSource.LOCAL if listening else DataSource.NONE
        if self._mode is ConnectionMode.CLOUD_ONLY:
            return DataSource.CLOUD if connected else DataSource.NONE

        if connected:
            return DataSource.CLOUD_WITH_LOCAL_BACKUP if listening else DataSource.CLOUD
        if not listening:
            return DataSource.NONE
        return self._cloud_fault or DataSource.LOCAL_CLOUD_FAILED

    def _update_active_source(self):
        source = self._compute_active_source()
        if source is not self._active_source:
            logger.info(f"Active source: {self._active_source.value} -> {source.value}")
            self._active_source = source

    # =========================================================================
    # Channel Event Handlers
    # =========================================================================

    async def _on_broadcast_observation(self, snapshot: WeatherSnapshot):
        if not self._accepts_broadcast():
            logger.debug("Ignored broadcast observation while cloud stream is connected")
            return
        await self._publish_weather(snapshot, "broadcast")

    async def _on_broadcast_wind(self, sample: WindSample):
        if not self._accepts_broadcast():
            return
        await self._publish_wind(sample, "broadcast")

    async def _on_device_status(self, status: DeviceStatus):
        self._latest_device_status = status
        failed = status.failed_sensors
        if failed:
            names = ", ".join(bit.name for bit in failed)
            logger.warning(f"Sensor faults reported by {status.serial_number}: {names}")

    async def _on_cloud_observation(self, snapshot: WeatherSnapshot):
        if not self._mode.requires_cloud:
            return
        await self._publish_weather(snapshot, "cloud stream")

    async def _on_cloud_wind(self, sample: WindSample):
        if not self._mode.requires_cloud:
            return
        await self._publish_wind(sample, "cloud stream")

    async def _on_broadcast_error(self, message: str):
        logger.error(f"Broadcast error: {message}")
        await self.error.emit(f"Local: {message}")

    async def _on_stream_error(self, message: str):
        logger.error(f"Cloud stream error: {message}")
        await self.error.emit(f"Cloud: {message}")

        if self._mode is ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK and not self._stopping:
            self._cloud_fault = DataSource.LOCAL_CLOUD_ERROR
            self._update_active_source()
            await self._set_status("Switched to local broadcast fallback")

    async def _on_stream_connection_changed(self, connected: bool):
        if connected:
            logger.info("Cloud stream connected")
            self._cloud_fault = None
            self._update_active_source()
            return

        logger.warning("Cloud stream disconnected")
        if self._stopping:
            self._update_active_source()
            return

        if self._mode is ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK:
            # A transport fault reports error before the disconnect
            if self._cloud_fault is not DataSource.LOCAL_CLOUD_ERROR:
                self._cloud_fault = DataSource.LOCAL_CLOUD_DISCONNECTED
            self._update_active_source()
            await self._set_status("Cloud stream disconnected, using local broadcast")
        else:
            self._update_active_source()
            if self._running and self._mode is ConnectionMode.CLOUD_ONLY:
                await self._set_status("Cloud stream disconnected")

    # =========================================================================
    # Status and Information
    # =========================================================================

    def _track(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def get_status(self) -> Dict[str, Any]:
        """Get overall ingestion status."""
        station = self._selected_station
        return {
            "running": self._running,
            "mode": self._mode.value,
            "connected": self.is_connected,
            "stream_connected": self.stream.is_connected,
            "broadcast_listening": self.broadcast.is_listening,
            "active_source": self.active_source_label,
            "status": self._status,
            "station": {
                "id": station.station_id,
                "name": station.display_name,
            } if station else None,
            "stations_available": len(self._stations),
            "last_data_received": (
                self._last_data_received.isoformat() if self._last_data_received else None
            ),
            "latest_observation": (
                self._latest_weather.timestamp.isoformat() if self._latest_weather else None
            ),
            "latest_wind": (
                self._latest_wind.timestamp.isoformat() if self._latest_wind else None
            ),
        }


# =============================================================================
# Factory Function
# =============================================================================


def create_orchestrator(config_path: Optional[str] = None) -> ConnectionOrchestrator:
    """
    Create an orchestrator instance with configuration.

    Args:
        config_path: Optional path to config file

    Returns:
        Configured ConnectionOrchestrator instance
    """
    from tempestwatch.config import load_config

    config = load_config(config_path)
    return ConnectionOrchestrator(config)
