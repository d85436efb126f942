"""
Unit tests for the TEMPESTWATCH connection orchestrator.

Tests lifecycle, channel precedence, freshness, source labels, station
selection and summary refresh using mock channel adapters.
"""

import asyncio

import pytest

from services.tempest.models import (
    ConnectionMode,
    DataSource,
    DeviceObservation,
    DeviceStatus,
    ObservationSummary,
    SensorStatus,
)
from tempestwatch.config import TempestWatchConfig
from tempestwatch.orchestrator import ConnectionOrchestrator
from tests.fixtures.cloud_server import wait_until
from tests.fixtures.mock_tempest import (
    MockBroadcastListener,
    MockQueryClient,
    MockStreamClient,
    make_snapshot,
    make_station,
    make_wind,
)
from tests.fixtures.payloads import SUMMARY, device_observation_response, device_status


TOKEN = "test-token"


def build(
    mode: ConnectionMode = ConnectionMode.LOCAL_ONLY,
    token: str = "",
    stations=None,
    station_id=None,
    device_observation=None,
    broadcast_ok: bool = True,
    stream_ok: bool = True,
):
    """Orchestrator wired to mock adapters plus recorders for its channels."""
    config = TempestWatchConfig(
        connection={"mode": mode, "access_token": token, "station_id": station_id},
    )
    broadcast = MockBroadcastListener(start_result=broadcast_ok)
    stream = MockStreamClient(connect_result=stream_ok)
    query = MockQueryClient(
        stations=[make_station()] if stations is None else stations,
        device_observation=device_observation,
    )
    orchestrator = ConnectionOrchestrator(config, broadcast, stream, query)

    events = {"weather": [], "wind": [], "error": [], "status": [], "station": []}
    orchestrator.weather_updated.subscribe(events["weather"].append)
    orchestrator.wind_updated.subscribe(events["wind"].append)
    orchestrator.error.subscribe(events["error"].append)
    orchestrator.status_changed.subscribe(events["status"].append)
    orchestrator.station_changed.subscribe(events["station"].append)
    return orchestrator, broadcast, stream, query, events


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """start()/stop() behaviour across modes."""

    def test_initial_state(self):
        orchestrator, *_ = build()

        assert not orchestrator.is_running
        assert orchestrator.mode is ConnectionMode.LOCAL_ONLY
        assert orchestrator.active_source is DataSource.NONE
        assert orchestrator.status == "Stopped"
        assert orchestrator.latest_weather is None
        assert not orchestrator.has_credential
        assert "TEMPESTWATCH" in orchestrator.driver_info

    def test_credential_from_config(self):
        orchestrator, _, stream, query, _ = build(token=f"  {TOKEN}  ")

        assert orchestrator.has_credential
        assert stream.token == TOKEN
        assert query.token == TOKEN
        assert orchestrator.is_connected  # query holds a credential

    @pytest.mark.asyncio
    async def test_double_start_is_idempotent(self):
        orchestrator, broadcast, *_ = build()

        assert await orchestrator.start()
        assert await orchestrator.start()

        assert broadcast.start_calls == 1
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_stop_when_never_started(self):
        orchestrator, broadcast, stream, _, events = build()

        await orchestrator.stop()

        assert not orchestrator.is_running
        assert broadcast.stop_calls == 0
        assert stream.disconnect_calls == 0
        assert events["error"] == []

    @pytest.mark.asyncio
    async def test_stop_releases_channels(self):
        orchestrator, broadcast, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()

        await orchestrator.stop()

        assert not orchestrator.is_running
        assert not broadcast.is_listening
        assert not stream.is_connected
        assert orchestrator.active_source is DataSource.NONE
        assert events["status"][-1] == "Stopped"
        # A deliberate stop is not reported as a fallback
        assert "Cloud stream disconnected, using local broadcast" not in events["status"]

    @pytest.mark.asyncio
    async def test_local_start_failure(self):
        orchestrator, _, _, _, events = build(broadcast_ok=False)

        assert not await orchestrator.start()

        assert not orchestrator.is_running
        assert events["status"][-1] == "Broadcast listener failed"

    @pytest.mark.asyncio
    async def test_adapter_exception_reported(self):
        orchestrator, broadcast, _, _, events = build()

        async def explode():
            raise RuntimeError("socket layer exploded")

        broadcast.start = explode

        assert not await orchestrator.start()

        assert events["error"] == ["Failed to start: socket layer exploded"]
        assert broadcast.stop_calls == 1


# =============================================================================
# Mode Scenarios
# =============================================================================


class TestLocalOnly:
    """LOCAL_ONLY ingestion."""

    @pytest.mark.asyncio
    async def test_broadcast_observation_published(self):
        orchestrator, _, stream, query, events = build()
        await orchestrator.start()

        await orchestrator.broadcast.inject_observation(make_snapshot())

        assert len(events["weather"]) == 1
        snapshot = events["weather"][0]
        assert snapshot.air_temperature == 21.5
        assert snapshot.relative_humidity == 55
        assert snapshot.wind_gust == 5.0
        assert snapshot.precip_type == 0
        assert orchestrator.latest_weather is snapshot
        assert orchestrator.last_data_received is not None
        assert orchestrator.active_source_label == "Local broadcast"
        assert stream.connect_calls == 0
        assert query.list_calls == 0

        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_wind_published(self):
        orchestrator, broadcast, _, _, events = build()
        await orchestrator.start()

        await broadcast.inject_wind(make_wind(speed=4.4))

        assert [s.speed for s in events["wind"]] == [4.4]
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_cloud_telemetry_ignored(self):
        orchestrator, _, stream, _, events = build()
        await orchestrator.start()

        await stream.inject_observation(make_snapshot())
        await stream.inject_wind(make_wind())

        assert events["weather"] == []
        assert events["wind"] == []
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_device_status_recorded(self):
        orchestrator, broadcast, *_ = build()
        status = DeviceStatus.from_dict(
            device_status(sensor_status=int(SensorStatus.PRESSURE_FAILED))
        )

        await broadcast.inject_device_status(status)

        assert orchestrator.latest_device_status is status

    @pytest.mark.asyncio
    async def test_broadcast_error_forwarded(self):
        orchestrator, broadcast, _, _, events = build()

        await broadcast.inject_error("receive failed")

        assert events["error"] == ["Local: receive failed"]


class TestCloudOnly:
    """CLOUD_ONLY ingestion."""

    @pytest.mark.asyncio
    async def test_without_credential(self):
        orchestrator, broadcast, stream, query, events = build(mode=ConnectionMode.CLOUD_ONLY)

        assert not await orchestrator.start()

        assert any("access token" in e for e in events["error"])
        assert broadcast.start_calls == 0
        assert stream.connect_calls == 0
        assert query.list_calls == 0
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_zero_stations(self):
        orchestrator, _, stream, _, events = build(
            mode=ConnectionMode.CLOUD_ONLY, token=TOKEN, stations=[]
        )

        assert not await orchestrator.start()

        assert orchestrator.status == "No stations found"
        assert orchestrator.selected_station is None
        assert events["error"] == ["No station selected"]
        assert stream.connect_calls == 0

    @pytest.mark.asyncio
    async def test_connects_and_subscribes(self):
        orchestrator, broadcast, stream, _, events = build(
            mode=ConnectionMode.CLOUD_ONLY, token=TOKEN
        )

        assert await orchestrator.start()

        assert stream.sent == [("listen_start", 20001), ("listen_rapid_start", 20001)]
        assert broadcast.start_calls == 0
        assert orchestrator.active_source is DataSource.CLOUD
        assert orchestrator.selected_station.station_id == 1001
        assert [s.station_id for s in events["station"]] == [1001]
        assert events["status"][-1] == "Cloud stream active"

        await stream.inject_observation(make_snapshot())
        await broadcast.inject_observation(make_snapshot(epoch=1700000900))

        assert len(events["weather"]) == 1
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_stream_connect_failure(self):
        orchestrator, _, _, _, events = build(
            mode=ConnectionMode.CLOUD_ONLY, token=TOKEN, stream_ok=False
        )

        assert not await orchestrator.start()

        assert events["status"][-1] == "Cloud stream connection failed"
        assert "Cloud: Connection failed: refused" in events["error"]

    @pytest.mark.asyncio
    async def test_server_close(self):
        orchestrator, _, stream, _, events = build(mode=ConnectionMode.CLOUD_ONLY, token=TOKEN)
        await orchestrator.start()

        await stream.simulate_server_close()

        assert orchestrator.active_source is DataSource.NONE
        assert events["status"][-1] == "Cloud stream disconnected"
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_partial_subscription_still_starts(self):
        orchestrator, _, stream, _, _ = build(mode=ConnectionMode.CLOUD_ONLY, token=TOKEN)
        stream.rapid_wind_subscribe_result = False

        assert await orchestrator.start()

        assert ("listen_start", 20001) in stream.sent
        assert ("listen_rapid_start", 20001) in stream.sent
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_summary_timer_publishes(self):
        observation = DeviceObservation.from_dict(device_observation_response(epoch=1700000300))
        orchestrator, _, _, query, events = build(
            mode=ConnectionMode.CLOUD_ONLY, token=TOKEN, device_observation=observation
        )

        await orchestrator.start()
        await wait_until(lambda: events["weather"])

        assert query.device_calls[0] == 20001
        assert orchestrator.latest_summary.pressure_trend == "steady"
        await orchestrator.stop()


class TestCloudWithLocalFallback:
    """CLOUD_WITH_LOCAL_FALLBACK precedence and source labels."""

    @pytest.mark.asyncio
    async def test_cloud_and_backup_running(self):
        orchestrator, broadcast, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )

        assert await orchestrator.start()

        assert stream.is_connected
        assert broadcast.is_listening
        assert orchestrator.active_source is DataSource.CLOUD_WITH_LOCAL_BACKUP
        assert events["status"][-1] == "Cloud stream active with local backup"
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_precedence_follows_stream_connection(self):
        orchestrator, broadcast, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()

        # Connected: broadcast is suppressed, cloud wins
        await broadcast.inject_observation(make_snapshot(epoch=1700000000))
        await broadcast.inject_wind(make_wind(epoch=1700000001))
        assert events["weather"] == []
        assert events["wind"] == []

        await stream.inject_observation(make_snapshot(epoch=1700000060))
        assert len(events["weather"]) == 1

        # Disconnected: broadcast is accepted again
        await stream.simulate_server_close()
        await broadcast.inject_observation(make_snapshot(epoch=1700000120))
        await broadcast.inject_wind(make_wind(epoch=1700000121))

        assert len(events["weather"]) == 2
        assert len(events["wind"]) == 1
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_server_close_label(self):
        orchestrator, _, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()

        await stream.simulate_server_close()

        assert orchestrator.active_source is DataSource.LOCAL_CLOUD_DISCONNECTED
        assert orchestrator.active_source_label == "Local broadcast (cloud disconnected)"
        assert events["status"][-1] == "Cloud stream disconnected, using local broadcast"
        assert orchestrator.is_running
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_transport_fault_keeps_error_label(self):
        orchestrator, _, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()

        await stream.simulate_transport_fault()

        assert orchestrator.active_source is DataSource.LOCAL_CLOUD_ERROR
        assert orchestrator.active_source_label == "Local broadcast (cloud error)"
        assert events["error"][-1] == "Cloud: WebSocket error: connection reset"
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_cloud_failure_falls_back(self):
        orchestrator, broadcast, _, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN, stream_ok=False
        )

        assert await orchestrator.start()

        assert broadcast.is_listening
        assert orchestrator.active_source is DataSource.LOCAL_CLOUD_FAILED
        assert events["status"][-1] == "Using local broadcast fallback"
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_without_credential_uses_broadcast(self):
        orchestrator, broadcast, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK
        )

        assert await orchestrator.start()

        assert stream.connect_calls == 0
        assert orchestrator.active_source is DataSource.LOCAL_CLOUD_FAILED

        await broadcast.inject_observation(make_snapshot())
        assert len(events["weather"]) == 1
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_all_channels_failed(self):
        orchestrator, _, _, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK,
            token=TOKEN,
            stream_ok=False,
            broadcast_ok=False,
        )

        assert not await orchestrator.start()

        assert events["status"][-1] == "All connections failed"
        assert orchestrator.active_source is DataSource.NONE

    @pytest.mark.asyncio
    async def test_stream_error_while_disconnected(self):
        orchestrator, _, stream, _, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()
        await stream.simulate_server_close()

        # Reconnect attempt fails while selecting a station
        stream.connect_result = False
        await orchestrator.select_station(make_station(station_id=1002, sensor_ids=(30001,)))

        assert orchestrator.active_source is DataSource.LOCAL_CLOUD_ERROR
        assert "Switched to local broadcast fallback" in events["status"]
        assert events["status"][-1] == "Cloud stream connection failed"
        await orchestrator.stop()


# =============================================================================
# Freshness
# =============================================================================


class TestFreshness:
    """Older data never replaces newer data."""

    @pytest.mark.asyncio
    async def test_older_snapshot_dropped(self):
        orchestrator, broadcast, _, _, events = build()
        await orchestrator.start()

        await broadcast.inject_observation(make_snapshot(epoch=1700000600))
        await broadcast.inject_observation(make_snapshot(epoch=1700000000))

        assert len(events["weather"]) == 1
        assert orchestrator.latest_weather.timestamp.timestamp() == 1700000600
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_equal_timestamp_accepted(self):
        orchestrator, broadcast, _, _, events = build()
        await orchestrator.start()

        await broadcast.inject_observation(make_snapshot(epoch=1700000600))
        await broadcast.inject_observation(make_snapshot(epoch=1700000600, air_temperature=22.0))

        assert len(events["weather"]) == 2
        assert orchestrator.latest_weather.air_temperature == 22.0
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_older_wind_dropped(self):
        orchestrator, broadcast, _, _, events = build()
        await orchestrator.start()

        await broadcast.inject_wind(make_wind(epoch=1700000020))
        await broadcast.inject_wind(make_wind(epoch=1700000010))

        assert len(events["wind"]) == 1
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_older_summary_composed_onto_current(self):
        orchestrator, broadcast, _, _, events = build()
        await orchestrator.start()
        summary = ObservationSummary.from_dict(SUMMARY)

        await broadcast.inject_observation(make_snapshot(epoch=1700000600, air_temperature=19.0))
        await broadcast.inject_observation(make_snapshot(epoch=1700000000, summary=summary))

        assert len(events["weather"]) == 2
        latest = orchestrator.latest_weather
        assert latest.timestamp.timestamp() == 1700000600
        assert latest.air_temperature == 19.0
        assert latest.summary is summary
        assert orchestrator.latest_summary is summary
        await orchestrator.stop()


# =============================================================================
# Stations and Summary
# =============================================================================


class TestStations:
    """Station discovery and selection."""

    @pytest.mark.asyncio
    async def test_refresh_without_token(self):
        orchestrator, _, _, query, _ = build()

        assert await orchestrator.refresh_stations() == []
        assert orchestrator.status == "No access token provided"
        assert query.list_calls == 0

    @pytest.mark.asyncio
    async def test_refresh_selects_first_station(self):
        stations = [make_station(1001), make_station(1002, sensor_ids=(30001,))]
        orchestrator, _, _, _, events = build(token=TOKEN, stations=stations)

        found = await orchestrator.refresh_stations()

        assert [s.station_id for s in found] == [1001, 1002]
        assert orchestrator.selected_station.station_id == 1001
        assert len(orchestrator.available_stations) == 2
        assert orchestrator.status == "Found 2 stations"
        assert [s.station_id for s in events["station"]] == [1001]

    @pytest.mark.asyncio
    async def test_preferred_station(self):
        stations = [make_station(1001), make_station(1002, sensor_ids=(30001,))]
        orchestrator, *_ = build(token=TOKEN, stations=stations, station_id=1002)

        await orchestrator.refresh_stations()

        assert orchestrator.selected_station.station_id == 1002

    @pytest.mark.asyncio
    async def test_unknown_preferred_station(self):
        orchestrator, *_ = build(token=TOKEN, station_id=4242)

        await orchestrator.refresh_stations()

        assert orchestrator.selected_station.station_id == 1001

    @pytest.mark.asyncio
    async def test_refresh_keeps_selection(self):
        stations = [make_station(1001), make_station(1002, sensor_ids=(30001,))]
        orchestrator, _, _, query, events = build(token=TOKEN, stations=stations)
        await orchestrator.select_station(stations[1])

        query.stations = [make_station(1001), make_station(1002, sensor_ids=(30001, 30002))]
        await orchestrator.refresh_stations()

        selected = orchestrator.selected_station
        assert selected.station_id == 1002
        assert [d.device_id for d in selected.sensor_devices] == [30001, 30002]
        assert [s.station_id for s in events["station"]] == [1002]

    @pytest.mark.asyncio
    async def test_refresh_failure_reported(self):
        orchestrator, _, _, query, events = build(token=TOKEN)
        query.list_error = RuntimeError("backend down")

        assert await orchestrator.refresh_stations() == []
        assert events["error"] == ["Failed to refresh stations: backend down"]

    @pytest.mark.asyncio
    async def test_select_when_not_running(self):
        orchestrator, _, stream, _, events = build(
            mode=ConnectionMode.CLOUD_ONLY, token=TOKEN
        )
        station = make_station(1002, sensor_ids=(30001,))

        await orchestrator.select_station(station)

        assert orchestrator.selected_station is station
        assert stream.sent == []
        assert events["station"] == [station]

    @pytest.mark.asyncio
    async def test_select_resubscribes_while_running(self):
        orchestrator, _, stream, query, events = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()
        stream.sent.clear()
        other = make_station(1002, sensor_ids=(30001,))

        await orchestrator.select_station(other)

        assert stream.sent == [
            ("listen_stop", 20001),
            ("listen_start", 30001),
            ("listen_rapid_start", 30001),
        ]
        assert 30001 in query.device_calls
        assert events["station"][-1] is other
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_select_same_station_skips_unsubscribe(self):
        orchestrator, _, stream, _, _ = build(mode=ConnectionMode.CLOUD_ONLY, token=TOKEN)
        await orchestrator.start()
        stream.sent.clear()

        await orchestrator.select_station(make_station(1001))

        assert stream.sent == [("listen_start", 20001), ("listen_rapid_start", 20001)]
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_select_none(self):
        orchestrator, _, _, _, events = build()

        await orchestrator.select_station(None)

        assert orchestrator.selected_station is None
        assert events["station"] == [None]


class TestSummaryRefresh:
    """refresh_summary() against the query channel."""

    @pytest.mark.asyncio
    async def test_no_station(self):
        orchestrator, _, _, query, _ = build(token=TOKEN)

        assert not await orchestrator.refresh_summary()
        assert query.device_calls == []

    @pytest.mark.asyncio
    async def test_publishes_latest_row(self):
        observation = DeviceObservation.from_dict(device_observation_response(epoch=1700000300))
        orchestrator, _, _, _, events = build(token=TOKEN, device_observation=observation)
        await orchestrator.select_station(make_station())

        assert await orchestrator.refresh_summary()

        assert len(events["weather"]) == 1
        assert events["weather"][0].summary.pressure_trend == "steady"
        assert orchestrator.latest_summary.strike_count_3h == 2

    @pytest.mark.asyncio
    async def test_summary_without_rows_composes_onto_current(self):
        observation = DeviceObservation.from_dict(device_observation_response(rows=[]))
        orchestrator, broadcast, _, _, events = build(token=TOKEN, device_observation=observation)
        await orchestrator.start()
        await orchestrator.select_station(make_station())
        await broadcast.inject_observation(make_snapshot(epoch=1700000600))

        assert await orchestrator.refresh_summary()

        latest = orchestrator.latest_weather
        assert latest.timestamp.timestamp() == 1700000600
        assert latest.summary.pressure_trend == "steady"
        assert len(events["weather"]) == 2
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_summary_without_rows_and_no_snapshot(self):
        observation = DeviceObservation.from_dict(device_observation_response(rows=[]))
        orchestrator, *_ = build(token=TOKEN, device_observation=observation)
        await orchestrator.select_station(make_station())

        assert not await orchestrator.refresh_summary()

    @pytest.mark.asyncio
    async def test_no_observation_available(self):
        orchestrator, *_ = build(token=TOKEN)
        await orchestrator.select_station(make_station())

        assert not await orchestrator.refresh_summary()


# =============================================================================
# Mode Switching, Credentials and Shutdown
# =============================================================================


class TestConfigurationOperations:
    """set_mode(), set_credential() and dispose()."""

    @pytest.mark.asyncio
    async def test_set_mode_without_credential_falls_back(self):
        orchestrator, broadcast, stream, _, _ = build()
        await orchestrator.start()

        assert await orchestrator.set_mode(ConnectionMode.CLOUD_ONLY)

        assert orchestrator.mode is ConnectionMode.LOCAL_ONLY
        assert broadcast.start_calls == 2
        assert broadcast.stop_calls == 1
        assert stream.connect_calls == 0
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_set_mode_to_cloud(self):
        orchestrator, broadcast, stream, _, _ = build(token=TOKEN)
        await orchestrator.start()

        assert await orchestrator.set_mode(ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK)

        assert orchestrator.mode is ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK
        assert stream.is_connected
        assert broadcast.is_listening
        assert orchestrator.active_source is DataSource.CLOUD_WITH_LOCAL_BACKUP
        await orchestrator.stop()

    def test_set_credential_without_loop(self):
        orchestrator, _, stream, query, _ = build()

        assert orchestrator.set_credential(TOKEN) is None

        assert orchestrator.has_credential
        assert stream.token == TOKEN
        assert query.token == TOKEN

    @pytest.mark.asyncio
    async def test_set_credential_schedules_refresh(self):
        orchestrator, _, _, query, events = build()

        task = orchestrator.set_credential(TOKEN)
        stations = await task

        assert [s.station_id for s in stations] == [1001]
        assert query.list_calls == 1
        assert orchestrator.selected_station.station_id == 1001
        assert len(events["station"]) == 1

    @pytest.mark.asyncio
    async def test_clear_credential(self):
        orchestrator, _, stream, _, _ = build(token=TOKEN)

        assert orchestrator.set_credential("   ") is None
        assert not orchestrator.has_credential
        assert stream.token == ""

    def test_dispose_never_started(self):
        orchestrator, *_ = build()
        assert orchestrator.dispose(timeout=1.0)

    @pytest.mark.asyncio
    async def test_dispose_from_other_thread(self):
        orchestrator, broadcast, *_ = build()
        await orchestrator.start()

        assert await asyncio.to_thread(orchestrator.dispose, 5.0)

        assert not orchestrator.is_running
        assert broadcast.stop_calls == 1

    @pytest.mark.asyncio
    async def test_dispose_on_loop_thread_schedules_stop(self):
        orchestrator, *_ = build()
        await orchestrator.start()

        assert not orchestrator.dispose(timeout=1.0)

        await wait_until(lambda: not orchestrator.is_running)


class TestStatus:
    """get_status() reporting."""

    @pytest.mark.asyncio
    async def test_get_status(self):
        orchestrator, broadcast, *_ = build(
            mode=ConnectionMode.CLOUD_WITH_LOCAL_FALLBACK, token=TOKEN
        )
        await orchestrator.start()
        await broadcast.inject_wind(make_wind())

        status = orchestrator.get_status()

        assert status["running"] is True
        assert status["mode"] == "cloud_with_local_fallback"
        assert status["stream_connected"] is True
        assert status["broadcast_listening"] is True
        assert status["active_source"] == "Cloud stream (local backup)"
        assert status["station"] == {"id": 1001, "name": "Backyard"}
        assert status["stations_available"] == 1
        # Broadcast wind is suppressed while the stream is connected
        assert status["latest_wind"] is None
        await orchestrator.stop()

    def test_get_status_stopped(self):
        orchestrator, *_ = build()

        status = orchestrator.get_status()

        assert status["running"] is False
        assert status["station"] is None
        assert status["last_data_received"] is None
        assert status["latest_observation"] is None
