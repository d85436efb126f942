"""
TEMPESTWATCH Test Fixtures Package.

Provides mock channel adapters and wire payloads for testing the
ingestion service without a hub or cloud account.

Available fixtures:
- MockBroadcastListener: Simulates the local UDP broadcast channel
- MockStreamClient: Simulates the cloud WebSocket stream
- MockQueryClient: Simulates the cloud REST API
- FakeTempestCloud: Loopback REST + WebSocket fake of the WeatherFlow cloud
- payloads: obs_st / rapid_wind / device_status / REST response builders

Usage:
    from tests.fixtures import MockBroadcastListener, make_snapshot

    async def test_local_only():
        broadcast = MockBroadcastListener()
        await broadcast.start()
        await broadcast.inject_observation(make_snapshot())
"""

from tests.fixtures.cloud_server import FakeTempestCloud, wait_until
from tests.fixtures.mock_tempest import (
    MockBroadcastListener,
    MockQueryClient,
    MockStreamClient,
    make_snapshot,
    make_station,
    make_wind,
)

__all__ = [
    "FakeTempestCloud",
    "wait_until",
    "MockBroadcastListener",
    "MockStreamClient",
    "MockQueryClient",
    "make_snapshot",
    "make_station",
    "make_wind",
]
