#!/usr/bin/env python3
"""
TEMPESTWATCH Tempest Hub Simulator

Simulates a WeatherFlow Tempest hub broadcasting on the local network.
Emits datagrams in the Tempest UDP API format:

- obs_st         full observation (default every 60 s)
- rapid_wind     wind speed/direction (default every 3 s)
- device_status  sensor head health (default every 60 s)
- hub_status     hub health (default every 20 s)
- evt_precip     once when a rain scenario starts

Scenarios shape the simulated weather: calm, windy, rain.

Usage:
    python -m services.simulators.hub_simulator [--host 255.255.255.255]
        [--port 50222] [--scenario windy] [--obs-interval 60]
"""

import asyncio
import json
import os
import random
import socket
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from tempestwatch.constants import (
    BROADCAST_PORT,
    MSG_DEVICE_STATUS,
    MSG_HUB_STATUS,
    MSG_OBSERVATION,
    MSG_RAIN_START,
    MSG_RAPID_WIND,
)
from tempestwatch.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


class HubScenario(Enum):
    """Pre-defined weather scenarios."""
    CALM = "calm"      # Light air, dry, mild
    WINDY = "windy"    # Strong gusts, dry
    RAIN = "rain"      # Steady rain, humid


@dataclass
class HubSimulatorState:
    """Current state of the simulated station."""
    air_temperature: float = 18.0      # °C
    relative_humidity: float = 55.0    # %
    station_pressure: float = 1008.0   # mb
    wind_avg: float = 1.5              # m/s
    wind_gust_factor: float = 1.6
    wind_direction: float = 200.0      # degrees
    illuminance: float = 12000.0       # lux
    uv: float = 2.0
    solar_radiation: float = 150.0     # W/m²
    precip_rate_mm_min: float = 0.0
    battery: float = 2.62              # volts

    # Device info
    serial_number: str = "ST-00000512"
    hub_serial_number: str = "HB-00013030"
    firmware_revision: int = 171
    hub_firmware_revision: str = "171"
    started_at: float = field(default_factory=time.time)


_SCENARIOS: Dict[HubScenario, Dict[str, float]] = {
    HubScenario.CALM: {"wind_avg": 1.5, "wind_gust_factor": 1.6, "relative_humidity": 55.0,
                       "precip_rate_mm_min": 0.0, "illuminance": 12000.0},
    HubScenario.WINDY: {"wind_avg": 11.0, "wind_gust_factor": 1.9, "relative_humidity": 40.0,
                        "precip_rate_mm_min": 0.0, "illuminance": 20000.0},
    HubScenario.RAIN: {"wind_avg": 4.0, "wind_gust_factor": 1.7, "relative_humidity": 94.0,
                       "precip_rate_mm_min": 0.08, "illuminance": 3000.0},
}


class HubSimulator:
    """
    Broadcasts Tempest hub datagrams to a target address.

    Message builders are public so tests can produce individual datagrams
    without running the broadcast loop.
    """

    def __init__(
        self,
        host: str = "255.255.255.255",
        port: int = BROADCAST_PORT,
        scenario: HubScenario = HubScenario.CALM,
        obs_interval: float = 60.0,
        wind_interval: float = 3.0,
        status_interval: float = 60.0,
        hub_status_interval: float = 20.0,
        seed: Optional[int] = None,
    ):
        self.host = host
        self.port = port
        self.obs_interval = obs_interval
        self.wind_interval = wind_interval
        self.status_interval = status_interval
        self.hub_status_interval = hub_status_interval

        self.state = HubSimulatorState()
        self.scenario = HubScenario.CALM
        self._rng = random.Random(seed)
        self._socket: Optional[socket.socket] = None
        self._running = False
        self.sent_count = 0

        self.set_scenario(scenario)

    # =========================================================================
    # Scenario
    # =========================================================================

    def set_scenario(self, scenario: HubScenario):
        """Switch scenario; entering rain queues an evt_precip."""
        previous = self.scenario
        self.scenario = scenario
        for key, value in _SCENARIOS[scenario].items():
            setattr(self.state, key, value)
        self._pending_rain_event = scenario is HubScenario.RAIN and previous is not HubScenario.RAIN
        logger.info(f"Scenario: {scenario.value}")

    def _noise(self, amplitude: float) -> float:
        return self._rng.gauss(0, amplitude)

    # =========================================================================
    # Message Builders
    # =========================================================================

    def observation_row(self, epoch: Optional[int] = None) -> List[Any]:
        """One 18-field observation row in obs_st order."""
        s = self.state
        epoch = int(epoch if epoch is not None else time.time())
        wind_avg = max(0.0, s.wind_avg + self._noise(s.wind_avg * 0.1))
        wind_gust = wind_avg * s.wind_gust_factor
        wind_lull = wind_avg * 0.4
        precip = s.precip_rate_mm_min * (self.obs_interval / 60.0)
        precip_type = 1 if precip > 0 else 0
        return [
            epoch,
            round(wind_lull, 2),
            round(wind_avg, 2),
            round(wind_gust, 2),
            int((s.wind_direction + self._noise(10)) % 360),
            3,
            round(s.station_pressure + self._noise(0.2), 1),
            round(s.air_temperature + self._noise(0.1), 1),
            int(min(100.0, max(1.0, s.relative_humidity + self._noise(1)))),
            int(s.illuminance),
            round(s.uv, 2),
            int(s.solar_radiation),
            round(precip, 3),
            precip_type,
            0,
            0,
            round(s.battery, 3),
            max(1, int(round(self.obs_interval / 60.0))),
        ]

    def observation_message(self, epoch: Optional[int] = None) -> Dict[str, Any]:
        return {
            "serial_number": self.state.serial_number,
            "type": MSG_OBSERVATION,
            "hub_sn": self.state.hub_serial_number,
            "obs": [self.observation_row(epoch)],
            "firmware_revision": self.state.firmware_revision,
        }

    def rapid_wind_message(self, epoch: Optional[int] = None) -> Dict[str, Any]:
        s = self.state
        epoch = int(epoch if epoch is not None else time.time())
        speed = max(0.0, s.wind_avg + self._noise(s.wind_avg * 0.25))
        direction = int((s.wind_direction + self._noise(15)) % 360)
        return {
            "serial_number": s.serial_number,
            "type": MSG_RAPID_WIND,
            "hub_sn": s.hub_serial_number,
            "ob": [epoch, round(speed, 2), direction],
        }

    def device_status_message(self, epoch: Optional[int] = None) -> Dict[str, Any]:
        s = self.state
        epoch = int(epoch if epoch is not None else time.time())
        return {
            "serial_number": s.serial_number,
            "type": MSG_DEVICE_STATUS,
            "hub_sn": s.hub_serial_number,
            "timestamp": epoch,
            "uptime": int(time.time() - s.started_at),
            "voltage": round(s.battery, 3),
            "firmware_revision": s.firmware_revision,
            "rssi": -60 + int(self._noise(3)),
            "hub_rssi": -55 + int(self._noise(3)),
            "sensor_status": 0,
            "debug": 0,
        }

    def hub_status_message(self, epoch: Optional[int] = None) -> Dict[str, Any]:
        s = self.state
        epoch = int(epoch if epoch is not None else time.time())
        return {
            "serial_number": s.hub_serial_number,
            "type": MSG_HUB_STATUS,
            "firmware_revision": s.hub_firmware_revision,
            "uptime": int(time.time() - s.started_at),
            "rssi": -62,
            "timestamp": epoch,
            "reset_flags": "BOR,PIN,POR",
            "seq": self.sent_count,
        }

    def rain_start_message(self, epoch: Optional[int] = None) -> Dict[str, Any]:
        epoch = int(epoch if epoch is not None else time.time())
        return {
            "serial_number": self.state.serial_number,
            "type": MSG_RAIN_START,
            "hub_sn": self.state.hub_serial_number,
            "evt": [epoch],
        }

    # =========================================================================
    # Transport
    # =========================================================================

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        return sock

    def send(self, message: Dict[str, Any]) -> int:
        """Send one message as a UTF-8 JSON datagram."""
        if self._socket is None:
            self._socket = self._open_socket()
        data = json.dumps(message).encode("utf-8")
        sent = self._socket.sendto(data, (self.host, self.port))
        self.sent_count += 1
        logger.debug(f"Sent {message['type']} ({sent} bytes) to {self.host}:{self.port}")
        return sent

    def close(self):
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    # =========================================================================
    # Broadcast Loop
    # =========================================================================

    def _schedule(self) -> List[Tuple[float, Any]]:
        return [
            (self.wind_interval, self.rapid_wind_message),
            (self.obs_interval, self.observation_message),
            (self.status_interval, self.device_status_message),
            (self.hub_status_interval, self.hub_status_message),
        ]

    async def run(self, duration: Optional[float] = None):
        """
        Broadcast until stopped (or for ``duration`` seconds).

        Every message type is sent once at startup, then on its interval.
        """
        self._running = True
        schedule = self._schedule()
        start = time.monotonic()
        next_due = [start for _ in schedule]
        tick = min(interval for interval, _ in schedule)

        logger.info(
            f"Hub simulator broadcasting to {self.host}:{self.port} "
            f"({self.scenario.value}, obs every {self.obs_interval}s)"
        )

        try:
            while self._running:
                now = time.monotonic()
                if duration is not None and now - start >= duration:
                    break

                if self._pending_rain_event:
                    self.send(self.rain_start_message())
                    self._pending_rain_event = False

                for i, (interval, builder) in enumerate(schedule):
                    if now >= next_due[i]:
                        self.send(builder())
                        next_due[i] = now + interval

                wake = min(next_due) - time.monotonic()
                await asyncio.sleep(max(0.0, min(wake, tick)))
        finally:
            self._running = False
            self.close()
            logger.info(f"Hub simulator stopped after {self.sent_count} datagrams")

    def stop(self):
        self._running = False


async def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="WeatherFlow Tempest Hub Broadcast Simulator"
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("TEMPEST_SIM_HOST", "255.255.255.255"),
        help="Target address (default: 255.255.255.255)",
    )
    parser.add_argument(
        "--port", type=int,
        default=int(os.environ.get("TEMPEST_SIM_PORT", str(BROADCAST_PORT))),
        help=f"Target UDP port (default: {BROADCAST_PORT})",
    )
    parser.add_argument(
        "--scenario",
        choices=[s.value for s in HubScenario],
        default=os.environ.get("TEMPEST_SIM_SCENARIO", HubScenario.CALM.value),
        help="Weather scenario (default: calm)",
    )
    parser.add_argument("--obs-interval", type=float, default=60.0,
                        help="Seconds between obs_st messages (default: 60)")
    parser.add_argument("--wind-interval", type=float, default=3.0,
                        help="Seconds between rapid_wind messages (default: 3)")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds (default: run forever)")
    parser.add_argument("--log-level", default="INFO",
                        help="Logging level (default: INFO)")
    args = parser.parse_args()

    setup_logging(log_level=args.log_level, enable_correlation=False)

    simulator = HubSimulator(
        host=args.host,
        port=args.port,
        scenario=HubScenario(args.scenario),
        obs_interval=args.obs_interval,
        wind_interval=args.wind_interval,
    )
    await simulator.run(duration=args.duration)


def cli():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
