"""
TEMPESTWATCH command-line runner.

Usage:
    python -m tempestwatch [--config PATH] [--mode MODE] [--token TOKEN]
                           [--log-level LEVEL] [--log-file PATH]
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from services.tempest.models import ConnectionMode, WeatherSnapshot, WindSample
from tempestwatch.config import load_config
from tempestwatch.constants import TEMPESTWATCH_VERSION
from tempestwatch.exceptions import ConfigurationError
from tempestwatch.logging_config import get_logger, setup_logging
from tempestwatch.orchestrator import ConnectionOrchestrator

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tempestwatch",
        description="WeatherFlow Tempest ingestion service",
    )
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ConnectionMode],
        help="Connection mode (overrides config)",
    )
    parser.add_argument("--token", help="Cloud access token (overrides config)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides config)",
    )
    parser.add_argument("--log-file", help="Rotating log file path (overrides config)")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {TEMPESTWATCH_VERSION}"
    )
    return parser


def _on_weather(snapshot: WeatherSnapshot):
    logger.info(
        f"Weather {snapshot.timestamp:%H:%M:%S}: {snapshot.air_temperature:.1f}°C, "
        f"{snapshot.relative_humidity:.0f}%, {snapshot.station_pressure:.1f}mb, "
        f"wind {snapshot.wind_avg:.1f}/{snapshot.wind_gust:.1f}m/s @ {snapshot.wind_direction:.0f}°, "
        f"precip {snapshot.precip_type.name.lower()}"
    )


def _on_wind(sample: WindSample):
    logger.debug(f"Wind {sample.timestamp:%H:%M:%S}: {sample.speed:.1f}m/s @ {sample.direction:.0f}°")


def _on_status(message: str):
    logger.info(f"[status] {message}")


def _on_error(message: str):
    logger.error(f"[error] {message}")


async def run(orchestrator: ConnectionOrchestrator) -> int:
    """Run until SIGINT/SIGTERM, then stop cleanly."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    orchestrator.weather_updated.subscribe(_on_weather)
    orchestrator.wind_updated.subscribe(_on_wind)
    orchestrator.status_changed.subscribe(_on_status)
    orchestrator.error.subscribe(_on_error)

    logger.info(orchestrator.driver_info)
    if not await orchestrator.start():
        logger.error("Ingestion failed to start")
        return 1

    await stop_event.wait()
    logger.info("Shutdown requested")
    try:
        await asyncio.wait_for(orchestrator.stop(), orchestrator.config.shutdown_timeout)
    except asyncio.TimeoutError:
        logger.error("Shutdown timed out")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"tempestwatch: {e}", file=sys.stderr)
        return 2

    if args.mode:
        config.connection.mode = ConnectionMode(args.mode)
    if args.token:
        config.connection.access_token = args.token.strip()
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file

    setup_logging(log_level=config.log_level, log_file=config.log_file)

    orchestrator = ConnectionOrchestrator(config)
    return asyncio.run(run(orchestrator))


if __name__ == "__main__":
    sys.exit(main())
