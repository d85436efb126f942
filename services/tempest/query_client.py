"""
TEMPESTWATCH Cloud Query Client

Request/response client for the WeatherFlow Smart Weather REST API.

Endpoints (HTTP GET, token as a query parameter):
    stations                        stations and their devices
    observations/station/{id}       latest station-level observation
    observations/device/{id}        latest device observation + summary

The client fails soft: no credential, HTTP errors, malformed JSON and
transport failures are logged and returned as an empty list or None.
"""

import asyncio
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import aiohttp

from services.tempest.models import DeviceObservation, StationConfig, StationObservation
from tempestwatch.constants import CLOUD_REQUEST_TIMEOUT_SEC, CLOUD_REST_URL, CLOUD_USER_AGENT
from tempestwatch.logging_config import get_logger

logger = get_logger(__name__)


class CloudQueryClient:
    """Stateless REST client; one HTTP session per request."""

    def __init__(
        self,
        base_url: str = CLOUD_REST_URL,
        timeout: float = CLOUD_REQUEST_TIMEOUT_SEC,
        user_agent: str = CLOUD_USER_AGENT,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.user_agent = user_agent
        self._token: str = ""

    @property
    def is_authenticated(self) -> bool:
        """True once a non-empty token is set; the server is not consulted."""
        return bool(self._token)

    def set_credential(self, token: Optional[str]):
        self._token = (token or "").strip()

    def _redact(self, url: str) -> str:
        if self._token:
            return url.replace(self._token, "***")
        return url

    async def _get_json(self, endpoint: str) -> Optional[Any]:
        """
        GET an endpoint and decode its JSON body.

        Returns:
            Decoded JSON, or None on any failure (already logged)
        """
        if not self.is_authenticated:
            logger.warning(f"Cannot query {endpoint} - no access token provided")
            return None

        url = urljoin(self.base_url, endpoint)
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}

        try:
            async with aiohttp.ClientSession(headers=headers) as session:
                async with session.get(
                    url,
                    params={"token": self._token},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    shown = self._redact(str(resp.url))
                    if resp.status == 404:
                        logger.error(f"GET {shown} returned 404 - check the access token")
                        return None
                    if resp.status != 200:
                        logger.error(f"GET {shown} returned HTTP {resp.status}")
                        return None
                    try:
                        return await resp.json(content_type=None)
                    except ValueError as e:
                        logger.error(f"GET {shown} returned malformed JSON: {e}")
                        return None
        except asyncio.TimeoutError:
            logger.error(f"GET {url} timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            logger.error(f"GET {url} failed: {self._redact(str(e))}")
        return None

    async def list_stations(self) -> List[StationConfig]:
        """Stations on the account, each with its devices."""
        data = await self._get_json("stations")
        if not isinstance(data, dict):
            return []

        raw_stations = data.get("stations") or []
        if not isinstance(raw_stations, list):
            logger.error("Station list response has no 'stations' array")
            return []

        stations: List[StationConfig] = []
        for entry in raw_stations:
            try:
                stations.append(StationConfig.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping malformed station entry: {e}")
        logger.debug(f"Retrieved {len(stations)} stations")
        return stations

    async def get_station_observation(self, station_id: int) -> Optional[StationObservation]:
        """Latest station-level observation, or None."""
        data = await self._get_json(f"observations/station/{station_id}")
        return self._build(StationObservation, data, f"station {station_id}")

    async def get_device_observation(self, device_id: int) -> Optional[DeviceObservation]:
        """Latest device observation with its summary, or None."""
        data = await self._get_json(f"observations/device/{device_id}")
        return self._build(DeviceObservation, data, f"device {device_id}")

    @staticmethod
    def _build(model, data: Optional[Dict[str, Any]], what: str):
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.error(f"Observation response for {what} is not an object")
            return None
        try:
            return model.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed observation response for {what}: {e}")
            return None
