"""
National Weather Service (NWS) API Client

Official point forecast for the city's gridpoint. Kalshi settles on the NWS
Daily Climate Report, so the NWS high is logged next to the model high.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import CityConfig, config
from ..errors import DataUnavailableError


@dataclass(frozen=True)
class PointForecast:
    """First daytime high and overnight low from the NWS 12-hour periods."""
    high_f: Optional[float]
    low_f: Optional[float]
    short_forecast: Optional[str] = None


class NWSClient:
    """Client for NWS gridpoint forecasts."""

    def __init__(self, city: CityConfig, client: Optional[httpx.AsyncClient] = None):
        self.city = city
        self.nws_base_url = config.api.nws_base_url
        self.user_agent = config.api.nws_user_agent
        self.client = client or httpx.AsyncClient(
            timeout=config.api.http_timeout,
            headers={"User-Agent": self.user_agent},
        )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get_json(self, url: str) -> dict:
        try:
            response = await self.client.get(url, headers={"User-Agent": self.user_agent})
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DataUnavailableError(f"NWS request to {url} failed: {e}") from e

    async def get_point_forecast(self) -> PointForecast:
        """
        Resolve the gridpoint, then read its forecast periods.

        Raises:
            DataUnavailableError: either request failed, or the response is
                malformed or has no periods.
        """
        points = await self._get_json(
            f"{self.nws_base_url}/points/{self.city.latitude:.4f},{self.city.longitude:.4f}"
        )
        try:
            forecast_url = (points.get("properties") or {}).get("forecast")
        except AttributeError as e:
            raise DataUnavailableError(f"Malformed NWS points response: {e}") from e
        if not forecast_url:
            raise DataUnavailableError("NWS points response has no forecast URL")

        forecast = await self._get_json(forecast_url)
        try:
            periods = (forecast.get("properties") or {}).get("periods") or []
            if not periods:
                raise DataUnavailableError("NWS forecast has no periods")
            return parse_periods(periods)
        except (AttributeError, TypeError, ValueError) as e:
            raise DataUnavailableError(f"Malformed NWS forecast periods: {e}") from e


def _temperature_f(value) -> Optional[float]:
    # Plain number, or a quantitative value such as {"unitCode": "wmoUnit:degC", "value": 7.2}
    if isinstance(value, dict):
        unit = value.get("unitCode") or ""
        value = value.get("value")
        if value is None:
            return None
        if unit.endswith("degC"):
            return float(value) * 9 / 5 + 32
    return None if value is None else float(value)


def parse_periods(periods: list[dict]) -> PointForecast:
    """
    First daytime period gives the high, first night period the low.

    Raises:
        TypeError, ValueError: a temperature is not a number.
    """
    high = low = None
    short = None
    for period in periods[:4]:
        temp = _temperature_f(period.get("temperature"))
        if temp is None:
            continue
        if period.get("isDaytime") and high is None:
            high = temp
            short = period.get("shortForecast")
        elif not period.get("isDaytime") and low is None:
            low = temp
        if high is not None and low is not None:
            break
    return PointForecast(high_f=high, low_f=low, short_forecast=short)
