"""
Open-Meteo API Client

Two sources for the day's high:
- Deterministic forecast (best_match blend): current temperature and
  today's hourly trajectory. Required by the trading cycle.
- Ensemble forecast (ICON, GFS, ECMWF members): distribution of daily
  highs, summarized into 2°F bucket probabilities. Best effort.

Free API with no key required. Temperatures requested in Fahrenheit and
hourly times in the city's local timezone.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Optional

import httpx
import numpy as np

from ..config import CityConfig, config
from ..errors import DataUnavailableError
from ..models import BucketProbability, EnsembleSummary, HourlyTemp

BUCKET_WIDTH_F = 2


@dataclass(frozen=True)
class DeterministicForecast:
    current_temp_f: float
    forecast_high_f: float
    hourly: tuple[HourlyTemp, ...]


def summarize_member_highs(highs: list[float]) -> EnsembleSummary:
    """Distribution stats and 2°F bucket probabilities for ensemble daily highs."""
    if not highs:
        raise DataUnavailableError("No ensemble members")
    arr = np.sort(np.asarray(highs, dtype=float))
    n = len(arr)
    p10, p25, p75, p90 = np.percentile(arr, [10, 25, 75, 90], method="nearest")

    # One empty bucket of margin on each side
    lower = int(math.floor(arr[0] / BUCKET_WIDTH_F)) * BUCKET_WIDTH_F - BUCKET_WIDTH_F
    upper = int(math.ceil(arr[-1] / BUCKET_WIDTH_F)) * BUCKET_WIDTH_F + BUCKET_WIDTH_F

    buckets = []
    for lo in range(lower, upper, BUCKET_WIDTH_F):
        hi = lo + BUCKET_WIDTH_F
        count = int(np.count_nonzero((arr >= lo) & (arr < hi)))
        if count:
            buckets.append(BucketProbability(lower=float(lo), upper=float(hi), probability=count / n))

    return EnsembleSummary(
        buckets=tuple(buckets),
        std_dev=float(arr.std()),
        member_count=n,
        mean_high=float(arr.mean()),
        min_high=float(arr[0]),
        max_high=float(arr[-1]),
        p10=float(p10),
        p25=float(p25),
        p75=float(p75),
        p90=float(p90),
    )


class OpenMeteoClient:
    """Client for Open-Meteo weather API."""

    def __init__(self, city: CityConfig, client: Optional[httpx.AsyncClient] = None):
        self.city = city
        self.base_url = config.api.open_meteo_base_url
        self.ensemble_url = config.api.open_meteo_ensemble_url
        self.client = client or httpx.AsyncClient(timeout=config.api.http_timeout)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _params(self, **extra) -> dict:
        return {
            "latitude": self.city.latitude,
            "longitude": self.city.longitude,
            "hourly": "temperature_2m",
            "temperature_unit": "fahrenheit",
            "timezone": self.city.timezone,
            "forecast_days": 2,
            **extra,
        }

    async def _get(self, url: str, params: dict) -> dict:
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DataUnavailableError(f"Open-Meteo request to {url} failed: {e}") from e

    async def get_deterministic(self, today: date) -> DeterministicForecast:
        """
        Current temperature and today's hourly forecast.

        Raises:
            DataUnavailableError: request failed, the payload is malformed, or
                today has no hourly data.
        """
        data = await self._get(f"{self.base_url}/forecast", self._params(current="temperature_2m"))
        try:
            return self._parse_deterministic(data, today)
        except (AttributeError, TypeError, ValueError) as e:
            raise DataUnavailableError(f"Malformed Open-Meteo forecast: {e}") from e

    @staticmethod
    def _parse_deterministic(data: dict, today: date) -> DeterministicForecast:
        current = (data.get("current") or {}).get("temperature_2m")
        if current is None:
            raise DataUnavailableError("Open-Meteo response missing current temperature")

        hourly_data = data.get("hourly") or {}
        prefix = today.isoformat()
        hourly = tuple(
            HourlyTemp(time=t, temperature_f=float(temp))
            for t, temp in zip(hourly_data.get("time", []), hourly_data.get("temperature_2m", []))
            if t.startswith(prefix) and temp is not None
        )
        if not hourly:
            raise DataUnavailableError(f"Open-Meteo has no hourly data for {prefix}")

        return DeterministicForecast(
            current_temp_f=float(current),
            forecast_high_f=max(h.temperature_f for h in hourly),
            hourly=hourly,
        )

    async def get_ensemble(self, today: date) -> EnsembleSummary:
        """
        Ensemble distribution of today's high.

        Every `temperature_2m*` series in the response is one member; its
        high is the max over today's hours.

        Raises:
            DataUnavailableError: request failed, the payload is malformed, or no
                member has data for today.
        """
        data = await self._get(
            f"{self.ensemble_url}/ensemble",
            self._params(models=config.api.ensemble_models),
        )
        try:
            highs = self._member_highs(data, today)
        except (AttributeError, TypeError, ValueError) as e:
            raise DataUnavailableError(f"Malformed Open-Meteo ensemble: {e}") from e
        return summarize_member_highs(highs)

    @staticmethod
    def _member_highs(data: dict, today: date) -> list[float]:
        hourly = data.get("hourly") or {}
        prefix = today.isoformat()
        indices = [i for i, t in enumerate(hourly.get("time", [])) if t.startswith(prefix)]

        highs = []
        for key, values in hourly.items():
            if not key.startswith("temperature_2m"):
                continue
            temps = [float(values[i]) for i in indices if i < len(values) and values[i] is not None]
            if temps:
                highs.append(max(temps))
        return highs
