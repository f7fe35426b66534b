"""
Weather feed for one city.

Fetches three sources together:
- Open-Meteo deterministic (required)
- Open-Meteo ensemble (best effort)
- NWS point forecast (best effort)

The best-effort sources are bounded by `weather_best_effort_timeout`. Each
source's outcome stays inspectable in `last_results` after the join.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ..config import CityConfig, config
from ..errors import TraderError
from ..models import WeatherSnapshot
from ..monitoring.logger import get_logger
from .nws import NWSClient
from .open_meteo import OpenMeteoClient

logger = get_logger("weather")


@dataclass(frozen=True)
class SourceResult:
    """What one source returned, or why it did not."""
    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


class WeatherClient:
    """WeatherFeed backed by Open-Meteo and NWS."""

    def __init__(
        self,
        city: CityConfig,
        open_meteo: Optional[OpenMeteoClient] = None,
        nws: Optional[NWSClient] = None,
        best_effort_timeout: Optional[float] = None,
    ):
        self.city = city
        self.open_meteo = open_meteo or OpenMeteoClient(city)
        self.nws = nws or NWSClient(city)
        self.best_effort_timeout = best_effort_timeout or config.api.weather_best_effort_timeout
        self.last_results: dict[str, SourceResult] = {}

    async def close(self):
        await self.open_meteo.close()
        await self.nws.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _today(self):
        return datetime.now(ZoneInfo(self.city.timezone)).date()

    async def _bounded(self, coro):
        return await asyncio.wait_for(coro, timeout=self.best_effort_timeout)

    @staticmethod
    def _collect(name: str, outcome: Any) -> SourceResult:
        if isinstance(outcome, (TraderError, asyncio.TimeoutError)):
            return SourceResult(name=name, error=outcome)
        if isinstance(outcome, Exception):
            logger.opt(exception=outcome).warning(f"Unexpected failure from {name} source")
            return SourceResult(name=name, error=outcome)
        if isinstance(outcome, BaseException):
            # Cancellation and interpreter exits are not source failures
            raise outcome
        return SourceResult(name=name, value=outcome)

    async def forecast(self) -> Optional[WeatherSnapshot]:
        """
        Snapshot for today in the city's timezone.

        Returns None when the deterministic forecast is unavailable; missing
        ensemble or NWS data only leaves those fields empty.
        """
        today = self._today()
        outcomes = await asyncio.gather(
            self.open_meteo.get_deterministic(today),
            self._bounded(self.open_meteo.get_ensemble(today)),
            self._bounded(self.nws.get_point_forecast()),
            return_exceptions=True,
        )
        deterministic, ensemble, official = (
            self._collect(name, outcome)
            for name, outcome in zip(("deterministic", "ensemble", "nws"), outcomes)
        )
        self.last_results = {r.name: r for r in (deterministic, ensemble, official)}

        if not deterministic.ok:
            logger.error(f"Open-Meteo deterministic failed: {deterministic.error!r}")
            return None
        if not ensemble.ok:
            logger.warning(f"Open-Meteo ensemble unavailable, continuing without it: {ensemble.error!r}")
        if not official.ok:
            logger.warning(f"NWS forecast unavailable, continuing without it: {official.error!r}")

        det = deterministic.value
        nws = official.value if official.ok else None
        return WeatherSnapshot(
            city=self.city.name,
            current_temp_f=det.current_temp_f,
            deterministic_high_f=det.forecast_high_f,
            hourly=det.hourly,
            official_high_f=nws.high_f if nws else None,
            official_low_f=nws.low_f if nws else None,
            official_summary=nws.short_forecast if nws else None,
            ensemble=ensemble.value if ensemble.ok else None,
        )
