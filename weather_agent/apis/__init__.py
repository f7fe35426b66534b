"""
Weather API clients for forecast data collection.

Supports:
- Open-Meteo: deterministic best_match forecast and multi-model ensemble
- NWS: official point forecast for the settlement city
"""

from .open_meteo import OpenMeteoClient, DeterministicForecast, summarize_member_highs
from .nws import NWSClient, PointForecast
from .weather_feed import WeatherClient, SourceResult

__all__ = [
    "OpenMeteoClient",
    "DeterministicForecast",
    "summarize_member_highs",
    "NWSClient",
    "PointForecast",
    "WeatherClient",
    "SourceResult",
]
