"""
Tests for weather API clients and the combined weather feed.
"""

import asyncio
import pytest
from datetime import date
from unittest.mock import AsyncMock, patch, MagicMock

import httpx

from weather_agent.config import get_city_config
from weather_agent.errors import DataUnavailableError
from weather_agent.apis.open_meteo import OpenMeteoClient, DeterministicForecast, summarize_member_highs
from weather_agent.apis.nws import NWSClient, PointForecast, parse_periods
from weather_agent.apis.weather_feed import WeatherClient
from weather_agent.models import ConfidenceTier, HourlyTemp

TODAY = date(2026, 10, 18)


def _response(payload):
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status = MagicMock()
    return mock_response


@pytest.fixture
def nyc_config():
    return get_city_config("nyc")


class TestSummarizeMemberHighs:
    """Tests for turning ensemble member highs into buckets."""

    def test_bucket_probabilities(self):
        summary = summarize_member_highs([39.5, 40.2, 41.0, 41.9])
        assert [(b.lower, b.upper) for b in summary.buckets] == [(38.0, 40.0), (40.0, 42.0)]
        assert [b.probability for b in summary.buckets] == [0.25, 0.75]
        assert summary.total_probability == pytest.approx(1.0)
        assert summary.member_count == 4

    def test_distribution_stats(self):
        summary = summarize_member_highs([40.0, 42.0, 44.0, 46.0])
        assert summary.mean_high == pytest.approx(43.0)
        assert summary.min_high == 40.0
        assert summary.max_high == 46.0
        assert summary.std_dev == pytest.approx(2.2360679775)

    def test_tight_members_are_high_confidence(self):
        summary = summarize_member_highs([40.1, 40.4, 40.9, 41.2])
        assert ConfidenceTier.from_std_dev(summary.std_dev) is ConfidenceTier.HIGH

    def test_no_members_raises(self):
        with pytest.raises(DataUnavailableError):
            summarize_member_highs([])


class TestOpenMeteoClient:
    """Tests for Open-Meteo API client."""

    @pytest.fixture
    def client(self, nyc_config):
        return OpenMeteoClient(nyc_config)

    @pytest.fixture
    def mock_forecast_response(self):
        return {
            "current": {"temperature_2m": 35.2},
            "hourly": {
                "time": ["2026-10-18T00:00", "2026-10-18T14:00", "2026-10-18T15:00", "2026-10-19T14:00"],
                "temperature_2m": [33.0, 41.5, None, 50.0],
            },
        }

    @pytest.mark.asyncio
    async def test_get_deterministic(self, client, mock_forecast_response):
        """Today's hours only; the high is their max."""
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(mock_forecast_response)

            forecast = await client.get_deterministic(TODAY)

            assert forecast.current_temp_f == 35.2
            assert forecast.forecast_high_f == 41.5
            assert len(forecast.hourly) == 2
            params = mock_get.call_args.kwargs["params"]
            assert params["temperature_unit"] == "fahrenheit"
            assert params["timezone"] == "America/New_York"

    @pytest.mark.asyncio
    async def test_get_deterministic_missing_current(self, client, mock_forecast_response):
        del mock_forecast_response["current"]
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(mock_forecast_response)
            with pytest.raises(DataUnavailableError):
                await client.get_deterministic(TODAY)

    @pytest.mark.asyncio
    async def test_http_error_is_data_unavailable(self, client):
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = httpx.ConnectError("connection refused")
            with pytest.raises(DataUnavailableError):
                await client.get_deterministic(TODAY)

    @pytest.mark.asyncio
    async def test_get_ensemble(self, client):
        """Every temperature_2m series is one member."""
        payload = {
            "hourly": {
                "time": ["2026-10-18T12:00", "2026-10-18T15:00", "2026-10-19T15:00"],
                "temperature_2m": [38.0, 39.5, 60.0],
                "temperature_2m_member01": [39.0, 40.2, 60.0],
                "temperature_2m_member02": [41.0, 40.0, 60.0],
                "temperature_2m_member03": [41.9, None, 60.0],
                "relative_humidity_2m": [80, 70, 60],
            }
        }
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(payload)

            summary = await client.get_ensemble(TODAY)

            assert summary.member_count == 4
            assert summary.max_high == 41.9
            assert summary.total_probability == pytest.approx(1.0)
            assert "models" in mock_get.call_args.kwargs["params"]

    @pytest.mark.asyncio
    async def test_get_ensemble_without_members(self, client):
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response({"hourly": {"time": []}})
            with pytest.raises(DataUnavailableError):
                await client.get_ensemble(TODAY)

    @pytest.mark.asyncio
    async def test_get_ensemble_malformed_member(self, client):
        payload = {"hourly": {"time": ["2026-10-18T15:00"], "temperature_2m_member01": ["n/a"]}}
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(payload)
            with pytest.raises(DataUnavailableError, match="Malformed"):
                await client.get_ensemble(TODAY)

    @pytest.mark.asyncio
    async def test_get_deterministic_malformed_payload(self, client):
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response(["not", "a", "forecast"])
            with pytest.raises(DataUnavailableError, match="Malformed"):
                await client.get_deterministic(TODAY)


class TestNWSClient:
    """Tests for NWS API client."""

    @pytest.fixture
    def client(self, nyc_config):
        return NWSClient(nyc_config)

    @pytest.fixture
    def periods(self):
        return [
            {"name": "Today", "isDaytime": True, "temperature": 42, "shortForecast": "Sunny"},
            {"name": "Tonight", "isDaytime": False, "temperature": 31, "shortForecast": "Clear"},
            {"name": "Sunday", "isDaytime": True, "temperature": 50, "shortForecast": "Cloudy"},
        ]

    @pytest.mark.asyncio
    async def test_get_point_forecast(self, client, periods):
        """Points lookup, then the gridpoint forecast."""
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = [
                _response({"properties": {"forecast": "https://api.weather.gov/gridpoints/OKX/33,35/forecast"}}),
                _response({"properties": {"periods": periods}}),
            ]

            forecast = await client.get_point_forecast()

            assert forecast == PointForecast(high_f=42.0, low_f=31.0, short_forecast="Sunny")
            assert mock_get.call_count == 2
            assert "/points/40.7" in mock_get.call_args_list[0].args[0]

    @pytest.mark.asyncio
    async def test_missing_forecast_url(self, client):
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _response({"properties": {}})
            with pytest.raises(DataUnavailableError):
                await client.get_point_forecast()

    @pytest.mark.asyncio
    async def test_non_numeric_temperature(self, client):
        with patch.object(client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = [
                _response({"properties": {"forecast": "https://api.weather.gov/gridpoints/OKX/33,35/forecast"}}),
                _response({"properties": {"periods": [{"isDaytime": True, "temperature": [45]}]}}),
            ]
            with pytest.raises(DataUnavailableError, match="Malformed"):
                await client.get_point_forecast()

    def test_parse_periods_quantitative_values(self):
        forecast = parse_periods([
            {"isDaytime": True, "temperature": {"unitCode": "wmoUnit:degF", "value": 45}},
            {"isDaytime": False, "temperature": {"unitCode": "wmoUnit:degC", "value": 0}},
        ])
        assert forecast.high_f == 45.0
        assert forecast.low_f == pytest.approx(32.0)

    def test_parse_periods_starting_at_night(self):
        """Evening runs start with the overnight low."""
        forecast = parse_periods([
            {"isDaytime": False, "temperature": 30},
            {"isDaytime": True, "temperature": 45, "shortForecast": "Rain"},
        ])
        assert forecast.high_f == 45.0
        assert forecast.low_f == 30.0
        assert forecast.short_forecast == "Rain"


class TestWeatherClient:
    """Tests for the concurrent weather feed."""

    @pytest.fixture
    def deterministic(self):
        return DeterministicForecast(
            current_temp_f=35.0,
            forecast_high_f=41.0,
            hourly=(HourlyTemp("2026-10-18T14:00", 41.0),),
        )

    def _feed(self, city, deterministic=None, ensemble=None, nws=None):
        open_meteo = MagicMock()
        open_meteo.get_deterministic = AsyncMock(**deterministic)
        open_meteo.get_ensemble = AsyncMock(**ensemble)
        nws_client = MagicMock()
        nws_client.get_point_forecast = AsyncMock(**nws)
        return WeatherClient(city, open_meteo=open_meteo, nws=nws_client, best_effort_timeout=0.05)

    @pytest.mark.asyncio
    async def test_all_sources(self, nyc_config, deterministic):
        ensemble = summarize_member_highs([40.0, 41.0, 42.0])
        feed = self._feed(
            nyc_config,
            deterministic={"return_value": deterministic},
            ensemble={"return_value": ensemble},
            nws={"return_value": PointForecast(42.0, 31.0, "Sunny")},
        )

        snapshot = await feed.forecast()

        assert snapshot.deterministic_high_f == 41.0
        assert snapshot.official_high_f == 42.0
        assert snapshot.official_summary == "Sunny"
        assert snapshot.ensemble == ensemble
        assert snapshot.city == nyc_config.name
        assert all(r.ok for r in feed.last_results.values())

    @pytest.mark.asyncio
    async def test_best_effort_failures_tolerated(self, nyc_config, deterministic):
        feed = self._feed(
            nyc_config,
            deterministic={"return_value": deterministic},
            ensemble={"side_effect": DataUnavailableError("ensemble down")},
            nws={"side_effect": DataUnavailableError("nws down")},
        )

        snapshot = await feed.forecast()

        assert snapshot is not None
        assert snapshot.ensemble is None
        assert snapshot.official_high_f is None
        assert snapshot.confidence is ConfidenceTier.LOW
        assert not feed.last_results["ensemble"].ok

    @pytest.mark.asyncio
    async def test_slow_best_effort_source_times_out(self, nyc_config, deterministic):
        async def slow():
            await asyncio.sleep(5)

        feed = self._feed(
            nyc_config,
            deterministic={"return_value": deterministic},
            ensemble={"return_value": summarize_member_highs([40.0])},
            nws={"side_effect": slow},
        )

        snapshot = await feed.forecast()

        assert snapshot.official_high_f is None
        assert snapshot.ensemble is not None
        assert isinstance(feed.last_results["nws"].error, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_deterministic_failure_returns_none(self, nyc_config):
        feed = self._feed(
            nyc_config,
            deterministic={"side_effect": DataUnavailableError("open-meteo down")},
            ensemble={"return_value": summarize_member_highs([40.0])},
            nws={"return_value": PointForecast(42.0, 31.0)},
        )
        assert await feed.forecast() is None

    @pytest.mark.asyncio
    async def test_unexpected_best_effort_exception_is_absorbed(self, nyc_config, deterministic):
        feed = self._feed(
            nyc_config,
            deterministic={"return_value": deterministic},
            ensemble={"side_effect": KeyError("temperature_2m")},
            nws={"return_value": PointForecast(42.0, 31.0)},
        )

        snapshot = await feed.forecast()

        assert snapshot.ensemble is None
        assert snapshot.official_high_f == 42.0
        assert isinstance(feed.last_results["ensemble"].error, KeyError)

    @pytest.mark.asyncio
    async def test_malformed_nws_payload_leaves_official_empty(self, nyc_config, deterministic):
        """A real NWS client fed a garbled period still yields a snapshot."""
        nws_client = NWSClient(nyc_config)
        open_meteo = MagicMock()
        open_meteo.get_deterministic = AsyncMock(return_value=deterministic)
        open_meteo.get_ensemble = AsyncMock(return_value=summarize_member_highs([40.0, 41.0]))
        feed = WeatherClient(nyc_config, open_meteo=open_meteo, nws=nws_client, best_effort_timeout=0.5)

        with patch.object(nws_client.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = [
                _response({"properties": {"forecast": "https://api.weather.gov/gridpoints/OKX/33,35/forecast"}}),
                _response({"properties": {"periods": [
                    {"isDaytime": True, "temperature": {"unitCode": "wmoUnit:degF", "value": "hot"}},
                ]}}),
            ]
            snapshot = await feed.forecast()

        assert snapshot is not None
        assert snapshot.official_high_f is None
        assert snapshot.ensemble is not None
        assert isinstance(feed.last_results["nws"].error, DataUnavailableError)
