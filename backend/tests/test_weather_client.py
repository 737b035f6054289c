import asyncio
from dataclasses import replace

import httpx
import pytest

from app.config import Settings
from app.errors import ConfigurationError, LocationNotFoundError, UpstreamError
from app.services.weather_client import WeatherClient


SETTINGS = replace(Settings(), openweather_api_keys=("key-a", "key-b"), api_retry_attempts=0)

CURRENT_PAYLOAD = {
    "name": "Phoenix",
    "sys": {"country": "US"},
    "timezone": -25200,
    "main": {"temp": 35.4, "feels_like": 36.5, "humidity": 12},
    "wind": {"speed": 4.0},
    "weather": [{"main": "Clear", "description": "clear sky", "icon": "01d"}],
}

FORECAST_PAYLOAD = {
    "city": {"timezone": 0},
    "list": [
        {
            "dt": 1_772_636_400,
            "main": {"temp": 31.5, "humidity": 20},
            "wind": {"speed": 2.5},
            "pop": 0.35,
            "weather": [{"main": "Clouds", "icon": "02d"}],
        }
    ],
}


def _client(handler, settings: Settings = SETTINGS) -> WeatherClient:  # noqa: ANN001
    return WeatherClient(settings=settings, transport=httpx.MockTransport(handler), retry_backoff_seconds=0)


def test_current_weather_is_parsed_to_metric_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/weather")
        assert request.url.params["q"] == "Phoenix"
        assert request.url.params["units"] == "metric"
        return httpx.Response(200, json=CURRENT_PAYLOAD)

    snapshot = asyncio.run(_client(handler).fetch_current(city="Phoenix"))

    assert snapshot.city == "Phoenix"
    assert snapshot.country == "US"
    assert snapshot.temperature == 35
    assert snapshot.feels_like == 37
    # 4.0 m/s is 14.4 km/h.
    assert snapshot.wind_speed == 14
    assert snapshot.condition == "Clear"
    assert snapshot.timezone_offset == -25200


def test_not_found_maps_to_location_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"cod": "404", "message": "city not found"})

    with pytest.raises(LocationNotFoundError, match='City "Atlantis" not found.'):
        asyncio.run(_client(handler).fetch_current(city="Atlantis"))


def test_rejected_key_rotates_to_next_key() -> None:
    seen_keys: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.params["appid"]
        seen_keys.append(key)
        if key == "key-a":
            return httpx.Response(401, json={"message": "Invalid API key"})
        return httpx.Response(200, json=CURRENT_PAYLOAD)

    snapshot = asyncio.run(_client(handler).fetch_current(city="Phoenix"))

    assert snapshot.city == "Phoenix"
    assert seen_keys == ["key-a", "key-b"]


def test_all_keys_rejected_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"message": "rate limited"})

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(_client(handler).fetch_current(city="Phoenix"))
    assert exc_info.value.status_code == 429


def test_missing_keys_is_configuration_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ConfigurationError):
        asyncio.run(_client(handler, settings=Settings()).fetch_current(city="Phoenix"))


def test_empty_city_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ValueError):
        asyncio.run(_client(handler).fetch_current(city="  "))


def test_responses_are_cached_per_location() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200, json=CURRENT_PAYLOAD)

    client = _client(handler)

    async def run() -> None:
        await client.fetch_current(city="Phoenix")
        await client.fetch_current(city="phoenix")
        await client.fetch_current(city="Phoenix", use_cache=False)

    asyncio.run(run())
    assert calls["count"] == 2


def test_snapshot_attaches_forecast() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/forecast"):
            assert request.url.params["cnt"] == "8"
            return httpx.Response(200, json=FORECAST_PAYLOAD)
        return httpx.Response(200, json=CURRENT_PAYLOAD)

    snapshot = asyncio.run(_client(handler).fetch_snapshot(city="Phoenix"))

    assert snapshot.hourly_forecast is not None
    entry = snapshot.hourly_forecast[0]
    assert entry.temp == 32
    assert entry.wind_speed == 9
    assert entry.precipitation_chance == 35
    assert entry.condition == "Clouds"
    assert entry.time.endswith(("AM", "PM"))


def test_snapshot_survives_forecast_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/forecast"):
            return httpx.Response(500, json={"message": "boom"})
        return httpx.Response(200, json=CURRENT_PAYLOAD)

    snapshot = asyncio.run(_client(handler).fetch_snapshot(city="Phoenix"))

    assert snapshot.city == "Phoenix"
    assert snapshot.hourly_forecast is None


def test_air_quality_is_parsed_with_level() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/air_pollution")
        return httpx.Response(
            200,
            json={"list": [{"main": {"aqi": 3}, "components": {"pm2_5": 21.4, "o3": 60.1}}]},
        )

    reading = asyncio.run(_client(handler).fetch_air_quality(latitude=33.45, longitude=-112.07))

    assert reading.aqi == 3
    assert reading.level == "Moderate"
    assert reading.components["pm2_5"] == 21.4


def test_empty_air_quality_list_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"list": []})

    with pytest.raises(LocationNotFoundError):
        asyncio.run(_client(handler).fetch_air_quality(latitude=0, longitude=0))
