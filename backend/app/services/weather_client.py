from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from app.config import Settings
from app.errors import ConfigurationError, LocationNotFoundError, UpstreamError
from app.logging_config import get_logger
from app.schemas import AirQuality, HourlyForecast, WeatherSnapshot
from app.services.ttl_cache import TTLCache


log = get_logger(__name__)

AQI_LEVELS = {
    1: "Good",
    2: "Fair",
    3: "Moderate",
    4: "Poor",
    5: "Very Poor",
}

RETRYABLE_HTTP_STATUS = {408, 429, 500, 502, 503, 504}
# Statuses that say nothing about the location, only about the key in use.
KEY_ROTATION_HTTP_STATUS = {401, 403, 429}
FORECAST_STEPS = 8


@dataclass
class WeatherClient:
    settings: Settings
    cache: TTLCache | None = None
    transport: httpx.AsyncBaseTransport | None = None
    retry_backoff_seconds: float = 0.35
    _client: httpx.AsyncClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.cache is None:
            self.cache = TTLCache(ttl_seconds=self.settings.api_cache_ttl_seconds)
        self._client = httpx.AsyncClient(
            timeout=self.settings.request_timeout_seconds,
            transport=self.transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_current(
        self,
        *,
        city: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        use_cache: bool = True,
    ) -> WeatherSnapshot:
        params, label = _location_params(city=city, latitude=latitude, longitude=longitude)
        payload = await self._get_json(
            path="/weather",
            params=params,
            cache_key=f"current:{label.lower()}",
            use_cache=use_cache,
            not_found_message=_not_found_message(city),
        )
        return _parse_current(payload)

    async def fetch_hourly_forecast(
        self,
        *,
        city: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        use_cache: bool = True,
    ) -> list[HourlyForecast]:
        params, label = _location_params(city=city, latitude=latitude, longitude=longitude)
        params["cnt"] = FORECAST_STEPS
        payload = await self._get_json(
            path="/forecast",
            params=params,
            cache_key=f"forecast:{label.lower()}",
            use_cache=use_cache,
            not_found_message=_not_found_message(city),
        )
        return _parse_forecast(payload)

    async def fetch_air_quality(self, *, latitude: float, longitude: float, use_cache: bool = True) -> AirQuality:
        params, label = _location_params(latitude=latitude, longitude=longitude)
        payload = await self._get_json(
            path="/air_pollution",
            params=params,
            cache_key=f"aqi:{label}",
            use_cache=use_cache,
            not_found_message="Air quality data not found for the provided coordinates.",
        )
        return _parse_air_quality(payload)

    async def fetch_snapshot(
        self,
        *,
        city: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        use_cache: bool = True,
    ) -> WeatherSnapshot:
        """Current conditions with the 24h forecast attached; the forecast is optional."""
        current, forecast = await asyncio.gather(
            self.fetch_current(city=city, latitude=latitude, longitude=longitude, use_cache=use_cache),
            self.fetch_hourly_forecast(city=city, latitude=latitude, longitude=longitude, use_cache=use_cache),
            return_exceptions=True,
        )
        if isinstance(current, BaseException):
            raise current
        if isinstance(forecast, BaseException):
            log.warning("forecast_unavailable", city=current.city, error=str(forecast))
            return current
        return current.model_copy(update={"hourly_forecast": forecast})

    async def _get_json(
        self,
        *,
        path: str,
        params: dict[str, Any],
        cache_key: str,
        use_cache: bool,
        not_found_message: str,
    ) -> Any:
        api_keys = self.settings.openweather_api_keys
        if not api_keys:
            raise ConfigurationError("Weather service is not configured (OPENWEATHER_API_KEYS missing).")

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        url = f"{self.settings.openweather_base_url}{path}"
        attempts = self.settings.api_retry_attempts
        last_error: Exception | None = None

        for key_index, api_key in enumerate(api_keys):
            for attempt in range(attempts + 1):
                try:
                    response = await self._client.get(url, params={**params, "appid": api_key, "units": "metric"})
                except httpx.RequestError as exc:
                    last_error = exc
                    if attempt >= attempts:
                        break
                    await asyncio.sleep(self.retry_backoff_seconds * (attempt + 1))
                    continue

                if response.status_code == 404:
                    raise LocationNotFoundError(not_found_message)

                if response.is_success:
                    payload = response.json()
                    self.cache.set(cache_key, payload)
                    return payload

                status_code = response.status_code
                last_error = UpstreamError(_provider_message(response), status_code=status_code)
                if status_code in KEY_ROTATION_HTTP_STATUS:
                    log.warning("weather_key_rejected", key_index=key_index, status=status_code, path=path)
                    break
                if status_code not in RETRYABLE_HTTP_STATUS:
                    raise last_error
                if attempt >= attempts:
                    break
                await asyncio.sleep(self.retry_backoff_seconds * (attempt + 1))

        log.error("weather_provider_failed", path=path, error=str(last_error))
        if isinstance(last_error, UpstreamError):
            raise last_error
        raise UpstreamError(f"Weather provider request failed: {last_error}") from last_error


def _location_params(
    *, city: str | None = None, latitude: float | None = None, longitude: float | None = None
) -> tuple[dict[str, Any], str]:
    if latitude is not None and longitude is not None:
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            raise ValueError("Invalid coordinates provided.")
        return {"lat": latitude, "lon": longitude}, f"{round(latitude, 4)}:{round(longitude, 4)}"

    name = (city or "").strip()
    if not name:
        raise ValueError("City name cannot be empty.")
    return {"q": name}, name


def _not_found_message(city: str | None) -> str:
    if city and city.strip():
        return f'City "{city.strip()}" not found.'
    return "Weather data not found for the provided coordinates."


def _provider_message(response: httpx.Response) -> str:
    try:
        message = response.json().get("message")
    except (ValueError, AttributeError):
        message = None
    if isinstance(message, str) and message:
        return message
    return f"Weather provider request failed (status: {response.status_code})"


def _parse_current(payload: dict) -> WeatherSnapshot:
    conditions = payload.get("weather") or []
    if not conditions:
        raise UpstreamError("Current weather condition data not available.")

    main = payload.get("main", {})
    wind = payload.get("wind", {})
    first = conditions[0]
    return WeatherSnapshot(
        city=payload.get("name") or "",
        country=payload.get("sys", {}).get("country") or "",
        temperature=_round_half_up(main.get("temp")),
        feels_like=_round_half_up(main.get("feels_like")),
        humidity=_as_float(main.get("humidity")) or 0.0,
        wind_speed=_round_half_up((_as_float(wind.get("speed")) or 0.0) * 3.6),
        condition=first.get("main") or "",
        description=first.get("description") or "",
        icon_code=first.get("icon") or "",
        timezone_offset=_as_int(payload.get("timezone")) or 0,
    )


def _parse_forecast(payload: dict) -> list[HourlyForecast]:
    items = payload.get("list") or []
    offset_seconds = _as_int(payload.get("city", {}).get("timezone")) or 0

    forecast: list[HourlyForecast] = []
    for item in items:
        conditions = item.get("weather") or [{}]
        main = item.get("main", {})
        stamp = _as_int(item.get("dt")) or 0
        forecast.append(
            HourlyForecast(
                time=_hour_label(stamp, offset_seconds),
                timestamp=stamp,
                temp=_round_half_up(main.get("temp")),
                icon_code=conditions[0].get("icon") or "",
                condition=conditions[0].get("main") or "",
                humidity=_as_int(main.get("humidity")),
                wind_speed=_round_half_up((_as_float(item.get("wind", {}).get("speed")) or 0.0) * 3.6),
                precipitation_chance=_round_half_up((_as_float(item.get("pop")) or 0.0) * 100),
            )
        )
    return forecast


def _parse_air_quality(payload: dict) -> AirQuality:
    entries = payload.get("list") or []
    if not entries:
        raise LocationNotFoundError("Air quality data not found for the provided coordinates.")

    first = entries[0]
    aqi = _as_int(first.get("main", {}).get("aqi"))
    if aqi not in AQI_LEVELS:
        raise UpstreamError("Air quality index missing from provider response.")

    components = {
        key: parsed
        for key, value in (first.get("components") or {}).items()
        if (parsed := _as_float(value)) is not None
    }
    return AirQuality(aqi=aqi, level=AQI_LEVELS[aqi], components=components)


def _hour_label(stamp: int, offset_seconds: int) -> str:
    local = datetime.fromtimestamp(stamp + offset_seconds, tz=timezone.utc)
    hour = local.hour % 12 or 12
    return f"{hour}{'AM' if local.hour < 12 else 'PM'}"


def _round_half_up(value: object) -> int:
    parsed = _as_float(value)
    if parsed is None:
        return 0
    return math.floor(parsed + 0.5)


def _as_float(value: object) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: object) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
