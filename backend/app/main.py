from __future__ import annotations

import secrets
from collections.abc import Awaitable
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.errors import (
    ConfigurationError,
    GenerationError,
    LocationNotFoundError,
    PreferenceStoreError,
    UpstreamError,
)
from app.logging_config import get_logger, setup_logging
from app.schemas import (
    DefaultLocationRequest,
    ErrorSummaryRequest,
    SavedLocation,
    UnitPreferences,
    UserAlertPreference,
)
from app.services.ai_flows import fallback_error_message, summarize_air_quality, summarize_error, summarize_weather
from app.services.alert_sweep import AlertSweepOrchestrator
from app.services.email_dispatcher import EmailDispatcher
from app.services.generation_client import GenerationClient
from app.services.preference_store import ClerkPreferenceStore
from app.services.ttl_cache import AvailabilityTracker, TTLCache
from app.services.weather_client import WeatherClient


setup_logging(service_name="weatherwise-alerts")
log = get_logger(__name__)

settings = get_settings()
weather_client = WeatherClient(settings=settings, cache=TTLCache(ttl_seconds=settings.api_cache_ttl_seconds))
preference_store = ClerkPreferenceStore(settings=settings)
generation_client = GenerationClient(
    settings=settings,
    model_tracker=AvailabilityTracker(ttl_seconds=settings.model_failure_ttl_seconds),
    key_tracker=AvailabilityTracker(ttl_seconds=settings.model_failure_ttl_seconds),
)
email_dispatcher = EmailDispatcher(settings=settings)
orchestrator = AlertSweepOrchestrator(
    settings=settings,
    store=preference_store,
    weather_client=weather_client,
    dispatcher=email_dispatcher,
    generation_client=generation_client,
)

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.frontend_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await weather_client.close()
    await preference_store.close()


def _bearer_matches(authorization: str | None) -> bool:
    expected = f"Bearer {settings.cron_secret}"
    return secrets.compare_digest((authorization or "").encode(), expected.encode())


async def require_admin(authorization: str | None = Header(default=None)) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=500, detail="Cron secret is not configured.")
    if not _bearer_matches(authorization):
        raise HTTPException(status_code=401, detail="Unauthorized.")


@app.get("/api/health")
async def health() -> dict:
    return {
        "status": "ok",
        "service": settings.app_name,
        "timestamp_utc": datetime.now(tz=timezone.utc).isoformat(),
    }


@app.get("/api/cron")
async def cron(authorization: str | None = Header(default=None)) -> JSONResponse:
    if not settings.cron_secret:
        log.error("cron_secret_missing")
        return JSONResponse(status_code=500, content={"success": False, "error": "Cron secret is not configured."})
    if not _bearer_matches(authorization):
        log.warning("cron_unauthorized")
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized."})

    try:
        result = await orchestrator.run_sweep()
    except Exception as exc:
        log.exception("cron_sweep_failed")
        return JSONResponse(status_code=500, content={"success": False, "error": f"Alert sweep failed: {exc}"})

    return JSONResponse(status_code=200, content={"success": True, **result.model_dump(by_alias=True)})


@app.post("/api/alerts/{user_id}/test", dependencies=[Depends(require_admin)])
async def send_test_alert(user_id: str) -> JSONResponse:
    try:
        result = await orchestrator.send_test_alert(user_id)
    except LocationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except UpstreamError as exc:
        raise HTTPException(status_code=_upstream_status(exc), detail=str(exc)) from exc

    if not result.success:
        return JSONResponse(status_code=502, content={"success": False, "error": result.error})
    return JSONResponse(status_code=200, content={"success": True, "message": "Test email sent."})


@app.get("/api/users/{user_id}/alert-preferences", dependencies=[Depends(require_admin)])
async def get_alert_preferences(user_id: str) -> dict:
    try:
        record = await preference_store.get_preferences(user_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except PreferenceStoreError as exc:
        raise HTTPException(status_code=_upstream_status(exc), detail=str(exc)) from exc

    if record.preferences is None:
        raise HTTPException(status_code=404, detail="No alert preferences saved for this user.")
    return {
        "userId": record.user_id,
        "email": record.email,
        "preferences": record.preferences.model_dump(mode="json", by_alias=True),
    }


@app.put("/api/users/{user_id}/alert-preferences", dependencies=[Depends(require_admin)])
async def save_alert_preferences(user_id: str, payload: UserAlertPreference) -> dict:
    await _store_call(preference_store.save_preferences(user_id, payload))
    return {"success": True, "message": "Alert preferences saved."}


@app.put("/api/users/{user_id}/units", dependencies=[Depends(require_admin)])
async def save_unit_preferences(user_id: str, payload: UnitPreferences) -> dict:
    await _store_call(preference_store.save_unit_preferences(user_id, payload))
    return {"success": True}


@app.put("/api/users/{user_id}/default-location", dependencies=[Depends(require_admin)])
async def save_default_location(user_id: str, payload: DefaultLocationRequest) -> dict:
    await _store_call(preference_store.save_default_location(user_id, payload.location))
    return {"success": True}


@app.put("/api/users/{user_id}/saved-locations", dependencies=[Depends(require_admin)])
async def save_saved_locations(user_id: str, payload: list[SavedLocation]) -> dict:
    await _store_call(preference_store.save_saved_locations(user_id, payload))
    return {"success": True}


@app.get("/api/weather")
async def weather(
    city: str | None = Query(default=None, max_length=80),
    latitude: float | None = Query(default=None, alias="lat", ge=-90, le=90),
    longitude: float | None = Query(default=None, alias="lon", ge=-180, le=180),
) -> JSONResponse:
    has_coordinates = latitude is not None and longitude is not None
    if not has_coordinates and not (city or "").strip():
        raise HTTPException(status_code=400, detail="Provide either a city or latitude and longitude.")

    try:
        snapshot = await weather_client.fetch_snapshot(
            city=None if has_coordinates else city,
            latitude=latitude,
            longitude=longitude,
        )
    except LocationNotFoundError as exc:
        return JSONResponse(status_code=404, content={"detail": str(exc), "cityNotFound": True})
    except ConfigurationError as exc:
        log.error("weather_not_configured", error=str(exc))
        raise HTTPException(status_code=500, detail="Server configuration error. Please try again later.") from exc
    except UpstreamError as exc:
        raise HTTPException(status_code=502, detail=f"Weather provider error: {exc}") from exc

    payload = snapshot.model_dump(mode="json", by_alias=True)
    try:
        summary = await summarize_weather(generation_client, snapshot)
    except (GenerationError, ConfigurationError) as exc:
        payload.update({"aiSummary": None, "weatherSentiment": None, "aiError": fallback_error_message(str(exc))})
    else:
        payload.update({"aiSummary": summary.summary, "weatherSentiment": summary.weather_sentiment, "aiError": None})
    return JSONResponse(status_code=200, content=payload)


@app.get("/api/air-quality")
async def air_quality(
    latitude: float = Query(alias="lat", ge=-90, le=90),
    longitude: float = Query(alias="lon", ge=-180, le=180),
) -> dict:
    try:
        reading = await weather_client.fetch_air_quality(latitude=latitude, longitude=longitude)
    except LocationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail="Server configuration error. Please try again later.") from exc
    except UpstreamError as exc:
        raise HTTPException(status_code=502, detail=f"Air quality provider error: {exc}") from exc

    summary = await summarize_air_quality(generation_client, reading)
    return {
        **reading.model_dump(mode="json", by_alias=True),
        "summary": summary.summary,
        "recommendation": summary.recommendation,
    }


@app.post("/api/errors/summarize")
async def summarize_error_message(payload: ErrorSummaryRequest) -> dict:
    result = await summarize_error(generation_client, payload.error_message)
    return {"userFriendlyMessage": result.user_friendly_message}


async def _store_call(call: Awaitable[None]) -> None:
    try:
        await call
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except PreferenceStoreError as exc:
        raise HTTPException(status_code=_upstream_status(exc), detail=str(exc)) from exc


def _upstream_status(exc: UpstreamError) -> int:
    if exc.status_code == 404:
        return 404
    return 502
