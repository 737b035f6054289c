from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_name: str = "Weatherwise Alerts API"
    app_version: str = "1.0.0"
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"
    openweather_icon_url: str = "https://openweathermap.org/img/wn"
    openweather_api_keys: tuple[str, ...] = ()
    gemini_api_keys: tuple[str, ...] = ()
    gemini_models: tuple[str, ...] = ("gemini-1.5-pro-latest", "gemini-1.5-flash-latest")
    model_failure_ttl_seconds: int = 300
    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: str = ""
    email_password: str = ""
    email_from: str = ""
    cron_secret: str = ""
    public_base_url: str = "http://localhost:3000"
    clerk_secret_key: str = ""
    clerk_api_url: str = "https://api.clerk.com/v1"
    user_page_size: int = 100
    sweep_concurrency: int = 4
    api_cache_ttl_seconds: int = 600
    api_retry_attempts: int = 1
    request_timeout_seconds: float = 12.0
    frontend_origins: tuple[str, ...] = ("http://localhost:3000", "http://127.0.0.1:3000")


def get_settings() -> Settings:
    origins_raw = os.getenv("FRONTEND_ORIGINS", "").strip()
    models_raw = os.getenv("GEMINI_MODELS", "").strip()
    cache_ttl_raw = os.getenv("API_CACHE_TTL_SECONDS", "").strip()
    retry_attempts_raw = os.getenv("API_RETRY_ATTEMPTS", "").strip()
    model_ttl_raw = os.getenv("MODEL_FAILURE_TTL_SECONDS", "").strip()
    email_port_raw = os.getenv("EMAIL_PORT", "").strip()
    page_size_raw = os.getenv("USER_PAGE_SIZE", "").strip()
    concurrency_raw = os.getenv("SWEEP_CONCURRENCY", "").strip()
    base_url_raw = (os.getenv("PUBLIC_BASE_URL", "") or os.getenv("NEXT_PUBLIC_BASE_URL", "")).strip()

    parsed_origins = _split_csv(origins_raw)
    parsed_models = _split_csv(models_raw)

    try:
        cache_ttl_seconds = int(cache_ttl_raw) if cache_ttl_raw else 600
    except ValueError:
        cache_ttl_seconds = 600

    try:
        retry_attempts = int(retry_attempts_raw) if retry_attempts_raw else 1
    except ValueError:
        retry_attempts = 1

    try:
        model_failure_ttl_seconds = int(model_ttl_raw) if model_ttl_raw else 300
    except ValueError:
        model_failure_ttl_seconds = 300

    try:
        email_port = int(email_port_raw) if email_port_raw else 587
    except ValueError:
        email_port = 587

    try:
        user_page_size = int(page_size_raw) if page_size_raw else 100
    except ValueError:
        user_page_size = 100

    try:
        sweep_concurrency = int(concurrency_raw) if concurrency_raw else 4
    except ValueError:
        sweep_concurrency = 4

    return Settings(
        openweather_api_keys=_split_csv(os.getenv("OPENWEATHER_API_KEYS", "")),
        gemini_api_keys=_split_csv(os.getenv("GEMINI_API_KEYS", "")),
        gemini_models=parsed_models or Settings.gemini_models,
        model_failure_ttl_seconds=max(1, model_failure_ttl_seconds),
        email_host=os.getenv("EMAIL_HOST", "").strip() or Settings.email_host,
        email_port=email_port,
        email_user=os.getenv("EMAIL_USER", "").strip(),
        email_password=os.getenv("EMAIL_PASSWORD", "").strip(),
        email_from=os.getenv("EMAIL_FROM", "").strip(),
        cron_secret=os.getenv("CRON_SECRET", "").strip(),
        public_base_url=base_url_raw.rstrip("/") or Settings.public_base_url,
        clerk_secret_key=os.getenv("CLERK_SECRET_KEY", "").strip(),
        clerk_api_url=os.getenv("CLERK_API_URL", "").strip().rstrip("/") or Settings.clerk_api_url,
        user_page_size=min(500, max(1, user_page_size)),
        sweep_concurrency=max(1, sweep_concurrency),
        api_cache_ttl_seconds=max(60, cache_ttl_seconds),
        api_retry_attempts=max(0, retry_attempts),
        frontend_origins=parsed_origins or Settings.frontend_origins,
    )


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())
