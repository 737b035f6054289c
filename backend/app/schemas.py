from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NotificationFrequency(str, Enum):
    EVERY_HOUR = "everyHour"
    BALANCED = "balanced"
    ONCE_PER_DAY = "oncePerDay"


class AlertSchedule(CamelModel):
    enabled: bool = False
    days: list[int] = Field(default_factory=lambda: list(range(7)), description="0=Monday .. 6=Sunday.")
    start_hour: int = Field(default=0, ge=0, le=23)
    end_hour: int = Field(default=23, ge=0, le=23)
    timezone: str = Field(default="UTC")

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("Schedule days must be between 0 (Monday) and 6 (Sunday).")
        return sorted(set(value))


class UserAlertPreference(CamelModel):
    email: str = ""
    city: str = ""
    alerts_enabled: bool = False
    notify_extreme_temp: bool = False
    high_temp_threshold: float | None = None
    low_temp_threshold: float | None = None
    notify_heavy_rain: bool = False
    notify_strong_wind: bool = False
    wind_speed_threshold: float | None = None
    schedule: AlertSchedule | None = None
    notification_frequency: NotificationFrequency | None = None
    last_alert_sent_at: datetime | None = None

    @model_validator(mode="after")
    def validate_temperature_range(self) -> "UserAlertPreference":
        if (
            self.high_temp_threshold is not None
            and self.low_temp_threshold is not None
            and self.low_temp_threshold >= self.high_temp_threshold
        ):
            raise ValueError("Low temperature threshold must be below the high temperature threshold.")
        return self


class UnitPreferences(CamelModel):
    temperature: Literal["celsius", "fahrenheit"] = "celsius"
    wind_speed: Literal["kmh", "mph"] = "kmh"


class SavedLocation(CamelModel):
    name: str
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    country: str
    state: str | None = None


class UserRecord(BaseModel):
    user_id: str
    email: str | None = None
    preferences: UserAlertPreference | None = None


class HourlyForecast(CamelModel):
    time: str
    timestamp: int
    temp: int
    icon_code: str
    condition: str
    humidity: int | None = None
    wind_speed: int | None = None
    precipitation_chance: int | None = None


class AirQuality(CamelModel):
    aqi: int = Field(ge=1, le=5)
    level: str
    components: dict[str, float] = Field(default_factory=dict)


class WeatherSnapshot(CamelModel):
    city: str
    country: str = ""
    temperature: float
    feels_like: float
    humidity: float
    wind_speed: float
    condition: str
    description: str = ""
    icon_code: str = ""
    timezone_offset: int = 0
    hourly_forecast: list[HourlyForecast] | None = None
    air_quality: AirQuality | None = None


class SweepResult(CamelModel):
    processed_users: int = 0
    eligible_users: int = 0
    alerts_sent: int = 0
    errors: list[str] = Field(default_factory=list)


class EmailResult(BaseModel):
    success: bool
    error: str | None = None


class WeatherSummaryOutput(BaseModel):
    summary: str = Field(description="A short summary of the weather conditions.")
    weather_sentiment: Literal["good", "bad", "neutral"] = Field(
        description="The overall sentiment of the weather: 'good', 'bad', or 'neutral'."
    )


class AirQualitySummaryOutput(BaseModel):
    summary: str = Field(description="One sentence explaining the current air quality and its 1-5 rating.")
    recommendation: str = Field(description="One short, actionable health recommendation.")


class ErrorSummaryOutput(BaseModel):
    user_friendly_message: str = Field(
        description="A polite, easy-to-understand message that explains the issue without technical jargon."
    )


class ErrorSummaryRequest(CamelModel):
    error_message: str = Field(default="", max_length=2000)


class DefaultLocationRequest(CamelModel):
    location: SavedLocation | None = None
