from __future__ import annotations

from typing import Protocol

from app.schemas import UserAlertPreference, WeatherSnapshot


RAIN_KEYWORDS = ("rain", "thunderstorm", "drizzle")


class ConditionEvaluator(Protocol):
    def __call__(self, preferences: UserAlertPreference, snapshot: WeatherSnapshot) -> list[str]: ...


def evaluate_conditions(preferences: UserAlertPreference, snapshot: WeatherSnapshot) -> list[str]:
    """
    Compare the snapshot against the user's thresholds and return the reasons an alert fired.

    Comparisons are strict; a reading equal to a threshold does not trigger.
    """
    triggers: list[str] = []

    if preferences.notify_extreme_temp:
        high = preferences.high_temp_threshold
        low = preferences.low_temp_threshold
        if high is not None and snapshot.temperature > high:
            triggers.append(
                f"High temperature of {_fmt(snapshot.temperature)}°C (threshold: >{_fmt(high)}°C)"
            )
        if low is not None and snapshot.temperature < low:
            triggers.append(
                f"Low temperature of {_fmt(snapshot.temperature)}°C (threshold: <{_fmt(low)}°C)"
            )

    if preferences.notify_strong_wind and preferences.wind_speed_threshold is not None:
        if snapshot.wind_speed > preferences.wind_speed_threshold:
            triggers.append(
                f"Strong wind of {_fmt(snapshot.wind_speed)} km/h "
                f"(threshold: >{_fmt(preferences.wind_speed_threshold)} km/h)"
            )

    if preferences.notify_heavy_rain and _is_rain(snapshot):
        detail = f" ({snapshot.description})" if snapshot.description else ""
        triggers.append(f"Rain conditions detected: {snapshot.condition}{detail}")

    return triggers


def manual_run_triggers(preferences: UserAlertPreference, snapshot: WeatherSnapshot) -> list[str]:
    """One trigger per enabled category, without looking at the weather values."""
    triggers: list[str] = []
    if preferences.notify_extreme_temp:
        triggers.append(f"Test alert: extreme temperature monitoring is active for {snapshot.city}.")
    if preferences.notify_heavy_rain:
        triggers.append(f"Test alert: heavy rain monitoring is active for {snapshot.city}.")
    if preferences.notify_strong_wind:
        triggers.append(f"Test alert: strong wind monitoring is active for {snapshot.city}.")
    return triggers


def _is_rain(snapshot: WeatherSnapshot) -> bool:
    condition = snapshot.condition.lower()
    return any(keyword in condition for keyword in RAIN_KEYWORDS)


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
