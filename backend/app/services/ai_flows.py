from __future__ import annotations

from app.errors import ConfigurationError, GenerationError
from app.logging_config import get_logger
from app.schemas import (
    AirQuality,
    AirQualitySummaryOutput,
    ErrorSummaryOutput,
    WeatherSnapshot,
    WeatherSummaryOutput,
)
from app.services.generation_client import GenerationClient


log = get_logger(__name__)

WEATHER_SUMMARY_PROMPT_TEMPLATE = (
    "You are a helpful weather assistant. Provide a concise summary of the weather conditions "
    "for {{city}} and determine the overall weather sentiment.\n\n"
    "Current weather data for {{city}}:\n"
    "- Temperature: {{temperature}}°C\n"
    "- Feels Like: {{feelsLike}}°C\n"
    "- Condition: {{condition}}\n"
    "- Humidity: {{humidity}}%\n"
    "- Wind Speed: {{windSpeed}} km/h\n\n"
    "Instructions:\n"
    "1. If the feels-like temperature differs from the actual temperature by more than 5 degrees, "
    "mention it. Otherwise do not mention it.\n"
    "2. 'bad' weather: below 5°C or above 30°C, significant precipitation, winds above 30 km/h. "
    "'good' weather: 15°C-25°C, clear or partly cloudy skies, light winds. "
    "Anything else is 'neutral'.\n"
    "3. Keep the summary under 50 words.\n\n"
    "Respond only with a JSON object matching the output schema."
)

AIR_QUALITY_PROMPT_TEMPLATE = (
    "You are a reassuring health and environment advisor for a weather app. Interpret the Air Quality "
    "Index data below. The scale runs from 1 ('Good') to 5 ('Very Poor'); your summary must say so.\n\n"
    "- AQI Index: {{aqi}}\n"
    "- AQI Level: \"{{level}}\"\n"
    "- PM2.5: {{components.pm2_5}} µg/m³\n"
    "- O3: {{components.o3}} µg/m³\n"
    "- NO2: {{components.no2}} µg/m³\n"
    "- CO: {{components.co}} µg/m³\n\n"
    "The summary field is one short sentence with the 1-5 rating. The recommendation field is one short, "
    "actionable health recommendation that does not repeat the summary.\n\n"
    "Respond only with a JSON object matching the output schema."
)

ERROR_SUMMARY_PROMPT_TEMPLATE = (
    "You are a UX writer for a weather application called Weatherwise. Convert the technical error below "
    "into a short, polite message for a toast notification.\n\n"
    "Rules:\n"
    "1. Never include stack traces, API key errors or server jargon.\n"
    "2. Be reassuring and brief. Suggest a simple action when it helps.\n"
    "3. Errors about quota, billing or API keys: say the AI service is experiencing high demand.\n"
    "4. Errors about 404, not found or geocoding: say the location could not be found.\n"
    "5. Errors about network, failed to fetch or connection: suggest checking the connection.\n\n"
    "Technical Error Message:\n\"{{errorMessage}}\"\n\n"
    "Respond only with a JSON object matching the output schema."
)

QUOTA_FALLBACK_MESSAGE = "Our AI service is currently experiencing high demand. Please try again in a few minutes."
NOT_FOUND_FALLBACK_MESSAGE = "We couldn't find that location. Please check the spelling and try again."
NETWORK_FALLBACK_MESSAGE = "Could not connect to our services. Please check your internet connection."
GENERIC_FALLBACK_MESSAGE = "An unexpected error occurred. Please refresh the page and try again."

AIR_QUALITY_RECOMMENDATIONS = {
    1: "It's a perfect day for outdoor activities!",
    2: "Air quality is acceptable for most outdoor activities.",
    3: "Sensitive groups may want to consider reducing strenuous outdoor activities.",
    4: "Consider limiting prolonged outdoor exertion, especially if you are sensitive to pollution.",
    5: "It's advisable to limit time outdoors, especially for sensitive individuals.",
}


async def summarize_weather(client: GenerationClient, snapshot: WeatherSnapshot) -> WeatherSummaryOutput:
    return await client.generate(
        WEATHER_SUMMARY_PROMPT_TEMPLATE,
        {
            "city": snapshot.city,
            "temperature": snapshot.temperature,
            "feelsLike": snapshot.feels_like,
            "condition": snapshot.description or snapshot.condition,
            "humidity": snapshot.humidity,
            "windSpeed": snapshot.wind_speed,
        },
        WeatherSummaryOutput,
        source="weather-summary",
        temperature=0.5,
    )


async def summarize_air_quality(client: GenerationClient, air_quality: AirQuality) -> AirQualitySummaryOutput:
    try:
        return await client.generate(
            AIR_QUALITY_PROMPT_TEMPLATE,
            {"aqi": air_quality.aqi, "level": air_quality.level, "components": air_quality.components},
            AirQualitySummaryOutput,
            source="summarize-air-quality",
        )
    except (GenerationError, ConfigurationError) as exc:
        log.warning("air_quality_summary_fallback", error=str(exc))
        return AirQualitySummaryOutput(
            summary=f"The air quality is rated {air_quality.aqi} out of 5 ('{air_quality.level}').",
            recommendation=AIR_QUALITY_RECOMMENDATIONS[air_quality.aqi],
        )


async def summarize_error(client: GenerationClient, error_message: str) -> ErrorSummaryOutput:
    if not error_message:
        return ErrorSummaryOutput(user_friendly_message="An unknown error occurred. Please try again.")
    if "user not authenticated" in error_message.lower():
        return ErrorSummaryOutput(
            user_friendly_message="You need to be signed in to do that. Please sign in and try again."
        )

    try:
        return await client.generate(
            ERROR_SUMMARY_PROMPT_TEMPLATE,
            {"errorMessage": error_message},
            ErrorSummaryOutput,
            source="summarize-error",
        )
    except (GenerationError, ConfigurationError) as exc:
        log.warning("error_summary_fallback", error=str(exc))
        return ErrorSummaryOutput(user_friendly_message=fallback_error_message(error_message))


def fallback_error_message(error_message: str) -> str:
    lowered = error_message.lower()
    if any(marker in lowered for marker in ("quota", "billing", "api key")):
        return QUOTA_FALLBACK_MESSAGE
    if any(marker in lowered for marker in ("404", "not found", "geocoding")):
        return NOT_FOUND_FALLBACK_MESSAGE
    if any(marker in lowered for marker in ("network", "failed to fetch", "connection")):
        return NETWORK_FALLBACK_MESSAGE
    return GENERIC_FALLBACK_MESSAGE
