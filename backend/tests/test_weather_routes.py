from fastapi.testclient import TestClient

from app import main as main_module
from app.errors import GenerationError, LocationNotFoundError, QuotaExhaustedError
from app.schemas import AirQuality, ErrorSummaryOutput, WeatherSnapshot, WeatherSummaryOutput


SNAPSHOT = WeatherSnapshot(
    city="London",
    country="GB",
    temperature=6,
    feels_like=3,
    humidity=70,
    wind_speed=33,
    condition="Clouds",
    description="broken clouds",
    icon_code="04d",
)


class _FakeWeatherClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict] = []

    async def close(self) -> None:
        return None

    async def fetch_snapshot(self, **kwargs) -> WeatherSnapshot:  # noqa: ANN003
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SNAPSHOT

    async def fetch_air_quality(self, *, latitude: float, longitude: float) -> AirQuality:
        return AirQuality(aqi=2, level="Fair", components={"pm2_5": 6.2})


class _FakeGenerationClient:
    def __init__(self, outcome: object) -> None:
        self.outcome = outcome

    async def generate(self, prompt_template, input_vars, output_schema, *, source, temperature=0.2):  # noqa: ANN001
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_health_route() -> None:
    client = TestClient(main_module.app)
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_weather_route_includes_ai_summary(monkeypatch) -> None:
    monkeypatch.setattr(main_module, "weather_client", _FakeWeatherClient())
    monkeypatch.setattr(
        main_module,
        "generation_client",
        _FakeGenerationClient(WeatherSummaryOutput(summary="Chilly and windy.", weather_sentiment="bad")),
    )
    client = TestClient(main_module.app)

    response = client.get("/api/weather", params={"city": "London"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["city"] == "London"
    assert payload["feelsLike"] == 3
    assert payload["aiSummary"] == "Chilly and windy."
    assert payload["weatherSentiment"] == "bad"
    assert payload["aiError"] is None


def test_weather_route_by_coordinates(monkeypatch) -> None:
    weather = _FakeWeatherClient()
    monkeypatch.setattr(main_module, "weather_client", weather)
    monkeypatch.setattr(main_module, "generation_client", _FakeGenerationClient(GenerationError("down")))
    client = TestClient(main_module.app)

    response = client.get("/api/weather", params={"lat": 51.5, "lon": -0.12})

    assert response.status_code == 200
    assert weather.calls[0] == {"city": None, "latitude": 51.5, "longitude": -0.12}


def test_weather_route_keeps_snapshot_when_ai_fails(monkeypatch) -> None:
    monkeypatch.setattr(main_module, "weather_client", _FakeWeatherClient())
    monkeypatch.setattr(
        main_module,
        "generation_client",
        _FakeGenerationClient(QuotaExhaustedError("All configured Gemini API keys may have exceeded their free tier quota.")),
    )
    client = TestClient(main_module.app)

    response = client.get("/api/weather", params={"city": "London"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["temperature"] == 6
    assert payload["aiSummary"] is None
    assert payload["aiError"] == "Our AI service is currently experiencing high demand. Please try again in a few minutes."


def test_weather_route_unknown_city(monkeypatch) -> None:
    monkeypatch.setattr(main_module, "weather_client", _FakeWeatherClient(LocationNotFoundError('City "Atlantis" not found.')))
    client = TestClient(main_module.app)

    response = client.get("/api/weather", params={"city": "Atlantis"})

    assert response.status_code == 404
    assert response.json() == {"detail": 'City "Atlantis" not found.', "cityNotFound": True}


def test_weather_route_requires_location() -> None:
    client = TestClient(main_module.app)
    response = client.get("/api/weather")
    assert response.status_code == 400


def test_air_quality_route_falls_back_without_ai(monkeypatch) -> None:
    monkeypatch.setattr(main_module, "weather_client", _FakeWeatherClient())
    monkeypatch.setattr(main_module, "generation_client", _FakeGenerationClient(GenerationError("down")))
    client = TestClient(main_module.app)

    response = client.get("/api/air-quality", params={"lat": 51.5, "lon": -0.12})

    assert response.status_code == 200
    payload = response.json()
    assert payload["aqi"] == 2
    assert payload["level"] == "Fair"
    assert payload["summary"] == "The air quality is rated 2 out of 5 ('Fair')."


def test_error_summary_route(monkeypatch) -> None:
    monkeypatch.setattr(
        main_module,
        "generation_client",
        _FakeGenerationClient(ErrorSummaryOutput(user_friendly_message="Please check your connection.")),
    )
    client = TestClient(main_module.app)

    response = client.post("/api/errors/summarize", json={"errorMessage": "TypeError: Failed to fetch"})

    assert response.status_code == 200
    assert response.json() == {"userFriendlyMessage": "Please check your connection."}
