from app.schemas import HourlyForecast, WeatherSnapshot
from app.services.email_templates import alert_subject, render_alert_email


def _snapshot(forecast_hours: int = 0) -> WeatherSnapshot:
    forecast = [
        HourlyForecast(time=f"{hour}PM", timestamp=1_700_000_000 + hour * 3600, temp=30 + hour, icon_code="01d", condition="Clear")
        for hour in range(1, forecast_hours + 1)
    ]
    return WeatherSnapshot(
        city="Phoenix",
        country="US",
        temperature=35,
        feels_like=37,
        humidity=12,
        wind_speed=14,
        condition="Clear",
        description="clear sky",
        icon_code="01d",
        hourly_forecast=forecast or None,
    )


def test_subject_for_alerts_and_tests() -> None:
    snapshot = _snapshot()
    assert alert_subject(snapshot, ["one"]) == "Weather Alert for Phoenix: 1 alert triggered"
    assert alert_subject(snapshot, ["one", "two"]) == "Weather Alert for Phoenix: 2 alerts triggered"
    assert alert_subject(snapshot, ["one"], is_test=True) == "TEST: Weather report for Phoenix"


def test_render_is_deterministic_for_fixed_year() -> None:
    snapshot = _snapshot(forecast_hours=3)
    triggers = ["High temperature of 35°C (threshold: >30°C)"]

    first = render_alert_email(snapshot, triggers, base_url="https://weatherwise.example", year=2026)
    second = render_alert_email(snapshot, triggers, base_url="https://weatherwise.example", year=2026)

    assert first == second
    assert "&copy; 2026 Weatherwise" in first


def test_render_lists_escaped_triggers_and_alerts_link() -> None:
    html = render_alert_email(
        _snapshot(),
        ["High temperature of 35°C (threshold: >30°C)"],
        base_url="https://weatherwise.example/",
        year=2026,
    )

    assert "Alerts Triggered" in html
    assert "<li>High temperature of 35°C (threshold: &gt;30°C)</li>" in html
    assert 'href="https://weatherwise.example/alerts"' in html
    assert "Phoenix, US" in html


def test_render_without_triggers_omits_alert_section() -> None:
    html = render_alert_email(_snapshot(), [], base_url="https://weatherwise.example", year=2026)
    assert "Alerts Triggered" not in html
    assert "Hourly Forecast" not in html


def test_forecast_is_capped_at_five_cells() -> None:
    html = render_alert_email(_snapshot(forecast_hours=8), ["x"], base_url="https://w.example", year=2026)

    assert "Hourly Forecast" in html
    assert "5PM" in html
    assert "6PM" not in html


def test_summary_is_escaped_and_optional() -> None:
    snapshot = _snapshot()
    with_summary = render_alert_email(snapshot, ["x"], base_url="https://w.example", summary="Hot <b>today</b>", year=2026)
    without_summary = render_alert_email(snapshot, ["x"], base_url="https://w.example", year=2026)

    assert "Hot &lt;b&gt;today&lt;/b&gt;" in with_summary
    assert "AI Weather Summary" not in without_summary


def test_test_email_uses_sample_intro() -> None:
    html = render_alert_email(_snapshot(), ["Test alert"], base_url="https://w.example", is_test=True, year=2026)
    assert "requested test weather report" in html
    assert "<title>TEST: Weather report for Phoenix</title>" in html
