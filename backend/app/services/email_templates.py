from __future__ import annotations

from datetime import datetime, timezone
from html import escape

from app.schemas import HourlyForecast, WeatherSnapshot


ICON_BASE_URL = "https://openweathermap.org/img/wn"
ICONS8_BASE_URL = "https://img.icons8.com/fluency-systems-filled"
FORECAST_CELLS = 5


def alert_subject(snapshot: WeatherSnapshot, triggers: list[str] | None = None, *, is_test: bool = False) -> str:
    if is_test:
        return f"TEST: Weather report for {snapshot.city}"
    if triggers:
        noun = "alert" if len(triggers) == 1 else "alerts"
        return f"Weather Alert for {snapshot.city}: {len(triggers)} {noun} triggered"
    return f"Weather update for {snapshot.city}"


def render_alert_email(
    snapshot: WeatherSnapshot,
    triggers: list[str] | None = None,
    *,
    base_url: str,
    summary: str | None = None,
    is_test: bool = False,
    year: int | None = None,
) -> str:
    """
    Build the full HTML document for an alert email.

    Output depends only on the arguments, except that `year` defaults to the current year.
    """
    city = escape(snapshot.city)
    alerts_url = escape(f"{base_url.rstrip('/')}/alerts")
    copyright_year = year if year is not None else datetime.now(tz=timezone.utc).year
    title = escape(alert_subject(snapshot, triggers, is_test=is_test))

    if is_test:
        greeting = "Hello,"
        intro = (
            f"Here is your requested test weather report for <strong>{city}</strong>. "
            "This is a sample of the automated alerts you can receive based on your preferences."
        )
    else:
        greeting = f"Weather Alert for {city}"
        intro = (
            "This is an automated weather alert from Weatherwise. One or more of your alert conditions "
            f"have been met for <strong>{city}</strong>."
        )

    sections = [
        _greeting_row(greeting, intro),
        _triggers_row(triggers or []),
        _separator_row(),
        _header_row(snapshot),
        _temperature_row(snapshot),
        _detail_cards_row(snapshot),
        _forecast_row(snapshot.hourly_forecast or []),
        _summary_row(summary),
        _footer_row(alerts_url, copyright_year),
    ]
    body = "\n".join(section for section in sections if section)

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '    <meta charset="UTF-8">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"    <title>{title}</title>\n"
        "</head>\n"
        '<body style="background-color: #f1f5f9; color: #334155; font-family: -apple-system, '
        "BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; padding: 24px; margin: 0;\">\n"
        '<table width="100%" border="0" cellspacing="0" cellpadding="0" role="presentation"><tr><td align="center">\n'
        '<table width="100%" border="0" cellspacing="0" cellpadding="0" role="presentation" '
        'style="background-color: #ffffff; border-radius: 16px; border: 1px solid #e2e8f0; '
        'padding: 24px 32px; max-width: 600px;">\n'
        f"{body}\n"
        "</table>\n"
        "</td></tr></table>\n"
        "</body>\n"
        "</html>\n"
    )


def _greeting_row(greeting: str, intro: str) -> str:
    return (
        '<tr><td style="padding-bottom: 24px;">'
        f'<p style="font-size: 16px; color: #475569; margin: 0; line-height: 1.6;">{greeting}</p>'
        f'<p style="font-size: 16px; color: #475569; margin: 12px 0 0 0; line-height: 1.6;">{intro}</p>'
        "</td></tr>"
    )


def _triggers_row(triggers: list[str]) -> str:
    if not triggers:
        return ""
    items = "".join(f"<li>{escape(trigger)}</li>" for trigger in triggers)
    return (
        '<tr><td style="padding-top: 16px; padding-bottom: 16px;">'
        f"{_section_heading('Alerts Triggered', f'{ICONS8_BASE_URL}/28/dc2626/alarm.png', 'Alert')}"
        '<div style="background-color: #fee2e2; border-radius: 12px; padding: 16px; border: 1px solid #fca5a5;">'
        f'<ul style="margin: 0; padding: 0 0 0 20px; color: #991b1b; font-size: 15px; line-height: 1.6;">{items}</ul>'
        "</div></td></tr>"
    )


def _separator_row() -> str:
    return '<tr><td style="padding-bottom: 24px;"><div style="height: 1px; background-color: #e2e8f0;"></div></td></tr>'


def _header_row(snapshot: WeatherSnapshot) -> str:
    location = escape(snapshot.city if not snapshot.country else f"{snapshot.city}, {snapshot.country}")
    return (
        '<tr><td align="center" style="padding-bottom: 24px; text-align: center;">'
        f'<p style="font-size: 28px; font-weight: bold; color: #2563eb; margin: 0;">{location}</p>'
        '<p style="font-size: 16px; color: #64748b; margin: 4px 0 0 0; text-transform: capitalize;">'
        f"{escape(snapshot.description)}</p>"
        "</td></tr>"
    )


def _temperature_row(snapshot: WeatherSnapshot) -> str:
    icon = ""
    if snapshot.icon_code:
        icon_url = escape(f"{ICON_BASE_URL}/{snapshot.icon_code}@4x.png")
        icon = (
            f'<img src="{icon_url}" alt="{escape(snapshot.description)}" width="160" height="160" '
            'style="display: block; border: 0;">'
        )
    return (
        '<tr><td style="padding-bottom: 24px;">'
        '<table width="100%" border="0" cellspacing="0" cellpadding="0" role="presentation"><tr>'
        '<td width="55%" align="left" valign="middle">'
        '<p style="margin: 0; font-size: 80px; font-weight: bold; color: #2563eb; line-height: 1;">'
        f"{_number(snapshot.temperature)}"
        '<span style="font-size: 40px; color: #64748b; vertical-align: 30px; margin-left: 4px;">°C</span></p>'
        "</td>"
        f'<td width="45%" align="right" valign="middle">{icon}</td>'
        "</tr></table></td></tr>"
    )


def _detail_cards_row(snapshot: WeatherSnapshot) -> str:
    cards = [
        ("Feels Like", "temperature", f"{_number(snapshot.feels_like)}°C"),
        ("Humidity", "hygrometer", f"{_number(snapshot.humidity)}%"),
        ("Wind", "wind", f"{_number(snapshot.wind_speed)} km/h"),
    ]
    cells = "".join(
        '<td width="33.33%" style="padding: 0 3px;">'
        '<div style="background-color: #f1f5f9; border-radius: 12px; padding: 16px; text-align: center;">'
        '<p style="font-size: 14px; color: #64748b; margin: 0 0 8px 0;">'
        f'<img src="{ICONS8_BASE_URL}/20/64748b/{icon}.png" alt="{label}" width="20" height="20" '
        'style="display: inline-block; vertical-align: middle;">'
        f'<span style="vertical-align: middle; margin-left: 6px;">{label}</span></p>'
        f'<p style="font-size: 20px; font-weight: bold; color: #1e293b; margin: 0;">{value}</p>'
        "</div></td>"
        for label, icon, value in cards
    )
    return (
        '<tr><td style="padding-bottom: 16px;">'
        f'<table width="100%" border="0" cellspacing="0" cellpadding="0" role="presentation"><tr>{cells}</tr></table>'
        "</td></tr>"
    )


def _forecast_row(forecast: list[HourlyForecast]) -> str:
    if not forecast:
        return ""
    cells = "".join(
        '<td align="center" style="padding: 0 4px;">'
        '<div style="background-color: #f1f5f9; border-radius: 12px; padding: 12px 8px; text-align: center; width: 85px;">'
        f'<p style="font-size: 14px; color: #64748b; margin: 0; white-space: nowrap;">{escape(entry.time)}</p>'
        f'<img src="{escape(f"{ICON_BASE_URL}/{entry.icon_code}@2x.png")}" width="40" height="40" '
        f'alt="{escape(entry.condition)}" style="margin: 4px auto; display: block; border: 0;" />'
        f'<p style="font-size: 18px; font-weight: bold; color: #1e293b; margin: 0;">{entry.temp}°</p>'
        "</div></td>"
        for entry in forecast[:FORECAST_CELLS]
    )
    return (
        '<tr><td style="padding-top: 16px; padding-bottom: 16px;">'
        f"{_section_heading('Hourly Forecast', f'{ICONS8_BASE_URL}/28/2563eb/timer.png', 'Forecast')}"
        f'<table width="100%" border="0" cellspacing="0" cellpadding="0" role="presentation"><tr>{cells}</tr></table>'
        "</td></tr>"
    )


def _summary_row(summary: str | None) -> str:
    if not summary:
        return ""
    return (
        '<tr><td style="padding-top: 16px; padding-bottom: 16px;">'
        f"{_section_heading('AI Weather Summary', f'{ICONS8_BASE_URL}/28/2563eb/artificial-intelligence.png', 'AI')}"
        '<div style="background-color: #f1f5f9; border-radius: 12px; padding: 16px;">'
        f'<p style="font-size: 15px; color: #334155; margin: 0; line-height: 1.6;">{escape(summary)}</p>'
        "</div></td></tr>"
    )


def _footer_row(alerts_url: str, year: int) -> str:
    return (
        '<tr><td align="center" style="padding-top: 32px; text-align: center; font-size: 13px; color: #64748b;">'
        '<p style="margin: 0 0 16px 0;">This is an automated alert from Weatherwise. You can customize your '
        "notification settings at any time by visiting the alerts page on our website.</p>"
        f'<a href="{alerts_url}" style="background-color: #2563eb; color: #ffffff; padding: 12px 24px; '
        'text-decoration: none; border-radius: 8px; display: inline-block; font-weight: 500;">Manage Your Alerts</a>'
        '<p style="margin-top: 24px; font-size: 12px;">You received this email because alerts are enabled for '
        f"your account. <br> &copy; {year} Weatherwise. All Rights Reserved. <br> Icons by "
        '<a href="https://icons8.com" style="color: #64748b; text-decoration: underline;">Icons8</a>.</p>'
        "</td></tr>"
    )


def _section_heading(title: str, icon_url: str, alt: str) -> str:
    return (
        '<table role="presentation" border="0" cellpadding="0" cellspacing="0" width="100%" style="margin-bottom: 16px;">'
        f'<tr><td width="28" valign="middle"><img src="{icon_url}" alt="{alt}" width="28" height="28" '
        'style="display: block;"></td>'
        '<td valign="middle" style="padding-left: 12px;">'
        f'<p style="font-size: 18px; font-weight: bold; color: #1e293b; margin: 0;">{title}</p>'
        "</td></tr></table>"
    )


def _number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
