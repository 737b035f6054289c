from datetime import datetime, timedelta, timezone

from app.schemas import AlertSchedule, NotificationFrequency
from app.services.delivery_window import is_frequency_due, is_within_schedule


# Wednesday
NOW = datetime(2026, 3, 4, 14, 30, tzinfo=timezone.utc)


def test_missing_or_disabled_schedule_always_allows() -> None:
    assert is_within_schedule(None, NOW) is True
    assert is_within_schedule(AlertSchedule(enabled=False, days=[0], start_hour=1, end_hour=2), NOW) is True


def test_schedule_checks_day_and_hour() -> None:
    assert is_within_schedule(AlertSchedule(enabled=True, days=[2], start_hour=9, end_hour=17), NOW) is True
    assert is_within_schedule(AlertSchedule(enabled=True, days=[3], start_hour=9, end_hour=17), NOW) is False
    assert is_within_schedule(AlertSchedule(enabled=True, days=[2], start_hour=15, end_hour=17), NOW) is False


def test_schedule_window_can_wrap_past_midnight() -> None:
    schedule = AlertSchedule(enabled=True, start_hour=22, end_hour=6)
    assert is_within_schedule(schedule, NOW.replace(hour=23)) is True
    assert is_within_schedule(schedule, NOW.replace(hour=5)) is True
    assert is_within_schedule(schedule, NOW) is False


def test_schedule_uses_its_timezone() -> None:
    # 14:30 UTC is 09:30 in New York (EST).
    schedule = AlertSchedule(enabled=True, start_hour=9, end_hour=9, timezone="America/New_York")
    assert is_within_schedule(schedule, NOW) is True


def test_unknown_timezone_falls_back_to_utc() -> None:
    schedule = AlertSchedule(enabled=True, start_hour=14, end_hour=14, timezone="Mars/Olympus")
    assert is_within_schedule(schedule, NOW) is True


def test_frequency_due_without_previous_send() -> None:
    assert is_frequency_due(NotificationFrequency.ONCE_PER_DAY, None, NOW) is True


def test_frequency_intervals() -> None:
    last = NOW - timedelta(hours=2)
    assert is_frequency_due(NotificationFrequency.EVERY_HOUR, last, NOW) is True
    assert is_frequency_due(NotificationFrequency.BALANCED, last, NOW) is False
    assert is_frequency_due(NotificationFrequency.ONCE_PER_DAY, last, NOW) is False
    assert is_frequency_due(NotificationFrequency.BALANCED, NOW - timedelta(hours=4), NOW) is True


def test_frequency_allows_scheduler_jitter() -> None:
    last = NOW - timedelta(minutes=57)
    assert is_frequency_due(NotificationFrequency.EVERY_HOUR, last, NOW) is True
    assert is_frequency_due(None, NOW - timedelta(minutes=30), NOW) is False


def test_naive_last_sent_is_treated_as_utc() -> None:
    last = (NOW - timedelta(hours=25)).replace(tzinfo=None)
    assert is_frequency_due(NotificationFrequency.ONCE_PER_DAY, last, NOW) is True
