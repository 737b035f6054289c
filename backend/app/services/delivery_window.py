from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.schemas import AlertSchedule, NotificationFrequency


FREQUENCY_INTERVALS = {
    NotificationFrequency.EVERY_HOUR: timedelta(hours=1),
    NotificationFrequency.BALANCED: timedelta(hours=4),
    NotificationFrequency.ONCE_PER_DAY: timedelta(hours=24),
}


def is_within_schedule(schedule: AlertSchedule | None, now: datetime) -> bool:
    if schedule is None or not schedule.enabled:
        return True

    local_now = now.astimezone(_zone(schedule.timezone))
    if local_now.weekday() not in schedule.days:
        return False

    hour = local_now.hour
    if schedule.start_hour <= schedule.end_hour:
        return schedule.start_hour <= hour <= schedule.end_hour
    # Window wraps past midnight, e.g. 22 -> 6.
    return hour >= schedule.start_hour or hour <= schedule.end_hour


def is_frequency_due(
    frequency: NotificationFrequency | None,
    last_sent_at: datetime | None,
    now: datetime,
) -> bool:
    if last_sent_at is None:
        return True
    if last_sent_at.tzinfo is None:
        last_sent_at = last_sent_at.replace(tzinfo=timezone.utc)
    interval = FREQUENCY_INTERVALS[frequency or NotificationFrequency.EVERY_HOUR]
    # Five minutes of scheduler jitter.
    return now - last_sent_at >= interval - timedelta(minutes=5)


def _zone(name: str) -> ZoneInfo | timezone:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc
