from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from app.config import Settings
from app.errors import ConfigurationError, GenerationError, WeatherwiseError
from app.logging_config import get_logger
from app.schemas import EmailResult, SweepResult, UserRecord, WeatherSnapshot
from app.services.ai_flows import summarize_weather
from app.services.conditions import ConditionEvaluator, evaluate_conditions, manual_run_triggers
from app.services.delivery_window import is_frequency_due, is_within_schedule
from app.services.email_dispatcher import EmailDispatcher
from app.services.email_templates import alert_subject, render_alert_email
from app.services.generation_client import GenerationClient
from app.services.preference_store import PreferenceStore, is_eligible
from app.services.weather_client import WeatherClient


log = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class _UserOutcome:
    eligible: bool = False
    sent: bool = False
    error: str | None = None


@dataclass
class AlertSweepOrchestrator:
    """
    One best-effort pass over every user: fetch weather, evaluate thresholds, email on triggers.

    Work for each user is isolated; a failure for one user is recorded and the sweep moves on.
    Counters are only touched after all user tasks finish, from the gathered outcomes.
    """

    settings: Settings
    store: PreferenceStore
    weather_client: WeatherClient
    dispatcher: EmailDispatcher
    generation_client: GenerationClient | None = None
    clock: Callable[[], datetime] = _utc_now

    async def run_sweep(self) -> SweepResult:
        started_at = self.clock()
        log.info("sweep_started")

        try:
            users = await self.store.list_users()
        except Exception as exc:
            log.error("sweep_user_list_failed", error=str(exc))
            return SweepResult(errors=[f"Failed to fetch users: {exc}"])

        semaphore = asyncio.Semaphore(self.settings.sweep_concurrency)

        async def guarded(record: UserRecord) -> _UserOutcome:
            async with semaphore:
                return await self._process_user(record, now=started_at, evaluator=evaluate_conditions)

        outcomes = await asyncio.gather(*(guarded(record) for record in users))

        result = SweepResult(processed_users=len(users))
        for outcome in outcomes:
            if outcome.eligible:
                result.eligible_users += 1
            if outcome.sent:
                result.alerts_sent += 1
            if outcome.error:
                result.errors.append(outcome.error)

        log.info(
            "sweep_finished",
            processed=result.processed_users,
            eligible=result.eligible_users,
            sent=result.alerts_sent,
            errors=len(result.errors),
        )
        return result

    async def send_test_alert(self, user_id: str) -> EmailResult:
        """Manual end-to-end check: fires one trigger per enabled category regardless of the weather."""
        record = await self.store.get_preferences(user_id)
        preferences = record.preferences
        if preferences is None or not preferences.city.strip():
            return EmailResult(success=False, error="Save alert preferences with a city before sending a test email.")
        if not record.email:
            return EmailResult(success=False, error="No email address is available for this user.")
        if not (preferences.notify_extreme_temp or preferences.notify_heavy_rain or preferences.notify_strong_wind):
            return EmailResult(
                success=False,
                error="Enable at least one alert category before sending a test email.",
            )

        snapshot = await self.weather_client.fetch_snapshot(city=preferences.city, use_cache=False)
        triggers = manual_run_triggers(preferences, snapshot)
        return await self._deliver(record, snapshot, triggers, is_test=True)

    async def _process_user(
        self, record: UserRecord, *, now: datetime, evaluator: ConditionEvaluator
    ) -> _UserOutcome:
        if not is_eligible(record):
            return _UserOutcome()

        outcome = _UserOutcome(eligible=True)
        preferences = record.preferences
        try:
            if not is_within_schedule(preferences.schedule, now):
                log.info("user_outside_schedule", user_id=record.user_id)
                return outcome
            if not is_frequency_due(preferences.notification_frequency, preferences.last_alert_sent_at, now):
                log.info("user_not_due", user_id=record.user_id)
                return outcome

            try:
                snapshot = await self.weather_client.fetch_snapshot(city=preferences.city, use_cache=False)
            except WeatherwiseError as exc:
                # TODO: report cities that fail on consecutive sweeps in SweepResult.
                log.warning("user_weather_unavailable", user_id=record.user_id, city=preferences.city, error=str(exc))
                return outcome

            triggers = evaluator(preferences, snapshot)
            if not triggers:
                return outcome

            result = await self._deliver(record, snapshot, triggers, is_test=False)
            if not result.success:
                outcome.error = f"Failed to send alert to {record.email}: {result.error}"
                return outcome

            outcome.sent = True
            try:
                await self.store.record_alert_sent(record.user_id, now)
            except Exception as exc:
                log.warning("alert_timestamp_not_saved", user_id=record.user_id, error=str(exc))
        except Exception as exc:
            log.exception("user_processing_failed", user_id=record.user_id)
            outcome.error = f"Error processing user {record.user_id}: {exc}"
        return outcome

    async def _deliver(
        self, record: UserRecord, snapshot: WeatherSnapshot, triggers: list[str], *, is_test: bool
    ) -> EmailResult:
        summary = await self._summary(snapshot)
        html = render_alert_email(
            snapshot,
            triggers,
            base_url=self.settings.public_base_url,
            summary=summary,
            is_test=is_test,
        )
        subject = alert_subject(snapshot, triggers, is_test=is_test)
        return await self.dispatcher.send(to=record.email, subject=subject, html=html)

    async def _summary(self, snapshot: WeatherSnapshot) -> str | None:
        if self.generation_client is None:
            return None
        try:
            output = await summarize_weather(self.generation_client, snapshot)
        except (GenerationError, ConfigurationError) as exc:
            log.warning("alert_summary_unavailable", city=snapshot.city, error=str(exc))
            return None
        return output.summary
