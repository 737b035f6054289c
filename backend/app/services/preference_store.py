from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from app.config import Settings
from app.errors import ConfigurationError, PreferenceStoreError
from app.logging_config import get_logger
from app.schemas import SavedLocation, UnitPreferences, UserAlertPreference, UserRecord


log = get_logger(__name__)

ALERT_PREFERENCES_KEY = "alertPreferences"
MAX_USER_PAGES = 1000


class PreferenceStore(Protocol):
    async def list_users(self) -> list[UserRecord]: ...

    async def list_eligible_users(self) -> list[UserRecord]: ...

    async def get_preferences(self, user_id: str) -> UserRecord: ...

    async def save_preferences(self, user_id: str, preferences: UserAlertPreference) -> None: ...

    async def record_alert_sent(self, user_id: str, sent_at: datetime) -> None: ...


def is_eligible(record: UserRecord) -> bool:
    preferences = record.preferences
    return bool(
        preferences is not None
        and preferences.alerts_enabled
        and preferences.city.strip()
        and record.email
    )


@dataclass
class ClerkPreferenceStore:
    """Alert and display preferences kept in the identity provider's per-user metadata."""

    settings: Settings
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.settings.clerk_api_url,
            timeout=self.settings.request_timeout_seconds,
            transport=self.transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def list_users(self) -> list[UserRecord]:
        page_size = self.settings.user_page_size
        records: list[UserRecord] = []
        seen: set[str] = set()
        for page_index in range(MAX_USER_PAGES):
            page = await self._request("GET", "/users", params={"limit": page_size, "offset": page_index * page_size})
            if not isinstance(page, list):
                raise PreferenceStoreError("Unexpected user list payload from identity provider.")

            # Offset paging can repeat users across pages; keep the first occurrence.
            added = 0
            for user in page:
                if not isinstance(user, dict):
                    continue
                record = _to_record(user)
                if record.user_id in seen:
                    continue
                seen.add(record.user_id)
                records.append(record)
                added += 1

            if len(page) < page_size or added == 0:
                break
        else:
            log.warning("user_page_limit_reached", pages=MAX_USER_PAGES, count=len(records))
        log.info("users_listed", count=len(records))
        return records

    async def list_eligible_users(self) -> list[UserRecord]:
        return [record for record in await self.list_users() if is_eligible(record)]

    async def get_preferences(self, user_id: str) -> UserRecord:
        user = await self._request("GET", f"/users/{user_id}")
        return _to_record(user)

    async def save_preferences(self, user_id: str, preferences: UserAlertPreference) -> None:
        await self._update_metadata(
            user_id,
            private_metadata={ALERT_PREFERENCES_KEY: preferences.model_dump(mode="json", by_alias=True)},
        )

    async def record_alert_sent(self, user_id: str, sent_at: datetime) -> None:
        await self._update_metadata(
            user_id,
            private_metadata={ALERT_PREFERENCES_KEY: {"lastAlertSentAt": sent_at.isoformat()}},
        )

    async def save_unit_preferences(self, user_id: str, units: UnitPreferences) -> None:
        await self._update_metadata(
            user_id,
            public_metadata={"unitPreferences": units.model_dump(mode="json", by_alias=True)},
        )

    async def save_default_location(self, user_id: str, location: SavedLocation | None) -> None:
        value = location.model_dump(mode="json", by_alias=True) if location is not None else None
        await self._update_metadata(user_id, public_metadata={"defaultLocation": value})

    async def save_saved_locations(self, user_id: str, locations: list[SavedLocation]) -> None:
        await self._update_metadata(
            user_id,
            public_metadata={"savedLocations": [item.model_dump(mode="json", by_alias=True) for item in locations]},
        )

    async def _update_metadata(
        self,
        user_id: str,
        *,
        private_metadata: dict[str, Any] | None = None,
        public_metadata: dict[str, Any] | None = None,
    ) -> None:
        # The provider deep-merges metadata, so only the keys sent here change.
        body: dict[str, Any] = {}
        if private_metadata is not None:
            body["private_metadata"] = private_metadata
        if public_metadata is not None:
            body["public_metadata"] = public_metadata
        await self._request("PATCH", f"/users/{user_id}/metadata", json=body)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self.settings.clerk_secret_key:
            raise ConfigurationError("Identity provider is not configured (CLERK_SECRET_KEY missing).")

        headers = {"Authorization": f"Bearer {self.settings.clerk_secret_key}"}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PreferenceStoreError(
                f"Identity provider returned {exc.response.status_code} for {method} {path}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise PreferenceStoreError(f"Identity provider request failed: {exc}") from exc
        return response.json()


def _to_record(user: dict) -> UserRecord:
    user_id = str(user.get("id") or "")
    raw_preferences = (user.get("private_metadata") or {}).get(ALERT_PREFERENCES_KEY)

    preferences: UserAlertPreference | None = None
    if isinstance(raw_preferences, dict):
        try:
            preferences = UserAlertPreference.model_validate(raw_preferences)
        except ValidationError as exc:
            log.warning("preferences_invalid", user_id=user_id, error=str(exc))

    email = (preferences.email.strip() if preferences is not None else "") or _primary_email(user)
    return UserRecord(user_id=user_id, email=email or None, preferences=preferences)


def _primary_email(user: dict) -> str:
    addresses = [item for item in user.get("email_addresses") or [] if isinstance(item, dict)]
    primary_id = user.get("primary_email_address_id")
    for item in addresses:
        if item.get("id") == primary_id and item.get("email_address"):
            return str(item["email_address"])
    if addresses and addresses[0].get("email_address"):
        return str(addresses[0]["email_address"])
    return ""
