from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from time import monotonic
from typing import Any


@dataclass
class TTLCache:
    """In-memory key/value cache whose entries expire after `ttl_seconds`."""

    ttl_seconds: float
    max_entries: int = 1024
    clock: Callable[[], float] = monotonic
    _entries: dict[str, tuple[float, Any]] = field(default_factory=dict, init=False, repr=False)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if self.clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return payload

    def set(self, key: str, payload: Any, *, ttl_seconds: float | None = None) -> None:
        now = self.clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._prune(now)
        self._entries.pop(key, None)
        while len(self._entries) >= max(1, self.max_entries):
            # Insertion order: the first key is the oldest write.
            self._entries.pop(next(iter(self._entries)))
        self._entries[key] = (now + max(1.0, ttl), payload)

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]


@dataclass
class AvailabilityTracker:
    """
    Time-boxed record of keys (model names, API keys) that recently failed.

    A key marked unavailable is skipped until `ttl_seconds` have passed since the mark.
    """

    ttl_seconds: float = 300.0
    clock: Callable[[], float] = monotonic
    _failures: dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def mark_unavailable(self, key: str) -> None:
        self._failures[key] = self.clock()

    def mark_available(self, key: str) -> None:
        self._failures.pop(key, None)

    def is_available(self, key: str) -> bool:
        failed_at = self._failures.get(key)
        if failed_at is None:
            return True
        if self.clock() - failed_at > self.ttl_seconds:
            self._failures.pop(key, None)
            return True
        return False

    def filter_available(self, keys: Iterable[str]) -> list[str]:
        ordered = list(keys)
        available = [key for key in ordered if self.is_available(key)]
        if available or not ordered:
            return available
        # Fail open: every key is marked, so forget the marks and try them all again.
        for key in ordered:
            self._failures.pop(key, None)
        return ordered
