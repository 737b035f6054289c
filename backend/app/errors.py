from __future__ import annotations


class WeatherwiseError(Exception):
    """Base class for errors raised by the service layer."""


class ConfigurationError(WeatherwiseError):
    """A required key, credential or secret is missing. Never retried."""


class UpstreamError(WeatherwiseError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LocationNotFoundError(WeatherwiseError):
    pass


class PreferenceStoreError(UpstreamError):
    pass


class GenerationError(WeatherwiseError):
    pass


class QuotaExhaustedError(GenerationError):
    pass


class ContentBlockedError(GenerationError):
    pass
