from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from app.config import Settings
from app.errors import ConfigurationError, ContentBlockedError, GenerationError, QuotaExhaustedError
from app.logging_config import get_logger
from app.services.ttl_cache import AvailabilityTracker


log = get_logger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")
QUOTA_MARKERS = ("quota", "429", "resource_exhausted", "resource has been exhausted", "billing")
INVALID_KEY_MARKERS = ("api key not valid", "api_key_invalid", "permission denied")
BLOCKED_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}


def render_prompt(template: str, input_vars: Mapping[str, Any]) -> str:
    """Replace `{{name}}` placeholders; dotted names walk into nested mappings. No escaping."""

    def substitute(match: re.Match[str]) -> str:
        value: Any = input_vars
        for part in match.group(1).split("."):
            if not isinstance(value, Mapping) or part not in value:
                return match.group(0)
            value = value[part]
        return str(value)

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def _default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


@dataclass
class GenerationClient:
    settings: Settings
    model_tracker: AvailabilityTracker
    key_tracker: AvailabilityTracker
    client_factory: Callable[[str], Any] = _default_client_factory
    _clients: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    async def generate(
        self,
        prompt_template: str,
        input_vars: Mapping[str, Any],
        output_schema: type[OutputT],
        *,
        source: str,
        temperature: float = 0.2,
    ) -> OutputT:
        api_keys = list(self.settings.gemini_api_keys)
        if not api_keys:
            raise ConfigurationError("No Gemini API keys are configured in GEMINI_API_KEYS environment variable.")

        prompt = render_prompt(prompt_template, input_vars)
        models = self.model_tracker.filter_available(self.settings.gemini_models)
        last_error: Exception = GenerationError("All Gemini models and API keys failed.")

        for model in models:
            for key_index, api_key in enumerate(self.key_tracker.filter_available(api_keys)):
                try:
                    log.info("generation_attempt", source=source, model=model, key_index=key_index)
                    result = await self._generate_once(
                        api_key=api_key,
                        model=model,
                        prompt=prompt,
                        output_schema=output_schema,
                        temperature=temperature,
                    )
                except Exception as exc:
                    last_error = exc
                    if _is_quota_error(exc) or _is_invalid_key_error(exc):
                        log.warning("generation_key_failed", source=source, model=model, key_index=key_index, error=str(exc))
                        self.key_tracker.mark_unavailable(api_key)
                        continue
                    log.error("generation_model_failed", source=source, model=model, error=str(exc))
                    break
                self.key_tracker.mark_available(api_key)
                log.info("generation_succeeded", source=source, model=model)
                return result
            self.model_tracker.mark_unavailable(model)

        log.error("generation_exhausted", source=source, models=list(models), error=str(last_error))
        raise _classify_failure(last_error, source) from last_error

    async def _generate_once(
        self,
        *,
        api_key: str,
        model: str,
        prompt: str,
        output_schema: type[OutputT],
        temperature: float,
    ) -> OutputT:
        client = self._clients.get(api_key)
        if client is None:
            client = self.client_factory(api_key)
            self._clients[api_key] = client

        config = types.GenerateContentConfig(
            temperature=temperature,
            response_mime_type="application/json",
            response_schema=output_schema,
        )
        response = await client.aio.models.generate_content(model=model, contents=prompt, config=config)
        return _parse_response(response, output_schema)


def _parse_response(response: Any, output_schema: type[OutputT]) -> OutputT:
    parsed = getattr(response, "parsed", None)
    if isinstance(parsed, output_schema):
        return parsed

    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
    if block_reason:
        raise ContentBlockedError(f"The prompt was blocked by content filters ({_enum_name(block_reason)}).")

    candidates = getattr(response, "candidates", None) or []
    finish_reason = getattr(candidates[0], "finish_reason", None) if candidates else None
    if finish_reason is not None and _enum_name(finish_reason) in BLOCKED_FINISH_REASONS:
        raise ContentBlockedError(f"The response was blocked by content filters ({_enum_name(finish_reason)}).")

    text = getattr(response, "text", None)
    if not text:
        raise GenerationError("AI generation failed to produce a valid output.")
    return output_schema.model_validate_json(text)


def _enum_name(value: object) -> str:
    return str(getattr(value, "value", value)).upper()


def _is_quota_error(exc: Exception) -> bool:
    if isinstance(exc, genai_errors.APIError) and exc.code == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in QUOTA_MARKERS)


def _is_invalid_key_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in INVALID_KEY_MARKERS)


def _classify_failure(exc: Exception, source: str) -> GenerationError:
    if _is_quota_error(exc):
        return QuotaExhaustedError(
            "AI features unavailable. All configured Gemini API keys may have exceeded their free tier quota."
        )
    message = str(exc).lower()
    if isinstance(exc, ContentBlockedError) or "safety" in message or "blocked" in message:
        return ContentBlockedError("The AI response was blocked by content safety filters.")
    if _is_invalid_key_error(exc):
        return GenerationError("AI features unavailable. All configured Gemini API keys appear to be invalid.")
    return GenerationError(f"AI generation failed for {source}. Please check server logs for details.")
