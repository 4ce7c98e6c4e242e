"""AI categorizer for statement rows no lookup table resolves.

Sends the raw row to the Anthropic Messages API and asks for the merchant
name and a spending category.

Features:
- In-process answer cache (one API call per distinct row)
- Typed errors distinguishing missing key, exhausted credits and API failure
- Token and cost accounting per call, persisted to the state store

Privacy Constraints:
- Raw rows are only logged at DEBUG, truncated to 100 characters
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from ledger_import.categorizer.cache import AICacheEntry, AIResponseCache
from ledger_import.categorizer.prompts import CategorizePrompt

if TYPE_CHECKING:
    from ledger_import.config import AIConfig
    from ledger_import.state_store import StateStore

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?", re.MULTILINE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$", re.MULTILINE)


class AIErrorCode(str, Enum):
    NO_API_KEY = "NO_API_KEY"
    API_ERROR = "API_ERROR"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"


class AICategorizationError(Exception):
    """AI categorization could not produce an answer."""

    def __init__(self, message: str, code: AIErrorCode):
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class AIUsage:
    """Token usage and cost of one live API call."""

    input_tokens: int
    output_tokens: int
    cost_usd: float


@dataclass(frozen=True)
class CategorizationOutcome:
    """Answer for one row.

    usage is None on a cache hit and set on every live API call.
    """

    result: AICacheEntry | None
    usage: AIUsage | None = None

    @property
    def cached(self) -> bool:
        return self.usage is None and self.result is not None


def _sanitize(raw_row: str) -> str:
    return raw_row.strip()[:100]


def _text_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""
    text = _FENCE_OPEN_RE.sub("", text.strip())
    return _FENCE_CLOSE_RE.sub("", text).strip()


class AICategorizer:
    """Claude-backed merchant/category suggestions.

    The cache is injected rather than global; pass the same AIResponseCache to
    several categorizers to share answers.
    """

    def __init__(
        self,
        config: AIConfig,
        cache: AIResponseCache | None = None,
        store: StateStore | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the categorizer.

        Args:
            config: AI configuration section.
            cache: Answer cache (a private one is created when omitted).
            store: State store for usage records (optional).
            http_client: Pre-built HTTP client (tests).
        """
        self.config = config
        self.cache = cache if cache is not None else AIResponseCache()
        self.store = store
        self._prompt = CategorizePrompt()
        self._client = http_client or httpx.Client(
            base_url=config.base_url,
            timeout=httpx.Timeout(
                connect=10.0,
                read=float(config.timeout_seconds),
                write=30.0,
                pool=10.0,
            ),
        )

    def clear_cache(self) -> None:
        self.cache.clear()

    def compute_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Cost in USD for a call at the configured per-million-token prices."""
        return (input_tokens / 1_000_000) * self.config.input_cost_per_mtok + (
            output_tokens / 1_000_000
        ) * self.config.output_cost_per_mtok

    def categorize(self, raw_row: str, batch_id: str | None = None) -> CategorizationOutcome:
        """Suggest an entity name and category for a statement row.

        Args:
            raw_row: Serialized original statement row.
            batch_id: Import batch the usage record is attributed to.

        Returns:
            CategorizationOutcome; result is None when the model returned no text.

        Raises:
            AICategorizationError: No API key, exhausted credits, or API failure.
        """
        sanitized = _sanitize(raw_row)

        cached = self.cache.get(raw_row)
        if cached is not None:
            logger.debug(
                "AI cache hit for '%s' -> %s (%s)", sanitized, cached.entity_name, cached.category
            )
            self._record_usage(raw_row, cached, None, batch_id)
            return CategorizationOutcome(result=cached)

        if not self.config.api_key:
            raise AICategorizationError("CLAUDE_API_KEY not configured", AIErrorCode.NO_API_KEY)

        logger.debug("Calling AI model %s (cache miss) for '%s'", self.config.model, sanitized)

        try:
            data = self._call_messages_api(raw_row)
            usage = self._usage(data)
            text = self._first_text(data)
        except httpx.HTTPStatusError as e:
            logger.error("AI API error %s for '%s'", e.response.status_code, sanitized)
            raise self._status_error(e.response) from e
        except httpx.RequestError as e:
            logger.error("AI request failed for '%s': %s", sanitized, e)
            raise AICategorizationError(
                f"Failed to categorize: {e}", AIErrorCode.API_ERROR
            ) from e
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.error("Malformed AI response for '%s': %s", sanitized, e)
            raise AICategorizationError(
                f"Failed to categorize: malformed response ({e})", AIErrorCode.API_ERROR
            ) from e

        if not text:
            logger.warning("AI model returned no text for '%s'", sanitized)
            return CategorizationOutcome(result=None, usage=usage)

        try:
            parsed = json.loads(strip_code_fences(text))
            if not isinstance(parsed, dict):
                raise ValueError("expected a JSON object")
        except ValueError as e:
            logger.error("Failed to parse AI response for '%s': %s", sanitized, e)
            raise AICategorizationError(
                f"Failed to categorize: {e}", AIErrorCode.API_ERROR
            ) from e

        entry = AICacheEntry(
            description=raw_row.strip(),
            entity_name=_text_field(parsed, "entityName"),
            category=_text_field(parsed, "category"),
        )
        self.cache.set(raw_row, entry)
        self._record_usage(raw_row, entry, usage, batch_id)

        logger.info(
            "AI categorized '%s' as %s (%s): %d in / %d out tokens, $%.6f",
            sanitized[:50],
            entry.entity_name,
            entry.category,
            usage.input_tokens,
            usage.output_tokens,
            usage.cost_usd,
        )
        return CategorizationOutcome(result=entry, usage=usage)

    def _call_messages_api(self, raw_row: str) -> dict[str, Any]:
        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [
                {"role": "user", "content": self._prompt.format_user_message(raw_row)}
            ],
        }
        response = self._client.post(
            "/v1/messages",
            json=payload,
            headers={
                "x-api-key": self.config.api_key or "",
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )
        response.raise_for_status()
        return response.json()

    def _usage(self, data: dict[str, Any]) -> AIUsage:
        usage_data = data.get("usage") or {}
        input_tokens = int(usage_data.get("input_tokens", 0))
        output_tokens = int(usage_data.get("output_tokens", 0))
        return AIUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=self.compute_cost(input_tokens, output_tokens),
        )

    @staticmethod
    def _first_text(data: dict[str, Any]) -> str | None:
        content = data.get("content") or []
        if not content or content[0].get("type") != "text":
            return None
        text = content[0].get("text")
        if text is not None and not isinstance(text, str):
            raise TypeError("text block is not a string")
        return text or None

    @staticmethod
    def _status_error(response: httpx.Response) -> AICategorizationError:
        """Map an error response onto AICategorizationError."""
        try:
            body = response.json()
            message = (body.get("error") or {}).get("message") or response.reason_phrase
        except ValueError:
            message = response.text or response.reason_phrase

        if response.status_code == 400 and "credit balance" in (message or "").lower():
            return AICategorizationError(
                "Anthropic API credit balance too low. "
                "Please add credits at https://console.anthropic.com/settings/plans",
                AIErrorCode.INSUFFICIENT_CREDITS,
            )
        return AICategorizationError(
            f"Anthropic API error: {message or 'Unknown error'}", AIErrorCode.API_ERROR
        )

    def _record_usage(
        self,
        raw_row: str,
        entry: AICacheEntry,
        usage: AIUsage | None,
        batch_id: str | None,
    ) -> None:
        if self.store is None:
            return
        self.store.record_ai_usage(
            description=raw_row.strip(),
            entity_name=entry.entity_name,
            category=entry.category,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            cost_usd=usage.cost_usd if usage else 0.0,
            cached=usage is None,
            import_batch_id=batch_id,
        )

    def close(self) -> None:
        self._client.close()
