"""
Tests for the AI categorizer.

The Messages API is mocked with an httpx.MockTransport; no network calls.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from ledger_import.categorizer import (
    AICategorizationError,
    AICategorizer,
    AIErrorCode,
    AIResponseCache,
    CategorizePrompt,
)
from ledger_import.categorizer.service import strip_code_fences
from ledger_import.config import AIConfig
from ledger_import.state_store import StateStore

RAW_ROW = '{"Description":"SQ *BLUE BOTTLE","Amount":"5.50"}'


def messages_response(text: str | None, input_tokens=1000, output_tokens=200) -> dict:
    content = [{"type": "text", "text": text}] if text is not None else []
    return {
        "id": "msg_1",
        "type": "message",
        "content": content,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


class MockMessagesAPI:
    """Records requests and replays a fixed response."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else messages_response(
            '{"entityName": "Blue Bottle", "category": "Dining"}'
        )
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    def client(self) -> httpx.Client:
        return httpx.Client(base_url="https://anthropic.test", transport=httpx.MockTransport(self))


@pytest.fixture
def ai_config() -> AIConfig:
    return AIConfig(api_key="test-key", base_url="https://anthropic.test")


def make_categorizer(config, api, **kwargs) -> AICategorizer:
    return AICategorizer(config, http_client=api.client(), **kwargs)


class TestLiveCalls:
    """Cache misses call the API."""

    def test_successful_categorization(self, ai_config):
        """Parsed answer, usage and cost come back together."""
        api = MockMessagesAPI()
        categorizer = make_categorizer(ai_config, api)

        outcome = categorizer.categorize(RAW_ROW, "batch-1")

        assert outcome.result.entity_name == "Blue Bottle"
        assert outcome.result.category == "Dining"
        assert outcome.usage.input_tokens == 1000
        assert outcome.usage.output_tokens == 200
        # 1000/1e6 * 1.00 + 200/1e6 * 5.00
        assert outcome.usage.cost_usd == pytest.approx(0.002)

    def test_request_shape(self, ai_config):
        """Model, token limit, headers and prompt are sent."""
        api = MockMessagesAPI()
        make_categorizer(ai_config, api).categorize(RAW_ROW)

        request = api.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["model"] == "claude-haiku-4-5-20251001"
        assert body["max_tokens"] == 200
        assert RAW_ROW in body["messages"][0]["content"]

    def test_fenced_json_is_accepted(self, ai_config):
        api = MockMessagesAPI(
            body=messages_response('```json\n{"entityName": "Uber", "category": "Transport"}\n```')
        )
        outcome = make_categorizer(ai_config, api).categorize(RAW_ROW)
        assert outcome.result.entity_name == "Uber"

    def test_empty_text_returns_no_result(self, ai_config):
        """No text block means no answer, but the call still counts."""
        api = MockMessagesAPI(body=messages_response(None))
        outcome = make_categorizer(ai_config, api).categorize(RAW_ROW)

        assert outcome.result is None
        assert outcome.usage is not None

    def test_usage_recorded_in_store(self, ai_config, temp_db):
        store = StateStore(temp_db)
        categorizer = make_categorizer(ai_config, MockMessagesAPI(), store=store)

        categorizer.categorize(RAW_ROW, "batch-1")
        categorizer.categorize(RAW_ROW, "batch-1")

        stats = store.get_ai_usage_stats("batch-1")
        assert stats["api_calls"] == 1
        assert stats["cache_hits"] == 1

    @patch("ledger_import.categorizer.service.httpx.Client")
    def test_default_client_uses_base_url(self, mock_client_class, ai_config):
        """Without an injected client one is built from config."""
        AICategorizer(ai_config)

        _, kwargs = mock_client_class.call_args
        assert kwargs["base_url"] == "https://anthropic.test"


class TestCache:
    """Cache hits skip the API."""

    def test_second_call_is_cached(self, ai_config):
        api = MockMessagesAPI()
        categorizer = make_categorizer(ai_config, api)

        categorizer.categorize(RAW_ROW)
        outcome = categorizer.categorize("  " + RAW_ROW.lower() + "  ")

        assert len(api.requests) == 1
        assert outcome.usage is None
        assert outcome.cached is True

    def test_clear_cache(self, ai_config):
        api = MockMessagesAPI()
        categorizer = make_categorizer(ai_config, api)

        categorizer.categorize(RAW_ROW)
        categorizer.clear_cache()
        categorizer.categorize(RAW_ROW)

        assert len(api.requests) == 2

    def test_shared_cache_between_categorizers(self, ai_config):
        cache = AIResponseCache()
        api = MockMessagesAPI()
        make_categorizer(ai_config, api, cache=cache).categorize(RAW_ROW)
        make_categorizer(ai_config, api, cache=cache).categorize(RAW_ROW)

        assert len(api.requests) == 1
        assert len(cache) == 1

    def test_cache_hit_needs_no_api_key(self, ai_config):
        """Cached answers are served even without credentials."""
        cache = AIResponseCache()
        make_categorizer(ai_config, MockMessagesAPI(), cache=cache).categorize(RAW_ROW)

        keyless = AIConfig(api_key=None)
        outcome = make_categorizer(keyless, MockMessagesAPI(), cache=cache).categorize(RAW_ROW)
        assert outcome.result.entity_name == "Blue Bottle"


class TestErrors:
    """Failures raise typed errors."""

    def test_missing_api_key(self):
        categorizer = make_categorizer(AIConfig(api_key=None), MockMessagesAPI())

        with pytest.raises(AICategorizationError) as exc_info:
            categorizer.categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.NO_API_KEY

    def test_insufficient_credits(self, ai_config):
        api = MockMessagesAPI(
            status=400,
            body={
                "type": "error",
                "error": {
                    "type": "invalid_request_error",
                    "message": "Your credit balance is too low to access the Anthropic API.",
                },
            },
        )

        with pytest.raises(AICategorizationError) as exc_info:
            make_categorizer(ai_config, api).categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.INSUFFICIENT_CREDITS
        assert "credit balance too low" in exc_info.value.message

    def test_other_status_error(self, ai_config):
        api = MockMessagesAPI(
            status=529, body={"type": "error", "error": {"message": "Overloaded"}}
        )

        with pytest.raises(AICategorizationError) as exc_info:
            make_categorizer(ai_config, api).categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.API_ERROR
        assert exc_info.value.message == "Anthropic API error: Overloaded"

    def test_unparseable_answer(self, ai_config):
        api = MockMessagesAPI(body=messages_response("I think this is a coffee shop"))

        with pytest.raises(AICategorizationError) as exc_info:
            make_categorizer(ai_config, api).categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.API_ERROR

    def test_non_json_body(self, ai_config):
        """A gateway page with status 200 is an API error, not a crash."""
        client = httpx.Client(
            base_url="https://anthropic.test",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>gateway</html>")
            ),
        )

        with pytest.raises(AICategorizationError) as exc_info:
            AICategorizer(ai_config, http_client=client).categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.API_ERROR

    @pytest.mark.parametrize(
        "body",
        [
            ["not", "an", "object"],
            {"content": "text", "usage": {}},
            {"content": [{"type": "text", "text": 42}]},
            {"content": [], "usage": {"input_tokens": "many"}},
        ],
    )
    def test_malformed_body(self, ai_config, body):
        with pytest.raises(AICategorizationError) as exc_info:
            make_categorizer(ai_config, MockMessagesAPI(body=body)).categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.API_ERROR

    def test_transport_error(self, ai_config):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(base_url="https://anthropic.test", transport=httpx.MockTransport(fail))
        categorizer = AICategorizer(ai_config, http_client=client)

        with pytest.raises(AICategorizationError) as exc_info:
            categorizer.categorize(RAW_ROW)

        assert exc_info.value.code == AIErrorCode.API_ERROR
        assert exc_info.value.message.startswith("Failed to categorize:")


class TestPrompt:
    """Prompt formatting."""

    def test_prompt_contains_row_and_categories(self):
        message = CategorizePrompt().format_user_message(RAW_ROW)
        assert f"Transaction data: {RAW_ROW}" in message
        assert '{"entityName": "...", "category": "..."}' in message
        assert "Groceries, Dining" in message

    def test_strip_code_fences(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'
