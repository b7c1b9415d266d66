"""Tests for services/providers.py: request shapes, parsing, key selection, dispatch."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from services.providers import (
    GoogleProvider,
    OpenRouterProvider,
    ProviderError,
    dispatch,
    get_provider,
    select_api_key,
)

HISTORY = [
    {"role": "user", "content": "Hi"},
    {"role": "assistant", "content": "Hello!"},
    {"role": "user", "content": "Tell me a joke"},
]


def _response(status_code=200, json_data=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


GOOGLE_OK = {
    "candidates": [{"content": {"parts": [{"text": "Why did the chicken..."}]}}],
    "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 20, "totalTokenCount": 30},
}

OPENROUTER_OK = {
    "choices": [{"message": {"role": "assistant", "content": "A joke."}}],
    "usage": {"prompt_tokens": 50, "completion_tokens": 50, "total_tokens": 100},
}


class TestGoogleProvider:
    def test_build_prompt(self):
        assert GoogleProvider.build_prompt(HISTORY) == "user: Hi\nassistant: Hello!\nuser: Tell me a joke"

    def test_request_shape(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data=GOOGLE_OK)) as post:
            GoogleProvider().complete(HISTORY, "gemini-pro", "AIzaKey")

        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        assert url.endswith("/models/gemini-pro:generateContent")
        assert kwargs["params"] == {"key": "AIzaKey"}
        assert kwargs["json"] == {
            "contents": [{"parts": [{"text": "user: Hi\nassistant: Hello!\nuser: Tell me a joke"}]}]
        }

    def test_parses_reply_and_tokens(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data=GOOGLE_OK)):
            result = GoogleProvider().complete(HISTORY, "gemini-pro", "k", registry_rate=0.001)
        assert result.content == "Why did the chicken..."
        assert result.tokens_used == 30
        assert result.cost == pytest.approx(0.03)

    def test_missing_usage_metadata_means_zero_tokens(self):
        body = {"candidates": GOOGLE_OK["candidates"]}
        with patch("services.providers.httpx.post", return_value=_response(json_data=body)):
            result = GoogleProvider().complete(HISTORY, "gemini-pro", "k")
        assert result.tokens_used == 0
        assert result.cost == 0.0

    def test_no_candidates(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data={"candidates": []})):
            with pytest.raises(ProviderError):
                GoogleProvider().complete(HISTORY, "gemini-pro", "k")

    def test_null_text_part(self):
        body = {"candidates": [{"content": {"parts": [{"text": None}]}}]}
        with patch("services.providers.httpx.post", return_value=_response(json_data=body)):
            with pytest.raises(ProviderError, match="no text"):
                GoogleProvider().complete(HISTORY, "gemini-pro", "k")

    def test_http_error_status(self):
        with patch("services.providers.httpx.post", return_value=_response(status_code=403, text="denied")):
            with pytest.raises(ProviderError, match="HTTP 403"):
                GoogleProvider().complete(HISTORY, "gemini-pro", "k")

    def test_transport_error(self):
        with patch("services.providers.httpx.post", side_effect=httpx.ConnectError("boom")):
            with pytest.raises(ProviderError):
                GoogleProvider().complete(HISTORY, "gemini-pro", "k")

    def test_non_json_body(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data=None)):
            with pytest.raises(ProviderError):
                GoogleProvider().complete(HISTORY, "gemini-pro", "k")


class TestOpenRouterProvider:
    def test_format_messages_maps_roles(self):
        msgs = [{"role": "system", "content": "x"}, {"role": "assistant", "content": "y"}]
        assert OpenRouterProvider.format_messages(msgs) == [
            {"role": "user", "content": "x"},
            {"role": "assistant", "content": "y"},
        ]

    def test_request_shape(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data=OPENROUTER_OK)) as post:
            OpenRouterProvider().complete(HISTORY, "openai/gpt-4", "sk-or", site_name="My Site")

        kwargs = post.call_args.kwargs
        assert post.call_args.args[0].endswith("/chat/completions")
        assert kwargs["headers"]["Authorization"] == "Bearer sk-or"
        assert kwargs["headers"]["X-Title"] == "My Site"
        assert "HTTP-Referer" in kwargs["headers"]
        assert kwargs["json"]["model"] == "openai/gpt-4"
        assert kwargs["json"]["max_tokens"] == 1000
        assert len(kwargs["json"]["messages"]) == 3

    def test_cost_from_static_table(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data=OPENROUTER_OK)):
            result = OpenRouterProvider().complete(HISTORY, "openai/gpt-4", "sk-or")
        assert result.content == "A joke."
        assert result.tokens_used == 100
        assert result.cost == pytest.approx(0.003)

    def test_no_choices(self):
        with patch("services.providers.httpx.post", return_value=_response(json_data={"choices": []})):
            with pytest.raises(ProviderError):
                OpenRouterProvider().complete(HISTORY, "openai/gpt-4", "sk-or")

    def test_null_content_refusal(self):
        body = {"choices": [{"message": {"role": "assistant", "content": None}}]}
        with patch("services.providers.httpx.post", return_value=_response(json_data=body)):
            with pytest.raises(ProviderError, match="no text content"):
                OpenRouterProvider().complete(HISTORY, "openai/gpt-4", "sk-or")


class TestKeySelection:
    def test_unknown_provider(self):
        with pytest.raises(ProviderError, match="Unsupported provider"):
            get_provider("anthropic")

    def test_no_key_configured(self, db):
        with pytest.raises(ProviderError, match="Google AI API key not configured"):
            select_api_key(db, "google")

    def test_inactive_key_skipped(self, db):
        from models.api_key import ApiKey

        db.add(ApiKey(provider="openrouter", key_name="off", api_key="sk-1", is_active=False))
        db.commit()
        with pytest.raises(ProviderError, match="OpenRouter API key not configured"):
            select_api_key(db, "openrouter")

    def test_exhausted_key_skipped(self, db):
        from models.api_key import ApiKey

        db.add(ApiKey(provider="google", key_name="full", api_key="k1", usage_limit=5, usage_count=5))
        db.add(ApiKey(provider="google", key_name="spare", api_key="k2", usage_limit=5, usage_count=1))
        db.commit()
        assert select_api_key(db, "google").key_name == "spare"


class TestDispatch:
    def test_increments_key_usage(self, db, google_key):
        with patch("services.providers.httpx.post", return_value=_response(json_data=GOOGLE_OK)):
            result = dispatch(db, "google", "gemini-pro", HISTORY)
        assert result.content.startswith("Why")
        assert google_key.usage_count == 1

    def test_passes_decrypted_key(self, db, google_key):
        with patch("services.providers.httpx.post", return_value=_response(json_data=GOOGLE_OK)) as post:
            dispatch(db, "google", "gemini-pro", HISTORY)
        assert post.call_args.kwargs["params"] == {"key": "AIzaTestKey123456"}

    def test_uses_registry_rate(self, db, google_key):
        from models.ai_model import AIModel

        db.add(AIModel(provider="google", model_name="gemini-pro", display_name="Gemini Pro", cost_per_token=0.01))
        db.commit()
        with patch("services.providers.httpx.post", return_value=_response(json_data=GOOGLE_OK)):
            result = dispatch(db, "google", "gemini-pro", HISTORY)
        assert result.cost == pytest.approx(0.3)

    def test_failure_does_not_count(self, db, google_key):
        with patch("services.providers.httpx.post", return_value=_response(status_code=500, text="oops")):
            with pytest.raises(ProviderError):
                dispatch(db, "google", "gemini-pro", HISTORY)
        assert google_key.usage_count == 0
