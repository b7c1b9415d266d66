"""Provider adapters for Google AI Studio and OpenRouter.

Each adapter turns the generic ``[{"role": ..., "content": ...}]`` history into
the provider's request shape, calls it over HTTP with ``httpx`` and returns a
:class:`CompletionResult` with the reply text, total tokens and a cost estimate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session

from config import settings
from models.api_key import ApiKey
from models.setting import Setting
from services.token_usage import calculate_cost, extract_total_tokens, lookup_registry_rate

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("google", "openrouter")

# Shown by GET /chat/models/ when the ai_models registry is empty.
BUILTIN_MODELS: dict[str, list[dict]] = {
    "google": [
        {"id": "gemini-pro", "name": "Gemini Pro", "description": "Google's most capable model"},
        {
            "id": "gemini-pro-vision",
            "name": "Gemini Pro Vision",
            "description": "Multimodal model with vision capabilities",
        },
    ],
    "openrouter": [
        {"id": "openai/gpt-3.5-turbo", "name": "GPT-3.5 Turbo", "description": "Fast and efficient OpenAI model"},
        {"id": "openai/gpt-4", "name": "GPT-4", "description": "Most capable OpenAI model"},
        {
            "id": "anthropic/claude-3-haiku",
            "name": "Claude 3 Haiku",
            "description": "Fast and affordable Anthropic model",
        },
        {"id": "anthropic/claude-3-sonnet", "name": "Claude 3 Sonnet", "description": "Balanced Anthropic model"},
    ],
}


class ProviderError(Exception):
    """Raised when a provider call cannot produce a reply."""


@dataclass
class CompletionResult:
    content: str
    tokens_used: int = 0
    cost: float = 0.0


class BaseProvider:
    name: str = ""
    display_name: str = ""

    def complete(
        self,
        messages: list[dict],
        model: str,
        api_key: str,
        *,
        registry_rate: float | None = None,
        site_name: str = "AI Chatbot Platform",
    ) -> CompletionResult:
        raise NotImplementedError

    def _post(self, url: str, **kwargs) -> dict:
        try:
            resp = httpx.post(url, timeout=settings.PROVIDER_TIMEOUT_SECONDS, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.display_name} request failed: {exc}") from exc
        if resp.status_code >= 400:
            logger.warning(
                "%s returned HTTP %s: %s", self.display_name, resp.status_code, resp.text[:500]
            )
            raise ProviderError(f"{self.display_name} returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(f"{self.display_name} returned a non-JSON body") from exc


class GoogleProvider(BaseProvider):
    name = "google"
    display_name = "Google AI"

    @staticmethod
    def build_prompt(messages: list[dict]) -> str:
        return "\n".join(f"{m['role']}: {m['content']}" for m in messages)

    def complete(self, messages, model, api_key, *, registry_rate=None, site_name="AI Chatbot Platform"):
        data = self._post(
            f"{settings.GOOGLE_API_BASE}/models/{model}:generateContent",
            params={"key": api_key},
            headers={"Content-Type": "application/json"},
            json={"contents": [{"parts": [{"text": self.build_prompt(messages)}]}]},
        )
        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Google AI response had no candidates") from exc
        if not isinstance(content, str):
            raise ProviderError("Google AI response had no text")

        tokens = extract_total_tokens(data.get("usageMetadata"), "totalTokenCount")
        return CompletionResult(
            content=content,
            tokens_used=tokens,
            cost=calculate_cost(model, tokens, registry_rate),
        )


class OpenRouterProvider(BaseProvider):
    name = "openrouter"
    display_name = "OpenRouter"
    max_tokens = 1000

    @staticmethod
    def format_messages(messages: list[dict]) -> list[dict]:
        return [
            {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
            for m in messages
        ]

    def complete(self, messages, model, api_key, *, registry_rate=None, site_name="AI Chatbot Platform"):
        data = self._post(
            f"{settings.OPENROUTER_API_BASE}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": settings.FRONTEND_URL,
                "X-Title": site_name,
            },
            json={
                "model": model,
                "messages": self.format_messages(messages),
                "max_tokens": self.max_tokens,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("OpenRouter response had no choices") from exc
        if not isinstance(content, str):
            raise ProviderError("OpenRouter response had no text content")

        tokens = extract_total_tokens(data.get("usage"), "total_tokens")
        return CompletionResult(
            content=content,
            tokens_used=tokens,
            cost=calculate_cost(model, tokens, registry_rate),
        )


PROVIDERS: dict[str, BaseProvider] = {
    GoogleProvider.name: GoogleProvider(),
    OpenRouterProvider.name: OpenRouterProvider(),
}


def get_provider(name: str) -> BaseProvider:
    provider = PROVIDERS.get(name)
    if provider is None:
        raise ProviderError(f"Unsupported provider: {name}")
    return provider


def select_api_key(db: Session, provider: str) -> ApiKey:
    """Pick the first active key for *provider* that still has usage headroom."""
    candidates = (
        db.query(ApiKey)
        .filter(ApiKey.provider == provider, ApiKey.is_active == True)  # noqa: E712
        .order_by(ApiKey.id)
        .all()
    )
    for key in candidates:
        if key.has_capacity:
            return key
    raise ProviderError(f"{get_provider(provider).display_name} API key not configured")


def dispatch(db: Session, provider_name: str, model: str, messages: list[dict]) -> CompletionResult:
    """Run one completion against *provider_name* and count it against the key used."""
    provider = get_provider(provider_name)
    key = select_api_key(db, provider_name)
    result = provider.complete(
        messages,
        model,
        key.api_key,
        registry_rate=lookup_registry_rate(db, provider_name, model),
        site_name=Setting.get_value(db, "site_name", "AI Chatbot Platform"),
    )
    key.usage_count = (key.usage_count or 0) + 1
    logger.info(
        "%s completion via key %s: %d tokens, $%.6f",
        provider.display_name, key.id, result.tokens_used, result.cost,
    )
    return result
