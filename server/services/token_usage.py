"""Per-token pricing and cost calculation for provider completions."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# USD per token for models that are not in the ai_models registry.
MODEL_RATES: dict[str, float] = {
    "openai/gpt-3.5-turbo": 0.002 / 1000,
    "openai/gpt-4": 0.03 / 1000,
    "anthropic/claude-3-haiku": 0.00025 / 1000,
    "anthropic/claude-3-sonnet": 0.003 / 1000,
}

DEFAULT_RATE = 0.001 / 1000


def get_model_rate(model_name: str, registry_rate: float | None = None) -> float:
    """Return the USD cost of a single token for *model_name*.

    A rate from the ai_models registry wins; otherwise the static table is
    consulted, falling back to ``DEFAULT_RATE`` for unknown models.
    """
    if registry_rate is not None:
        return registry_rate
    return MODEL_RATES.get(model_name, DEFAULT_RATE)


def calculate_cost(model_name: str, tokens: int, registry_rate: float | None = None) -> float:
    """Calculate USD cost for *tokens* total tokens on *model_name*."""
    if tokens <= 0:
        return 0.0
    return get_model_rate(model_name, registry_rate) * tokens


def lookup_registry_rate(db: Session, provider: str, model_name: str) -> float | None:
    """Return ``cost_per_token`` from the ai_models registry, or None if unregistered."""
    from models.ai_model import AIModel

    row = (
        db.query(AIModel.cost_per_token)
        .filter(AIModel.provider == provider, AIModel.model_name == model_name)
        .first()
    )
    if row is None:
        return None
    return float(row[0] or 0.0)


def extract_total_tokens(usage: dict | None, *keys: str) -> int:
    """Pull the first present, positive integer from *usage* under *keys*."""
    if not usage or not isinstance(usage, dict):
        return 0
    for key in keys:
        value = usage.get(key)
        if isinstance(value, (int, float)) and value > 0:
            return int(value)
    return 0
