"""Per-model token pricing (USD per token)."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# (input, output) USD per token
_PRICING: dict[str, dict[str, tuple[float, float]]] = {
    "openai": {
        "gpt-4o": (0.000005, 0.000015),
        "gpt-4o-mini": (0.00000015, 0.0000006),
        "gpt-4-turbo": (0.00001, 0.00003),
        "gpt-4": (0.00003, 0.00006),
        "gpt-3.5-turbo": (0.0000005, 0.0000015),
        "o1-preview": (0.000015, 0.00006),
        "o1-mini": (0.000003, 0.000012),
    },
    "anthropic": {
        "claude-3-opus-20240229": (0.000015, 0.000075),
        "claude-3-sonnet-20240229": (0.000003, 0.000015),
        "claude-3-haiku-20240307": (0.00000025, 0.00000125),
        "claude-3-5-sonnet-20241022": (0.000003, 0.000015),
        "claude-3-5-haiku-20241022": (0.000001, 0.000005),
    },
    "google": {
        "gemini-1.5-pro": (0.000003, 0.000015),
        "gemini-1.5-flash": (0.00000035, 0.00000105),
        "gemini-pro": (0.0000005, 0.0000015),
        "gemini-ultra": (0.000008, 0.000024),
    },
}


def get_rates(provider: str, model: str) -> tuple[float, float] | None:
    """Look up (input, output) rates; falls back to the longest matching prefix."""
    table = _PRICING.get(provider, {})
    if model in table:
        return table[model]
    prefixes = [name for name in table if model.startswith(name)]
    if prefixes:
        return table[max(prefixes, key=len)]
    return None


def calculate_cost(provider: str, model: str, input_tokens: int, output_tokens: int) -> float:
    rates = get_rates(provider, model)
    if rates is None:
        logger.debug("No pricing for %s/%s, reporting zero cost", provider, model)
        return 0.0
    input_rate, output_rate = rates
    return input_tokens * input_rate + output_tokens * output_rate
