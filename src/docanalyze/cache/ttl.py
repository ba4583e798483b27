"""Smart TTL: keep expensive or verbose responses cached for longer."""

from __future__ import annotations

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)

MAX_TTL_SECONDS = 7 * 24 * 3600.0

_COST_UNIT = 0.01  # USD at which the cost factor reaches 2.0
_MAX_COST_FACTOR = 2.0
_OUTPUT_UNIT = 1000  # output tokens at which the output factor reaches 1.5
_MAX_OUTPUT_FACTOR = 1.5
_PREMIUM_FACTOR = 1.5


def compute_smart_ttl(
    input_tokens: int,
    output_tokens: int,
    cost: float,
    model: str,
    base_ttl: float,
    premium_models: Iterable[str] = (),
) -> float:
    """Return a TTL in seconds scaled by cost, output size and model tier.

    ``input_tokens`` is accepted for symmetry with the entry metadata but does
    not influence the result.
    """
    cost_factor = min(_MAX_COST_FACTOR, 1 + max(cost, 0.0) / _COST_UNIT)
    output_factor = min(_MAX_OUTPUT_FACTOR, 1 + max(output_tokens, 0) / _OUTPUT_UNIT)
    model_factor = _PREMIUM_FACTOR if is_premium_model(model, premium_models) else 1.0

    ttl = min(base_ttl * cost_factor * output_factor * model_factor, MAX_TTL_SECONDS)
    logger.debug(
        "Smart TTL for %s: %.1f min (base %.1f min, cost x%.2f, output x%.2f, model x%.1f)",
        model,
        ttl / 60,
        base_ttl / 60,
        cost_factor,
        output_factor,
        model_factor,
    )
    return ttl


def is_premium_model(model: str, premium_models: Iterable[str]) -> bool:
    lowered = model.lower()
    return any(marker.lower() in lowered for marker in premium_models)
