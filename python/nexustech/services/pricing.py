"""Shard cost calculation for LLM usage.

cost = (input_tokens / 1e6 * input_price + output_tokens / 1e6 * output_price) * markup

Prices are per million tokens. Lookup order for a model's prices:
1. the static table below
2. the stored llm_models row
3. zero (unknown models are free rather than blocked)

Costs are floats and are never rounded.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from nexustech.config import get_settings
from nexustech.db.models import LLMModelPricing
from nexustech.logging import get_logger

logger = get_logger(__name__)

TOKENS_PER_UNIT = 1_000_000
FREE_MODEL_SUFFIX = ":free"


@dataclass(frozen=True)
class ModelPrice:
    input_per_million: float
    output_per_million: float


FREE = ModelPrice(0.0, 0.0)

STATIC_PRICES: dict[str, ModelPrice] = {
    "google/gemini-2.5-flash-lite": ModelPrice(0.10, 0.40),
    "openai/gpt-4o": ModelPrice(5.0, 15.0),
    "openai/gpt-4o-mini": ModelPrice(0.15, 0.60),
    "anthropic/claude-3.5-haiku": ModelPrice(0.25, 1.25),
}


def lookup_price(db: Session, model_id: str) -> ModelPrice:
    """Resolve per-million prices for a model id."""
    if model_id.endswith(FREE_MODEL_SUFFIX):
        return FREE

    static = STATIC_PRICES.get(model_id)
    if static is not None:
        return static

    stored = db.scalar(select(LLMModelPricing).where(LLMModelPricing.model_id == model_id))
    if stored is not None:
        return ModelPrice(
            stored.input_token_cost_per_million, stored.output_token_cost_per_million
        )

    logger.warning("model_price_unknown", model_id=model_id)
    return FREE


def compute_shard_cost(
    db: Session,
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    markup: float | None = None,
) -> float:
    """Shards to charge for one call to `model_id`."""
    if markup is None:
        markup = get_settings().shard_markup
    price = lookup_price(db, model_id)
    raw = (
        input_tokens / TOKENS_PER_UNIT * price.input_per_million
        + output_tokens / TOKENS_PER_UNIT * price.output_per_million
    )
    return raw * markup
