"""
Token and cost estimation.

Token counts here are an approximation (words and punctuation), not the
provider's tokenizer. Costs are in the provider's billing currency.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, ROUND_UP
from typing import Dict

from .errors import UnsupportedModel
from .models import CREDIT_QUANTUM, CostEstimate, TokenUsage

OUTPUT_RATIO = Decimal("1.1")

_TOKEN_SPLIT = re.compile(r"[\s.,!?;:\-()\[\]{}\"']+")


@dataclass(frozen=True)
class ModelPricing:
    input_cost_per_1k: Decimal
    output_cost_per_1k: Decimal


@dataclass(frozen=True)
class PricingTable:
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        if model not in self.prices:
            raise UnsupportedModel(model)
        return self.prices[model]

    def cost(self, model: str, input_tokens: int, output_tokens: int) -> Decimal:
        pricing = self.get_pricing(model)
        input_cost = (Decimal(input_tokens) / Decimal("1000")) * pricing.input_cost_per_1k
        output_cost = (Decimal(output_tokens) / Decimal("1000")) * pricing.output_cost_per_1k
        # Rounded up: charges are never below the exact price.
        return (input_cost + output_cost).quantize(CREDIT_QUANTUM, rounding=ROUND_UP)


# https://openai.com/api/pricing/
PRICING_TABLE = PricingTable({
    "gpt-3.5-turbo-instruct": ModelPricing(
        input_cost_per_1k=Decimal("0.0015"),
        output_cost_per_1k=Decimal("0.002"),
    ),
    "gpt-3.5-turbo": ModelPricing(
        input_cost_per_1k=Decimal("0.0005"),
        output_cost_per_1k=Decimal("0.0015"),
    ),
    "gpt-4": ModelPricing(
        input_cost_per_1k=Decimal("0.03"),
        output_cost_per_1k=Decimal("0.06"),
    ),
    "gpt-4o": ModelPricing(
        input_cost_per_1k=Decimal("0.0025"),
        output_cost_per_1k=Decimal("0.01"),
    ),
    "gpt-4o-mini": ModelPricing(
        input_cost_per_1k=Decimal("0.00015"),
        output_cost_per_1k=Decimal("0.0006"),
    ),
})


def count_words(text: str) -> int:
    if not text or not text.strip():
        return 0
    return len(text.split())


def count_tokens(text: str) -> int:
    if not text or not text.strip():
        return 0
    return len([token for token in _TOKEN_SPLIT.split(text) if token])


def estimate_cost(
    text: str,
    max_output_tokens: int,
    model: str,
    table: PricingTable = PRICING_TABLE,
) -> CostEstimate:
    """Estimate tokens and cost for a prompt before sending it.

    Output length is assumed to be close to the input length, capped by
    the requested token budget.

    Raises:
        UnsupportedModel: If the model has no pricing entry
    """
    input_tokens = count_tokens(text)
    scaled = (Decimal(input_tokens) * OUTPUT_RATIO).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    estimated_output_tokens = min(max_output_tokens, int(scaled))
    estimated_cost = table.cost(model, input_tokens, estimated_output_tokens)
    return CostEstimate(
        input_tokens=input_tokens,
        estimated_output_tokens=estimated_output_tokens,
        estimated_cost=estimated_cost,
    )


def calculate_cost(model: str, usage: TokenUsage, table: PricingTable = PRICING_TABLE) -> Decimal:
    """Cost of a completed call from the provider's reported usage."""
    return table.cost(model, usage.prompt_tokens, usage.completion_tokens)
