"""
Cost attribution for model usage events.

Maps a model identifier and token counts to a USD cost using a static
per-1K-token rate table.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ModelPricing:
    """Per-1K-token rates for one model identifier."""
    input_cost_per_1k: float
    output_cost_per_1k: float


DEFAULT_MODEL = "gpt-3.5-turbo"

_KIMI = ModelPricing(input_cost_per_1k=0.0005, output_cost_per_1k=0.0005)


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table with a designated fallback entry."""
    prices: Dict[str, ModelPricing]
    default_model: str = DEFAULT_MODEL

    def get_pricing(self, model: str) -> ModelPricing:
        """Exact-match lookup; unknown identifiers get the default entry's rates.
        
        Provider-prefixed variants (``moonshot/kimi-k2``) are separate keys,
        there is no alias or prefix resolution.
        """
        pricing = self.prices.get(model)
        if pricing is None:
            return self.prices[self.default_model]
        return pricing


PRICING_TABLE = PricingTable({
    "gpt-4": ModelPricing(input_cost_per_1k=0.03, output_cost_per_1k=0.06),
    "gpt-4-turbo": ModelPricing(input_cost_per_1k=0.01, output_cost_per_1k=0.03),
    "gpt-3.5-turbo": ModelPricing(input_cost_per_1k=0.0015, output_cost_per_1k=0.002),
    "claude-3-opus": ModelPricing(input_cost_per_1k=0.015, output_cost_per_1k=0.075),
    "claude-3-sonnet": ModelPricing(input_cost_per_1k=0.003, output_cost_per_1k=0.015),
    "claude-3-haiku": ModelPricing(input_cost_per_1k=0.00025, output_cost_per_1k=0.00125),
    # Moonshot / Kimi, roughly $0.50 per 1M tokens
    "kimi-k2": _KIMI,
    "kimi-k2.5": _KIMI,
    "kimi-k2-0905-preview": _KIMI,
    "kimi-k2-thinking": _KIMI,
    "moonshot/kimi-k2.5": _KIMI,
    "moonshot/kimi-k2": _KIMI,
    "kimi-coding/kimi-k2-thinking": _KIMI,
})


def calculate_cost(model: str, input_tokens: int, output_tokens: int,
                   table: PricingTable = PRICING_TABLE) -> float:
    """Calculate the USD cost of one model call.
    
    Args:
        model: Model identifier as reported by the agent
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        table: Rate table to price against
        
    Returns:
        Cost at full float precision (not rounded)
    """
    pricing = table.get_pricing(model)
    input_cost = (input_tokens / 1000) * pricing.input_cost_per_1k
    output_cost = (output_tokens / 1000) * pricing.output_cost_per_1k
    return input_cost + output_cost
