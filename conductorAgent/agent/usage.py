"""Token usage accounting and best-effort cost lookup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts of one or more model invocations within a turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: Optional[float] = None

    @classmethod
    def from_metadata(cls, metadata: Optional[Mapping[str, Any]]) -> "TokenUsage":
        """Build from LangChain ``usage_metadata``; missing data counts as zero."""
        if not metadata:
            return cls()
        input_tokens = int(metadata.get("input_tokens") or 0)
        output_tokens = int(metadata.get("output_tokens") or 0)
        total_tokens = int(metadata.get("total_tokens") or (input_tokens + output_tokens))
        return cls(input_tokens, output_tokens, total_tokens)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if self.cost is None and other.cost is None:
            cost = None
        else:
            cost = (self.cost or 0.0) + (other.cost or 0.0)
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost=cost,
        )

    def with_cost(self, cost: Optional[float]) -> "TokenUsage":
        return TokenUsage(self.input_tokens, self.output_tokens, self.total_tokens, cost)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }
        if self.cost is not None:
            data["cost"] = self.cost
        return data


# USD per million tokens: (input, output)
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    # OpenAI
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4.1-nano": (0.10, 0.40),
    "gpt-4.1-mini": (0.40, 1.60),
    "gpt-4.1": (2.00, 8.00),
    "o4-mini": (1.10, 4.40),

    # DeepSeek
    "deepseek-chat": (0.27, 1.10),
    "deepseek-reasoner": (0.55, 2.19),

    # Claude
    "claude-3-5-haiku": (0.80, 4.00),
    "claude-3-5-sonnet": (3.00, 15.00),
}

CostLookup = Callable[[str, TokenUsage], Awaitable[Optional[float]]]


def find_pricing(model_id: str, table: Mapping[str, Tuple[float, float]] = MODEL_PRICING) -> Optional[Tuple[float, float]]:
    """Exact match first, then the longest key that prefixes the model id."""
    if not model_id:
        return None
    key = model_id.lower()
    if key in table:
        return table[key]
    candidates = [name for name in table if key.startswith(name)]
    if not candidates:
        return None
    return table[max(candidates, key=len)]


class PriceTableCostLookup:
    """Cost from a static per-million-token price table."""

    def __init__(self, table: Optional[Mapping[str, Tuple[float, float]]] = None) -> None:
        self.table = dict(table or MODEL_PRICING)

    async def __call__(self, model_id: str, usage: TokenUsage) -> Optional[float]:
        pricing = find_pricing(model_id, self.table)
        if pricing is None:
            LOGGER.debug(f"No pricing known for model {model_id}")
            return None
        input_price, output_price = pricing
        return round(
            usage.input_tokens * input_price / 1_000_000 + usage.output_tokens * output_price / 1_000_000,
            8,
        )
