"""
Token estimation and cost accounting for AI usage analytics.

Providers report exact usage in the response; the estimate is only used for
stored user messages and when a provider omits the usage block.
"""
from __future__ import annotations

import math
from typing import Any

CHARS_PER_TOKEN = 3.5
USD_TO_IDR = 16500
FALLBACK_PRICING_MODEL = "gemini-2.5-flash"

# USD per 1M tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gemini-3-flash": {"input": 0.1, "output": 0.4},
    "gemini-3-pro": {"input": 1.25, "output": 5.0},
    "gemini-2.5-flash": {"input": 0.075, "output": 0.3},
    "gemini-2.5-pro": {"input": 1.25, "output": 5.0},
    "gemini-2.5-flash-lite": {"input": 0.025, "output": 0.1},
    "gpt-5.2": {"input": 2.5, "output": 10.0},
    "gpt-5.1": {"input": 2.0, "output": 8.0},
    "gpt-5": {"input": 2.0, "output": 8.0},
    "gpt-4o": {"input": 2.5, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "deepseek-chat": {"input": 0.27, "output": 1.1},
    "deepseek-reasoner": {"input": 0.55, "output": 2.19},
}


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def extract_tokens_from_response(data: dict[str, Any] | None) -> dict[str, int]:
    usage = (data or {}).get("usage") or {}
    input_tokens = int(usage.get("prompt_tokens") or 0)
    output_tokens = int(usage.get("completion_tokens") or 0)
    total = int(usage.get("total_tokens") or 0) or input_tokens + output_tokens
    return {"input_tokens": input_tokens, "output_tokens": output_tokens, "total_tokens": total}


def estimate_cost_usd(input_tokens: int, output_tokens: int, model_id: str | None) -> float:
    pricing = MODEL_PRICING.get(model_id or "") or MODEL_PRICING[FALLBACK_PRICING_MODEL]
    return (input_tokens / 1_000_000) * pricing["input"] + (output_tokens / 1_000_000) * pricing["output"]


def estimate_cost_idr(input_tokens: int, output_tokens: int, model_id: str | None) -> float:
    return estimate_cost_usd(input_tokens, output_tokens, model_id) * USD_TO_IDR


def format_cost_usd(cost: float) -> str:
    if cost < 0.01:
        return f"${cost:.6f}"
    if cost < 1:
        return f"${cost:.4f}"
    return f"${cost:.2f}"


def format_cost_idr(cost: float) -> str:
    """1650.4 -> 'Rp 1.650'"""
    return "Rp " + f"{round(cost):,}".replace(",", ".")
