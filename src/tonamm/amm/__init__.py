"""AMM pool math, messages, reads and workflows."""

from tonamm.amm.math import quote_input, quote_output
from tonamm.amm.types import LiquidityPosition, PoolState, QuoteKind, SwapDirection, SwapQuote

__all__ = [
    "LiquidityPosition",
    "PoolState",
    "QuoteKind",
    "SwapDirection",
    "SwapQuote",
    "quote_input",
    "quote_output",
]
