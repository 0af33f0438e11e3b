"""Fixed-point coin amounts.

All on-ledger arithmetic is done on integers of nano units (10^9 per coin).
Human-facing values (config, CLI arguments) are Decimals and are converted
at the boundary with ROUND_HALF_UP at 9 decimal places. Floats are passed
through ``str()`` first so the decimal literal is rounded, not its binary
approximation.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

NANO_DECIMALS = 9
NANO = 10**NANO_DECIMALS

# VarUInteger 16: 4-bit byte length, at most 15 bytes of value
MAX_COINS = (1 << 120) - 1

_QUANT = Decimal(1).scaleb(-NANO_DECIMALS)

AmountLike = Union[Decimal, int, str, float]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert a human-facing amount to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_nano(value: AmountLike) -> int:
    """Convert a coin amount (e.g. ``"0.15"``) to nano units.

    Rounds half-up at the ninth decimal place.
    """
    quantized = to_decimal(value).quantize(_QUANT, rounding=ROUND_HALF_UP)
    return int(quantized.scaleb(NANO_DECIMALS))


def from_nano(amount: int) -> Decimal:
    """Convert nano units to a Decimal coin amount (exact)."""
    return Decimal(amount).scaleb(-NANO_DECIMALS)


def format_nano(amount: int, symbol: str = "TON") -> str:
    """Render nano units for logs, e.g. ``1.500000000 TON``."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), NANO)
    return f"{sign}{whole}.{frac:0{NANO_DECIMALS}d} {symbol}".rstrip()


def is_valid_coins(amount: int) -> bool:
    """Check that an amount can be carried in a coins field."""
    return 0 <= amount <= MAX_COINS
