"""Constant-product swap math on nano-unit integers.

Mirrors the pool contract's ``get_amount_out`` / ``get_amount_in`` methods:

    amount_out = floor(amount_in * (10000 - fee) * reserve_out
                       / (reserve_in * 10000 + amount_in * (10000 - fee)))

    amount_in  = ceil(reserve_in * amount_out * 10000
                      / ((reserve_out - amount_out) * (10000 - fee)))

Output rounds down and required input rounds up, so rounding always favours
the pool and ``reserve_in * reserve_out`` never decreases across a swap.
Python integers are unbounded, so intermediate products cannot overflow;
inputs are still limited to what a coins field can carry.
"""

from tonamm.amounts import MAX_COINS
from tonamm.errors import EmptyPoolError, InsufficientLiquidityError, InvalidAmountError

BPS_DENOMINATOR = 10_000


def _check_fee(fee_bps: int) -> None:
    if not 0 <= fee_bps < BPS_DENOMINATOR:
        raise InvalidAmountError(f"fee_bps must be in [0, {BPS_DENOMINATOR}): {fee_bps}")


def _check_reserves(reserve_in: int, reserve_out: int) -> None:
    if reserve_in < 0 or reserve_out < 0:
        raise InvalidAmountError(f"Reserves must be non-negative: ({reserve_in}, {reserve_out})")
    if reserve_in == 0 or reserve_out == 0:
        raise EmptyPoolError(f"Pool has an empty reserve: ({reserve_in}, {reserve_out})")


def _check_amount(name: str, amount: int) -> None:
    if amount <= 0:
        raise InvalidAmountError(f"{name} must be positive: {amount}")
    if amount > MAX_COINS:
        raise InvalidAmountError(f"{name} exceeds the coins range: {amount}")


def quote_output(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Amount received for an exact ``amount_in`` (floor rounding)."""
    _check_fee(fee_bps)
    _check_reserves(reserve_in, reserve_out)
    _check_amount("amount_in", amount_in)

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def quote_input(amount_out: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Amount required to receive exactly ``amount_out`` (ceiling rounding)."""
    _check_fee(fee_bps)
    _check_reserves(reserve_in, reserve_out)
    _check_amount("amount_out", amount_out)
    if amount_out >= reserve_out:
        raise InsufficientLiquidityError(
            f"Requested {amount_out} but the pool only holds {reserve_out}"
        )

    numerator = reserve_in * amount_out * BPS_DENOMINATOR
    denominator = (reserve_out - amount_out) * (BPS_DENOMINATOR - fee_bps)
    return -(-numerator // denominator)


def implied_token_amount(ton_amount: int, ton_reserve: int, token_reserve: int) -> int:
    """Token amount matching ``ton_amount`` at the current reserve ratio."""
    _check_reserves(ton_reserve, token_reserve)
    return ton_amount * token_reserve // ton_reserve


def ratio_deviation_bps(token_amount: int, expected_token_amount: int) -> int:
    """Distance between a supplied and expected amount, in basis points (rounded up)."""
    if expected_token_amount <= 0:
        raise InvalidAmountError(f"Expected amount must be positive: {expected_token_amount}")
    diff = abs(token_amount - expected_token_amount) * BPS_DENOMINATOR
    return -(-diff // expected_token_amount)


def lp_tokens_for_deposit(ton_amount: int, ton_reserve: int, total_supply: int) -> int:
    """LP units minted for a deposit, proportional to the TON side.

    The first deposit into an empty pool mints LP equal to the TON amount.
    """
    if ton_amount <= 0:
        raise InvalidAmountError(f"ton_amount must be positive: {ton_amount}")
    if total_supply == 0 or ton_reserve == 0:
        return ton_amount
    return ton_amount * total_supply // ton_reserve


def withdrawal_amounts(
    lp_amount: int, ton_reserve: int, token_reserve: int, total_supply: int
) -> tuple[int, int]:
    """(ton, token) returned for burning ``lp_amount`` (floor rounding)."""
    if total_supply <= 0:
        raise EmptyPoolError("Pool has no LP supply")
    if not 0 < lp_amount <= total_supply:
        raise InvalidAmountError(f"lp_amount must be in (0, {total_supply}]: {lp_amount}")
    return (
        lp_amount * ton_reserve // total_supply,
        lp_amount * token_reserve // total_supply,
    )
