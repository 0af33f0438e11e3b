"""Pool, position and quote value types."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from tonamm.boc import Address


class SwapDirection(str, Enum):
    """Which side of the pair is being sold."""

    TON_TO_TOKEN = "ton_to_token"
    TOKEN_TO_TON = "token_to_ton"


class QuoteKind(str, Enum):
    EXACT_INPUT = "exact_input"
    EXACT_OUTPUT = "exact_output"


@dataclass(frozen=True)
class PoolState:
    """Point-in-time snapshot of the pool contract.

    Two snapshots may disagree if the pool mutated between the reads.
    """

    address: Address
    total_supply: int
    mintable: bool
    jetton_wallet_address: Optional[Address]
    ton_reserve: int
    token_reserve: int
    admin_address: Optional[Address]

    @property
    def is_empty(self) -> bool:
        return self.ton_reserve == 0 or self.token_reserve == 0

    def reserves(self, direction: SwapDirection) -> tuple[int, int]:
        """(reserve_in, reserve_out) for a swap direction."""
        if direction == SwapDirection.TON_TO_TOKEN:
            return self.ton_reserve, self.token_reserve
        return self.token_reserve, self.ton_reserve

    @property
    def price(self) -> Decimal:
        """Token units per TON unit."""
        if self.ton_reserve == 0:
            return Decimal("0")
        return Decimal(self.token_reserve) / Decimal(self.ton_reserve)

    def excess_ton(self, balance: int) -> int:
        """Contract balance above the TON reserve (what a collect sweeps)."""
        return balance - self.ton_reserve


@dataclass(frozen=True)
class SwapQuote:
    """A computed quote and the caller's bound.

    A quote is not a commitment: the pool may move before submission.
    ``bound`` is ``min_amount_out`` for exact-input quotes and
    ``max_amount_in`` for exact-output quotes.
    """

    kind: QuoteKind
    direction: SwapDirection
    amount_in: int
    amount_out: int
    bound: int
    fee_bps: int

    @property
    def within_bound(self) -> bool:
        if self.kind == QuoteKind.EXACT_INPUT:
            return self.amount_out >= self.bound
        return self.amount_in <= self.bound

    @property
    def effective_rate(self) -> Decimal:
        if self.amount_in == 0:
            return Decimal("0")
        return Decimal(self.amount_out) / Decimal(self.amount_in)


@dataclass(frozen=True)
class LiquidityPosition:
    """LP balance held by an owner's sub-account (LP wallet)."""

    owner: Address
    lp_wallet: Address
    balance: int
    pool: Optional[Address] = None

    def share_of(self, total_supply: int) -> Decimal:
        if total_supply == 0:
            return Decimal("0")
        return Decimal(self.balance) / Decimal(total_supply)
