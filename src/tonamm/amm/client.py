"""Read access to the pool contract and its LP wallets."""

import logging
from typing import Optional

from tonamm.amm import math as swap_math
from tonamm.amm.derivation import AddressDeriver
from tonamm.amm.types import LiquidityPosition, PoolState
from tonamm.boc import Address, begin_cell
from tonamm.errors import ConfigurationError, ReplyShapeError
from tonamm.ledger import decoding
from tonamm.ledger.base import LedgerClient

logger = logging.getLogger(__name__)

QUOTE_LOCAL = "local"
QUOTE_REMOTE = "remote"


def _address_arg(address: Address):
    return begin_cell().store_address(address).end_cell()


class AmmClient:
    """Pool-state reads, sub-account resolution and quotes.

    Args:
        ledger: Ledger client
        deriver: Address deriver holding the LP wallet code
        fee_bps: Pool swap fee used by local quotes
        quote_source: ``"local"`` to compute quotes in-process, ``"remote"``
            to ask the pool's get-methods. Both must agree exactly.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        deriver: AddressDeriver,
        fee_bps: int = 30,
        quote_source: str = QUOTE_LOCAL,
    ):
        if quote_source not in (QUOTE_LOCAL, QUOTE_REMOTE):
            raise ConfigurationError(f"Unknown quote source: {quote_source}")
        self.ledger = ledger
        self.deriver = deriver
        self.fee_bps = fee_bps
        self.quote_source = quote_source

    async def get_pool_state(self, pool: Address) -> PoolState:
        """Single snapshot read of the pool's reserves and supply."""
        stack = await self.ledger.call_read_method(pool, decoding.POOL_DATA.method)
        fields = decoding.POOL_DATA.decode(stack)

        if fields["ton_reserve"] < 0 or fields["token_reserve"] < 0:
            raise ReplyShapeError(f"Negative reserves reported by {pool.short()}")

        state = PoolState(address=pool, **fields)
        logger.debug(
            f"Pool {pool.short()}: ton={state.ton_reserve} token={state.token_reserve} "
            f"supply={state.total_supply}"
        )
        return state

    def resolve_sub_account(self, pool: Address, owner: Address) -> Address:
        """LP wallet address of ``owner``, derived locally and memoised."""
        return self.deriver.derive_sub_account(pool, owner)

    async def fetch_sub_account(self, pool: Address, owner: Address) -> Address:
        """LP wallet address as reported by the pool contract."""
        return await self.get_jetton_wallet_address(pool, owner)

    async def locate_sub_account(self, pool: Address, owner: Address) -> Address:
        """Derive locally when the LP wallet code is known, otherwise ask the pool."""
        if self.deriver.lp_wallet_code is None:
            return await self.fetch_sub_account(pool, owner)
        return self.resolve_sub_account(pool, owner)

    async def get_jetton_wallet_address(self, minter: Address, owner: Address) -> Address:
        """Jetton wallet of ``owner`` under ``minter`` (works for the pool's LP too)."""
        stack = await self.ledger.call_read_method(
            minter, decoding.WALLET_ADDRESS.method, [_address_arg(owner)]
        )
        address = decoding.WALLET_ADDRESS.decode(stack)["address"]
        if address is None:
            raise ReplyShapeError(f"get_wallet_address on {minter.short()} returned addr_none")
        return address

    async def get_jetton_balance(self, wallet: Address) -> int:
        """Balance of a jetton wallet; 0 when the wallet is not deployed."""
        if not await self.ledger.is_deployed(wallet):
            return 0
        stack = await self.ledger.call_read_method(wallet, decoding.JETTON_WALLET_DATA.method)
        return decoding.JETTON_WALLET_DATA.decode(stack)["balance"]

    async def get_position(
        self, pool: Address, owner: Address, lp_wallet: Optional[Address] = None
    ) -> LiquidityPosition:
        lp_wallet = lp_wallet or await self.locate_sub_account(pool, owner)
        balance = await self.get_jetton_balance(lp_wallet)
        return LiquidityPosition(owner=owner, lp_wallet=lp_wallet, balance=balance, pool=pool)

    async def get_amount_out(
        self, pool: Address, amount_in: int, reserve_in: int, reserve_out: int
    ) -> int:
        if self.quote_source == QUOTE_REMOTE:
            stack = await self.ledger.call_read_method(
                pool, decoding.AMOUNT_OUT.method, [amount_in, reserve_in, reserve_out]
            )
            return decoding.AMOUNT_OUT.decode(stack)["amount_out"]
        return swap_math.quote_output(amount_in, reserve_in, reserve_out, self.fee_bps)

    async def get_amount_in(
        self, pool: Address, amount_out: int, reserve_in: int, reserve_out: int
    ) -> int:
        if self.quote_source == QUOTE_REMOTE:
            stack = await self.ledger.call_read_method(
                pool, decoding.AMOUNT_IN.method, [amount_out, reserve_in, reserve_out]
            )
            return decoding.AMOUNT_IN.decode(stack)["amount_in"]
        return swap_math.quote_input(amount_out, reserve_in, reserve_out, self.fee_bps)
