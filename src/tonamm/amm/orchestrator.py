"""Swap, liquidity and deployment workflows.

Each workflow validates against a fresh pool snapshot before it builds
and submits a message, so validation failures never leave a partial
change on the ledger. A confirmation timeout is raised as
``ConfirmationTimeoutError`` with the pending handle attached; whether to
resubmit is the caller's decision after re-reading ledger state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tonamm.address_book import AddressBook
from tonamm.amm import math as swap_math
from tonamm.amm import messages
from tonamm.amm.client import AmmClient
from tonamm.amm.types import PoolState, QuoteKind, SwapDirection, SwapQuote
from tonamm.amounts import format_nano, to_nano
from tonamm.boc import Address, Cell
from tonamm.errors import (
    ConfigurationError,
    ConfirmationTimeoutError,
    EmptyPoolError,
    InsufficientFundsError,
    InvalidAmountError,
    SlippageExceededError,
)
from tonamm.submitter import PendingTransaction, SequencedTransactionSubmitter, TransactionState
from tonamm.utils.polling import PollPolicy, SleepFunc, await_predicate
from tonamm.wallet import OutboundMessage, WalletV3R2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GasSchedule:
    """TON attached to each operation, in nano units."""

    add_liquidity: int = to_nano("0.2")
    remove_liquidity: int = to_nano("0.25")
    swap_fee: int = to_nano("0.04")
    swap_ton_fee: int = to_nano("0.08")
    swap_forward_ton: int = to_nano("0.04")
    upgrade: int = to_nano("0.04")
    collect: int = to_nano("0.04")
    mint: int = to_nano("0.2")

    @classmethod
    def from_settings(cls, settings) -> "GasSchedule":
        return cls(
            add_liquidity=settings.gas_nano("add_liquidity"),
            remove_liquidity=settings.gas_nano("remove_liquidity"),
            swap_fee=settings.gas_nano("swap_fee"),
            swap_ton_fee=settings.gas_nano("swap_ton_fee"),
            swap_forward_ton=settings.gas_nano("swap_forward_ton"),
            upgrade=settings.gas_nano("upgrade"),
            collect=settings.gas_nano("collect"),
            mint=settings.gas_nano("mint"),
        )


@dataclass
class WorkflowContext:
    """Who is acting and where labels are recorded.

    Attributes:
        wallet: Signing wallet paying for every message
        token_wallet: The wallet owner's jetton wallet for the pool's token
        address_book: Labels for reporting
    """

    wallet: WalletV3R2
    token_wallet: Optional[Address] = None
    address_book: AddressBook = field(default_factory=AddressBook)

    def require_token_wallet(self) -> Address:
        if self.token_wallet is None:
            raise ConfigurationError("This workflow needs the owner's token jetton wallet")
        return self.token_wallet


class DeployStatus(str, Enum):
    DEPLOYED = "deployed"
    ALREADY_DEPLOYED = "already_deployed"


@dataclass(frozen=True)
class DeployResult:
    address: Address
    status: DeployStatus
    transaction: Optional[PendingTransaction] = None


@dataclass(frozen=True)
class WorkflowResult:
    """Outcome of a confirmed workflow step."""

    transaction: PendingTransaction
    quote: Optional[SwapQuote] = None
    amount: Optional[int] = None


class LiquidityOrchestrator:
    """Composes quotes, validation and sequenced submission."""

    def __init__(
        self,
        amm: AmmClient,
        submitter: SequencedTransactionSubmitter,
        gas: Optional[GasSchedule] = None,
        deploy_policy: Optional[PollPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.amm = amm
        self.submitter = submitter
        self.gas = gas or GasSchedule()
        self.deploy_policy = deploy_policy or PollPolicy(interval=2.5, max_attempts=10)
        self._sleep = sleep

    @property
    def ledger(self):
        return self.amm.ledger

    # ======================
    # Shared steps
    # ======================

    async def _require_ton(self, ctx: WorkflowContext, required: int) -> None:
        balance = await self.ledger.get_balance(ctx.wallet.address)
        if balance < required:
            raise InsufficientFundsError(ctx.wallet.address.to_friendly(), required, balance)

    async def _require_tokens(self, ctx: WorkflowContext, required: int) -> Address:
        token_wallet = ctx.require_token_wallet()
        balance = await self.amm.get_jetton_balance(token_wallet)
        if balance < required:
            raise InsufficientFundsError(token_wallet.to_friendly(), required, balance, asset="TOKEN")
        return token_wallet

    async def _execute(self, ctx: WorkflowContext, message: OutboundMessage, what: str) -> PendingTransaction:
        pending = await self.submitter.submit(ctx.wallet, message)
        state = await self.submitter.await_outcome(pending)
        if state != TransactionState.CONFIRMED:
            raise ConfirmationTimeoutError(
                f"{what}: seqno {pending.seqno} not confirmed; re-check ledger state before retrying",
                pending=pending,
            )
        logger.info(f"{what} confirmed [seqno:{pending.seqno}]")
        return pending

    async def _snapshot(self, pool: Address, ctx: WorkflowContext) -> PoolState:
        ctx.address_book.add(pool, "AMM-Pool")
        return await self.amm.get_pool_state(pool)

    # ======================
    # Liquidity
    # ======================

    async def add_liquidity(
        self,
        ctx: WorkflowContext,
        pool: Address,
        ton_amount: int,
        token_amount: int,
        slippage_bps: int,
    ) -> WorkflowResult:
        """Deposit TON and tokens for LP units.

        Raises:
            SlippageExceededError: ``token_amount`` is more than ``slippage_bps``
                away from the current reserve ratio (checked before any write)
        """
        if ton_amount <= 0 or token_amount <= 0:
            raise InvalidAmountError(f"Liquidity amounts must be positive: ({ton_amount}, {token_amount})")
        if not 0 <= slippage_bps < swap_math.BPS_DENOMINATOR:
            raise InvalidAmountError(f"slippage_bps out of range: {slippage_bps}")

        state = await self._snapshot(pool, ctx)
        if not state.is_empty:
            expected = swap_math.implied_token_amount(ton_amount, state.ton_reserve, state.token_reserve)
            deviation = swap_math.ratio_deviation_bps(token_amount, expected)
            if deviation > slippage_bps:
                raise SlippageExceededError(
                    f"Token amount {token_amount} is {deviation} bps from the pool ratio "
                    f"({expected} expected, {slippage_bps} bps allowed)",
                    quoted=expected,
                    bound=token_amount,
                )

        value = ton_amount + self.gas.add_liquidity
        await self._require_ton(ctx, value)
        token_wallet = await self._require_tokens(ctx, token_amount)

        body = messages.add_liquidity(
            pool=pool,
            token_amount=token_amount,
            ton_amount=ton_amount,
            slippage_bps=slippage_bps,
            forward_ton_amount=ton_amount + self.gas.add_liquidity // 2,
        )
        logger.info(
            f"Add liquidity {format_nano(ton_amount)} : {format_nano(token_amount, 'TOKEN')} "
            f"to {pool.short()}"
        )
        pending = await self._execute(
            ctx, OutboundMessage(destination=token_wallet, value=value, body=body), "add_liquidity"
        )
        return WorkflowResult(transaction=pending, amount=token_amount)

    async def remove_liquidity(
        self,
        ctx: WorkflowContext,
        pool: Address,
        owner: Optional[Address] = None,
        amount: Optional[int] = None,
        send_mode: int = 3,
    ) -> WorkflowResult:
        """Burn the owner's LP units (all of them unless ``amount`` is given)."""
        owner = owner or ctx.wallet.address
        lp_wallet = await self.amm.locate_sub_account(pool, owner)
        ctx.address_book.add(lp_wallet, "LP-Wallet")

        position = await self.amm.get_position(pool, owner, lp_wallet)
        burn_amount = position.balance if amount is None else amount
        if burn_amount <= 0:
            raise InvalidAmountError(f"No LP balance to remove at {lp_wallet.short()}")
        if burn_amount > position.balance:
            raise InsufficientFundsError(lp_wallet.to_friendly(), burn_amount, position.balance, asset="LP")

        await self._require_ton(ctx, self.gas.remove_liquidity)

        logger.info(f"Remove liquidity of {format_nano(burn_amount, 'LP')} from {pool.short()}")
        message = OutboundMessage(
            destination=lp_wallet,
            value=self.gas.remove_liquidity,
            body=messages.burn(burn_amount, ctx.wallet.address),
            bounce=True,
            send_mode=send_mode,
        )
        pending = await self._execute(ctx, message, "remove_liquidity")
        return WorkflowResult(transaction=pending, amount=burn_amount)

    # ======================
    # Swaps
    # ======================

    async def _quote(
        self, state: PoolState, kind: QuoteKind, direction: SwapDirection, amount: int, bound: int
    ) -> SwapQuote:
        reserve_in, reserve_out = state.reserves(direction)
        if reserve_in == 0 or reserve_out == 0:
            raise EmptyPoolError(f"Pool {state.address.short()} has an empty reserve")
        if amount <= 0:
            raise InvalidAmountError(f"Swap amount must be positive: {amount}")
        if bound < 0:
            raise InvalidAmountError(f"Swap bound must be non-negative: {bound}")

        if kind == QuoteKind.EXACT_INPUT:
            amount_in = amount
            amount_out = await self.amm.get_amount_out(state.address, amount, reserve_in, reserve_out)
        else:
            amount_out = amount
            amount_in = await self.amm.get_amount_in(state.address, amount, reserve_in, reserve_out)

        return SwapQuote(kind, direction, amount_in, amount_out, bound, self.amm.fee_bps)

    async def quote(
        self, pool: Address, direction: SwapDirection, amount_in: int, min_amount_out: int = 0
    ) -> SwapQuote:
        """Exact-input quote against a fresh snapshot, without submitting."""
        state = await self.amm.get_pool_state(pool)
        return await self._quote(state, QuoteKind.EXACT_INPUT, direction, amount_in, min_amount_out)

    def _swap_message(self, ctx: WorkflowContext, pool: Address, quote: SwapQuote) -> OutboundMessage:
        # the contract re-checks the minimum independently
        min_out = quote.amount_out if quote.kind == QuoteKind.EXACT_OUTPUT else quote.bound
        if quote.direction == SwapDirection.TON_TO_TOKEN:
            return OutboundMessage(
                destination=pool,
                value=quote.amount_in + self.gas.swap_ton_fee,
                body=messages.swap_ton(quote.amount_in, min_out),
            )
        return OutboundMessage(
            destination=ctx.require_token_wallet(),
            value=self.gas.swap_forward_ton + self.gas.swap_fee,
            body=messages.swap_token(
                pool=pool,
                token_amount=quote.amount_in,
                min_ton_out=min_out,
                response_destination=ctx.wallet.address,
                forward_ton_amount=self.gas.swap_forward_ton,
            ),
        )

    async def _submit_swap(self, ctx: WorkflowContext, pool: Address, quote: SwapQuote) -> WorkflowResult:
        message = self._swap_message(ctx, pool, quote)
        await self._require_ton(ctx, message.value)
        if quote.direction == SwapDirection.TOKEN_TO_TON:
            await self._require_tokens(ctx, quote.amount_in)

        logger.info(
            f"Swap {quote.direction.value}: in={quote.amount_in} out={quote.amount_out} "
            f"({quote.kind.value}, bound={quote.bound})"
        )
        pending = await self._execute(ctx, message, f"swap_{quote.direction.value}")
        return WorkflowResult(transaction=pending, quote=quote, amount=quote.amount_out)

    async def swap_exact_input(
        self,
        ctx: WorkflowContext,
        pool: Address,
        direction: SwapDirection,
        amount_in: int,
        min_amount_out: int,
    ) -> WorkflowResult:
        """Sell exactly ``amount_in``; abort if the quote is below ``min_amount_out``."""
        state = await self._snapshot(pool, ctx)
        quote = await self._quote(state, QuoteKind.EXACT_INPUT, direction, amount_in, min_amount_out)
        if not quote.within_bound:
            raise SlippageExceededError(
                f"Quoted output {quote.amount_out} is below the minimum {min_amount_out}",
                quoted=quote.amount_out,
                bound=min_amount_out,
            )
        return await self._submit_swap(ctx, pool, quote)

    async def swap_exact_output(
        self,
        ctx: WorkflowContext,
        pool: Address,
        direction: SwapDirection,
        amount_out: int,
        max_amount_in: int,
    ) -> WorkflowResult:
        """Buy exactly ``amount_out``; abort if it would cost more than ``max_amount_in``."""
        state = await self._snapshot(pool, ctx)
        quote = await self._quote(state, QuoteKind.EXACT_OUTPUT, direction, amount_out, max_amount_in)
        if not quote.within_bound:
            raise SlippageExceededError(
                f"Required input {quote.amount_in} exceeds the maximum {max_amount_in}",
                quoted=quote.amount_in,
                bound=max_amount_in,
            )
        return await self._submit_swap(ctx, pool, quote)

    # ======================
    # Deployment
    # ======================

    async def deploy_contract(
        self,
        ctx: WorkflowContext,
        code: Cell,
        initial_state: Cell,
        funding_amount: int,
        label: str = "Contract",
        workchain: Optional[int] = None,
    ) -> DeployResult:
        """Deploy ``(code, initial_state)`` unless it already exists.

        Success is the derived address reporting as deployed, not acceptance
        of our message, so a concurrent deploy by someone else also counts.
        """
        address = self.amm.deriver.derive_contract_address(code, initial_state, workchain)
        ctx.address_book.add(address, label)

        if await self.ledger.is_deployed(address):
            logger.info(f"{label} {address.short()} already deployed")
            return DeployResult(address=address, status=DeployStatus.ALREADY_DEPLOYED)

        await self._require_ton(ctx, funding_amount)

        logger.info(f"Deploying {label} at {address.short()}")
        message = OutboundMessage(
            destination=address,
            value=funding_amount,
            state_init=messages.state_init(code, initial_state),
            bounce=False,
        )
        pending = await self.submitter.submit(ctx.wallet, message)

        async def deployed() -> bool:
            return await self.ledger.is_deployed(address)

        result = await await_predicate(
            deployed, self.deploy_policy, sleep=self._sleep, description=f"deploy {label}"
        )
        # the address may have been activated by another deployer; our own
        # message still holds the wallet's seqno until its outcome is known
        state = await self.submitter.await_outcome(pending)

        if not result.satisfied:
            raise ConfirmationTimeoutError(
                f"{label} at {address.short()} not deployed after {result.attempts} checks",
                pending=pending,
            )
        if state != TransactionState.CONFIRMED:
            raise ConfirmationTimeoutError(
                f"{label} at {address.short()} is active but our deploy message at seqno "
                f"{pending.seqno} is unresolved; re-check the wallet before its next message",
                pending=pending,
            )

        logger.info(f"{label} deployed at {address.short()} after {result.waited_seconds:.1f}s")
        return DeployResult(address=address, status=DeployStatus.DEPLOYED, transaction=pending)

    async def deploy_pool(
        self, ctx: WorkflowContext, code: Cell, initial_state: Cell, funding_amount: int
    ) -> DeployResult:
        """Idempotent pool deployment."""
        return await self.deploy_contract(ctx, code, initial_state, funding_amount, label="AMM-Pool")

    # ======================
    # Admin
    # ======================

    async def _require_admin(self, ctx: WorkflowContext, pool: Address) -> PoolState:
        state = await self._snapshot(pool, ctx)
        if state.admin_address is not None and state.admin_address != ctx.wallet.address:
            raise PermissionError(f"{ctx.wallet.address.short()} is not the admin of {pool.short()}")
        return state

    async def upgrade_pool_code(self, ctx: WorkflowContext, pool: Address, new_code: Cell) -> WorkflowResult:
        """Admin operation replacing the pool's code."""
        await self._require_admin(ctx, pool)
        await self._require_ton(ctx, self.gas.upgrade)
        message = OutboundMessage(destination=pool, value=self.gas.upgrade, body=messages.upgrade(new_code))
        pending = await self._execute(ctx, message, "upgrade")
        return WorkflowResult(transaction=pending)

    async def collect_funds(self, ctx: WorkflowContext, pool: Address) -> WorkflowResult:
        """Admin sweep of the pool's TON above its reserve.

        ``amount`` on the result is the excess seen before sending; the
        contract decides what it actually pays out.
        """
        state = await self._require_admin(ctx, pool)
        excess = state.excess_ton(await self.ledger.get_balance(pool))
        if excess <= 0:
            raise InvalidAmountError(f"Nothing to collect from {pool.short()}")

        await self._require_ton(ctx, self.gas.collect)
        logger.info(f"Collecting {format_nano(excess)} from {pool.short()}")
        message = OutboundMessage(destination=pool, value=self.gas.collect, body=messages.collect_funds())
        pending = await self._execute(ctx, message, "collect_funds")
        return WorkflowResult(transaction=pending, amount=excess)

    async def mint_tokens(
        self, ctx: WorkflowContext, minter: Address, amount: int, receiver: Optional[Address] = None
    ) -> WorkflowResult:
        """Mint test tokens from a jetton minter the wallet administers."""
        if amount <= 0:
            raise InvalidAmountError(f"Mint amount must be positive: {amount}")
        receiver = receiver or ctx.wallet.address
        ctx.address_book.add(minter, "Jetton-Minter")

        await self._require_ton(ctx, self.gas.mint)
        logger.info(f"Minting {format_nano(amount, 'TOKEN')} to {receiver.short()}")
        body = messages.mint(receiver, amount)
        message = OutboundMessage(destination=minter, value=self.gas.mint, body=body)
        pending = await self._execute(ctx, message, "mint")
        return WorkflowResult(transaction=pending, amount=amount)
