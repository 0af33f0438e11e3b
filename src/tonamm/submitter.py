"""Seqno-guarded transaction submission.

Lifecycle of a pending transaction::

    BUILT -> SUBMITTED -> CONFIRMED | TIMED_OUT

``build`` captures the wallet seqno N and signs for it. ``send`` refuses if
the ledger seqno is no longer N (the message would be stale) or if another
transaction is outstanding for the wallet. ``await_outcome`` polls the seqno
and confirms the first time it exceeds N; after the attempt budget it
resolves to TIMED_OUT, which only means the outcome was not observed.

Nothing here retries on its own. After a timeout the caller re-reads the
seqno and decides: ``resubmit`` re-sends the byte-identical message for N,
which is safe because the wallet ignores a seqno it has already consumed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tonamm.boc import Address, to_boc
from tonamm.errors import InvalidTransitionError, StaleSequenceError
from tonamm.ledger.base import LedgerClient, SubmitReceipt
from tonamm.utils.locks import AccountGuard
from tonamm.utils.polling import PollPolicy, SleepFunc, await_predicate
from tonamm.wallet import OutboundMessage, WalletV3R2

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    BUILT = "built"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"

    @property
    def is_resolved(self) -> bool:
        return self in (TransactionState.CONFIRMED, TransactionState.TIMED_OUT)


_TRANSITIONS = {
    TransactionState.BUILT: {TransactionState.SUBMITTED},
    TransactionState.SUBMITTED: {TransactionState.CONFIRMED, TransactionState.TIMED_OUT},
    TransactionState.CONFIRMED: set(),
    TransactionState.TIMED_OUT: set(),
}


@dataclass
class PendingTransaction:
    """Handle for one signed wallet message.

    Resolved exactly once. A resubmission after a timeout is a new handle
    sharing ``seqno`` and ``signed_boc`` with the one that timed out.
    """

    wallet_address: Address
    message: OutboundMessage
    seqno: int
    signed_boc: bytes
    state: TransactionState = TransactionState.BUILT
    attempt: int = 1
    receipt: Optional[SubmitReceipt] = None
    observed_seqno: Optional[int] = None
    polls_used: int = 0
    created_at: float = field(default_factory=time.time)

    def transition(self, new_state: TransactionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot move transaction seqno={self.seqno} from {self.state.value} "
                f"to {new_state.value}"
            )
        logger.debug(f"seqno={self.seqno} {self.state.value} -> {new_state.value}")
        self.state = new_state

    @property
    def is_resolved(self) -> bool:
        return self.state.is_resolved

    @property
    def account(self) -> str:
        return self.wallet_address.to_raw()


class SequencedTransactionSubmitter:
    """Turns an outbound message into a confirmed-or-timed-out outcome.

    Args:
        ledger: Ledger client (shares the global rate limiter)
        poll_policy: Default polling interval and attempt budget
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        ledger: LedgerClient,
        poll_policy: Optional[PollPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.ledger = ledger
        self.poll_policy = poll_policy or PollPolicy()
        self._sleep = sleep
        self._guard = AccountGuard()

    def outstanding(self, wallet_address: Address) -> Optional[PendingTransaction]:
        return self._guard.holder(wallet_address.to_raw())

    async def build(self, wallet: WalletV3R2, message: OutboundMessage) -> PendingTransaction:
        """Sign ``message`` for the wallet's current seqno."""
        seqno = await self.ledger.get_sequence(wallet.address)
        signed = wallet.create_transfer(seqno, message)
        return PendingTransaction(
            wallet_address=wallet.address,
            message=message,
            seqno=seqno,
            signed_boc=to_boc(signed),
        )

    async def send(self, pending: PendingTransaction) -> PendingTransaction:
        """Submit a BUILT transaction.

        Raises:
            TransactionInFlightError: Another transaction is outstanding for the wallet
            StaleSequenceError: The ledger seqno moved since the message was built
        """
        if pending.state != TransactionState.BUILT:
            raise InvalidTransitionError(f"Only built transactions can be sent, got {pending.state.value}")

        self._guard.claim(pending.account, pending)
        try:
            observed = await self.ledger.get_sequence(pending.wallet_address)
            if observed != pending.seqno:
                raise StaleSequenceError(pending.wallet_address.to_friendly(), pending.seqno, observed)
            await self._transmit(pending)
        except BaseException:
            self._guard.release(pending.account, pending)
            raise
        return pending

    async def submit(self, wallet: WalletV3R2, message: OutboundMessage) -> PendingTransaction:
        """Build and send in one step."""
        return await self.send(await self.build(wallet, message))

    async def resubmit(self, timed_out: PendingTransaction) -> PendingTransaction:
        """Re-send the identical signed message of a timed-out transaction.

        If the original has applied in the meantime the wallet rejects the
        replay, so this cannot double-apply.
        """
        if timed_out.state != TransactionState.TIMED_OUT:
            raise InvalidTransitionError(
                f"Only timed-out transactions can be resubmitted, got {timed_out.state.value}"
            )

        retry = PendingTransaction(
            wallet_address=timed_out.wallet_address,
            message=timed_out.message,
            seqno=timed_out.seqno,
            signed_boc=timed_out.signed_boc,
            attempt=timed_out.attempt + 1,
        )
        self._guard.claim(retry.account, retry)
        try:
            await self._transmit(retry)
        except BaseException:
            self._guard.release(retry.account, retry)
            raise
        logger.info(f"Resubmitted seqno={retry.seqno} (attempt {retry.attempt})")
        return retry

    async def _transmit(self, pending: PendingTransaction) -> None:
        message = pending.message
        logger.info(
            f"Sending transaction to {message.destination.short()} value={message.value} "
            f"[seqno:{pending.seqno}]"
        )
        pending.receipt = await self.ledger.submit_signed_message(pending.signed_boc)
        pending.transition(TransactionState.SUBMITTED)

    async def await_outcome(
        self,
        pending: PendingTransaction,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> TransactionState:
        """Poll until the seqno passes the captured value or the budget runs out."""
        if pending.state != TransactionState.SUBMITTED:
            raise InvalidTransitionError(
                f"Can only await a submitted transaction, got {pending.state.value}"
            )

        policy = PollPolicy(
            interval=self.poll_policy.interval if poll_interval is None else poll_interval,
            max_attempts=self.poll_policy.max_attempts if max_attempts is None else max_attempts,
            backoff=self.poll_policy.backoff,
            max_interval=self.poll_policy.max_interval,
        )

        async def seqno_advanced() -> bool:
            pending.polls_used += 1
            observed = await self.ledger.get_sequence(pending.wallet_address)
            pending.observed_seqno = observed
            return observed > pending.seqno

        logger.info(f"Waiting for seqno to pass {pending.seqno}")
        try:
            result = await await_predicate(
                seqno_advanced, policy, sleep=self._sleep, description=f"seqno>{pending.seqno}"
            )
        finally:
            if pending.state == TransactionState.SUBMITTED:
                # a poll error leaves the transaction unresolved but frees the account
                self._guard.release(pending.account, pending)

        if result.satisfied:
            pending.transition(TransactionState.CONFIRMED)
            logger.info(f"seqno update after {result.waited_seconds:.1f}s (seqno={pending.observed_seqno})")
        else:
            pending.transition(TransactionState.TIMED_OUT)
            logger.warning(
                f"seqno still {pending.observed_seqno} after {result.attempts} polls; "
                f"outcome of seqno={pending.seqno} unknown"
            )
        return pending.state
