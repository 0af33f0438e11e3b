"""In-process ledger for dry runs and tests.

Accepts the wallet external messages this package produces, decodes them
and applies them after a configurable number of polls (of the sending
wallet's seqno or of a destination's account state): the wallet
seqno advances, attached values move, and a StateInit whose hash matches
its destination deploys that contract. Read methods are answered by
registered handlers. Contract logic beyond that is not emulated.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from tonamm.boc import Address, from_boc
from tonamm.errors import CellError, LedgerError, RpcThrottledError
from tonamm.ledger.base import AccountState, ContractStatus, LedgerClient, StackValue, SubmitReceipt
from tonamm.ledger.rate_limit import TokenBucket
from tonamm.wallet import NO_EXPIRY, ParsedInternal, ParsedTransfer, parse_external_transfer

logger = logging.getLogger(__name__)

ReadHandler = Callable[[Sequence[StackValue]], list[StackValue]]
MessageHandler = Callable[["DryRunLedger", Address, ParsedInternal], None]


@dataclass
class DryRunAccount:
    balance: int = 0
    status: ContractStatus = ContractStatus.UNINITIALIZED
    seqno: int = 0
    public_key: Optional[bytes] = None


@dataclass
class SubmittedMessage:
    boc: bytes
    transfer: ParsedTransfer
    polls_until_applied: int
    applied: bool = False
    rejected: bool = False


@dataclass
class DryRunLedger(LedgerClient):
    """Simulated ledger.

    Attributes:
        confirm_after_polls: Seqno polls before a submitted message applies
        drop_submissions: Accept messages but never apply them
        throttle_next: Number of upcoming calls that raise RpcThrottledError
        clock: Time source a message's valid_until is checked against
    """

    confirm_after_polls: int = 1
    drop_submissions: bool = False
    throttle_next: int = 0
    verify_signatures: bool = True
    clock: Callable[[], float] = time.time
    limiter: Optional[TokenBucket] = None
    accounts: dict[Address, DryRunAccount] = field(default_factory=dict)
    submissions: list[SubmittedMessage] = field(default_factory=list)
    read_calls: list[tuple[Address, str]] = field(default_factory=list)

    def __post_init__(self):
        LedgerClient.__init__(self, self.limiter)
        self._methods: dict[tuple[Address, str], ReadHandler] = {}
        self._handlers: dict[Address, MessageHandler] = {}

    # ======================
    # Setup helpers
    # ======================

    def account(self, address: Address) -> DryRunAccount:
        return self.accounts.setdefault(address, DryRunAccount())

    def fund(self, address: Address, amount: int) -> None:
        self.account(address).balance += amount

    def deploy(self, address: Address, balance: int = 0) -> None:
        acct = self.account(address)
        acct.status = ContractStatus.ACTIVE
        acct.balance += balance

    def register_wallet(self, address: Address, public_key: bytes, balance: int = 0) -> None:
        acct = self.account(address)
        acct.public_key = public_key
        acct.balance += balance

    def register_method(self, address: Address, method: str, handler: ReadHandler) -> None:
        self._methods[(address, method)] = handler

    def on_message(self, address: Address, handler: MessageHandler) -> None:
        """Run ``handler`` whenever an internal message reaches ``address``."""
        self._handlers[address] = handler

    @property
    def applied(self) -> list[SubmittedMessage]:
        return [s for s in self.submissions if s.applied]

    # ======================
    # LedgerClient
    # ======================

    async def _enter(self) -> None:
        await self.limiter.acquire()
        if self.throttle_next > 0:
            self.throttle_next -= 1
            raise RpcThrottledError("dry-run ledger throttled")

    async def get_account_state(self, address: Address) -> AccountState:
        await self._enter()
        self._tick(address, by_destination=True)
        acct = self.accounts.get(address, DryRunAccount())
        return AccountState(address=address, balance=acct.balance, status=acct.status)

    async def call_read_method(
        self, address: Address, method: str, args: Sequence[StackValue] = ()
    ) -> list[StackValue]:
        await self._enter()
        self.read_calls.append((address, method))
        handler = self._methods.get((address, method))
        if handler is None:
            raise LedgerError(f"{method} on {address.short()} exited with code 11")
        return list(handler(args))

    async def get_sequence(self, address: Address) -> int:
        await self._enter()
        self._tick(address)
        return self.accounts.get(address, DryRunAccount()).seqno

    async def submit_signed_message(self, boc: bytes) -> SubmitReceipt:
        await self._enter()
        try:
            root = from_boc(boc)[0]
            transfer = parse_external_transfer(root)
        except CellError as e:
            raise LedgerError(f"sendBoc rejected: {e}") from e

        acct = self.accounts.get(transfer.wallet_address)
        if (
            self.verify_signatures
            and acct is not None
            and acct.public_key is not None
            and not transfer.verify(acct.public_key)
        ):
            raise LedgerError("sendBoc rejected: bad signature")

        self.submissions.append(SubmittedMessage(boc, transfer, self.confirm_after_polls))
        logger.info(
            f"[DRY RUN] accepted message for {transfer.wallet_address.short()} seqno={transfer.seqno}"
        )
        return SubmitReceipt(accepted=True, message_hash=root.hash.hex(), detail="dry_run")

    # ======================
    # Application
    # ======================

    def _tick(self, address: Address, by_destination: bool = False) -> None:
        if self.drop_submissions:
            return
        for sub in self.submissions:
            if sub.applied or sub.rejected:
                continue
            if by_destination:
                if not any(m.destination == address for m in sub.transfer.messages):
                    continue
            elif sub.transfer.wallet_address != address:
                continue
            sub.polls_until_applied -= 1
            if sub.polls_until_applied <= 0:
                self._apply(sub)

    def apply_all(self) -> None:
        """Apply every queued message now, regardless of poll counts."""
        for sub in self.submissions:
            if not (sub.applied or sub.rejected):
                self._apply(sub)

    def _apply(self, sub: SubmittedMessage) -> None:
        transfer = sub.transfer
        wallet = self.account(transfer.wallet_address)

        if transfer.seqno != wallet.seqno:
            # the wallet contract refuses a replayed or out-of-order seqno
            sub.rejected = True
            logger.info(
                f"[DRY RUN] rejected seqno {transfer.seqno} for "
                f"{transfer.wallet_address.short()} (wallet at {wallet.seqno})"
            )
            return

        if transfer.valid_until != NO_EXPIRY and transfer.valid_until < self.clock():
            sub.rejected = True
            logger.info(
                f"[DRY RUN] rejected expired seqno {transfer.seqno} for {transfer.wallet_address.short()}"
            )
            return

        if wallet.status != ContractStatus.ACTIVE and transfer.state_init is not None:
            wallet.status = ContractStatus.ACTIVE

        wallet.seqno += 1
        sub.applied = True

        for msg in transfer.messages:
            if msg.destination is None:
                continue
            wallet.balance -= msg.value
            dest = self.account(msg.destination)
            dest.balance += msg.value
            if (
                msg.state_init is not None
                and dest.status != ContractStatus.ACTIVE
                and msg.state_init.hash == msg.destination.hash_part
            ):
                dest.status = ContractStatus.ACTIVE
                logger.info(f"[DRY RUN] deployed {msg.destination.short()}")
            handler = self._handlers.get(msg.destination)
            if handler is not None:
                handler(self, transfer.wallet_address, msg)
