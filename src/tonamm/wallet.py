"""Wallet v3r2 external messages.

The wallet contract accepts an external message carrying an Ed25519
signature over ``(subwallet_id, valid_until, seqno, [send_mode, ^message])``
and applies it only when ``seqno`` equals its stored counter, which it then
increments. Resending a message whose seqno has already been consumed is
therefore rejected by the wallet itself.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from tonamm.amm.derivation import derive_contract_address
from tonamm.amm.messages import state_init as build_state_init
from tonamm.boc import Address, Cell, Slice, begin_cell
from tonamm.errors import CellError, ConfigurationError

logger = logging.getLogger(__name__)

WALLET_TYPE = "org.ton.wallets.v3.r2"
DEFAULT_SUBWALLET_ID = 698983191
DEFAULT_SEND_MODE = 3  # pay fees separately, ignore action errors
NO_EXPIRY = 0xFFFFFFFF


@dataclass(frozen=True)
class OutboundMessage:
    """An internal message the wallet is asked to send."""

    destination: Address
    value: int
    body: Optional[Cell] = None
    state_init: Optional[Cell] = None
    bounce: bool = False
    send_mode: int = DEFAULT_SEND_MODE


def internal_message(message: OutboundMessage) -> Cell:
    """Serialize an int_msg_info message with relaxed source."""
    builder = (
        begin_cell()
        .store_uint(0, 1)  # int_msg_info$0
        .store_bit(True)  # ihr_disabled
        .store_bit(message.bounce)
        .store_bit(False)  # bounced
        .store_address(None)  # src, filled in by the wallet
        .store_address(message.destination)
        .store_coins(message.value)
        .store_bit(False)  # no extra currencies
        .store_coins(0)  # ihr_fee
        .store_coins(0)  # fwd_fee
        .store_uint(0, 64)  # created_lt
        .store_uint(0, 32)  # created_at
    )
    if message.state_init is not None:
        builder.store_bit(True).store_bit(True).store_ref(message.state_init)
    else:
        builder.store_bit(False)
    if message.body is not None:
        builder.store_bit(True).store_ref(message.body)
    else:
        builder.store_bit(False)
    return builder.end_cell()


@dataclass
class ParsedInternal:
    destination: Optional[Address]
    value: int
    bounce: bool
    send_mode: int
    state_init: Optional[Cell] = None
    body: Optional[Cell] = None


@dataclass
class ParsedTransfer:
    """A wallet external message decoded back into its fields."""

    wallet_address: Address
    signature: bytes
    signed_hash: bytes
    subwallet_id: int
    valid_until: int
    seqno: int
    state_init: Optional[Cell] = None
    messages: list[ParsedInternal] = field(default_factory=list)

    def verify(self, public_key: bytes) -> bool:
        try:
            VerifyKey(public_key).verify(self.signed_hash, self.signature)
            return True
        except BadSignatureError:
            return False


class WalletV3R2:
    """Signs transfers for a wallet v3r2 account.

    The address is taken from ``address`` when given, otherwise derived from
    the wallet ``code`` and the public key.
    """

    def __init__(
        self,
        signing_key: SigningKey,
        workchain: int = 0,
        subwallet_id: Optional[int] = None,
        code: Optional[Cell] = None,
        address: Optional[Address] = None,
        ttl_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        if address is None and code is None:
            raise ConfigurationError("Either the wallet address or the wallet code is required")
        self.signing_key = signing_key
        self.workchain = workchain
        self.subwallet_id = DEFAULT_SUBWALLET_ID + workchain if subwallet_id is None else subwallet_id
        self.code = code
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._address = address

    @property
    def public_key(self) -> bytes:
        return bytes(self.signing_key.verify_key)

    def data_cell(self) -> Cell:
        return (
            begin_cell()
            .store_uint(0, 32)  # seqno
            .store_uint(self.subwallet_id, 32)
            .store_bytes(self.public_key)
            .end_cell()
        )

    def state_init(self) -> Optional[Cell]:
        if self.code is None:
            return None
        return build_state_init(self.code, self.data_cell())

    @property
    def address(self) -> Address:
        if self._address is None:
            self._address = derive_contract_address(self.code, self.data_cell(), self.workchain)
        return self._address

    def create_transfer(self, seqno: int, message: OutboundMessage) -> Cell:
        """Build the signed external message for ``seqno``.

        For seqno 0 the wallet's own StateInit is attached so the first
        transfer also deploys the wallet.
        """
        valid_until = NO_EXPIRY if seqno == 0 else int(self._clock()) + self.ttl_seconds
        signing_message = (
            begin_cell()
            .store_uint(self.subwallet_id, 32)
            .store_uint(valid_until, 32)
            .store_uint(seqno, 32)
            .store_uint(message.send_mode, 8)
            .store_ref(internal_message(message))
            .end_cell()
        )
        signature = self.signing_key.sign(signing_message.hash).signature

        body = begin_cell().store_bytes(signature).store_slice(signing_message).end_cell()

        external = (
            begin_cell()
            .store_uint(0b10, 2)  # ext_in_msg_info$10
            .store_address(None)  # src
            .store_address(self.address)
            .store_coins(0)  # import_fee
        )
        init = self.state_init() if seqno == 0 else None
        if init is not None:
            external.store_bit(True).store_bit(True).store_ref(init)
        else:
            external.store_bit(False)
        external.store_bit(True).store_ref(body)
        return external.end_cell()


def _parse_internal(cell: Cell, send_mode: int) -> ParsedInternal:
    s = cell.begin_parse()
    if s.load_uint(1) != 0:
        raise CellError("Expected an internal message")
    s.load_bit()  # ihr_disabled
    bounce = s.load_bit()
    s.load_bit()  # bounced
    s.load_address()  # src
    destination = s.load_address()
    value = s.load_coins()
    s.load_bit()  # extra currencies
    s.load_coins()
    s.load_coins()
    s.load_uint(64)
    s.load_uint(32)
    state_init = _load_either_ref(s) if s.load_bit() else None
    body = _load_either_ref(s)
    return ParsedInternal(destination, value, bounce, send_mode, state_init, body)


def _load_either_ref(s: Slice) -> Optional[Cell]:
    if s.load_bit():
        return s.load_ref()
    # inline bodies are not produced by this package
    return None


def parse_external_transfer(cell: Cell) -> ParsedTransfer:
    """Decode an external message produced by :meth:`WalletV3R2.create_transfer`."""
    s = cell.begin_parse()
    if s.load_uint(2) != 0b10:
        raise CellError("Expected an external inbound message")
    s.load_address()
    wallet_address = s.load_address()
    if wallet_address is None:
        raise CellError("External message has no destination")
    s.load_coins()
    state_init = _load_either_ref(s) if s.load_bit() else None
    body = _load_either_ref(s)
    if body is None:
        raise CellError("External message has no body")

    b = body.begin_parse()
    signature = b.load_bytes(64)
    signed_part = begin_cell()
    remaining = b.remaining_bits
    signed_part.store_uint(b.load_uint(remaining), remaining)
    while b.remaining_refs:
        signed_part.store_ref(b.load_ref())
    signed_cell = signed_part.end_cell()

    s2 = signed_cell.begin_parse()
    subwallet_id = s2.load_uint(32)
    valid_until = s2.load_uint(32)
    seqno = s2.load_uint(32)
    messages = []
    while s2.remaining_refs:
        send_mode = s2.load_uint(8)
        messages.append(_parse_internal(s2.load_ref(), send_mode))

    return ParsedTransfer(
        wallet_address=wallet_address,
        signature=signature,
        signed_hash=signed_cell.hash,
        subwallet_id=subwallet_id,
        valid_until=valid_until,
        seqno=seqno,
        state_init=state_init,
        messages=messages,
    )
