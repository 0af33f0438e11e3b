"""Message bodies and initial state for the AMM pool, its LP wallets and a jetton minter.

Every builder is deterministic: the same arguments always produce a cell
with the same hash (fixed query id, fixed field order). The pool contract's
parser is exact-match, so field order and widths here are part of the
protocol.
"""

from enum import IntEnum
from typing import Optional

from tonamm.boc import Address, Cell, begin_cell, zero_address

QUERY_ID = 1
SNAKE_CHUNK = 127
MINT_FORWARD_TON = 20_000_000


class Op(IntEnum):
    """Operation codes understood by the pool and jetton wallets."""

    TRANSFER = 0x0F8A7EA5
    TRANSFER_NOTIFICATION = 0x7362D09C
    INTERNAL_TRANSFER = 0x178D4519
    EXCESSES = 0xD53276DB
    BURN = 0x595F07BC
    BURN_NOTIFICATION = 0x7BDD97DE
    ADD_LIQUIDITY = 22
    REMOVE_LIQUIDITY = 23
    SWAP_TOKEN = 24
    SWAP_TON = 25
    UPGRADE = 26
    MINT = 21
    COLLECT_FUNDS = 77


def snake_string(text: str) -> Cell:
    """Encode a string across a chain of cells, 127 bytes per cell."""
    data = text.encode()
    chunks = [data[i:i + SNAKE_CHUNK] for i in range(0, len(data), SNAKE_CHUNK)] or [b""]

    tail: Optional[Cell] = None
    for chunk in reversed(chunks):
        builder = begin_cell().store_bytes(chunk)
        if tail is not None:
            builder.store_ref(tail)
        tail = builder.end_cell()
    return tail


def state_init(code: Cell, data: Cell) -> Cell:
    """StateInit with code and data, no split depth, special or library."""
    return (
        begin_cell()
        .store_bit(False)  # split_depth
        .store_bit(False)  # special
        .store_maybe_ref(code)
        .store_maybe_ref(data)
        .store_bit(False)  # library
        .end_cell()
    )


def pool_data(content_uri: str, admin: Address, lp_wallet_code: Cell) -> Cell:
    """Initial data of a fresh pool: zero supply and reserves."""
    return (
        begin_cell()
        .store_coins(0)  # total supply
        .store_address(zero_address())  # jetton wallet, set on first liquidity
        .store_coins(0)  # ton reserve
        .store_coins(0)  # token reserve
        .store_address(admin)
        .store_ref(snake_string(content_uri))
        .store_ref(lp_wallet_code)
        .end_cell()
    )


def lp_wallet_data(owner: Address, pool: Address, lp_wallet_code: Cell) -> Cell:
    """Initial data of an owner's LP wallet (sub-account)."""
    return (
        begin_cell()
        .store_coins(0)
        .store_address(owner)
        .store_address(pool)
        .store_ref(lp_wallet_code)
        .end_cell()
    )


def swap_ton(ton_to_swap: int, min_amount_out: int) -> Cell:
    """Sell TON to the pool; ``min_amount_out`` is re-checked by the contract."""
    return (
        begin_cell()
        .store_uint(Op.SWAP_TON, 32)
        .store_uint(QUERY_ID, 64)
        .store_coins(ton_to_swap)
        .store_coins(min_amount_out)
        .end_cell()
    )


def jetton_transfer(
    destination: Address,
    jetton_amount: int,
    response_destination: Optional[Address],
    forward_ton_amount: int,
    forward_op: int,
    forward_value: Optional[int] = None,
    forward_ton_liquidity: Optional[int] = None,
) -> Cell:
    """Jetton transfer with an inline forward payload for the pool.

    The payload is ``forward_op`` followed by up to two coins fields
    (slippage or minimum out, then the TON side of a liquidity deposit).
    """
    builder = (
        begin_cell()
        .store_uint(Op.TRANSFER, 32)
        .store_uint(QUERY_ID, 64)
        .store_coins(jetton_amount)
        .store_address(destination)
        .store_address(response_destination)
        .store_bit(False)  # no custom payload
        .store_coins(forward_ton_amount)
        .store_bit(False)  # forward payload inline
        .store_uint(forward_op, 32)
    )
    if forward_value is not None:
        builder.store_coins(forward_value)
    if forward_ton_liquidity is not None:
        builder.store_coins(forward_ton_liquidity)
    return builder.end_cell()


def add_liquidity(
    pool: Address,
    token_amount: int,
    ton_amount: int,
    slippage_bps: int,
    forward_ton_amount: int,
) -> Cell:
    """Jetton transfer asking the pool to mint LP for (ton, token)."""
    return jetton_transfer(
        destination=pool,
        jetton_amount=token_amount,
        response_destination=pool,
        forward_ton_amount=forward_ton_amount,
        forward_op=Op.ADD_LIQUIDITY,
        forward_value=slippage_bps,
        forward_ton_liquidity=ton_amount,
    )


def swap_token(
    pool: Address,
    token_amount: int,
    min_ton_out: int,
    response_destination: Address,
    forward_ton_amount: int,
) -> Cell:
    """Jetton transfer selling tokens to the pool for at least ``min_ton_out``."""
    return jetton_transfer(
        destination=pool,
        jetton_amount=token_amount,
        response_destination=response_destination,
        forward_ton_amount=forward_ton_amount,
        forward_op=Op.SWAP_TOKEN,
        forward_value=min_ton_out,
    )


def burn(lp_amount: int, response_destination: Address) -> Cell:
    """Burn LP units in the owner's LP wallet, withdrawing liquidity."""
    return (
        begin_cell()
        .store_uint(Op.BURN, 32)
        .store_uint(QUERY_ID, 64)
        .store_coins(lp_amount)
        .store_address(response_destination)
        .store_maybe_ref(None)  # custom payload
        .end_cell()
    )


def upgrade(new_code: Cell) -> Cell:
    """Admin-only code replacement for the pool."""
    return (
        begin_cell()
        .store_uint(Op.UPGRADE, 32)
        .store_uint(QUERY_ID, 64)
        .store_ref(new_code)
        .end_cell()
    )


def collect_funds() -> Cell:
    """Admin-only sweep of the TON the pool holds above its reserve."""
    return begin_cell().store_uint(Op.COLLECT_FUNDS, 32).store_uint(QUERY_ID, 64).end_cell()


# ======================
# Jetton minter
# ======================


def minter_data(admin: Address, content_uri: str, jetton_wallet_code: Cell, total_supply: int = 0) -> Cell:
    """Initial data of a standard jetton minter."""
    return (
        begin_cell()
        .store_coins(total_supply)
        .store_address(admin)
        .store_ref(snake_string(content_uri))
        .store_ref(jetton_wallet_code)
        .end_cell()
    )


def mint(receiver: Address, jetton_amount: int, forward_ton_amount: int = MINT_FORWARD_TON) -> Cell:
    """Minter admin message crediting ``jetton_amount`` to ``receiver``'s jetton wallet."""
    internal_transfer = (
        begin_cell()
        .store_uint(Op.INTERNAL_TRANSFER, 32)
        .store_uint(QUERY_ID, 64)
        .store_coins(jetton_amount)
        .store_address(None)  # from
        .store_address(None)  # response destination
        .store_coins(0)  # forward amount
        .store_bit(False)  # forward payload inline
        .end_cell()
    )
    return (
        begin_cell()
        .store_uint(Op.MINT, 32)
        .store_uint(QUERY_ID, 64)
        .store_address(receiver)
        .store_coins(forward_ton_amount)
        .store_ref(internal_transfer)
        .end_cell()
    )
