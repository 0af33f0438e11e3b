"""Typed decoding of read-method results.

Each read method has an explicit schema of named, typed fields. A reply
whose length or field types do not match is rejected with
``ReplyShapeError`` rather than indexed blindly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from tonamm.boc import Address, Cell
from tonamm.errors import CellError, ReplyShapeError
from tonamm.ledger.base import StackValue


class FieldKind(str, Enum):
    INT = "int"
    BOOL = "bool"
    ADDRESS = "address"  # slice holding a MsgAddress; addr_none decodes to None
    CELL = "cell"


@dataclass(frozen=True)
class StackField:
    name: str
    kind: FieldKind


@dataclass(frozen=True)
class ReadMethodSchema:
    """Expected result stack of one get-method.

    ``allow_extra`` tolerates trailing entries beyond the declared fields.
    """

    method: str
    fields: tuple[StackField, ...]
    allow_extra: bool = False

    def decode(self, stack: Sequence[StackValue]) -> dict[str, Any]:
        if len(stack) < len(self.fields) or (
            len(stack) > len(self.fields) and not self.allow_extra
        ):
            raise ReplyShapeError(
                f"{self.method}: expected {len(self.fields)} stack entries, got {len(stack)}"
            )
        return {f.name: _decode_field(self.method, f, value) for f, value in zip(self.fields, stack)}


def _decode_field(method: str, field: StackField, value: StackValue) -> Any:
    if field.kind in (FieldKind.INT, FieldKind.BOOL):
        if not isinstance(value, int):
            raise ReplyShapeError(f"{method}.{field.name}: expected int, got {type(value).__name__}")
        return value != 0 if field.kind == FieldKind.BOOL else value

    if not isinstance(value, Cell):
        raise ReplyShapeError(f"{method}.{field.name}: expected cell, got {type(value).__name__}")
    if field.kind == FieldKind.CELL:
        return value
    return _decode_address(method, field.name, value)


def _decode_address(method: str, name: str, cell: Cell) -> Optional[Address]:
    try:
        return cell.begin_parse().load_address()
    except CellError as e:
        raise ReplyShapeError(f"{method}.{name}: not an address ({e})") from e


def _schema(method: str, *fields: tuple[str, FieldKind], allow_extra: bool = False) -> ReadMethodSchema:
    return ReadMethodSchema(method, tuple(StackField(n, k) for n, k in fields), allow_extra)


POOL_DATA = _schema(
    "get_jetton_data",
    ("total_supply", FieldKind.INT),
    ("mintable", FieldKind.BOOL),
    ("jetton_wallet_address", FieldKind.ADDRESS),
    ("ton_reserve", FieldKind.INT),
    ("token_reserve", FieldKind.INT),
    ("admin_address", FieldKind.ADDRESS),
    allow_extra=True,
)

JETTON_WALLET_DATA = _schema(
    "get_wallet_data",
    ("balance", FieldKind.INT),
    ("owner", FieldKind.ADDRESS),
    ("master", FieldKind.ADDRESS),
    ("wallet_code", FieldKind.CELL),
)

WALLET_ADDRESS = _schema("get_wallet_address", ("address", FieldKind.ADDRESS))
AMOUNT_OUT = _schema("get_amount_out", ("amount_out", FieldKind.INT))
AMOUNT_IN = _schema("get_amount_in", ("amount_in", FieldKind.INT))
SEQNO = _schema("seqno", ("seqno", FieldKind.INT))
