"""Ordinary TON cells: up to 1023 data bits and 4 references.

A cell's identity is its representation hash (SHA-256 over descriptors,
padded data, child depths and child hashes). Contract addresses and wallet
signatures are computed over this hash, so it must match the ledger's
computation exactly.
"""

import hashlib
from typing import Optional, Sequence

from tonamm.amounts import MAX_COINS
from tonamm.boc.address import Address
from tonamm.errors import CellError

MAX_BITS = 1023
MAX_REFS = 4


class Cell:
    """Immutable cell. Build with :func:`begin_cell`, read with :meth:`begin_parse`."""

    __slots__ = ("bits", "bit_length", "refs", "_hash", "_depth")

    def __init__(self, bits: int = 0, bit_length: int = 0, refs: Sequence["Cell"] = ()):
        if bit_length > MAX_BITS:
            raise CellError(f"Cell data overflow: {bit_length} bits")
        if len(refs) > MAX_REFS:
            raise CellError(f"Cell reference overflow: {len(refs)} refs")
        if bits < 0 or bits >> bit_length:
            raise CellError("Cell bits do not fit the declared length")
        self.bits = bits
        self.bit_length = bit_length
        self.refs = tuple(refs)
        self._hash: Optional[bytes] = None
        self._depth: Optional[int] = None

    @classmethod
    def from_data(cls, data: bytes, bit_length: int, refs: Sequence["Cell"] = ()) -> "Cell":
        """Build a cell from completion-tagged (or byte-aligned) data bytes."""
        value = int.from_bytes(data, "big")
        total = len(data) * 8
        if bit_length % 8:
            # drop the completion tag and the zero padding after it
            value >>= total - bit_length
        return cls(value, bit_length, refs)

    def descriptors(self) -> bytes:
        d1 = len(self.refs)
        d2 = (self.bit_length + 7) // 8 + self.bit_length // 8
        return bytes([d1, d2])

    def padded_data(self) -> bytes:
        """Data bytes with the completion tag appended when not byte-aligned."""
        length = (self.bit_length + 7) // 8
        pad = length * 8 - self.bit_length
        value = self.bits << pad
        if pad:
            value |= 1 << (pad - 1)
        return value.to_bytes(length, "big") if length else b""

    @property
    def depth(self) -> int:
        if self._depth is None:
            self._depth = 1 + max(ref.depth for ref in self.refs) if self.refs else 0
        return self._depth

    @property
    def hash(self) -> bytes:
        if self._hash is None:
            parts = [self.descriptors(), self.padded_data()]
            parts.extend(ref.depth.to_bytes(2, "big") for ref in self.refs)
            parts.extend(ref.hash for ref in self.refs)
            self._hash = hashlib.sha256(b"".join(parts)).digest()
        return self._hash

    def begin_parse(self) -> "Slice":
        return Slice(self)

    def __eq__(self, other) -> bool:
        return isinstance(other, Cell) and self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)

    def __repr__(self) -> str:
        return f"Cell(bits={self.bit_length}, refs={len(self.refs)}, hash={self.hash.hex()[:16]})"


class Builder:
    """Append-only cell builder."""

    def __init__(self):
        self._bits = 0
        self._length = 0
        self._refs: list[Cell] = []

    @property
    def bit_length(self) -> int:
        return self._length

    def store_uint(self, value: int, bits: int) -> "Builder":
        if value < 0 or value >> bits:
            raise CellError(f"Value {value} does not fit uint{bits}")
        if self._length + bits > MAX_BITS:
            raise CellError("Cell data overflow")
        self._bits = (self._bits << bits) | value
        self._length += bits
        return self

    def store_int(self, value: int, bits: int) -> "Builder":
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        if not low <= value <= high:
            raise CellError(f"Value {value} does not fit int{bits}")
        return self.store_uint(value & ((1 << bits) - 1), bits)

    def store_bit(self, flag: bool) -> "Builder":
        return self.store_uint(1 if flag else 0, 1)

    def store_bytes(self, data: bytes) -> "Builder":
        return self.store_uint(int.from_bytes(data, "big"), len(data) * 8) if data else self

    def store_coins(self, amount: int) -> "Builder":
        """Store a VarUInteger 16 amount."""
        if not 0 <= amount <= MAX_COINS:
            raise CellError(f"Coins amount out of range: {amount}")
        if amount == 0:
            return self.store_uint(0, 4)
        length = (amount.bit_length() + 7) // 8
        return self.store_uint(length, 4).store_uint(amount, length * 8)

    def store_address(self, address: Optional[Address]) -> "Builder":
        """Store addr_std, or addr_none for ``None``."""
        if address is None:
            return self.store_uint(0, 2)
        self.store_uint(0b10, 2).store_uint(0, 1)
        self.store_int(address.workchain, 8)
        return self.store_bytes(address.hash_part)

    def store_ref(self, cell: Cell) -> "Builder":
        if len(self._refs) >= MAX_REFS:
            raise CellError("Cell reference overflow")
        self._refs.append(cell)
        return self

    def store_maybe_ref(self, cell: Optional[Cell]) -> "Builder":
        if cell is None:
            return self.store_bit(False)
        return self.store_bit(True).store_ref(cell)

    def store_slice(self, cell: Cell) -> "Builder":
        """Inline another cell's bits and references."""
        self.store_uint(cell.bits, cell.bit_length)
        for ref in cell.refs:
            self.store_ref(ref)
        return self

    def end_cell(self) -> Cell:
        return Cell(self._bits, self._length, self._refs)


def begin_cell() -> Builder:
    return Builder()


class Slice:
    """Sequential reader over a cell."""

    def __init__(self, cell: Cell):
        self._cell = cell
        self._pos = 0
        self._ref_pos = 0

    @property
    def remaining_bits(self) -> int:
        return self._cell.bit_length - self._pos

    @property
    def remaining_refs(self) -> int:
        return len(self._cell.refs) - self._ref_pos

    def load_uint(self, bits: int) -> int:
        if bits > self.remaining_bits:
            raise CellError(f"Cell underflow: need {bits} bits, have {self.remaining_bits}")
        shift = self._cell.bit_length - self._pos - bits
        self._pos += bits
        return (self._cell.bits >> shift) & ((1 << bits) - 1)

    def load_int(self, bits: int) -> int:
        value = self.load_uint(bits)
        if value >> (bits - 1):
            value -= 1 << bits
        return value

    def load_bit(self) -> bool:
        return bool(self.load_uint(1))

    def load_bytes(self, length: int) -> bytes:
        return self.load_uint(length * 8).to_bytes(length, "big")

    def load_coins(self) -> int:
        length = self.load_uint(4)
        return self.load_uint(length * 8) if length else 0

    def load_address(self) -> Optional[Address]:
        """Load addr_std or addr_none (returned as ``None``)."""
        tag = self.load_uint(2)
        if tag == 0b00:
            return None
        if tag != 0b10:
            raise CellError(f"Unsupported address tag {tag:02b}")
        if self.load_bit():
            raise CellError("Anycast addresses are not supported")
        workchain = self.load_int(8)
        return Address(workchain, self.load_bytes(32))

    def load_ref(self) -> Cell:
        if not self.remaining_refs:
            raise CellError("Cell underflow: no references left")
        ref = self._cell.refs[self._ref_pos]
        self._ref_pos += 1
        return ref

    def load_maybe_ref(self) -> Optional[Cell]:
        return self.load_ref() if self.load_bit() else None
