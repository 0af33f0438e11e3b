"""Bag-of-cells (BOC) serialization.

Writes the ``b5ee9c72`` format without index or CRC; reads the same format
with or without them (the CRC is skipped, not verified).
"""

import base64
from typing import Sequence, Union

from tonamm.boc.cell import Cell
from tonamm.errors import CellError

BOC_MAGIC = bytes.fromhex("b5ee9c72")


def _byte_size(value: int) -> int:
    return max(1, (value.bit_length() + 7) // 8)


def _topological_order(roots: Sequence[Cell]) -> list[Cell]:
    # reverse post-order places every parent before its children
    seen: set[bytes] = set()
    post: list[Cell] = []

    def visit(cell: Cell) -> None:
        if cell.hash in seen:
            return
        seen.add(cell.hash)
        for ref in cell.refs:
            visit(ref)
        post.append(cell)

    for root in reversed(roots):
        visit(root)
    return list(reversed(post))


def to_boc(roots: Union[Cell, Sequence[Cell]]) -> bytes:
    """Serialize one or more root cells."""
    if isinstance(roots, Cell):
        roots = [roots]
    if not roots:
        raise CellError("BOC needs at least one root")

    cells = _topological_order(roots)
    index = {cell.hash: i for i, cell in enumerate(cells)}
    size = _byte_size(len(cells))

    payload = bytearray()
    for cell in cells:
        payload += cell.descriptors() + cell.padded_data()
        for ref in cell.refs:
            payload += index[ref.hash].to_bytes(size, "big")

    offset_size = _byte_size(len(payload))

    out = bytearray(BOC_MAGIC)
    out.append(size)  # has_idx=0, has_crc32c=0, has_cache_bits=0, flags=0
    out.append(offset_size)
    out += len(cells).to_bytes(size, "big")
    out += len(roots).to_bytes(size, "big")
    out += (0).to_bytes(size, "big")  # absent cells
    out += len(payload).to_bytes(offset_size, "big")
    for root in roots:
        out += index[root.hash].to_bytes(size, "big")
    out += payload
    return bytes(out)


def _read_int(data: bytes, pos: int, size: int) -> tuple[int, int]:
    if pos + size > len(data):
        raise CellError("Truncated BOC")
    return int.from_bytes(data[pos:pos + size], "big"), pos + size


def _data_bit_length(data: bytes, d2: int) -> int:
    if d2 % 2 == 0:
        return len(data) * 8
    # strip the completion tag: last set bit of the final byte
    last = data[-1]
    if last == 0:
        raise CellError("Missing completion tag in cell data")
    trailing = (last & -last).bit_length()
    return len(data) * 8 - trailing


def from_boc(data: Union[bytes, str]) -> list[Cell]:
    """Deserialize a BOC (bytes or base64) into its root cells."""
    if isinstance(data, str):
        data = base64.b64decode(data)
    if data[:4] != BOC_MAGIC:
        raise CellError("Unknown BOC magic")

    flags = data[4]
    has_idx = bool(flags & 0x80)
    size = flags & 0x07
    offset_size = data[5]
    pos = 6

    cell_count, pos = _read_int(data, pos, size)
    root_count, pos = _read_int(data, pos, size)
    _absent, pos = _read_int(data, pos, size)
    _total, pos = _read_int(data, pos, offset_size)

    root_indexes = []
    for _ in range(root_count):
        idx, pos = _read_int(data, pos, size)
        root_indexes.append(idx)

    if has_idx:
        pos += cell_count * offset_size

    raw_cells = []
    for _ in range(cell_count):
        if pos + 2 > len(data):
            raise CellError("Truncated BOC cell header")
        d1, d2 = data[pos], data[pos + 1]
        pos += 2
        if d1 & 0x08:
            raise CellError("Exotic cells are not supported")
        ref_count = d1 & 0x07
        data_len = (d2 + 1) // 2
        cell_data = data[pos:pos + data_len]
        if len(cell_data) != data_len:
            raise CellError("Truncated BOC cell data")
        pos += data_len
        refs = []
        for _ in range(ref_count):
            ref, pos = _read_int(data, pos, size)
            refs.append(ref)
        raw_cells.append((cell_data, _data_bit_length(cell_data, d2) if data_len else 0, refs))

    built: list = [None] * cell_count
    for i in range(cell_count - 1, -1, -1):
        cell_data, bit_length, refs = raw_cells[i]
        children = []
        for ref in refs:
            if ref <= i or built[ref] is None:
                raise CellError(f"Cell {i} references non-forward cell {ref}")
            children.append(built[ref])
        built[i] = Cell.from_data(cell_data, bit_length, children)

    return [built[i] for i in root_indexes]


def to_boc_b64(root: Cell) -> str:
    return base64.b64encode(to_boc(root)).decode()


def cell_from_b64(data: str) -> Cell:
    """Parse a single-root base64 BOC."""
    roots = from_boc(data)
    if len(roots) != 1:
        raise CellError(f"Expected a single root cell, got {len(roots)}")
    return roots[0]
