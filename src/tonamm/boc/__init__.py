"""Cell and BOC codec for TON messages and contract state."""

from tonamm.boc.address import Address, zero_address
from tonamm.boc.cell import Builder, Cell, Slice, begin_cell
from tonamm.boc.serialization import cell_from_b64, from_boc, to_boc, to_boc_b64

__all__ = [
    "Address",
    "Builder",
    "Cell",
    "Slice",
    "begin_cell",
    "cell_from_b64",
    "from_boc",
    "to_boc",
    "to_boc_b64",
    "zero_address",
]
