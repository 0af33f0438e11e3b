"""TON account addresses.

Supports the raw form (``0:<hex>``) and the user-friendly base64url form
(tag byte, workchain byte, 32-byte account id, CRC16-XMODEM checksum).
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Union

from tonamm.errors import CellError

BOUNCEABLE_TAG = 0x11
NON_BOUNCEABLE_TAG = 0x51
TESTNET_FLAG = 0x80


def _crc16(data: bytes) -> bytes:
    # binascii.crc_hqx with a zero seed is CRC16-XMODEM
    return binascii.crc_hqx(data, 0).to_bytes(2, "big")


@dataclass(frozen=True)
class Address:
    """A standard (addr_std) account address."""

    workchain: int
    hash_part: bytes

    def __post_init__(self):
        if len(self.hash_part) != 32:
            raise CellError(f"Address hash must be 32 bytes, got {len(self.hash_part)}")
        if not -128 <= self.workchain <= 127:
            raise CellError(f"Workchain out of int8 range: {self.workchain}")

    @classmethod
    def parse(cls, value: Union[str, "Address"]) -> "Address":
        """Parse a raw or user-friendly address string."""
        if isinstance(value, Address):
            return value

        value = value.strip()
        if ":" in value:
            wc, hex_part = value.split(":", 1)
            try:
                return cls(int(wc), bytes.fromhex(hex_part))
            except ValueError as e:
                raise CellError(f"Invalid raw address {value!r}: {e}") from e

        return cls._parse_friendly(value)

    @classmethod
    def _parse_friendly(cls, value: str) -> "Address":
        if len(value) != 48:
            raise CellError(f"Friendly address must be 48 characters: {value!r}")

        try:
            raw = base64.urlsafe_b64decode(value.replace("+", "-").replace("/", "_"))
        except (binascii.Error, ValueError) as e:
            raise CellError(f"Invalid base64 address {value!r}") from e

        if len(raw) != 36:
            raise CellError(f"Friendly address must decode to 36 bytes: {value!r}")
        if _crc16(raw[:34]) != raw[34:]:
            raise CellError(f"Address checksum mismatch: {value!r}")

        tag = raw[0] & ~TESTNET_FLAG
        if tag not in (BOUNCEABLE_TAG, NON_BOUNCEABLE_TAG):
            raise CellError(f"Unknown address tag 0x{raw[0]:02x}")

        workchain = int.from_bytes(raw[1:2], "big", signed=True)
        return cls(workchain, raw[2:34])

    def to_raw(self) -> str:
        return f"{self.workchain}:{self.hash_part.hex()}"

    def to_friendly(self, bounceable: bool = True, testnet: bool = False) -> str:
        """Render the base64url user-friendly form."""
        tag = BOUNCEABLE_TAG if bounceable else NON_BOUNCEABLE_TAG
        if testnet:
            tag |= TESTNET_FLAG
        body = bytes([tag]) + self.workchain.to_bytes(1, "big", signed=True) + self.hash_part
        return base64.urlsafe_b64encode(body + _crc16(body)).decode()

    def short(self) -> str:
        """Ellipsised form for log lines."""
        friendly = self.to_friendly()
        return f"{friendly[:6]}...{friendly[-6:]}"

    def __str__(self) -> str:
        return self.to_friendly()


def zero_address(workchain: int = 0) -> Address:
    """The all-zero address (``EQAAAA...AM9c`` on workchain 0)."""
    return Address(workchain, bytes(32))
