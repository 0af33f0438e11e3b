"""Abstract ledger interface consumed by the submitter and AMM client.

Reads are independent snapshots; no two reads are guaranteed to observe
the same ledger state. ``submit_signed_message`` acknowledges receipt only,
never application.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

from tonamm.boc import Address, Cell
from tonamm.ledger.rate_limit import TokenBucket, UnlimitedBucket

logger = logging.getLogger(__name__)

# Read-method arguments and results: integers or cells (slices travel as cells)
StackValue = Union[int, Cell]


class ContractStatus(str, Enum):
    ACTIVE = "active"
    UNINITIALIZED = "uninitialized"
    FROZEN = "frozen"


@dataclass(frozen=True)
class AccountState:
    """Observed state of an account."""

    address: Address
    balance: int
    status: ContractStatus

    @property
    def is_deployed(self) -> bool:
        return self.status == ContractStatus.ACTIVE


@dataclass(frozen=True)
class SubmitReceipt:
    """Receipt for a submitted message (not proof of application)."""

    accepted: bool
    message_hash: str
    submitted_at: float = field(default_factory=time.time)
    detail: Optional[str] = None


class LedgerClient(ABC):
    """Read queries and message submission against the ledger.

    Implementations must route every request through ``self.limiter``.
    """

    def __init__(self, limiter: Optional[TokenBucket] = None):
        self.limiter = limiter or UnlimitedBucket()

    @abstractmethod
    async def get_account_state(self, address: Address) -> AccountState:
        """Fetch balance and contract status."""
        pass

    @abstractmethod
    async def call_read_method(
        self, address: Address, method: str, args: Sequence[StackValue] = ()
    ) -> list[StackValue]:
        """Run a get-method and return its raw result stack.

        Raises:
            LedgerError: If the method fails (non-zero exit code)
        """
        pass

    @abstractmethod
    async def submit_signed_message(self, boc: bytes) -> SubmitReceipt:
        """Hand a serialized external message to the ledger."""
        pass

    @abstractmethod
    async def get_sequence(self, address: Address) -> int:
        """Current wallet seqno; 0 for a wallet that is not deployed yet."""
        pass

    async def get_balance(self, address: Address) -> int:
        return (await self.get_account_state(address)).balance

    async def is_deployed(self, address: Address) -> bool:
        return (await self.get_account_state(address)).is_deployed

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
