"""Ledger access: abstract client, Toncenter JSON-RPC, dry-run ledger."""

from tonamm.ledger.base import AccountState, ContractStatus, LedgerClient, StackValue, SubmitReceipt
from tonamm.ledger.rate_limit import TokenBucket, UnlimitedBucket

__all__ = [
    "AccountState",
    "ContractStatus",
    "LedgerClient",
    "StackValue",
    "SubmitReceipt",
    "TokenBucket",
    "UnlimitedBucket",
]
