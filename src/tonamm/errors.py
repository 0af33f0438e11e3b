"""Exception taxonomy for pool math, ledger access and transaction submission.

Validation errors (math, slippage, funds) are raised before any message
leaves the process. Timeouts and throttling are surfaced to the caller,
who must re-query ledger state before deciding to retry.
"""

from typing import Optional


class AmmError(Exception):
    """Base class for all tonamm errors."""

    pass


# ======================
# Math / validation
# ======================


class EmptyPoolError(AmmError):
    """A reserve on either side of the pool is zero."""

    pass


class InvalidAmountError(AmmError, ValueError):
    """An amount is non-positive or cannot be encoded as coins."""

    pass


class InsufficientLiquidityError(AmmError):
    """Requested output is greater than or equal to the available reserve."""

    pass


class SlippageExceededError(AmmError):
    """A computed quote violates the caller-supplied bound."""

    def __init__(self, message: str, quoted: int, bound: int):
        self.quoted = quoted
        self.bound = bound
        super().__init__(message)


class InsufficientFundsError(AmmError):
    """Pre-flight balance check failed."""

    def __init__(self, address: str, required: int, available: int, asset: str = "TON"):
        self.address = address
        self.required = required
        self.available = available
        self.asset = asset
        super().__init__(
            f"Insufficient {asset} at {address}: required {required}, available {available}"
        )


# ======================
# Ledger access
# ======================


class LedgerError(AmmError):
    """The ledger RPC failed or returned an error."""

    pass


class RpcThrottledError(LedgerError):
    """The remote service rejected the request for rate limiting."""

    def __init__(self, message: str = "Ledger RPC throttled", retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)


class ReplyShapeError(LedgerError):
    """A read-method reply does not match its declared schema."""

    pass


# ======================
# Submission
# ======================


class ConfirmationTimeoutError(AmmError):
    """Poll budget exhausted; the transaction may or may not have applied.

    The pending handle is attached so the caller can reconcile and, if the
    sequence number has not moved, resubmit the identical message.
    """

    def __init__(self, message: str, pending=None):
        self.pending = pending
        super().__init__(message)


class TransactionInFlightError(AmmError):
    """Another transaction is still outstanding for the same wallet."""

    pass


class StaleSequenceError(AmmError):
    """The wallet seqno moved since the message was built."""

    def __init__(self, address: str, captured: int, observed: int):
        self.address = address
        self.captured = captured
        self.observed = observed
        super().__init__(
            f"Stale seqno for {address}: message built for {captured}, ledger at {observed}"
        )


class InvalidTransitionError(AmmError):
    """A pending transaction was asked to move to a state it cannot reach."""

    pass


# ======================
# Local state / codec
# ======================


class CredentialStoreError(AmmError):
    """The credential store is unreadable or incomplete."""

    pass


class CellError(AmmError, ValueError):
    """Cell overflow, underflow or malformed BOC."""

    pass


class ConfigurationError(AmmError, ValueError):
    """A workflow needs a setting or address that was not provided."""

    pass
