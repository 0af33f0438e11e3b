"""Per-account exclusivity for outstanding transactions.

Only one transaction may be outstanding per wallet: two unconfirmed
messages cannot both advance the same seqno. A second claim on a busy
account is a caller bug, so it fails immediately instead of waiting.
"""

import logging
from typing import Any, Optional

from tonamm.errors import TransactionInFlightError

logger = logging.getLogger(__name__)


class AccountGuard:
    """Registry of accounts with an outstanding transaction.

    Example:
        guard.claim(wallet_address, pending)
        ...
        guard.release(wallet_address, pending)
    """

    def __init__(self):
        self._holders: dict[str, Any] = {}

    def holder(self, account: str) -> Optional[Any]:
        return self._holders.get(account)

    def is_busy(self, account: str) -> bool:
        return account in self._holders

    def claim(self, account: str, token: Any) -> None:
        """Mark ``account`` busy with ``token``.

        Raises:
            TransactionInFlightError: If another token holds the account
        """
        current = self._holders.get(account)
        if current is not None and current is not token:
            logger.warning(f"Rejected second outstanding transaction for {account}")
            raise TransactionInFlightError(
                f"Account {account} already has an outstanding transaction"
            )
        self._holders[account] = token
        logger.debug(f"Account claimed: {account}")

    def release(self, account: str, token: Any) -> None:
        """Release ``account`` if ``token`` holds it."""
        if self._holders.get(account) is token:
            del self._holders[account]
            logger.debug(f"Account released: {account}")

    def clear(self) -> None:
        self._holders.clear()
