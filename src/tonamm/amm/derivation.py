"""Offline address derivation.

A contract's address is the representation hash of its StateInit, so it can
be computed before any network call. Deployment relies on this being equal
to what the ledger computes: checking ``is_deployed`` on the derived address
is what makes deploys idempotent.
"""

import logging
from typing import Optional

from tonamm.amm import messages
from tonamm.boc import Address, Cell
from tonamm.errors import ConfigurationError

logger = logging.getLogger(__name__)


def derive_contract_address(code: Cell, initial_state: Cell, workchain: int = 0) -> Address:
    """Address of a contract with the given code and initial data."""
    return Address(workchain, messages.state_init(code, initial_state).hash)


class AddressDeriver:
    """Derives pool and LP wallet (sub-account) addresses.

    Sub-account derivation is a pure function of (pool, owner) for a fixed
    LP wallet code, so results are cached for the life of the instance.
    """

    def __init__(self, lp_wallet_code: Optional[Cell] = None, workchain: int = 0):
        self.lp_wallet_code = lp_wallet_code
        self.workchain = workchain
        self._sub_accounts: dict[tuple[Address, Address], Address] = {}

    def derive_contract_address(
        self, code: Cell, initial_state: Cell, workchain: Optional[int] = None
    ) -> Address:
        return derive_contract_address(
            code, initial_state, self.workchain if workchain is None else workchain
        )

    def derive_sub_account(self, pool_address: Address, owner_address: Address) -> Address:
        """LP wallet address of ``owner_address`` for ``pool_address``."""
        key = (pool_address, owner_address)
        cached = self._sub_accounts.get(key)
        if cached is not None:
            return cached

        if self.lp_wallet_code is None:
            raise ConfigurationError("LP wallet code is required to derive sub-accounts locally")

        data = messages.lp_wallet_data(owner_address, pool_address, self.lp_wallet_code)
        address = derive_contract_address(self.lp_wallet_code, data, pool_address.workchain)
        self._sub_accounts[key] = address
        logger.debug(f"Derived LP wallet {address.short()} for owner {owner_address.short()}")
        return address

    def cache_size(self) -> int:
        return len(self._sub_accounts)
