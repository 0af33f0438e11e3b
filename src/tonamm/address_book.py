"""Address labels for reporting.

The address book is a value threaded through a workflow, never global
state. It is append-only: an address keeps the first label it was given.
"""

import logging
from typing import Iterator, Optional

from tonamm.boc import Address

logger = logging.getLogger(__name__)

EXPLORER_PREFIX = {
    "sandbox": "sandbox.",
    "testnet": "test.",
    "mainnet": "",
}


class AddressBook:
    """Append-only mapping from address to a human label."""

    def __init__(self):
        self._labels: dict[Address, str] = {}

    def add(self, address: Address, label: str) -> None:
        existing = self._labels.get(address)
        if existing is None:
            self._labels[address] = label
            return
        if existing != label:
            logger.warning(
                f"Address {address.short()} already labelled '{existing}', ignoring '{label}'"
            )

    def label(self, address: Address) -> Optional[str]:
        return self._labels.get(address)

    def describe(self, address: Address) -> str:
        """Label if known, otherwise the shortened address."""
        return self._labels.get(address) or address.short()

    def __contains__(self, address: Address) -> bool:
        return address in self._labels

    def __iter__(self) -> Iterator[tuple[Address, str]]:
        return iter(self._labels.items())

    def __len__(self) -> int:
        return len(self._labels)

    def explorer_links(self, network: str = "mainnet") -> list[str]:
        """``label : https://<network>tonwhales.com/explorer/address/<addr>`` lines."""
        prefix = EXPLORER_PREFIX.get(network, "")
        testnet = network != "mainnet"
        return [
            f"{label} : https://{prefix}tonwhales.com/explorer/address/"
            f"{address.to_friendly(testnet=testnet)}"
            for address, label in self._labels.items()
        ]
