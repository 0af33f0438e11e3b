"""Deploy key storage.

The store is a small JSON file holding an Ed25519 seed. It is created the
first time it is needed and never overwritten afterwards: losing the seed
means losing the funded wallet.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from nacl.signing import SigningKey

from tonamm.boc import Address
from tonamm.errors import CredentialStoreError
from tonamm.wallet import WALLET_TYPE

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class DeployCredentials:
    """Contents of the credential store."""

    created: str
    wallet_type: str
    seed: bytes
    wallet_address: Optional[str] = None

    @property
    def signing_key(self) -> SigningKey:
        return SigningKey(self.seed)

    @property
    def address(self) -> Optional[Address]:
        if not self.wallet_address:
            return None
        return Address.parse(self.wallet_address)

    def to_dict(self) -> dict:
        data = {
            "created": self.created,
            "wallet_type": self.wallet_type,
            "secret_key": self.seed.hex(),
        }
        if self.wallet_address:
            data["wallet_address"] = self.wallet_address
        return data


def load_credentials(path: PathLike) -> DeployCredentials:
    """Read an existing store.

    Raises:
        CredentialStoreError: File missing, unreadable, or without a valid key
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise CredentialStoreError(f"Credential store not found: {path}") from e
    except (OSError, ValueError) as e:
        raise CredentialStoreError(f"Cannot read credential store {path}: {e}") from e

    if not isinstance(raw, dict):
        raise CredentialStoreError(f"Credential store {path} is not a JSON object")

    secret = raw.get("secret_key")
    if not secret:
        raise CredentialStoreError(f"Credential store {path} has no secret_key")
    try:
        seed = bytes.fromhex(secret)
    except ValueError as e:
        raise CredentialStoreError(f"secret_key in {path} is not hex") from e
    if len(seed) != 32:
        raise CredentialStoreError(f"secret_key in {path} must be 32 bytes, got {len(seed)}")

    return DeployCredentials(
        created=raw.get("created", ""),
        wallet_type=raw.get("wallet_type", WALLET_TYPE),
        seed=seed,
        wallet_address=raw.get("wallet_address"),
    )


def init_deploy_key(path: PathLike, wallet_address: Optional[str] = None) -> DeployCredentials:
    """Return the stored credentials, generating a new key only if none exist.

    The file is opened with exclusive create, so two processes racing here
    cannot both write a key; the loser reads the winner's file.
    """
    path = Path(path)
    if path.exists():
        creds = load_credentials(path)
        logger.info(f"Using deploy key from {path}")
        return creds

    creds = DeployCredentials(
        created=datetime.now(timezone.utc).isoformat(),
        wallet_type=WALLET_TYPE,
        seed=bytes(SigningKey.generate()),
        wallet_address=wallet_address,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "x") as f:
            json.dump(creds.to_dict(), f, indent=2)
    except FileExistsError:
        return load_credentials(path)

    logger.info(f"Generated new deploy key at {path}")
    return creds
