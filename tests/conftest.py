"""Pytest configuration and fixtures."""

import hashlib
import os

import pytest
from nacl.signing import SigningKey

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG"] = "true"

from tonamm.address_book import AddressBook
from tonamm.amm.client import AmmClient
from tonamm.amm.derivation import AddressDeriver
from tonamm.amm.orchestrator import LiquidityOrchestrator, WorkflowContext
from tonamm.amounts import to_nano
from tonamm.boc import Address, Cell, begin_cell
from tonamm.ledger.dryrun import DryRunLedger
from tonamm.submitter import SequencedTransactionSubmitter
from tonamm.utils.polling import PollPolicy
from tonamm.wallet import WalletV3R2


def make_address(seed: str, workchain: int = 0) -> Address:
    return Address(workchain, hashlib.sha256(seed.encode()).digest())


def address_cell(address) -> Cell:
    return begin_cell().store_address(address).end_cell()


class FakeSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


def register_pool(
    ledger: DryRunLedger,
    pool: Address,
    ton_reserve: int,
    token_reserve: int,
    total_supply: int = 0,
    admin: Address = None,
    jetton_wallet: Address = None,
) -> None:
    """Answer get_jetton_data for ``pool`` with fixed reserves."""
    ledger.deploy(pool)
    ledger.register_method(
        pool,
        "get_jetton_data",
        lambda args: [
            total_supply,
            -1,
            address_cell(jetton_wallet),
            ton_reserve,
            token_reserve,
            address_cell(admin),
            begin_cell().end_cell(),  # content
        ],
    )


def register_jetton_wallet(ledger: DryRunLedger, wallet: Address, balance: int, owner: Address) -> None:
    """Deploy a jetton wallet answering get_wallet_data with ``balance``."""
    ledger.deploy(wallet)
    ledger.register_method(
        wallet,
        "get_wallet_data",
        lambda args: [balance, address_cell(owner), address_cell(None), begin_cell().end_cell()],
    )


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey(bytes(range(32)))


@pytest.fixture
def wallet(signing_key) -> WalletV3R2:
    return WalletV3R2(signing_key, address=make_address("deployer"), clock=lambda: 1_700_000_000)


@pytest.fixture
def ledger(wallet) -> DryRunLedger:
    ledger = DryRunLedger(clock=lambda: 1_700_000_000)
    ledger.register_wallet(wallet.address, wallet.public_key, balance=to_nano(1000))
    return ledger


@pytest.fixture
def lp_wallet_code() -> Cell:
    return begin_cell().store_uint(0x1F2E, 16).end_cell()


@pytest.fixture
def pool_address() -> Address:
    return make_address("pool")


@pytest.fixture
def token_wallet() -> Address:
    return make_address("token-wallet")


@pytest.fixture
def submitter(ledger, fake_sleep) -> SequencedTransactionSubmitter:
    return SequencedTransactionSubmitter(ledger, PollPolicy(interval=3.0, max_attempts=10), sleep=fake_sleep)


@pytest.fixture
def amm_client(ledger, lp_wallet_code) -> AmmClient:
    return AmmClient(ledger, AddressDeriver(lp_wallet_code), fee_bps=30)


@pytest.fixture
def orchestrator(amm_client, submitter, fake_sleep) -> LiquidityOrchestrator:
    return LiquidityOrchestrator(
        amm_client,
        submitter,
        deploy_policy=PollPolicy(interval=2.5, max_attempts=10),
        sleep=fake_sleep,
    )


@pytest.fixture
def ctx(wallet, token_wallet) -> WorkflowContext:
    return WorkflowContext(wallet=wallet, token_wallet=token_wallet, address_book=AddressBook())
