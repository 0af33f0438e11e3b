"""Component tests for tonamm modules.

Tests amounts, the address book, credentials, configuration, the wallet,
the dry-run ledger and the CLI wiring.
"""

import json
from decimal import Decimal

import pytest
from nacl.signing import SigningKey

from conftest import make_address

from tonamm import cli
from tonamm.address_book import AddressBook
from tonamm.amounts import MAX_COINS, format_nano, from_nano, is_valid_coins, to_nano
from tonamm.boc import begin_cell, from_boc, to_boc
from tonamm.cli import Runner, build_parser, main
from tonamm.config import Settings, get_settings
from tonamm.credentials import init_deploy_key, load_credentials
from tonamm.errors import ConfigurationError, CredentialStoreError, LedgerError
from tonamm.ledger.base import ContractStatus
from tonamm.ledger.dryrun import DryRunLedger
from tonamm.ledger.toncenter import MAINNET_ENDPOINT, TESTNET_ENDPOINT
from tonamm.wallet import OutboundMessage, WalletV3R2, parse_external_transfer


class TestAmounts:
    """Tests for nano-unit conversion."""

    def test_to_nano(self):
        """Test decimal strings convert exactly."""
        assert to_nano("0.15") == 150_000_000
        assert to_nano(1) == 1_000_000_000
        assert to_nano(Decimal("0.000000001")) == 1

    def test_float_uses_literal(self):
        """Test floats are converted through their decimal literal."""
        assert to_nano(0.1) == 100_000_000
        assert to_nano(0.3) == 300_000_000

    def test_round_half_up(self):
        """Test rounding at the ninth decimal place."""
        assert to_nano("0.0000000005") == 1
        assert to_nano("0.00000000049") == 0
        assert to_nano("1.9999999995") == 2_000_000_000

    def test_from_and_format(self):
        """Test nano units back to decimal and log strings."""
        assert from_nano(1_500_000_000) == Decimal("1.5")
        assert format_nano(1_500_000_000) == "1.500000000 TON"
        assert format_nano(-1, "LP") == "-0.000000001 LP"

    def test_coins_range(self):
        """Test the coins field upper bound."""
        assert is_valid_coins(MAX_COINS)
        assert not is_valid_coins(MAX_COINS + 1)
        assert not is_valid_coins(-1)


class TestAddressBook:
    """Tests for the append-only address book."""

    def test_first_label_wins(self):
        """Test an address keeps the first label it was given."""
        book = AddressBook()
        addr = make_address("pool")
        book.add(addr, "AMM-Pool")
        book.add(addr, "Something-Else")

        assert book.label(addr) == "AMM-Pool"
        assert len(book) == 1
        assert addr in book

    def test_explorer_links(self):
        """Test explorer links use the network's subdomain."""
        book = AddressBook()
        addr = make_address("pool")
        book.add(addr, "AMM-Pool")

        [line] = book.explorer_links("sandbox")
        assert line.startswith("AMM-Pool : https://sandbox.tonwhales.com/explorer/address/")
        assert line.endswith(addr.to_friendly(testnet=True))

        [line] = book.explorer_links("mainnet")
        assert line == f"AMM-Pool : https://tonwhales.com/explorer/address/{addr.to_friendly()}"


class TestCredentials:
    """Tests for the deploy key store."""

    def test_created_when_absent(self, tmp_path):
        """Test a new store is written with a 32-byte seed."""
        path = tmp_path / "build" / "deploy.config.json"
        creds = init_deploy_key(path)

        assert path.exists()
        data = json.loads(path.read_text())
        assert len(bytes.fromhex(data["secret_key"])) == 32
        assert data["wallet_type"] == "org.ton.wallets.v3.r2"
        assert creds.seed.hex() == data["secret_key"]

    def test_never_overwritten(self, tmp_path):
        """Test an existing store is reused, not regenerated."""
        path = tmp_path / "deploy.config.json"
        first = init_deploy_key(path)
        second = init_deploy_key(path, wallet_address="0:" + "00" * 32)

        assert second.seed == first.seed
        assert second.wallet_address is None

    def test_wallet_address_stored(self, tmp_path):
        """Test the optional wallet address round-trips."""
        addr = make_address("wallet")
        path = tmp_path / "deploy.config.json"
        init_deploy_key(path, wallet_address=addr.to_raw())

        assert load_credentials(path).address == addr

    def test_missing_key_rejected(self, tmp_path):
        """Test a store without a secret key is an error."""
        path = tmp_path / "deploy.config.json"
        path.write_text(json.dumps({"created": "x"}))
        with pytest.raises(CredentialStoreError):
            load_credentials(path)

    def test_malformed_rejected(self, tmp_path):
        """Test unreadable or short keys are errors."""
        path = tmp_path / "deploy.config.json"
        path.write_text("{not json")
        with pytest.raises(CredentialStoreError):
            load_credentials(path)

        path.write_text(json.dumps({"secret_key": "abcd"}))
        with pytest.raises(CredentialStoreError):
            load_credentials(path)

    def test_missing_file(self, tmp_path):
        """Test loading a store that does not exist."""
        with pytest.raises(CredentialStoreError):
            load_credentials(tmp_path / "nope.json")


class TestSettings:
    """Tests for configuration."""

    def test_defaults(self):
        """Test default gas and polling values."""
        settings = Settings(_env_file=None)

        assert settings.gas_nano("add_liquidity") == 200_000_000
        assert settings.gas_nano("swap_ton_fee") == 80_000_000
        assert settings.gas_nano("collect") == 40_000_000
        assert settings.gas_nano("mint") == 200_000_000
        assert settings.seqno_poll_policy().delays() == [3.0] * 10
        assert settings.deploy_poll_policy().interval == 2.5

    def test_network_endpoint(self, monkeypatch):
        """Test the endpoint follows the selected network."""
        monkeypatch.setenv("NETWORK", "testnet")
        assert Settings(_env_file=None).endpoint == TESTNET_ENDPOINT

        monkeypatch.setenv("NETWORK", "mainnet")
        settings = Settings(_env_file=None)
        assert settings.endpoint == MAINNET_ENDPOINT
        assert settings.is_testnet is False

    def test_safe_dict_redacts_key(self, monkeypatch):
        """Test the API key is not exposed."""
        monkeypatch.setenv("LEDGER_API_KEY", "secret")
        safe = Settings(_env_file=None).get_safe_dict()
        assert safe["ledger_api_key"] == "***"
        assert "secret" not in json.dumps(safe)


class TestWallet:
    """Tests for wallet v3r2 messages."""

    @pytest.fixture
    def wallet_code(self):
        return begin_cell().store_uint(0xFF00, 16).end_cell()

    def test_address_from_code(self, wallet_code):
        """Test the address is derived from code and public key."""
        a = WalletV3R2(SigningKey(bytes(32)), code=wallet_code)
        b = WalletV3R2(SigningKey(bytes([1] * 32)), code=wallet_code)
        assert a.address != b.address
        assert a.address.hash_part == a.state_init().hash

    def test_requires_address_or_code(self):
        """Test a wallet needs a way to know its address."""
        with pytest.raises(ConfigurationError):
            WalletV3R2(SigningKey(bytes(32)))

    def test_first_transfer_deploys_wallet(self, wallet_code):
        """Test seqno 0 attaches the wallet StateInit and activates it."""
        wallet = WalletV3R2(SigningKey(bytes(32)), code=wallet_code)
        message = OutboundMessage(destination=make_address("recipient"), value=1)

        transfer = parse_external_transfer(wallet.create_transfer(0, message))
        assert transfer.state_init == wallet.state_init()
        assert transfer.subwallet_id == 698983191

        later = parse_external_transfer(wallet.create_transfer(1, message))
        assert later.state_init is None

    @pytest.mark.asyncio
    async def test_dry_run_activates_wallet(self, wallet_code):
        """Test the dry-run ledger applies a deploying first transfer."""
        wallet = WalletV3R2(SigningKey(bytes(32)), code=wallet_code)
        ledger = DryRunLedger()
        ledger.register_wallet(wallet.address, wallet.public_key, balance=10)

        await ledger.submit_signed_message(to_boc(wallet.create_transfer(0, OutboundMessage(make_address("r"), 3))))
        assert await ledger.get_sequence(wallet.address) == 1

        state = await ledger.get_account_state(wallet.address)
        assert state.status == ContractStatus.ACTIVE
        assert state.balance == 7

    @pytest.mark.asyncio
    async def test_dry_run_rejects_bad_signature(self, wallet_code):
        """Test a message signed by another key is refused."""
        wallet = WalletV3R2(SigningKey(bytes(32)), code=wallet_code)
        impostor = WalletV3R2(SigningKey(bytes([9] * 32)), address=wallet.address)
        ledger = DryRunLedger()
        ledger.register_wallet(wallet.address, wallet.public_key)

        boc = to_boc(impostor.create_transfer(0, OutboundMessage(make_address("r"), 1)))
        with pytest.raises(LedgerError):
            await ledger.submit_signed_message(boc)

    def test_signature_covers_message(self, wallet):
        """Test the signature verifies against the signed part only."""
        cell = wallet.create_transfer(3, OutboundMessage(make_address("r"), 5))
        transfer = parse_external_transfer(from_boc(to_boc(cell))[0])
        assert transfer.verify(wallet.public_key)
        assert not transfer.verify(bytes(SigningKey(bytes([7] * 32)).verify_key))


class TestCli:
    """Tests for the command line wiring."""

    def test_parser(self):
        """Test subcommands and their arguments."""
        args = build_parser().parse_args(
            ["swap", "--pool", "EQx", "--direction", "ton_to_token", "--amount", "1", "--min-out", "0.5"]
        )
        assert args.command == "swap"
        assert args.min_out == "0.5"
        assert args.exact_output is False

    @pytest.mark.asyncio
    async def test_wallet_command_dry_run(self, tmp_path, monkeypatch, capsys):
        """Test the wallet command creates credentials and reports low balance."""
        creds_path = tmp_path / "deploy.config.json"
        wallet_address = make_address("cli-wallet")
        monkeypatch.setenv("DRY_RUN", "true")
        monkeypatch.setenv("CREDENTIALS_PATH", str(creds_path))
        monkeypatch.setenv("WALLET_ADDRESS", wallet_address.to_raw())
        monkeypatch.setenv("REQUESTS_PER_SECOND", "1000")
        get_settings.cache_clear()

        try:
            code = await main(["wallet"])
        finally:
            get_settings.cache_clear()

        assert code == 1
        assert creds_path.exists()
        assert "Deployer-Wallet : https://sandbox.tonwhales.com/explorer/address/" in capsys.readouterr().out

    def test_admin_and_token_subcommands(self):
        """Test the upgrade, collect and mint subcommands."""
        parser = build_parser()
        assert parser.parse_args(["upgrade", "--pool", "EQx", "--code", "new.boc"]).code == "new.boc"
        assert parser.parse_args(["collect", "--pool", "EQx"]).command == "collect"

        args = parser.parse_args(["mint", "--minter", "EQm", "--amount", "100"])
        assert args.to is None
        assert args.amount == "100"

    @pytest.mark.asyncio
    async def test_corrupt_key_store_fails_cleanly(self, tmp_path, monkeypatch):
        """Test an unreadable key store exits with 1 and still closes the ledger."""
        creds_path = tmp_path / "deploy.config.json"
        creds_path.write_text("{not json")
        monkeypatch.setenv("CREDENTIALS_PATH", str(creds_path))
        monkeypatch.setenv("WALLET_ADDRESS", make_address("cli-wallet").to_raw())

        closed = []
        ledger = DryRunLedger()

        async def close():
            closed.append(True)

        monkeypatch.setattr(ledger, "close", close)
        monkeypatch.setattr(cli, "build_ledger", lambda settings: ledger)
        get_settings.cache_clear()

        try:
            code = await main(["pool-state", "--pool", make_address("pool").to_raw()])
        finally:
            get_settings.cache_clear()

        assert code == 1
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_spent_since_start(self, wallet):
        """Test the deployer spend figure tracks the wallet balance."""
        ledger = DryRunLedger()
        ledger.register_wallet(wallet.address, wallet.public_key, balance=to_nano(5))
        runner = Runner(Settings(_env_file=None), ledger, wallet)

        await runner.start()
        ledger.account(wallet.address).balance -= to_nano("0.3")

        assert await runner.spent() == to_nano("0.3")
