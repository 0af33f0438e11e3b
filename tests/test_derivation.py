"""Tests for address derivation and message bodies."""

import pytest

from conftest import make_address

from tonamm.amm import messages
from tonamm.amm.derivation import AddressDeriver, derive_contract_address
from tonamm.amm.messages import Op
from tonamm.boc import Address, begin_cell
from tonamm.errors import ConfigurationError


@pytest.fixture
def pool_code():
    return begin_cell().store_uint(0xAAAA, 16).end_cell()


class TestDeriveContractAddress:
    """Tests for deploy address derivation."""

    def test_address_is_state_init_hash(self, pool_code):
        """Test the address hash equals the StateInit cell hash."""
        data = begin_cell().store_uint(1, 8).end_cell()
        address = derive_contract_address(pool_code, data)
        assert address == Address(0, messages.state_init(pool_code, data).hash)

    def test_deterministic(self, pool_code, lp_wallet_code):
        """Test identical inputs derive the identical address."""
        admin = make_address("admin")
        a = derive_contract_address(pool_code, messages.pool_data("uri", admin, lp_wallet_code))
        b = derive_contract_address(pool_code, messages.pool_data("uri", admin, lp_wallet_code))
        assert a == b

    def test_initial_state_changes_address(self, pool_code, lp_wallet_code):
        """Test different initial data derives a different address."""
        admin = make_address("admin")
        a = derive_contract_address(pool_code, messages.pool_data("uri-a", admin, lp_wallet_code))
        b = derive_contract_address(pool_code, messages.pool_data("uri-b", admin, lp_wallet_code))
        assert a != b

    def test_workchain(self, pool_code):
        """Test the workchain is carried into the address."""
        data = begin_cell().end_cell()
        assert derive_contract_address(pool_code, data, workchain=-1).workchain == -1


class TestAddressDeriver:
    """Tests for LP wallet (sub-account) derivation."""

    def test_sub_account_per_owner(self, lp_wallet_code, pool_address):
        """Test different owners get different LP wallets."""
        deriver = AddressDeriver(lp_wallet_code)
        a = deriver.derive_sub_account(pool_address, make_address("alice"))
        b = deriver.derive_sub_account(pool_address, make_address("bob"))
        assert a != b

    def test_sub_account_matches_state_init(self, lp_wallet_code, pool_address):
        """Test the LP wallet address is derived from its initial data."""
        owner = make_address("alice")
        deriver = AddressDeriver(lp_wallet_code)
        expected = derive_contract_address(
            lp_wallet_code, messages.lp_wallet_data(owner, pool_address, lp_wallet_code)
        )
        assert deriver.derive_sub_account(pool_address, owner) == expected

    def test_memoised(self, lp_wallet_code, pool_address):
        """Test repeated derivations hit the cache."""
        deriver = AddressDeriver(lp_wallet_code)
        owner = make_address("alice")
        first = deriver.derive_sub_account(pool_address, owner)
        second = deriver.derive_sub_account(pool_address, owner)
        assert first is second
        assert deriver.cache_size() == 1

    def test_requires_code(self, pool_address):
        """Test local derivation without LP wallet code fails."""
        with pytest.raises(ConfigurationError):
            AddressDeriver().derive_sub_account(pool_address, make_address("alice"))


class TestMessages:
    """Tests for message body layouts."""

    def test_swap_ton_layout(self):
        """Test swap_ton carries op, query id and both amounts."""
        s = messages.swap_ton(25_000_000_000, 798_078_847).begin_parse()
        assert s.load_uint(32) == Op.SWAP_TON
        assert s.load_uint(64) == messages.QUERY_ID
        assert s.load_coins() == 25_000_000_000
        assert s.load_coins() == 798_078_847
        assert s.remaining_bits == 0

    def test_add_liquidity_forward_payload(self, pool_address):
        """Test add_liquidity is a jetton transfer with the pool op inline."""
        body = messages.add_liquidity(pool_address, 40, 10, 5, 110)
        s = body.begin_parse()
        assert s.load_uint(32) == Op.TRANSFER
        assert s.load_uint(64) == messages.QUERY_ID
        assert s.load_coins() == 40
        assert s.load_address() == pool_address
        assert s.load_address() == pool_address
        assert s.load_bit() is False
        assert s.load_coins() == 110
        assert s.load_bit() is False
        assert s.load_uint(32) == Op.ADD_LIQUIDITY
        assert s.load_coins() == 5
        assert s.load_coins() == 10

    def test_burn_layout(self):
        """Test burn carries the LP amount and response address."""
        owner = make_address("alice")
        s = messages.burn(1234, owner).begin_parse()
        assert s.load_uint(32) == Op.BURN
        assert s.load_uint(64) == messages.QUERY_ID
        assert s.load_coins() == 1234
        assert s.load_address() == owner
        assert s.load_maybe_ref() is None

    def test_collect_funds_layout(self):
        """Test collect_funds is the bare admin op with the query id."""
        s = messages.collect_funds().begin_parse()
        assert s.load_uint(32) == Op.COLLECT_FUNDS == 77
        assert s.load_uint(64) == messages.QUERY_ID
        assert s.remaining_bits == 0

    def test_mint_layout(self):
        """Test mint wraps an internal transfer for the receiver's jetton wallet."""
        receiver = make_address("alice")
        s = messages.mint(receiver, 100_000_000_000).begin_parse()
        assert s.load_uint(32) == Op.MINT
        assert s.load_uint(64) == messages.QUERY_ID
        assert s.load_address() == receiver
        assert s.load_coins() == messages.MINT_FORWARD_TON

        inner = s.load_ref().begin_parse()
        assert inner.load_uint(32) == Op.INTERNAL_TRANSFER
        assert inner.load_uint(64) == messages.QUERY_ID
        assert inner.load_coins() == 100_000_000_000
        assert inner.load_address() is None
        assert inner.load_address() is None
        assert inner.load_coins() == 0
        assert inner.load_bit() is False

    def test_minter_data_layout(self):
        """Test minter initial data: supply, admin, content and wallet code."""
        admin = make_address("admin")
        wallet_code = begin_cell().store_uint(7, 8).end_cell()
        s = messages.minter_data(admin, "https://example.com/usdc.json", wallet_code).begin_parse()
        assert s.load_coins() == 0
        assert s.load_address() == admin
        assert s.load_ref() == messages.snake_string("https://example.com/usdc.json")
        assert s.load_ref() == wallet_code

    def test_builders_are_deterministic(self, pool_address):
        """Test identical arguments give identical cells."""
        owner = make_address("alice")
        assert messages.swap_token(pool_address, 5, 6, owner, 7) == messages.swap_token(
            pool_address, 5, 6, owner, 7
        )

    def test_snake_string_chunks(self):
        """Test long strings continue in referenced cells."""
        cell = messages.snake_string("x" * 300)
        assert cell.bit_length == 127 * 8
        assert cell.refs[0].bit_length == 127 * 8
        assert cell.refs[0].refs[0].bit_length == 46 * 8
