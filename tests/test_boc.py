"""Tests for cells, addresses and BOC serialization."""

import base64
import hashlib

import pytest

from tonamm.boc import Address, begin_cell, cell_from_b64, from_boc, to_boc, to_boc_b64, zero_address
from tonamm.errors import CellError

ZERO_FRIENDLY = "EQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAM9c"


class TestCellHash:
    """Tests for representation hashes."""

    def test_empty_cell(self):
        """Test the empty cell hashes its two zero descriptors."""
        cell = begin_cell().end_cell()
        assert cell.hash == hashlib.sha256(b"\x00\x00").digest()
        assert cell.depth == 0

    def test_completion_tag(self):
        """Test a non-aligned cell is padded with a completion tag."""
        cell = begin_cell().store_bit(True).end_cell()
        assert cell.padded_data() == b"\xc0"
        assert cell.hash == hashlib.sha256(b"\x00\x01\xc0").digest()

    def test_aligned_data(self):
        """Test byte-aligned data is hashed without a tag."""
        cell = begin_cell().store_uint(0xABCD, 16).end_cell()
        assert cell.hash == hashlib.sha256(b"\x00\x04\xab\xcd").digest()

    def test_child_depth_and_hash(self):
        """Test references contribute depth then hash."""
        child = begin_cell().end_cell()
        parent = begin_cell().store_ref(child).end_cell()
        expected = hashlib.sha256(b"\x01\x00" + b"\x00\x00" + child.hash).digest()
        assert parent.hash == expected
        assert parent.depth == 1

    def test_equality_by_hash(self):
        """Test cells with the same content compare equal."""
        a = begin_cell().store_uint(5, 7).end_cell()
        b = begin_cell().store_uint(5, 7).end_cell()
        assert a == b
        assert len({a, b}) == 1


class TestBuilderAndSlice:
    """Tests for building and parsing cells."""

    def test_round_trip_fields(self):
        """Test mixed fields read back in order."""
        addr = Address(-1, bytes(range(32)))
        cell = (
            begin_cell()
            .store_uint(0x0F8A7EA5, 32)
            .store_int(-5, 8)
            .store_coins(1_500_000_000)
            .store_address(addr)
            .store_address(None)
            .store_bit(True)
            .end_cell()
        )
        s = cell.begin_parse()
        assert s.load_uint(32) == 0x0F8A7EA5
        assert s.load_int(8) == -5
        assert s.load_coins() == 1_500_000_000
        assert s.load_address() == addr
        assert s.load_address() is None
        assert s.load_bit() is True
        assert s.remaining_bits == 0

    def test_zero_coins_is_four_bits(self):
        """Test zero coins take only the length nibble."""
        assert begin_cell().store_coins(0).bit_length == 4
        assert begin_cell().store_coins(255).bit_length == 12

    def test_coins_out_of_range(self):
        """Test coins at 2^120 are rejected."""
        with pytest.raises(CellError):
            begin_cell().store_coins(1 << 120)
        with pytest.raises(CellError):
            begin_cell().store_coins(-1)

    def test_data_overflow(self):
        """Test more than 1023 bits is rejected."""
        builder = begin_cell().store_uint(0, 1000)
        with pytest.raises(CellError):
            builder.store_uint(0, 24)

    def test_ref_overflow(self):
        """Test a fifth reference is rejected."""
        builder = begin_cell()
        for _ in range(4):
            builder.store_ref(begin_cell().end_cell())
        with pytest.raises(CellError):
            builder.store_ref(begin_cell().end_cell())

    def test_uint_does_not_fit(self):
        """Test storing a value wider than its field."""
        with pytest.raises(CellError):
            begin_cell().store_uint(256, 8)

    def test_underflow(self):
        """Test reading past the end of a cell."""
        s = begin_cell().store_uint(1, 4).end_cell().begin_parse()
        with pytest.raises(CellError):
            s.load_uint(5)
        with pytest.raises(CellError):
            s.load_ref()

    def test_store_slice_inlines(self):
        """Test store_slice copies bits and refs."""
        ref = begin_cell().store_uint(9, 4).end_cell()
        inner = begin_cell().store_uint(3, 2).store_ref(ref).end_cell()
        outer = begin_cell().store_uint(1, 1).store_slice(inner).end_cell()
        assert outer.bit_length == 3
        assert outer.refs == (ref,)


class TestAddress:
    """Tests for address forms."""

    def test_zero_address_friendly(self):
        """Test the well-known zero address string."""
        assert zero_address().to_friendly() == ZERO_FRIENDLY
        assert Address.parse(ZERO_FRIENDLY) == zero_address()

    def test_raw_round_trip(self):
        """Test raw form parse and render."""
        raw = "0:" + "ab" * 32
        assert Address.parse(raw).to_raw() == raw

    def test_friendly_variants_parse_to_same_address(self):
        """Test every friendly form decodes to the same address."""
        addr = Address(0, hashlib.sha256(b"pool").digest())
        forms = {
            addr.to_friendly(),
            addr.to_friendly(bounceable=False),
            addr.to_friendly(testnet=True),
        }
        assert len(forms) == 3
        for form in forms:
            assert Address.parse(form) == addr

    def test_masterchain(self):
        """Test workchain -1 survives the friendly form."""
        addr = Address(-1, bytes(32))
        assert Address.parse(addr.to_friendly()).workchain == -1

    def test_checksum_mismatch(self):
        """Test a corrupted friendly address is rejected."""
        with pytest.raises(CellError):
            Address.parse(ZERO_FRIENDLY[:-1] + "d")

    def test_bad_length(self):
        """Test wrong hash size and friendly length."""
        with pytest.raises(CellError):
            Address(0, b"\x00" * 31)
        with pytest.raises(CellError):
            Address.parse("EQAAAA")


class TestBoc:
    """Tests for bag-of-cells serialization."""

    def test_empty_cell_boc(self):
        """Test the canonical empty-cell BOC."""
        assert to_boc_b64(begin_cell().end_cell()) == "te6ccgEBAQEAAgAAAA=="

    def test_shared_reference_stored_once(self):
        """Test a cell referenced twice is serialized once."""
        leaf = begin_cell().store_uint(7, 3).end_cell()
        a = begin_cell().store_uint(1, 8).store_ref(leaf).end_cell()
        b = begin_cell().store_uint(2, 8).store_ref(leaf).end_cell()
        root = begin_cell().store_ref(a).store_ref(b).end_cell()

        data = to_boc(root)
        assert data[6] == 4  # cell count

        parsed = from_boc(data)[0]
        assert parsed.hash == root.hash
        assert parsed.refs[0].refs[0] == parsed.refs[1].refs[0]

    def test_unaligned_round_trip(self):
        """Test bit lengths that are not byte-aligned survive."""
        cell = begin_cell().store_uint(0b1011001110001, 13).end_cell()
        parsed = cell_from_b64(to_boc_b64(cell))
        assert parsed.bit_length == 13
        assert parsed.bits == cell.bits

    def test_bad_magic(self):
        """Test unknown magic bytes are rejected."""
        with pytest.raises(CellError):
            from_boc(b"\x00\x01\x02\x03\x04\x05")

    def test_single_root_required(self):
        """Test cell_from_b64 rejects multi-root BOCs."""
        a = begin_cell().store_uint(1, 1).end_cell()
        b = begin_cell().store_uint(0, 1).end_cell()
        with pytest.raises(CellError):
            cell_from_b64(base64.b64encode(to_boc([a, b])).decode())
