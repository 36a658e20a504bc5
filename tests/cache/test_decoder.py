import pytest
from pyv_cache.cache.decoder import AddressDecoder
from pyv_cache.config import CacheConfig
from pyv_cache.errors import ConfigurationError


@pytest.fixture
def decoder():
    # 16 lines of 64B, 2-way -> 8 sets. 6 offset bits, 3 set bits, 23 tag bits.
    return AddressDecoder(CacheConfig(line_size=64, num_lines=16, associativity=2))


def test_address_decomposition(decoder):
    """Verify that addresses are correctly decomposed into tag, index, and offset."""
    # Address: 0b_TAG_INDEX_OFFSET (Tag=0b1111, Index=5, Offset=42)
    address = 0b1111_101_101010
    c = decoder.decode(address)
    assert c.tag == 0b1111
    assert c.set_index == 5
    assert c.block_offset == 42
    assert c.address == address
    assert c.hex_address == "00001F6A"


def test_bit_widths_sum_to_32(decoder):
    info = decoder.get_cache_info()
    assert (info.offset_bits, info.set_bits, info.tag_bits) == (6, 3, 23)
    assert info.offset_bits + info.set_bits + info.tag_bits == 32
    assert info.num_sets == 8
    assert info.size_bytes == 1024


@pytest.mark.parametrize("line_size,num_lines,associativity", [
    (1, 1, 1),
    (8, 8, 2),
    (64, 16, 2),
    (64, 16, 16),
    (4096, 1024, 1),
    (16, 16384, 4),
])
@pytest.mark.parametrize("address", [0x00000000, 0xFFFFFFFF, 0x12345678, 0x80000001, 0x0000FFC0])
def test_decode_reconstruct_round_trip(line_size, num_lines, associativity, address):
    decoder = AddressDecoder(CacheConfig(line_size=line_size, num_lines=num_lines,
                                         associativity=associativity))
    c = decoder.decode(address)
    assert decoder.reconstruct_address(c.tag, c.set_index, c.block_offset) == address


def test_boundary_addresses(decoder):
    low = decoder.decode(0x00000000)
    assert (low.tag, low.set_index, low.block_offset) == (0, 0, 0)
    high = decoder.decode(0xFFFFFFFF)
    assert high.block_offset == 63
    assert high.set_index == 7
    assert high.tag == (1 << 23) - 1


def test_fully_associative_has_single_set():
    decoder = AddressDecoder(CacheConfig(line_size=64, num_lines=16, associativity=16))
    assert decoder.set_bits == 0
    c = decoder.decode(0xDEADBEEF)
    assert c.set_index == 0
    assert c.tag == 0xDEADBEEF >> 6


def test_block_address_clears_offset(decoder):
    assert decoder.block_address(0x12345678) == 0x12345640


def test_get_cache_info_is_pure(decoder):
    assert decoder.get_cache_info() == decoder.get_cache_info()
    assert decoder.decode(0x40).set_index == 1


def test_decoder_revalidates_geometry():
    """The decoder does not trust its caller's configuration object."""
    class LooseConfig:
        line_size = 48
        num_lines = 16
        associativity = 32

    with pytest.raises(ConfigurationError) as excinfo:
        AddressDecoder(LooseConfig())
    assert any("power of two" in e for e in excinfo.value.errors)
