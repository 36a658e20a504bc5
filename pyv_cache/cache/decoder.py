from __future__ import annotations
from dataclasses import dataclass
from typing import List

from ..config import ADDRESS_BITS, CacheConfig, geometry_errors
from ..errors import ConfigurationError


@dataclass(frozen=True)
class AddressComponents:
    tag: int
    set_index: int
    block_offset: int
    address: int = 0

    @property
    def hex_address(self) -> str:
        return f"{self.address:08X}"


@dataclass(frozen=True)
class CacheInfo:
    """Derived geometry, for display and validation only."""
    line_size: int
    num_lines: int
    num_sets: int
    associativity: int
    offset_bits: int
    set_bits: int
    tag_bits: int

    @property
    def size_bytes(self) -> int:
        return self.line_size * self.num_lines


class AddressDecoder:
    """Splits 32-bit addresses into tag, set index and block offset."""

    def __init__(self, config: CacheConfig):
        self.line_size = config.line_size
        self.num_lines = config.num_lines
        self.associativity = config.associativity

        errors = self.validate_configuration()
        if errors:
            raise ConfigurationError(errors)

        # Calculate bit widths and masks for address decomposition
        self.num_sets = self.num_lines // self.associativity
        self.offset_bits = self.line_size.bit_length() - 1
        self.set_bits = self.num_sets.bit_length() - 1
        self.tag_bits = ADDRESS_BITS - self.set_bits - self.offset_bits

        self.offset_mask = (1 << self.offset_bits) - 1
        self.set_mask = (1 << self.set_bits) - 1
        self.tag_mask = (1 << self.tag_bits) - 1

    def validate_configuration(self) -> List[str]:
        return geometry_errors(self.line_size, self.num_lines, self.associativity)

    def decode(self, address: int) -> AddressComponents:
        """Decomposes an address into tag, set index and offset."""
        block_offset = address & self.offset_mask
        set_index = (address >> self.offset_bits) & self.set_mask
        tag = (address >> (self.offset_bits + self.set_bits)) & self.tag_mask
        return AddressComponents(tag=tag, set_index=set_index,
                                 block_offset=block_offset, address=address)

    def block_address(self, address: int) -> int:
        """Clears the offset bits, giving the first byte of the block."""
        return address & ~self.offset_mask

    def reconstruct_address(self, tag: int, set_index: int, block_offset: int = 0) -> int:
        """Rebuilds an address from its components."""
        return ((tag << (self.set_bits + self.offset_bits))
                | (set_index << self.offset_bits)
                | block_offset)

    def get_cache_info(self) -> CacheInfo:
        return CacheInfo(
            line_size=self.line_size,
            num_lines=self.num_lines,
            num_sets=self.num_sets,
            associativity=self.associativity,
            offset_bits=self.offset_bits,
            set_bits=self.set_bits,
            tag_bits=self.tag_bits,
        )
