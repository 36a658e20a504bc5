import pytest
from pyv_cache.config import CacheConfig, MemoryConfig, Operation

R = Operation.READ
W = Operation.WRITE


@pytest.fixture
def direct_mapped():
    """4 lines of 64 bytes, direct mapped, write-through."""
    return CacheConfig(line_size=64, num_lines=4, associativity=1,
                       write_policy="WRITE_THROUGH", hit_time=5)


@pytest.fixture
def memory():
    return MemoryConfig(read_time=70, write_time=70)


@pytest.fixture
def conflict_trace():
    """Mixed reads/writes that keep colliding in a small cache."""
    trace = []
    for i in range(200):
        address = ((i * 7919) % 64) * 0x40
        trace.append((address, W if i % 3 == 0 else R))
    return trace
