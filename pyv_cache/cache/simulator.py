from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Tuple
import numpy as np

from ..config import CacheConfig, MemoryConfig, Operation, WritePolicy
from .decoder import AddressDecoder, CacheInfo
from .line import CacheLine, LineSnapshot
from .replacement import create_replacement_policy, find_line_in_set


@dataclass(frozen=True)
class AccessResult:
    address: int
    operation: Operation
    hit: bool
    set_index: int
    line_index: int
    tag: int
    evicted: LineSnapshot | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": f"{self.address:08X}",
            "operation": self.operation.value,
            "hit": self.hit,
            "set_index": self.set_index,
            "line_index": self.line_index,
            "tag": self.tag,
            "evicted": self.evicted.to_dict() if self.evicted else None,
        }


@dataclass
class SimulationStatistics:
    # Raw counters, updated per access
    total_accesses: int = 0
    read_accesses: int = 0
    write_accesses: int = 0
    hits: int = 0
    misses: int = 0
    read_hits: int = 0
    read_misses: int = 0
    write_hits: int = 0
    write_misses: int = 0
    memory_reads: int = 0
    memory_writes: int = 0

    # Derived values, only filled by CacheSimulator.finalize()
    hit_rate: float = 0.0
    read_hit_rate: float = 0.0
    write_hit_rate: float = 0.0
    average_access_time: float = 0.0

    @property
    def miss_rate(self) -> float:
        return self.misses / self.total_accesses * 100 if self.total_accesses > 0 else 0.0

    @property
    def total_traffic(self) -> int:
        return self.memory_reads + self.memory_writes

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["miss_rate"] = self.miss_rate
        d["total_traffic"] = self.total_traffic
        return d


@dataclass(frozen=True)
class SimulationResult:
    """Everything one run produces. Independent of the simulator that made it."""
    cache_config: CacheConfig
    memory_config: MemoryConfig
    statistics: SimulationStatistics
    accesses: Tuple[AccessResult, ...]
    final_cache_state: Tuple[Tuple[LineSnapshot, ...], ...]
    metadata: CacheInfo

    @property
    def configuration(self) -> Dict[str, Any]:
        """Merged cache + memory configuration."""
        merged = self.cache_config.to_dict()
        merged.update(self.memory_config.to_dict())
        return merged


def _rate(part: int, total: int) -> float:
    return part / total * 100 if total > 0 else 0.0


class CacheSimulator:
    """
    Trace-driven set-associative cache.

    Each instance owns its cache array, logical clock, counters and access log;
    nothing is shared between instances.
    """
    def __init__(self, config: CacheConfig, memory: MemoryConfig | None = None,
                 rng: np.random.Generator | int | None = None):
        self.config = config
        self.memory = memory if memory is not None else MemoryConfig()
        self.decoder = AddressDecoder(config)
        self.replacement_policy = create_replacement_policy(config.replacement_policy, rng)
        self.write_back = config.write_policy is WritePolicy.WRITE_BACK
        self._initialize()

    def _initialize(self):
        self.cache: List[List[CacheLine]] = [
            [CacheLine() for _ in range(self.config.associativity)]
            for _ in range(self.decoder.num_sets)
        ]
        self.clock = 0
        self.stats = SimulationStatistics()
        self.accesses: List[AccessResult] = []

    def reset(self):
        """Discards the cache contents, clock, counters and log."""
        self._initialize()

    def access(self, address: int, operation: Operation | str) -> AccessResult:
        """Performs one access and returns its outcome."""
        operation = Operation.parse(operation)
        is_write = operation is Operation.WRITE

        self.clock += 1
        components = self.decoder.decode(address)
        cache_set = self.cache[components.set_index]
        line_index = find_line_in_set(cache_set, components.tag)
        hit = line_index is not None

        self._record_access(is_write, hit)

        evicted = None
        if hit:
            self._handle_hit(cache_set[line_index], is_write)
        else:
            line_index, evicted = self._handle_miss(cache_set, components.tag, is_write)

        result = AccessResult(
            address=address,
            operation=operation,
            hit=hit,
            set_index=components.set_index,
            line_index=line_index,
            tag=components.tag,
            evicted=evicted,
        )
        self.accesses.append(result)
        return result

    def _handle_hit(self, line: CacheLine, is_write: bool):
        line.touch(self.clock)
        if is_write:
            if self.write_back:
                line.mark_dirty(self.clock)
            else:
                # write-through: every write reaches memory
                self.stats.memory_writes += 1

    def _handle_miss(self, cache_set: List[CacheLine], tag: int,
                     is_write: bool) -> Tuple[int, LineSnapshot | None]:
        victim_index = self.replacement_policy.select_victim(cache_set)
        victim = cache_set[victim_index]

        evicted = None
        if self.write_back and victim.valid and victim.dirty:
            self.stats.memory_writes += 1
            evicted = victim.snapshot()

        # Fetch the missing block
        self.stats.memory_reads += 1
        victim.load(tag, self.clock)

        if is_write:
            if self.write_back:
                victim.mark_dirty(self.clock)
            else:
                self.stats.memory_writes += 1
        return victim_index, evicted

    def _record_access(self, is_write: bool, hit: bool):
        s = self.stats
        s.total_accesses += 1
        if is_write:
            s.write_accesses += 1
            if hit:
                s.write_hits += 1
            else:
                s.write_misses += 1
        else:
            s.read_accesses += 1
            if hit:
                s.read_hits += 1
            else:
                s.read_misses += 1
        if hit:
            s.hits += 1
        else:
            s.misses += 1

    def run(self, trace: Iterable) -> SimulationResult:
        """Replays `trace` ((address, operation) pairs or MemoryAccess items)
        and returns the finalized result."""
        for item in trace:
            self.access(item[0], item[1])
        return self.get_results()

    def finalize(self) -> SimulationStatistics:
        """Computes the derived rates and times from the raw counters."""
        s = self.stats
        s.hit_rate = _rate(s.hits, s.total_accesses)
        s.read_hit_rate = _rate(s.read_hits, s.read_accesses)
        s.write_hit_rate = _rate(s.write_hits, s.write_accesses)
        # The miss penalty is the memory read time for reads and writes alike.
        if s.total_accesses > 0:
            s.average_access_time = (self.config.hit_time
                                     + (s.misses / s.total_accesses) * self.memory.read_time)
        else:
            s.average_access_time = 0.0
        return s

    def get_cache_state(self) -> Tuple[Tuple[LineSnapshot, ...], ...]:
        return tuple(tuple(line.snapshot() for line in cache_set) for cache_set in self.cache)

    def get_results(self) -> SimulationResult:
        stats = self.finalize()
        return SimulationResult(
            cache_config=self.config,
            memory_config=self.memory,
            statistics=SimulationStatistics(**asdict(stats)),
            accesses=tuple(self.accesses),
            final_cache_state=self.get_cache_state(),
            metadata=self.decoder.get_cache_info(),
        )
