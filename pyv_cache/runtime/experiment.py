from __future__ import annotations
import concurrent.futures
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Sequence
import numpy as np

from ..cache.simulator import CacheSimulator, SimulationResult
from ..config import CacheConfig, MemoryConfig, ReplacementPolicyKind, WritePolicy
from ..errors import ConfigurationError
from ..utils.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class ExperimentConfig:
    cache: CacheConfig
    memory: MemoryConfig


def generate_configurations(base: ExperimentConfig,
                            variations: Sequence[Mapping[str, Any]]) -> List[ExperimentConfig]:
    """Merges each `{"cache": {...}, "memory": {...}}` delta onto `base`.

    Every merged configuration is validated here, so a bad variation fails
    before any simulation starts.
    """
    configs = []
    for i, variation in enumerate(variations):
        unknown = [key for key in variation if key not in ("cache", "memory")]
        if unknown:
            raise ConfigurationError([f"Variation {i + 1}: unknown section '{key}', "
                                      f"expected 'cache' or 'memory'" for key in unknown])
        configs.append(ExperimentConfig(
            cache=base.cache.replace(**dict(variation.get("cache") or {})),
            memory=base.memory.replace(**dict(variation.get("memory") or {})),
        ))
    return configs


@dataclass(frozen=True)
class SweepPreset:
    name: str
    description: str
    variations: List[Dict[str, Any]]
    x_parameter: str
    y_parameter: str = "hit_rate"
    group_by: str | None = None


def _cache_size_variations():
    return [{"cache": {"num_lines": n, "associativity": 4}} for n in (8, 16, 32, 64, 128, 256, 512, 1024)]


def _block_size_variations():
    # 8 KB cache, line size 8 B .. 4 KB
    return [{"cache": {"line_size": size, "num_lines": 8192 // size, "associativity": 2}}
            for size in (8, 16, 32, 64, 128, 256, 512, 1024, 2048, 4096)]


def _associativity_variations():
    return [{"cache": {"num_lines": 64, "associativity": a, "write_policy": WritePolicy.WRITE_BACK}}
            for a in (1, 2, 4, 8, 16, 32, 64)]


def _replacement_variations():
    variations = []
    for n in (16, 32, 64, 128, 256, 512, 1024):
        for policy in (ReplacementPolicyKind.LRU, ReplacementPolicyKind.RANDOM):
            variations.append({"cache": {"num_lines": n, "associativity": 4,
                                         "replacement_policy": policy}})
    return variations


def _bandwidth_variations():
    variations = []
    for policy in (WritePolicy.WRITE_THROUGH, WritePolicy.WRITE_BACK):
        for num_lines, line_size, assoc in ((128, 64, 2), (128, 128, 2), (256, 64, 2),
                                            (256, 128, 2), (128, 64, 4), (256, 64, 4)):
            variations.append({"cache": {"num_lines": num_lines, "line_size": line_size,
                                         "associativity": assoc, "write_policy": policy}})
    return variations


SWEEP_PRESETS: Dict[str, SweepPreset] = {
    p.name: p for p in (
        SweepPreset("cache_size", "Hit rate vs cache size (4-way)",
                    _cache_size_variations(), x_parameter="cache_size"),
        SweepPreset("block_size", "Hit rate vs line size at 8 KB (2-way)",
                    _block_size_variations(), x_parameter="line_size"),
        SweepPreset("associativity", "Hit rate vs associativity (64 lines, write-back)",
                    _associativity_variations(), x_parameter="associativity"),
        SweepPreset("replacement_policy", "LRU vs Random across cache sizes",
                    _replacement_variations(), x_parameter="cache_size",
                    group_by="replacement_policy"),
        SweepPreset("memory_bandwidth", "Memory traffic, write-through vs write-back",
                    _bandwidth_variations(), x_parameter="cache_size",
                    y_parameter="total_traffic", group_by="write_policy"),
    )
}


class BatchCancelled(Exception):
    pass


class ExperimentRunner:
    """Replays one trace through many independent cache configurations."""

    def __init__(self, max_workers: int | None = 1, seed: int | None = None):
        self.max_workers = max_workers
        self.seed = seed

    def _seeds(self, count: int) -> List[np.random.SeedSequence]:
        # One independent random stream per configuration
        return np.random.SeedSequence(self.seed).spawn(count)

    def run_experiment(self, config: ExperimentConfig, trace: Sequence,
                       rng: np.random.Generator | int | None = None) -> SimulationResult:
        """Runs one fresh simulator over the whole trace."""
        if rng is None:
            rng = self.seed
        simulator = CacheSimulator(config.cache, config.memory, rng=rng)
        return simulator.run(trace)

    def run_batch(self, configs: Sequence[ExperimentConfig], trace: Sequence,
                  progress: ProgressCallback | None = None,
                  cancel_event: threading.Event | None = None) -> List[SimulationResult]:
        """Runs every configuration and returns results in input order.

        Cancellation is checked between configurations only. When cancelled,
        the results completed so far are returned.
        """
        trace = tuple(trace)
        total = len(configs)
        seeds = self._seeds(total)
        results: Dict[int, SimulationResult] = {}

        def job(index: int) -> SimulationResult:
            if cancel_event is not None and cancel_event.is_set():
                raise BatchCancelled()
            return self.run_experiment(configs[index], trace,
                                       rng=np.random.default_rng(seeds[index]))

        def done(index: int, result: SimulationResult):
            results[index] = result
            logger.debug(f"Configuration {index + 1}/{total} finished: "
                         f"hit rate {result.statistics.hit_rate:.4f}%")
            if progress is not None:
                progress(len(results), total)

        if not self.max_workers or self.max_workers <= 1:
            for i in range(total):
                try:
                    done(i, job(i))
                except BatchCancelled:
                    break
        else:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_index = {executor.submit(job, i): i for i in range(total)}
                for future in concurrent.futures.as_completed(future_to_index):
                    try:
                        result = future.result()
                    except BatchCancelled:
                        continue
                    done(future_to_index[future], result)

        if len(results) < total:
            logger.warning(f"Batch cancelled: {len(results)} of {total} configurations completed")
        else:
            logger.info(f"Batch finished: {total} configurations over {len(trace)} accesses")
        return [results[i] for i in sorted(results)]

    def run_variations(self, base: ExperimentConfig, variations: Sequence[Mapping[str, Any]],
                       trace: Sequence, **kwargs) -> List[SimulationResult]:
        return self.run_batch(generate_configurations(base, variations), trace, **kwargs)

    def run_sweep(self, name: str, base: ExperimentConfig, trace: Sequence,
                  **kwargs) -> List[SimulationResult]:
        """Runs the named preset sweep."""
        if name not in SWEEP_PRESETS:
            raise ConfigurationError(f"Unknown sweep preset: {name}. "
                           f"Available: {', '.join(SWEEP_PRESETS)}")
        preset = SWEEP_PRESETS[name]
        logger.info(f"Running sweep '{name}': {preset.description}")
        return self.run_variations(base, preset.variations, trace, **kwargs)
