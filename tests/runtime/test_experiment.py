import threading
import pytest
from pyv_cache.config import CacheConfig, MemoryConfig, ReplacementPolicyKind, WritePolicy
from pyv_cache.errors import ConfigurationError
from pyv_cache.runtime.experiment import (SWEEP_PRESETS, ExperimentConfig, ExperimentRunner,
                                          generate_configurations)


@pytest.fixture
def base():
    return ExperimentConfig(CacheConfig(line_size=64, num_lines=4, associativity=1),
                            MemoryConfig(read_time=70, write_time=70))


@pytest.fixture
def variations():
    return [
        {"cache": {"num_lines": 8}},
        {"cache": {"num_lines": 4}},
        {"cache": {"num_lines": 16, "associativity": 4}, "memory": {"read_time": 100}},
        {"cache": {"write_policy": WritePolicy.WRITE_BACK}},
    ]


def test_generate_configurations_merges_deltas(base, variations):
    configs = generate_configurations(base, variations)
    assert [c.cache.num_lines for c in configs] == [8, 4, 16, 4]
    assert configs[2].cache.associativity == 4
    assert configs[2].memory.read_time == 100
    assert configs[0].memory.read_time == 70
    assert configs[3].cache.write_policy is WritePolicy.WRITE_BACK
    # base untouched
    assert base.cache.num_lines == 4


def test_invalid_variation_fails_before_running(base):
    with pytest.raises(ConfigurationError):
        generate_configurations(base, [{"cache": {"num_lines": 8}}, {"cache": {"associativity": 3}}])


@pytest.mark.parametrize("variation", [
    {"num_lines": 8},
    {"cahce": {"num_lines": 8}},
    {"cache": {"num_lines": 8}, "timing": {"read_time": 10}},
])
def test_unknown_variation_section_is_rejected(base, variation):
    with pytest.raises(ConfigurationError) as excinfo:
        generate_configurations(base, [variation])
    assert "unknown section" in str(excinfo.value)


def test_unknown_variation_field_is_rejected(base):
    with pytest.raises(ConfigurationError) as excinfo:
        generate_configurations(base, [{"cache": {"lines": 8, "ways": 2}}])
    assert excinfo.value.errors == ["Unknown cache field 'lines'", "Unknown cache field 'ways'"]

    with pytest.raises(ConfigurationError, match="Unknown memory field 'latency'"):
        generate_configurations(base, [{"memory": {"latency": 10}}])


def test_run_batch_preserves_order_and_isolation(base, variations, conflict_trace):
    runner = ExperimentRunner()
    results = runner.run_variations(base, variations, conflict_trace)

    assert [r.cache_config.num_lines for r in results] == [8, 4, 16, 4]
    assert [len(r.final_cache_state) for r in results] == [8, 4, 4, 4]
    for r in results:
        assert r.statistics.total_accesses == len(conflict_trace)
        assert len(r.accesses) == len(conflict_trace)
        # fresh clock per run
        assert r.accesses[0].hit is False

    # Same geometry, only write policy differs: identical hit pattern
    assert [a.hit for a in results[1].accesses] == [a.hit for a in results[3].accesses]
    assert results[1].statistics.memory_writes != results[3].statistics.memory_writes


def test_results_do_not_share_cache_state(base, conflict_trace):
    runner = ExperimentRunner()
    configs = generate_configurations(base, [{}, {}])
    a, b = runner.run_batch(configs, conflict_trace)

    assert a.final_cache_state == b.final_cache_state
    assert a.final_cache_state is not b.final_cache_state
    mutable_copy = [list(s) for s in a.final_cache_state]
    mutable_copy[0][0] = None
    assert b.final_cache_state[0][0] is not None
    assert a.final_cache_state[0][0] is not None


def test_trace_is_not_mutated(base, variations, conflict_trace):
    snapshot = list(conflict_trace)
    ExperimentRunner(max_workers=2).run_variations(base, variations, conflict_trace)
    assert conflict_trace == snapshot


def test_concurrent_batch_matches_sequential(base, variations, conflict_trace):
    sequential = ExperimentRunner(max_workers=1).run_variations(base, variations, conflict_trace)
    concurrent = ExperimentRunner(max_workers=4).run_variations(base, variations, conflict_trace)
    assert [r.statistics for r in sequential] == [r.statistics for r in concurrent]
    assert [r.cache_config for r in sequential] == [r.cache_config for r in concurrent]


def test_progress_callback(base, variations, conflict_trace):
    calls = []
    ExperimentRunner().run_variations(base, variations, conflict_trace,
                                      progress=lambda done, total: calls.append((done, total)))
    assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]


def test_cancellation_returns_completed_results(base, variations, conflict_trace):
    cancel = threading.Event()

    def progress(done, total):
        if done == 2:
            cancel.set()

    results = ExperimentRunner().run_variations(base, variations, conflict_trace,
                                                progress=progress, cancel_event=cancel)
    assert [r.cache_config.num_lines for r in results] == [8, 4]


def test_concurrent_cancellation_returns_ordered_subset(base, conflict_trace, caplog):
    variations = [{"cache": {"num_lines": n, "associativity": 1}}
                  for n in (4, 8, 16, 32, 64, 128, 256, 512, 1024, 2048, 4096, 8192)]
    cancel = threading.Event()
    started = []
    lock = threading.Lock()

    class GatedRunner(ExperimentRunner):
        def run_experiment(self, config, trace, rng=None):
            with lock:
                started.append(config.cache.num_lines)
                gated = len(started) > 2
            if gated:
                # later jobs wait until the batch has been cancelled
                cancel.wait(timeout=5)
            return super().run_experiment(config, trace, rng)

    def progress(done, total):
        cancel.set()

    with caplog.at_level("WARNING"):
        results = GatedRunner(max_workers=2).run_variations(
            base, variations, conflict_trace, progress=progress, cancel_event=cancel)

    got = [r.cache_config.num_lines for r in results]
    assert 1 <= len(got) < len(variations)
    expected_order = [v["cache"]["num_lines"] for v in variations]
    assert got == [n for n in expected_order if n in got]
    assert "Batch cancelled" in caplog.text


def test_cancel_before_start_returns_nothing(base, variations, conflict_trace):
    cancel = threading.Event()
    cancel.set()
    assert ExperimentRunner(max_workers=2).run_variations(
        base, variations, conflict_trace, cancel_event=cancel) == []


def test_random_batch_is_reproducible_with_seed(base, conflict_trace):
    variations = [{"cache": {"num_lines": n, "associativity": 4,
                             "replacement_policy": ReplacementPolicyKind.RANDOM}} for n in (8, 16)]
    first = ExperimentRunner(seed=11).run_variations(base, variations, conflict_trace)
    second = ExperimentRunner(seed=11, max_workers=2).run_variations(base, variations, conflict_trace)
    assert [r.accesses for r in first] == [r.accesses for r in second]


def test_run_sweep_presets(base, conflict_trace):
    runner = ExperimentRunner()
    results = runner.run_sweep("cache_size", ExperimentConfig(CacheConfig(), MemoryConfig()),
                               conflict_trace)
    assert [r.cache_config.num_lines for r in results] == [8, 16, 32, 64, 128, 256, 512, 1024]
    # the trace touches 64 blocks, so the largest cache only takes compulsory misses
    assert results[-1].statistics.misses == 64
    assert results[-1].statistics.hit_rate > results[0].statistics.hit_rate

    with pytest.raises(ConfigurationError):
        runner.run_sweep("nonexistent", base, conflict_trace)


@pytest.mark.parametrize("name", sorted(SWEEP_PRESETS))
def test_every_preset_builds_valid_configurations(name):
    preset = SWEEP_PRESETS[name]
    configs = generate_configurations(ExperimentConfig(CacheConfig(), MemoryConfig()),
                                      preset.variations)
    assert len(configs) == len(preset.variations)


def test_block_size_preset_keeps_cache_at_8kb():
    preset = SWEEP_PRESETS["block_size"]
    configs = generate_configurations(ExperimentConfig(CacheConfig(), MemoryConfig()),
                                      preset.variations)
    assert {c.cache.size_bytes for c in configs} == {8192}
