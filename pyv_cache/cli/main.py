from __future__ import annotations
import argparse
import os
import sys

from ..cache.simulator import CacheSimulator
from ..config import RunConfig
from ..errors import CacheSimError, ConfigurationError
from ..runtime.experiment import SWEEP_PRESETS, ExperimentConfig, ExperimentRunner
from ..trace.parser import generate_sample_trace, parse_trace_file
from ..utils.logging import get_logger, set_verbosity
from ..utils.reporting import generate_report, generate_sweep_report

logger = get_logger(__name__)


def _load_trace(config: RunConfig):
    if not config.trace:
        raise ConfigurationError("No trace file given (positional argument or `trace:` in config)")
    trace = parse_trace_file(config.trace)
    logger.info(f"Loaded {len(trace)} accesses from {config.trace}")
    return trace


def cmd_run(args):
    """Handles the 'run' command."""
    config = RunConfig.from_args(args)
    cache_config = config.cache_config()
    memory_config = config.memory_config()
    logger.debug(f"Run configuration: {config}")

    trace = _load_trace(config)
    simulator = CacheSimulator(cache_config, memory_config, rng=config.seed)
    result = simulator.run(trace)

    generate_report(result, config.report_dir)
    return 0


def cmd_sweep(args):
    """Handles the 'sweep' command."""
    config = RunConfig.from_args(args)
    base = ExperimentConfig(config.cache_config(), config.memory_config())
    if config.sweep not in SWEEP_PRESETS:
        raise ConfigurationError(f"Unknown sweep preset: {config.sweep}")
    preset = SWEEP_PRESETS[config.sweep]

    trace = _load_trace(config)
    runner = ExperimentRunner(max_workers=config.workers, seed=config.seed)

    def progress(done, total):
        logger.info(f"[{done}/{total}] configurations done")

    results = runner.run_sweep(preset.name, base, trace.accesses, progress=progress)
    generate_sweep_report(results, config.report_dir, preset.x_parameter,
                          preset.y_parameter, preset.group_by)
    return 0


def cmd_sample(args):
    """Handles the 'sample' command."""
    text = generate_sample_trace(args.num_accesses, seed=args.seed)
    if args.output == "-":
        sys.stdout.write(text)
        return 0
    parent = os.path.dirname(args.output)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(args.output, "w") as f:
        f.write(text)
    print(f"[OK] Wrote {args.num_accesses} accesses to {args.output}")
    return 0


def _add_cache_args(p: argparse.ArgumentParser):
    """Cache/memory flags. Defaults are None so YAML values are not clobbered."""
    p.add_argument("trace", nargs='?', default=None,
                   help="Path to the trace file (optional if specified in config)")
    p.add_argument("-c", "--config", type=str, default=None,
                   help="Path to YAML config file to override defaults")
    p.add_argument("--report", type=str, default=None, dest="report_dir",
                   help="Directory to save reports")
    p.add_argument("--seed", type=int, default=None,
                   help="Seed for the random replacement policy")

    cache = p.add_argument_group('Cache Arguments')
    cache.add_argument("--line-size", type=int, default=None, dest="line_size",
                       help="Line size in bytes (power of two)")
    cache.add_argument("--num-lines", type=int, default=None, dest="num_lines",
                       help="Number of cache lines (power of two)")
    cache.add_argument("--associativity", type=int, default=None,
                       help="Lines per set (power of two)")
    cache.add_argument("--write-policy", type=str.upper, default=None, dest="write_policy",
                       choices=["WRITE_THROUGH", "WRITE_BACK"], help="Write policy")
    cache.add_argument("--replacement", type=str.upper, default=None, dest="replacement_policy",
                       choices=["LRU", "RANDOM"], help="Replacement policy")
    cache.add_argument("--hit-time", type=float, default=None, dest="hit_time",
                       help="Cache hit time in ns")

    mem = p.add_argument_group('Memory Arguments')
    mem.add_argument("--read-time", type=float, default=None, dest="read_time",
                     help="Memory read time in ns")
    mem.add_argument("--write-time", type=float, default=None, dest="write_time",
                     help="Memory write time in ns")


def build_parser():
    p = argparse.ArgumentParser(
        prog="pyv-cache",
        description="PyV-Cache set-associative cache simulator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    p.add_argument("-v", "--verbose", action="count", default=0, help="Enable debug logging")
    p.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    sub = p.add_subparsers(dest="cmd", required=True)

    # --- Run Command ---
    pr = sub.add_parser("run", help="Simulate one cache configuration over a trace",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    _add_cache_args(pr)
    pr.set_defaults(func=cmd_run)

    # --- Sweep Command ---
    ps = sub.add_parser("sweep", help="Replay a trace across a preset set of configurations",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    _add_cache_args(ps)
    ps.add_argument("--preset", type=str, default=None, dest="sweep",
                    choices=sorted(SWEEP_PRESETS), help="Sweep preset to run")
    ps.add_argument("-j", "--workers", type=int, default=None,
                    help="Number of configurations simulated concurrently")
    ps.set_defaults(func=cmd_sweep)

    # --- Sample Command ---
    pg = sub.add_parser("sample", help="Generate a random sample trace",
                        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    pg.add_argument("-n", "--num-accesses", type=int, default=100, dest="num_accesses",
                    help="Number of accesses to generate")
    pg.add_argument("--seed", type=int, default=None, help="Random seed")
    pg.add_argument("-o", "--output", default="out/sample_trace.txt",
                    help="Output path, or '-' for stdout")
    pg.set_defaults(func=cmd_sample)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    set_verbosity(args.verbose, args.quiet)
    try:
        return args.func(args)
    except CacheSimError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"{e.filename}: {e.strerror}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
