from __future__ import annotations
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Sequence
import pandas as pd

from ..cache.simulator import SimulationResult
from ..runtime.statistics import StatisticsCalculator
from . import formatting

_REAL_FIELDS = ("hit_rate", "read_hit_rate", "write_hit_rate", "miss_rate")
_COUNT_FIELDS = ("total_accesses", "read_accesses", "write_accesses", "hits", "misses",
                 "read_hits", "read_misses", "write_hits", "write_misses",
                 "memory_reads", "memory_writes", "total_traffic")


def format_statistics(result: SimulationResult) -> Dict[str, str]:
    """Human-facing rendering of a result's statistics."""
    stats = result.statistics.to_dict()
    rendered = {key: formatting.format_percentage(stats[key]) for key in _REAL_FIELDS}
    rendered["average_access_time"] = formatting.format_time(stats["average_access_time"])
    rendered.update({key: formatting.format_integer(stats[key]) for key in _COUNT_FIELDS})
    rendered["cache_size"] = formatting.format_bytes(result.cache_config.size_bytes)
    rendered["associativity"] = formatting.format_associativity(result.cache_config.associativity)
    rendered["write_policy"] = formatting.format_write_policy(result.cache_config.write_policy)
    return rendered


def generate_report_json(result: SimulationResult, include_accesses: bool = True) -> Dict[str, Any]:
    """Generates a JSON-compatible dictionary from a single run."""
    info = result.metadata
    report_data = {
        "configuration": result.configuration,
        "metadata": {
            "cache_size": info.size_bytes,
            "num_sets": info.num_sets,
            "offset_bits": info.offset_bits,
            "set_bits": info.set_bits,
            "tag_bits": info.tag_bits,
        },
        "statistics": result.statistics.to_dict(),
        "formatted": format_statistics(result),
        "final_cache_state": [[line.to_dict() for line in cache_set]
                              for cache_set in result.final_cache_state],
    }
    if include_accesses:
        report_data["accesses"] = [a.to_dict() for a in result.accesses]
    return report_data


def accesses_frame(result: SimulationResult) -> pd.DataFrame:
    rows = [a.to_dict() for a in result.accesses]
    for row in rows:
        evicted = row.pop("evicted")
        row["evicted_tag"] = evicted["tag"] if evicted else None
    return pd.DataFrame(rows, columns=["address", "operation", "hit", "set_index",
                                       "line_index", "tag", "evicted_tag"])


def print_summary(result: SimulationResult):
    rendered = format_statistics(result)
    print(f"Cache: {rendered['cache_size']}, {result.cache_config.line_size}B lines, "
          f"{rendered['associativity']}, {rendered['write_policy']}, "
          f"{result.cache_config.replacement_policy.name}")
    print(f"  Accesses          : {rendered['total_accesses']} "
          f"(R {rendered['read_accesses']} / W {rendered['write_accesses']})")
    print(f"  Hits / Misses     : {rendered['hits']} / {rendered['misses']}")
    print(f"  Hit rate          : {rendered['hit_rate']}")
    print(f"  Read hit rate     : {rendered['read_hit_rate']}")
    print(f"  Write hit rate    : {rendered['write_hit_rate']}")
    print(f"  Memory reads      : {rendered['memory_reads']}")
    print(f"  Memory writes     : {rendered['memory_writes']}")
    print(f"  Avg access time   : {rendered['average_access_time']}")


def generate_report(result: SimulationResult, report_dir: str | Path):
    """Writes report.json and accesses.csv for a single run."""
    output_dir = Path(report_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(output_dir / "report.json", "w") as f:
        json.dump(generate_report_json(result), f, indent=4)
    accesses_frame(result).to_csv(output_dir / "accesses.csv", index=False)

    print_summary(result)
    print(f"\nReports generated in {output_dir.absolute()}")


def _render_value(value: Any, parameter: str) -> str:
    if parameter == "cache_size":
        # extracted as KB
        return formatting.format_bytes(value * 1024)
    return formatting.format_by_type(value, parameter)


def sweep_frame(results: Sequence[SimulationResult]) -> pd.DataFrame:
    rows = []
    for r in results:
        row = dict(r.configuration)
        row["cache_size_kb"] = StatisticsCalculator.extract_parameter_value(r, "cache_size")
        row.update(r.statistics.to_dict())
        rows.append(row)
    return pd.DataFrame(rows)


def generate_sweep_report_json(results: Sequence[SimulationResult], x_parameter: str,
                               y_parameter: str = "hit_rate",
                               group_by: str | None = None) -> Dict[str, Any]:
    calc = StatisticsCalculator
    if group_by:
        series = {str(key): [asdict(p) for p in calc.prepare_series(group, x_parameter, y_parameter)]
                  for key, group in calc.split_by(results, group_by).items()}
    else:
        series = {y_parameter: [asdict(p) for p in calc.prepare_series(results, x_parameter, y_parameter)]}

    summary = calc.create_experiment_summary(results)
    for key in ("best_configuration", "worst_configuration"):
        if summary[key] is not None:
            summary[key] = summary[key].configuration
    return {
        "x_parameter": x_parameter,
        "y_parameter": y_parameter,
        "series": series,
        "summary": summary,
        "runs": [generate_report_json(r, include_accesses=False) for r in results],
    }


def generate_sweep_report(results: Sequence[SimulationResult], report_dir: str | Path,
                          x_parameter: str, y_parameter: str = "hit_rate",
                          group_by: str | None = None) -> Dict[str, Any]:
    """Writes sweep.json and sweep.csv and prints the series."""
    report_data = generate_sweep_report_json(results, x_parameter, y_parameter, group_by)
    output_dir = Path(report_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(output_dir / "sweep.json", "w") as f:
        json.dump(report_data, f, indent=4)
    sweep_frame(results).to_csv(output_dir / "sweep.csv", index=False)

    for name, points in report_data["series"].items():
        print(f"\n{name}: {x_parameter} -> {y_parameter}")
        for p in points:
            print(f"  {_render_value(p['x'], x_parameter):>10} | "
                  f"{_render_value(p['y'], y_parameter)}")
    print(f"\nReports generated in {output_dir.absolute()}")
    return report_data
