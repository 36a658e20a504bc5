from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence
import pandas as pd

from ..cache.simulator import SimulationResult
from ..utils.formatting import format_bytes


@dataclass(frozen=True)
class SeriesPoint:
    x: Any
    y: Any
    label: str


class StatisticsCalculator:
    """Reduces finished simulation results into comparable values and series."""

    @staticmethod
    def round_to(value: float, decimals: int = 4) -> float:
        return round(value, decimals)

    @staticmethod
    def calculate_hit_rate(hits: int, total_accesses: int) -> float:
        return hits / total_accesses * 100 if total_accesses > 0 else 0.0

    @staticmethod
    def calculate_average_access_time(hit_rate: float, hit_time: float, memory_time: float) -> float:
        """Hit time plus miss rate times the memory penalty; `hit_rate` in percent."""
        return hit_time + (1 - hit_rate / 100) * memory_time

    @classmethod
    def extract_parameter_value(cls, result: SimulationResult, parameter: str) -> Any:
        cache = result.cache_config
        stats = result.statistics

        if parameter == "cache_size":
            return cache.size_bytes / 1024  # KB
        if parameter in ("hit_rate", "read_hit_rate", "write_hit_rate",
                         "miss_rate", "average_access_time"):
            return cls.round_to(getattr(stats, parameter))
        if parameter in ("write_policy", "replacement_policy"):
            return getattr(cache, parameter).name
        for source in (cache, result.memory_config, stats):
            if hasattr(source, parameter):
                return getattr(source, parameter)
        return 0

    @classmethod
    def prepare_series(cls, results: Sequence[SimulationResult], x_parameter: str,
                       y_parameter: str = "hit_rate") -> List[SeriesPoint]:
        """(x, y) points in the same order as `results`."""
        points = []
        for result in results:
            x = cls.extract_parameter_value(result, x_parameter)
            y = cls.extract_parameter_value(result, y_parameter)
            points.append(SeriesPoint(x, y, f"{x_parameter}: {x}"))
        return points

    @classmethod
    def split_by(cls, results: Sequence[SimulationResult],
                 parameter: str) -> Dict[Any, List[SimulationResult]]:
        """Groups results by a parameter value, keeping first-seen order."""
        groups: Dict[Any, List[SimulationResult]] = {}
        for result in results:
            groups.setdefault(cls.extract_parameter_value(result, parameter), []).append(result)
        return groups

    @classmethod
    def create_experiment_summary(cls, results: Sequence[SimulationResult]) -> Dict[str, Any]:
        summary = {
            "total_experiments": len(results),
            "average_hit_rate": 0.0,
            "average_access_time": 0.0,
            "best_configuration": None,
            "worst_configuration": None,
        }
        if not results:
            return summary

        # ties keep the earliest result
        best = results[0]
        worst = results[0]
        for result in results[1:]:
            if result.statistics.hit_rate > best.statistics.hit_rate:
                best = result
            if result.statistics.hit_rate < worst.statistics.hit_rate:
                worst = result

        n = len(results)
        summary["average_hit_rate"] = cls.round_to(sum(r.statistics.hit_rate for r in results) / n)
        summary["average_access_time"] = cls.round_to(
            sum(r.statistics.average_access_time for r in results) / n)
        summary["best_configuration"] = best
        summary["worst_configuration"] = worst
        return summary

    @staticmethod
    def describe_configuration(result: SimulationResult) -> str:
        cache = result.cache_config
        return f"{format_bytes(cache.size_bytes)}, {cache.line_size}B block, {cache.associativity}-way"

    @classmethod
    def comparison_table(cls, results: Sequence[SimulationResult],
                         parameters: Sequence[str]) -> pd.DataFrame:
        rows = []
        for i, result in enumerate(results):
            row = {"configuration": f"Config {i + 1}"}
            for param in parameters:
                row[param] = cls.extract_parameter_value(result, param)
            rows.append(row)
        return pd.DataFrame(rows, columns=["configuration", *parameters])

    @classmethod
    def memory_traffic(cls, results: Sequence[SimulationResult]) -> pd.DataFrame:
        rows = [{
            "configuration": cls.describe_configuration(r),
            "memory_reads": r.statistics.memory_reads,
            "memory_writes": r.statistics.memory_writes,
            "total_traffic": r.statistics.total_traffic,
            "hit_rate": cls.round_to(r.statistics.hit_rate),
        } for r in results]
        return pd.DataFrame(rows, columns=["configuration", "memory_reads", "memory_writes",
                                           "total_traffic", "hit_rate"])
