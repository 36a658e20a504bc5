"""Rendering helpers for results.

Real-valued outputs (rates, times) are rendered with exactly four decimal
digits; counts, sizes and associativity are rendered as integers.
"""
from __future__ import annotations
import math
from typing import Any

from ..config import WritePolicy

REAL_DECIMALS = 4


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def format_real(value: Any) -> str:
    if not _is_number(value):
        return f"{0:.{REAL_DECIMALS}f}"
    return f"{value:.{REAL_DECIMALS}f}"


def format_percentage(value: Any) -> str:
    return f"{format_real(value)}%"


def format_time(value: Any) -> str:
    return f"{format_real(value)}ns"


def format_integer(value: Any) -> str:
    if not _is_number(value):
        return "0"
    return str(int(round(value)))


def format_bytes(num_bytes: Any) -> str:
    """Sizes are integers: 512B, 8KB, 1MB."""
    if not _is_number(num_bytes):
        return "0B"
    if num_bytes >= 1024 * 1024:
        return f"{format_integer(num_bytes / (1024 * 1024))}MB"
    if num_bytes >= 1024:
        return f"{format_integer(num_bytes / 1024)}KB"
    return f"{format_integer(num_bytes)}B"


def format_hit_rate_with_count(rate: float, hits: int, total: int) -> str:
    return f"{format_percentage(rate)} ({format_integer(hits)}/{format_integer(total)})"


def format_associativity(associativity: int) -> str:
    if associativity == 1:
        return "Direct-mapped"
    return f"{format_integer(associativity)}-way"


def format_write_policy(policy: Any) -> str:
    policy = WritePolicy.parse(policy)
    return "Write-through" if policy is WritePolicy.WRITE_THROUGH else "Write-back"


def format_address(address: int | str) -> str:
    if isinstance(address, str):
        return f"0x{address.upper()}"
    return f"0x{address:08X}"


_INTEGER_KEYS = ("accesses", "hits", "misses", "reads", "writes", "lines",
                 "associativity", "traffic", "count", "sets", "bits")


def format_by_type(value: Any, kind: str) -> str:
    """Picks the rendering for a value from its field name."""
    key = kind.lower()
    if key in ("percentage",) or key.endswith("rate"):
        return format_percentage(value)
    if key in ("time",) or key.endswith("time"):
        return format_time(value)
    if key in ("bytes", "size") or key.endswith("size"):
        return format_bytes(value)
    if key == "integer" or key.endswith(_INTEGER_KEYS):
        return format_integer(value)
    if _is_number(value) and isinstance(value, int):
        return format_integer(value)
    return format_real(value)
