from __future__ import annotations
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Sequence
import numpy as np

from ..config import Operation
from ..errors import AddressError, TraceFormatError
from ..utils.logging import get_logger

logger = get_logger(__name__)

MAX_HEX_DIGITS = 8
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class MemoryAccess(NamedTuple):
    address: int
    operation: Operation
    line_number: int | None = None

    @property
    def hex_address(self) -> str:
        return f"{self.address:08X}"


@dataclass
class Trace:
    """Parsed accesses plus the diagnostics for every skipped line."""
    accesses: List[MemoryAccess] = field(default_factory=list)
    errors: List[TraceFormatError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.accesses)

    def __iter__(self):
        return iter(self.accesses)


def validate_address(text: str) -> int:
    """Parses a hex address with optional 0x prefix, at most 32 bits."""
    clean = text.strip()
    if clean[:2] in ("0x", "0X"):
        clean = clean[2:]
    if not _HEX_RE.match(clean):
        raise AddressError(f"Invalid address: {text}")
    if len(clean) > MAX_HEX_DIGITS:
        raise AddressError(f"Address too large: {text}")
    return int(clean, 16)


def validate_operation(text: str) -> Operation:
    op = text.strip().upper()
    if op == Operation.READ.value:
        return Operation.READ
    if op == Operation.WRITE.value:
        return Operation.WRITE
    raise TraceFormatError(f"Invalid operation: {text}. Use 'R' or 'W'")


def parse_line(line: str, line_number: int | None = None) -> MemoryAccess:
    """Parses a single `<hex address> <R|W>` line. Extra tokens are ignored."""
    parts = line.split()
    if len(parts) < 2:
        raise TraceFormatError('Invalid format: expected "address operation"', line_number)
    address_str, operation_str = parts[0], parts[1]
    try:
        address = validate_address(address_str)
        operation = validate_operation(operation_str)
    except (AddressError, TraceFormatError) as e:
        raise TraceFormatError(getattr(e, "reason", str(e)), line_number) from e
    return MemoryAccess(address, operation, line_number)


def _content_lines(text: str):
    for i, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        yield i, line


def parse_trace(text: str) -> Trace:
    """Parses trace text, skipping malformed lines with a warning.

    Raises TraceFormatError only when no valid access is found.
    """
    trace = Trace()
    for i, line in _content_lines(text):
        try:
            trace.accesses.append(parse_line(line, i))
        except TraceFormatError as e:
            logger.warning(f"Skipping trace {e}")
            trace.errors.append(e)

    if not trace.accesses:
        raise TraceFormatError(f"Trace contains no valid accesses "
                               f"({len(trace.errors)} malformed lines)")
    logger.debug(f"Parsed {len(trace.accesses)} accesses, skipped {len(trace.errors)} lines")
    return trace


def parse_trace_file(path: str | Path) -> Trace:
    """Reads a trace file. Undecodable bytes become U+FFFD, so the line
    holding them is skipped like any other malformed line."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_trace(f.read())


def validate_trace(text: str) -> Dict[str, Any]:
    """Checks every line without raising and summarises the outcome."""
    lines = text.strip().splitlines()
    errors = []
    valid_lines = 0
    for i, line in _content_lines(text):
        try:
            parse_line(line, i)
            valid_lines += 1
        except TraceFormatError as e:
            errors.append(str(e))
    return {
        "is_valid": not errors and valid_lines > 0,
        "errors": errors,
        "total_lines": len(lines),
        "valid_lines": valid_lines,
        "invalid_lines": len(errors),
    }


def trace_statistics(accesses: Sequence[MemoryAccess]) -> Dict[str, Any]:
    reads = sum(1 for a in accesses if a.operation is Operation.READ)
    addresses = [a.address for a in accesses]
    return {
        "total_accesses": len(accesses),
        "read_accesses": reads,
        "write_accesses": len(accesses) - reads,
        "unique_addresses": len(set(addresses)),
        "address_range": {
            "min": min(addresses) if addresses else 0,
            "max": max(addresses) if addresses else 0,
        },
    }


def generate_sample_trace(num_accesses: int = 100, seed: int | None = None) -> str:
    """Random trace text (addresses below 0xFFFFFF, mixed R/W)."""
    rng = np.random.default_rng(seed)
    addresses = rng.integers(0, 0xFFFFFF, size=num_accesses)
    ops = rng.choice([Operation.READ.value, Operation.WRITE.value], size=num_accesses)
    lines = ["# Sample trace file"]
    lines += [f"{int(a):08x} {op}" for a, op in zip(addresses, ops)]
    return "\n".join(lines) + "\n"
