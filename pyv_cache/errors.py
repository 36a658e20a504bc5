from __future__ import annotations
from typing import List


class CacheSimError(ValueError):
    """Base class for all simulator errors."""


class ConfigurationError(CacheSimError):
    """A cache or memory configuration violates the geometry/timing rules."""

    def __init__(self, errors: List[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class AddressError(CacheSimError):
    """An address is not a representable 32-bit hexadecimal value."""


class TraceFormatError(CacheSimError):
    """A trace line (or a whole trace) could not be parsed."""

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        self.reason = message
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
