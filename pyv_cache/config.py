from __future__ import annotations
import dataclasses
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List
import yaml

from .errors import ConfigurationError
from .utils.logging import get_logger

logger = get_logger(__name__)

ADDRESS_BITS = 32


class WritePolicy(Enum):
    WRITE_THROUGH = 0
    WRITE_BACK = 1

    @classmethod
    def parse(cls, value: Any) -> WritePolicy:
        """Resolves 0/1, enum members and the usual spellings
        ("write-back", "WRITE_THROUGH", "wb", ...) to a member."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            for member in cls:
                if member.value == value:
                    return member
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            aliases = {"WT": "WRITE_THROUGH", "THROUGH": "WRITE_THROUGH",
                       "WB": "WRITE_BACK", "BACK": "WRITE_BACK"}
            key = aliases.get(key, key)
            if key in cls.__members__:
                return cls[key]
        raise ConfigurationError(f"Unknown write policy: {value!r}")


class ReplacementPolicyKind(Enum):
    LRU = "LRU"
    RANDOM = "RANDOM"

    @classmethod
    def parse(cls, value: Any) -> ReplacementPolicyKind:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
        raise ConfigurationError(f"Unknown replacement policy: {value!r}")


class Operation(Enum):
    READ = "R"
    WRITE = "W"

    @classmethod
    def parse(cls, value: Any) -> Operation:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            for member in cls:
                if member.value == key or member.name == key:
                    return member
        raise ValueError(f"Invalid operation: {value!r}. Use 'R' or 'W'")


def is_power_of_two(n: Any) -> bool:
    return isinstance(n, int) and not isinstance(n, bool) and n > 0 and (n & (n - 1)) == 0


def geometry_errors(line_size: Any, num_lines: Any, associativity: Any) -> List[str]:
    """Returns every geometry problem found; empty when the geometry is valid."""
    errors = []
    if not is_power_of_two(line_size):
        errors.append(f"Line size must be a power of two (got {line_size!r})")
    if not is_power_of_two(num_lines):
        errors.append(f"Number of lines must be a power of two (got {num_lines!r})")
    if not is_power_of_two(associativity):
        errors.append(f"Associativity must be a power of two (got {associativity!r})")
    if errors:
        return errors

    if associativity > num_lines:
        errors.append("Associativity cannot be greater than the number of lines")
    elif num_lines % associativity != 0:
        errors.append("Number of lines must be a multiple of associativity")
    else:
        offset_bits = line_size.bit_length() - 1
        set_bits = (num_lines // associativity).bit_length() - 1
        if offset_bits + set_bits > ADDRESS_BITS:
            errors.append(f"Offset and set index need {offset_bits + set_bits} bits, "
                          f"more than the {ADDRESS_BITS}-bit address")
    return errors


def _check_field_names(section: str, config: Any, changes: Dict[str, Any]):
    known = {f.name for f in dataclasses.fields(config)}
    unknown = [key for key in changes if key not in known]
    if unknown:
        raise ConfigurationError([f"Unknown {section} field '{key}'" for key in unknown])


def _positive_time(name: str, value: Any) -> List[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value > 0:
        return [f"{name} must be a positive number (got {value!r})"]
    return []


@dataclass(frozen=True)
class CacheConfig:
    """Cache geometry and policies. Immutable for the lifetime of a run."""
    line_size: int = 64
    num_lines: int = 64
    associativity: int = 4
    write_policy: WritePolicy = WritePolicy.WRITE_THROUGH
    replacement_policy: ReplacementPolicyKind = ReplacementPolicyKind.LRU
    hit_time: float = 5

    def __post_init__(self):
        errors = geometry_errors(self.line_size, self.num_lines, self.associativity)
        errors += _positive_time("Hit time", self.hit_time)
        # Policies are resolved to enums once, here.
        for attr, enum_cls in (("write_policy", WritePolicy),
                               ("replacement_policy", ReplacementPolicyKind)):
            try:
                object.__setattr__(self, attr, enum_cls.parse(getattr(self, attr)))
            except ConfigurationError as e:
                errors += e.errors
        if errors:
            raise ConfigurationError(errors)

    @property
    def num_sets(self) -> int:
        return self.num_lines // self.associativity

    @property
    def size_bytes(self) -> int:
        return self.num_lines * self.line_size

    def replace(self, **changes) -> CacheConfig:
        """Returns a validated copy with `changes` merged in."""
        _check_field_names("cache", self, changes)
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_size": self.line_size,
            "num_lines": self.num_lines,
            "associativity": self.associativity,
            "write_policy": self.write_policy.name,
            "replacement_policy": self.replacement_policy.name,
            "hit_time": self.hit_time,
        }


@dataclass(frozen=True)
class MemoryConfig:
    """Main memory timing in nanoseconds."""
    read_time: float = 70
    write_time: float = 70

    def __post_init__(self):
        errors = _positive_time("Read time", self.read_time)
        errors += _positive_time("Write time", self.write_time)
        if errors:
            raise ConfigurationError(errors)

    def replace(self, **changes) -> MemoryConfig:
        _check_field_names("memory", self, changes)
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {"read_time": self.read_time, "write_time": self.write_time}


_CACHE_FIELDS = tuple(f.name for f in dataclasses.fields(CacheConfig))
_MEMORY_FIELDS = tuple(f.name for f in dataclasses.fields(MemoryConfig))


@dataclass
class RunConfig:
    """Command-line level settings, loadable from YAML and overridable by flags."""
    # Input trace and outputs
    trace: str = ""
    config_file: str = ""
    report_dir: str = "out/default_run"

    # Batch experiments
    sweep: str = "cache_size"
    workers: int = 1
    seed: int | None = None

    # Cache parameters
    line_size: int = 64
    num_lines: int = 64
    associativity: int = 4
    write_policy: str = "WRITE_THROUGH"
    replacement_policy: str = "LRU"
    hit_time: float = 5

    # Memory parameters
    read_time: float = 70
    write_time: float = 70

    def cache_config(self) -> CacheConfig:
        return CacheConfig(**{name: getattr(self, name) for name in _CACHE_FIELDS})

    def memory_config(self) -> MemoryConfig:
        return MemoryConfig(**{name: getattr(self, name) for name in _MEMORY_FIELDS})

    def update_from_yaml(self, yaml_path: str):
        """Updates config fields from a YAML file.

        Accepts a flat mapping or nested `cache:` / `memory:` sections.
        """
        with open(yaml_path, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"Config file {yaml_path} must contain a mapping")

        flat = {}
        for key, value in yaml_config.items():
            if key in ("cache", "memory") and isinstance(value, dict):
                flat.update(value)
            else:
                flat[key] = value
        for key, value in flat.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                logger.warning(f"Ignoring unknown config key '{key}' in {yaml_path}")

    @classmethod
    def from_args(cls, args) -> RunConfig:
        """Factory method to create a RunConfig from parsed argparse arguments."""
        config = cls()

        # 1. Load from YAML config file if provided
        if getattr(args, 'config', None):
            config.config_file = args.config
            if Path(config.config_file).exists():
                config.update_from_yaml(config.config_file)
            else:
                logger.warning(f"Config file {config.config_file} not found.")

        # 2. Override with command-line arguments
        for key, value in vars(args).items():
            if value is not None and key != "config" and hasattr(config, key):
                setattr(config, key, value)
        return config
