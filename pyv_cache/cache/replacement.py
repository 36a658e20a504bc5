from __future__ import annotations
from typing import Sequence
import numpy as np

from ..config import ReplacementPolicyKind
from .line import CacheLine


def find_line_in_set(cache_set: Sequence[CacheLine], tag: int) -> int | None:
    """Index of the first line holding `tag`, or None."""
    for i, line in enumerate(cache_set):
        if line.matches(tag):
            return i
    return None


def empty_line_index(cache_set: Sequence[CacheLine]) -> int | None:
    for i, line in enumerate(cache_set):
        if not line.valid:
            return i
    return None


class ReplacementPolicy:
    """Chooses which line of a set is evicted on a miss."""
    kind: ReplacementPolicyKind

    def select_victim(self, cache_set: Sequence[CacheLine]) -> int:
        raise NotImplementedError


class LRUReplacementPolicy(ReplacementPolicy):
    kind = ReplacementPolicyKind.LRU

    def select_victim(self, cache_set: Sequence[CacheLine]) -> int:
        oldest = None
        victim = 0
        for i, line in enumerate(cache_set):
            if not line.valid:
                return i
            # strict '<' keeps the first-seen minimum on ties
            if oldest is None or line.last_used < oldest:
                oldest = line.last_used
                victim = i
        return victim


class RandomReplacementPolicy(ReplacementPolicy):
    kind = ReplacementPolicyKind.RANDOM

    def __init__(self, rng: np.random.Generator | int | None = None):
        self.rng = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)

    def select_victim(self, cache_set: Sequence[CacheLine]) -> int:
        index = empty_line_index(cache_set)
        if index is not None:
            return index
        return int(self.rng.integers(0, len(cache_set)))


def create_replacement_policy(kind, rng: np.random.Generator | int | None = None) -> ReplacementPolicy:
    """Builds the strategy for `kind`. `rng` only matters for RANDOM."""
    kind = ReplacementPolicyKind.parse(kind)
    factories = {
        ReplacementPolicyKind.LRU: lambda: LRUReplacementPolicy(),
        ReplacementPolicyKind.RANDOM: lambda: RandomReplacementPolicy(rng),
    }
    return factories[kind]()
