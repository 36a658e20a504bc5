from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class LineState(Enum):
    INVALID = "INVALID"
    VALID_CLEAN = "VALID_CLEAN"
    VALID_DIRTY = "VALID_DIRTY"


@dataclass(frozen=True)
class LineSnapshot:
    """Immutable copy of a line's bookkeeping at one point in time."""
    valid: bool
    dirty: bool
    tag: int
    last_used: int

    @property
    def state(self) -> LineState:
        if not self.valid:
            return LineState.INVALID
        return LineState.VALID_DIRTY if self.dirty else LineState.VALID_CLEAN

    def to_dict(self) -> dict:
        return {"valid": self.valid, "dirty": self.dirty,
                "tag": self.tag, "last_used": self.last_used}


class CacheLine:
    """Represents a single line in a cache set.

    Only the bookkeeping bits are modelled; the payload has no effect on
    hit/miss or traffic outcomes.
    """
    __slots__ = ("valid", "dirty", "tag", "last_used")

    def __init__(self):
        self.valid = False
        self.dirty = False
        self.tag = 0
        self.last_used = 0

    @property
    def state(self) -> LineState:
        if not self.valid:
            return LineState.INVALID
        return LineState.VALID_DIRTY if self.dirty else LineState.VALID_CLEAN

    def load(self, tag: int, clock: int):
        """Fills the line with a new block. Any previous dirty content is
        discarded; the caller must have written it back already."""
        self.valid = True
        self.dirty = False
        self.tag = tag
        self.last_used = clock

    def mark_dirty(self, clock: int):
        self.dirty = True
        self.last_used = clock

    def touch(self, clock: int):
        self.last_used = clock

    def invalidate(self):
        self.valid = False
        self.dirty = False
        self.tag = 0
        self.last_used = 0

    def matches(self, tag: int) -> bool:
        return self.valid and self.tag == tag

    def snapshot(self) -> LineSnapshot:
        return LineSnapshot(self.valid, self.dirty, self.tag, self.last_used)

    def __repr__(self) -> str:
        return (f"CacheLine(valid={self.valid}, dirty={self.dirty}, "
                f"tag=0x{self.tag:x}, last_used={self.last_used})")
