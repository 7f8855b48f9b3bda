"""
Deterministic randomness for YISHI.

A string seed is hashed to 32 bits and fed to a mulberry32 generator, so the
same seed string always yields the same sequence of floats in [0, 1).
Used to pick phrasing variants and shuffle option order without losing
reproducibility across save/load.
"""

import json
from typing import Any, Callable, Mapping, MutableSequence, Sequence, TypeVar

T = TypeVar("T")

RandomGenerator = Callable[[], float]

_MASK = 0xFFFFFFFF


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply, result as unsigned bits."""
    return ((a & _MASK) * (b & _MASK)) & _MASK


def _utf16_units(source: str) -> list[int]:
    raw = source.encode("utf-16-le")
    return [raw[i] | (raw[i + 1] << 8) for i in range(0, len(raw), 2)]


def hash_string(source: str) -> int:
    """Stable 32-bit hash of a string (cyrb-style mixing over UTF-16 units)."""
    units = _utf16_units(source)
    h = (1779033703 ^ len(units)) & _MASK
    for unit in units:
        h = _imul(h ^ unit, 3432918353)
        h = ((h << 13) | (h >> 19)) & _MASK
    h = _imul(h ^ (h >> 16), 2246822507)
    h = _imul(h ^ (h >> 13), 3266489909)
    return (h ^ (h >> 16)) & _MASK


def seed_from(seed_source: str) -> RandomGenerator:
    """
    Build a reproducible generator (mulberry32) from a seed string.

    Returns:
        Zero-argument callable producing floats in [0, 1)
    """
    state = hash_string(seed_source or "")

    def random() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & _MASK
        t = _imul(state ^ (state >> 15), 1 | state)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK) ^ t
        return ((t ^ (t >> 14)) & _MASK) / 4294967296

    return random


class SeededRandom:
    """Convenience wrapper with the few helpers the game needs."""

    def __init__(self, seed_source: str):
        self.seed_source = seed_source
        self._next = seed_from(seed_source)

    def random(self) -> float:
        return self._next()

    def randint(self, low: int, high: int) -> int:
        """Inclusive on both ends."""
        return low + int(self._next() * (high - low + 1))

    def choice(self, seq: Sequence[T]) -> T:
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[int(self._next() * len(seq))]

    def shuffle(self, items: Sequence[T]) -> list[T]:
        """Fisher-Yates shuffle into a new list."""
        result: MutableSequence[T] = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = int(self._next() * (i + 1))
            result[i], result[j] = result[j], result[i]
        return list(result)


def negotiation_seed(spirit_id: str, step: int, flags: Mapping[str, Any]) -> str:
    """
    Build the seed string for one negotiation turn.

    Only the reproducible inputs are used: the spirit, its conversation step
    counter and a sorted snapshot of the relevant flags.
    """
    snapshot = json.dumps(sorted(flags.items()), ensure_ascii=False, default=str)
    return f"{spirit_id}#{step}#{snapshot}"
