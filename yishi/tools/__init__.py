"""Deterministic helpers shared by the game systems."""

from .seed import SeededRandom, hash_string, negotiation_seed, seed_from

__all__ = [
    "SeededRandom",
    "hash_string",
    "negotiation_seed",
    "seed_from",
]
