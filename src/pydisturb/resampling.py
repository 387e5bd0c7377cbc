"""
Seeded resampling helpers.

Every bootstrap replicate gets its own ``numpy.random.Generator`` derived
from the global seed, the identity of the group being resampled and the
replicate index. Results therefore do not depend on the order in which
groups or replicates are processed.
"""
import zlib
from typing import Callable, Hashable, List, Sequence, TypeVar

import numpy as np

__all__ = ['group_key', 'replicate_generators', 'map_replicates', 'resample_indices', 'resample']

T = TypeVar('T')


def group_key(key: Hashable) -> int:
    """Stable 32-bit integer for a group identifier (tuple, string or number)."""
    if not isinstance(key, tuple):
        key = (key,)
    text = "\x1f".join(str(part) for part in key)
    return zlib.crc32(text.encode('utf-8'))


def replicate_generators(seed: int, n: int, key: Hashable = ()) -> List[np.random.Generator]:
    """Independent generators for ``n`` replicates of one group.

    Args:
        seed: Global seed
        n: Number of replicates
        key: Group identifier mixed into the seed sequence

    Returns:
        List of generators, one per replicate index
    """
    root = np.random.SeedSequence(seed, spawn_key=(group_key(key),))
    return [np.random.default_rng(child) for child in root.spawn(n)]


def map_replicates(func: Callable[[int, np.random.Generator], T], seed: int, n: int,
                   key: Hashable = ()) -> List[T]:
    """Apply ``func(rep, rng)`` to every replicate index with its own generator."""
    return [func(rep, rng) for rep, rng in enumerate(replicate_generators(seed, n, key))]


def resample_indices(rng: np.random.Generator, population: int, size: int) -> np.ndarray:
    """Draw ``size`` positions from ``range(population)`` with replacement."""
    return rng.integers(0, population, size=size)


def resample(rng: np.random.Generator, units: Sequence[T], size: int) -> List[T]:
    """Draw ``size`` units with replacement."""
    return [units[i] for i in resample_indices(rng, len(units), size)]
