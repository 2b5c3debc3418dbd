"""Seeded RNG factory for reproducible simulations.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between per-replicate streams
  - Bit-exact replay with the same master seed
  - A replicate's stream does not depend on how many replicates run
    or on whether they run serially or in a worker pool

Every sampling call in the package takes one of these generators
explicitly; there is no module-level RNG state.
"""

from __future__ import annotations

from typing import List

import numpy as np


def create_replicate_rngs(
    master_seed: int,
    n_replicates: int,
) -> List[np.random.Generator]:
    """Create one independent RNG stream per replicate.

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_replicates: Number of replicates.

    Returns:
        List of Generators; element i drives replicate i.

    Example:
        >>> rngs = create_replicate_rngs(42, n_replicates=4)
        >>> rngs[0].random()  # reproducible
    """
    return [
        replicate_rng(master_seed, i) for i in range(n_replicates)
    ]


def replicate_rng(master_seed: int, replicate_id: int) -> np.random.Generator:
    """Build the generator for a single replicate.

    Equivalent to ``create_replicate_rngs(master_seed, n)[replicate_id]``
    for any n > replicate_id. Worker processes use this so that only
    (seed, id) pairs cross the process boundary.
    """
    if master_seed < 0:
        raise ValueError(f"master_seed must be non-negative, got {master_seed}")
    if replicate_id < 0:
        raise ValueError(f"replicate_id must be non-negative, got {replicate_id}")
    # Same entropy + spawn_key as SeedSequence(master_seed).spawn(n)[replicate_id]
    child = np.random.SeedSequence(master_seed, spawn_key=(replicate_id,))
    return np.random.Generator(np.random.PCG64(child))
