"""Population container and initial cohort.

The population is an UNORDERED multiset of agents stored in a structured
array allocated at the population cap. Only the first ``len(pop)`` rows
are live. Dead agents are removed by swap-with-last, so row order is not
stable across a mortality pass; callers must never rely on it. The only
place order matters is mating, which re-establishes it every cycle
(sort by age or shuffle).
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from gla_evo.types import (
    B_INDEX,
    LMAX_INDEX,
    BaselineParameters,
    allocate_agents,
)


class Population:
    """Capacity-bounded agent buffer with O(1) removal.

    Args:
        capacity: Maximum number of agents (the population cap).
        baseline: Population-wide parameter vectors; fixes the agent dtype.
    """

    def __init__(self, capacity: int, baseline: BaselineParameters):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self.capacity = int(capacity)
        self.baseline = baseline
        self._agents = allocate_agents(self.capacity, baseline)
        self._n = 0

    def __len__(self) -> int:
        return self._n

    def __repr__(self) -> str:
        return f"Population(n={self._n}, capacity={self.capacity})"

    @property
    def dtype(self) -> np.dtype:
        return self._agents.dtype

    @property
    def agents(self) -> np.ndarray:
        """View of the live agents (rows 0..n-1). Writes go to the buffer."""
        return self._agents[:self._n]

    @property
    def free(self) -> int:
        """Slots left before the cap."""
        return self.capacity - self._n

    # ── Trait views ───────────────────────────────────────────────────

    @property
    def ages(self) -> np.ndarray:
        return self.agents['age']

    @property
    def female(self) -> np.ndarray:
        return self.agents['female']

    @property
    def b(self) -> np.ndarray:
        return self.agents['aging'][:, B_INDEX]

    @property
    def lmax(self) -> np.ndarray:
        return self.agents['learning'][:, LMAX_INDEX]

    def trait(self, name: str) -> np.ndarray:
        """Heritable trait column by name ('b' or 'lmax')."""
        if name == 'b':
            return self.b
        if name == 'lmax':
            return self.lmax
        raise KeyError(f"Unknown trait '{name}'; expected 'b' or 'lmax'")

    # ── Mutation ──────────────────────────────────────────────────────

    def new_agents(self, n: int) -> np.ndarray:
        """Detached array of ``n`` baseline agents (age 0, male)."""
        return allocate_agents(n, self.baseline)

    def append(self, new: np.ndarray) -> None:
        """Append agents at the end of the live region.

        Raises:
            ValueError: If the cap would be exceeded or the dtype differs.
        """
        k = len(new)
        if k == 0:
            return
        if new.dtype != self._agents.dtype:
            raise ValueError("agent dtype does not match population dtype")
        if k > self.free:
            raise ValueError(
                f"cannot append {k} agents: only {self.free} of "
                f"{self.capacity} slots free"
            )
        self._agents[self._n:self._n + k] = new
        self._n += k

    def swap_remove(self, index: int) -> None:
        """Remove one agent by moving the last live agent into its slot."""
        if not 0 <= index < self._n:
            raise IndexError(f"index {index} out of range for {self._n} agents")
        last = self._n - 1
        if index != last:
            self._agents[index] = self._agents[last]
        self._n = last

    def remove(self, indices: Sequence[int]) -> int:
        """Remove the agents at ``indices`` (positions before removal).

        Indices are sorted ascending and processed in descending order so
        every swap pulls a survivor into the hole. Duplicates are ignored.

        Returns:
            Number of agents removed.
        """
        idx = np.unique(np.asarray(indices, dtype=np.int64))
        for i in idx[::-1]:
            self.swap_remove(int(i))
        return len(idx)

    def sort_by_age(self) -> None:
        """Order live agents by ascending age (stable)."""
        order = np.argsort(self.agents['age'], kind='stable')
        self._agents[:self._n] = self.agents[order]

    def shuffle(self, rng: np.random.Generator) -> None:
        """Uniformly permute live agents."""
        perm = rng.permutation(self._n)
        self._agents[:self._n] = self.agents[perm]

    # ── Construction helpers ──────────────────────────────────────────

    @classmethod
    def from_traits(
        cls,
        capacity: int,
        baseline: BaselineParameters,
        ages: Sequence[float],
        female: Sequence[bool],
        b: Optional[Sequence[float]] = None,
        lmax: Optional[Sequence[float]] = None,
    ) -> 'Population':
        """Build a population from per-agent columns.

        Traits default to the baseline values.
        """
        ages = np.asarray(ages, dtype=np.float64)
        n = len(ages)
        pop = cls(capacity, baseline)
        new = pop.new_agents(n)
        new['age'] = ages
        new['female'] = np.asarray(female, dtype=bool)
        if b is not None:
            new['aging'][:, B_INDEX] = b
        if lmax is not None:
            new['learning'][:, LMAX_INDEX] = lmax
        pop.append(new)
        return pop


# ═══════════════════════════════════════════════════════════════════════
# INITIAL COHORT
# ═══════════════════════════════════════════════════════════════════════

def initialize_population(
    n_individuals: int,
    capacity: int,
    baseline: BaselineParameters,
    age_distribution: Sequence[float],
    b_distribution: Sequence[float],
    lmax_distribution: Sequence[float],
    female_proportion: float,
    rng: np.random.Generator,
) -> Population:
    """Draw the initial cohort.

    Per agent:
      age  ~ Normal(mean, sd), floored at 0 and rounded to an integer
      sex  ~ Bernoulli(female_proportion) (True = female)
      b    ~ Normal(mean, sd), floored at 0
      lmax ~ Normal(mean, sd), floored at 0

    Args:
        n_individuals: Number of agents to create.
        capacity: Population cap (must be >= n_individuals).
        baseline: Population-wide parameter vectors.
        age_distribution: (mean, sd) of initial ages.
        b_distribution: (mean, sd) of initial b.
        lmax_distribution: (mean, sd) of initial lmax.
        female_proportion: Probability an initial agent is female.
        rng: Random generator.

    Returns:
        Population of exactly n_individuals agents.

    Raises:
        ValueError: If a standard deviation is negative, the proportion is
            outside [0, 1], or n_individuals exceeds capacity.
    """
    for name, dist in (('age', age_distribution), ('b', b_distribution),
                       ('lmax', lmax_distribution)):
        if len(dist) != 2:
            raise ValueError(f"{name} distribution must be (mean, sd), got {dist}")
        if dist[1] < 0:
            raise ValueError(f"{name} distribution sd must be >= 0, got {dist[1]}")
    if not 0.0 <= female_proportion <= 1.0:
        raise ValueError(
            f"female_proportion must be in [0, 1], got {female_proportion}"
        )
    if n_individuals < 0 or n_individuals > capacity:
        raise ValueError(
            f"n_individuals ({n_individuals}) must be in [0, capacity={capacity}]"
        )

    ages = rng.normal(age_distribution[0], age_distribution[1], size=n_individuals)
    female = rng.random(n_individuals) < female_proportion
    b = np.maximum(
        rng.normal(b_distribution[0], b_distribution[1], size=n_individuals), 0.0
    )
    lmax = np.maximum(
        rng.normal(lmax_distribution[0], lmax_distribution[1], size=n_individuals), 0.0
    )
    return Population.from_traits(capacity, baseline, np.round(np.maximum(ages, 0.0)),
                                  female, b=b, lmax=lmax)
