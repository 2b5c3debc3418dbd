"""Mating, fertility, heredity with mutation, and the population cap.

One reproduction pass:
  1. Order the population: ascending age (assortative) or uniform shuffle
  2. Pair the i-th male with the i-th female; the surplus of the larger
     sex stays unpaired this cycle
  3. Fertility test per couple: two independent Bernoulli trials on the
     normalized male and female fertility at their current ages
  4. One child per successful couple. Heritable traits (b, lmax) are the
     parental mean, optionally mutated; sex ~ Bernoulli(0.5); age = 0;
     every other parameter comes from the baseline vectors
  5. Shuffle the new cohort and truncate it to the free room under the cap

Truncation (unmatched agents, overflow children) is silent by policy;
the counts are returned in ReproductionOutcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from gla_evo.config import MutationSection
from gla_evo.population import Population
from gla_evo.types import B_INDEX, LMAX_INDEX, Couples

FertilityFn = Callable[[np.ndarray], np.ndarray]


@dataclass
class ReproductionOutcome:
    """Counts from one reproduction pass."""
    n_couples: int = 0
    n_unmatched: int = 0      # agents left without a partner
    n_fertile: int = 0        # couples passing the fertility test
    n_births: int = 0         # children actually added
    n_dropped: int = 0        # children discarded by the cap


# ═══════════════════════════════════════════════════════════════════════
# PAIRING
# ═══════════════════════════════════════════════════════════════════════

def form_couples(population: Population) -> Couples:
    """Zip males and females in current population order.

    Returns:
        Couples with min(#males, #females) pairs.
    """
    female = population.female
    female_idx = np.flatnonzero(female)
    male_idx = np.flatnonzero(~female)
    n_pairs = min(len(male_idx), len(female_idx))
    return Couples(
        male_idx=male_idx[:n_pairs],
        female_idx=female_idx[:n_pairs],
        n_unmatched=abs(len(male_idx) - len(female_idx)),
    )


def fertility_test(
    population: Population,
    couples: Couples,
    male_fertility: FertilityFn,
    female_fertility: FertilityFn,
    rng: np.random.Generator,
) -> np.ndarray:
    """Independent male and female Bernoulli trials per couple.

    Returns:
        (n_couples,) bool array, True where the couple conceives.
    """
    n = len(couples)
    ages = population.ages
    u_male = rng.random(n)
    u_female = rng.random(n)
    p_male = male_fertility(ages[couples.male_idx])
    p_female = female_fertility(ages[couples.female_idx])
    return (u_male < p_male) & (u_female < p_female)


# ═══════════════════════════════════════════════════════════════════════
# HEREDITY
# ═══════════════════════════════════════════════════════════════════════

def mutate_trait(
    value: Union[float, np.ndarray],
    mutation_rate: float,
    mutation_strength: float,
    rng: np.random.Generator,
) -> Union[float, np.ndarray]:
    """With probability mutation_rate, resample from Normal(value, strength).

    Mutated values are floored at 0. Works elementwise on arrays; a scalar
    input returns a float.
    """
    arr = np.asarray(value, dtype=np.float64)
    hit = rng.random(arr.shape) < mutation_rate
    if not np.any(hit):
        return float(arr) if arr.ndim == 0 else arr.copy()
    drawn = np.maximum(rng.normal(arr, mutation_strength), 0.0)
    out = np.where(hit, drawn, arr)
    return float(out) if out.ndim == 0 else out


def reproduce(
    population: Population,
    couples: Couples,
    mutation_cfg: MutationSection,
    rng: np.random.Generator,
) -> np.ndarray:
    """One child per couple.

    Args:
        population: Parents' population (indexed by ``couples``).
        couples: Couples that conceive.
        mutation_cfg: Which traits mutate, and how.
        rng: Random generator.

    Returns:
        Detached agent array of len(couples) newborns.
    """
    n = len(couples)
    children = population.new_agents(n)
    if n == 0:
        return children

    b = population.b
    lmax = population.lmax
    child_b = 0.5 * (b[couples.male_idx] + b[couples.female_idx])
    if mutation_cfg.mutable_b:
        child_b = mutate_trait(child_b, mutation_cfg.b_rate,
                               mutation_cfg.b_strength, rng)
    child_lmax = 0.5 * (lmax[couples.male_idx] + lmax[couples.female_idx])
    if mutation_cfg.mutable_lmax:
        child_lmax = mutate_trait(child_lmax, mutation_cfg.lmax_rate,
                                  mutation_cfg.lmax_strength, rng)

    children['age'] = 0.0
    children['female'] = rng.random(n) < 0.5
    children['aging'][:, B_INDEX] = child_b
    children['learning'][:, LMAX_INDEX] = child_lmax
    return children


# ═══════════════════════════════════════════════════════════════════════
# FULL PASS
# ═══════════════════════════════════════════════════════════════════════

def apply_reproduction(
    population: Population,
    male_fertility: FertilityFn,
    female_fertility: FertilityFn,
    mutation_cfg: MutationSection,
    rng: np.random.Generator,
    assortative: bool = True,
    cap: Optional[int] = None,
) -> ReproductionOutcome:
    """Run mating and reproduction in place.

    Args:
        population: Population to reproduce (reordered, then extended).
        male_fertility: Normalized male fertility, age → [0, 1].
        female_fertility: Normalized female fertility, age → [0, 1].
        mutation_cfg: Mutation settings.
        rng: Random generator.
        assortative: Pair by age rank if True, at random otherwise.
        cap: Population cap; defaults to the population's capacity.

    Returns:
        ReproductionOutcome with pairing and birth counts.
    """
    if cap is None:
        cap = population.capacity
    if cap > population.capacity:
        raise ValueError(
            f"cap ({cap}) exceeds population capacity ({population.capacity})"
        )

    if assortative:
        population.sort_by_age()
    else:
        population.shuffle(rng)

    couples = form_couples(population)
    fertile = fertility_test(population, couples, male_fertility,
                             female_fertility, rng)
    parents = Couples(
        male_idx=couples.male_idx[fertile],
        female_idx=couples.female_idx[fertile],
    )
    children = reproduce(population, parents, mutation_cfg, rng)
    children = children[rng.permutation(len(children))]

    room = max(cap - len(population), 0)
    n_dropped = max(len(children) - room, 0)
    if n_dropped:
        children = children[:room]
    population.append(children)

    return ReproductionOutcome(
        n_couples=len(couples),
        n_unmatched=couples.n_unmatched,
        n_fertile=int(fertile.sum()),
        n_births=len(children),
        n_dropped=n_dropped,
    )
