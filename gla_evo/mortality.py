"""Mortality: per-step death probability and survivor compaction.

Death probability over [age, age + Δt] is the integral of the hazard
model over that interval, evaluated with a fixed 5-point Gauss-Legendre
rule. The integral is NOT clamped to [0, 1]: a value above 1 simply
means the uniform draw always kills.

Optional forced removal: when enabled, an agent older than its sex's
menopause age dies unconditionally. A NaN (or None) menopause age
disables the rule for that sex.

Evaluation is a read-only vectorized pass over the whole population
that materializes one boolean per agent; only then is the buffer
mutated (swap-with-last removal, descending indices).
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from gla_evo.models import HazardModel
from gla_evo.population import Population


# ═══════════════════════════════════════════════════════════════════════
# QUADRATURE
# ═══════════════════════════════════════════════════════════════════════

N_QUADRATURE = 5
GL_NODES, GL_WEIGHTS = np.polynomial.legendre.leggauss(N_QUADRATURE)


def _as_menopause(age: Optional[float]) -> float:
    return np.nan if age is None else float(age)


def probability_of_death(
    agent: np.void,
    time_step: float,
    hazard: HazardModel,
) -> float:
    """Integrated hazard over [age, age + time_step] for one agent.

    Args:
        agent: One row of the population's structured array.
        time_step: Step length Δt.
        hazard: Hazard model.

    Returns:
        Raw integral (may exceed 1).
    """
    age = float(agent['age'])
    half = 0.5 * time_step
    x = age + half * (GL_NODES + 1.0)
    h = hazard(x, agent['aging'], agent['learning'], agent['growth'])
    return float(half * np.dot(GL_WEIGHTS, h))


def death_probabilities(
    agents: np.ndarray,
    time_step: float,
    hazard: HazardModel,
) -> np.ndarray:
    """Vectorized probability_of_death over an agent array.

    Args:
        agents: Structured agent array (n,).
        time_step: Step length Δt.
        hazard: Hazard model.

    Returns:
        (n,) float64 array of raw integrals.
    """
    if len(agents) == 0:
        return np.zeros(0, dtype=np.float64)
    half = 0.5 * time_step
    x = agents['age'][:, None] + half * (GL_NODES + 1.0)[None, :]   # (n, 5)
    h = hazard(
        x,
        agents['aging'][:, None, :],
        agents['learning'][:, None, :],
        agents['growth'][:, None, :],
    )
    h = np.broadcast_to(h, x.shape)
    return half * (h @ GL_WEIGHTS)


# ═══════════════════════════════════════════════════════════════════════
# SURVIVAL TEST
# ═══════════════════════════════════════════════════════════════════════

def dies(
    agent: np.void,
    time_step: float,
    hazard: HazardModel,
    rng: np.random.Generator,
    force_removal_past_menopause: bool = False,
    male_menopause_age: Optional[float] = None,
    female_menopause_age: Optional[float] = None,
) -> bool:
    """Stochastic survival test for one agent.

    Returns True if the agent dies during this step.
    """
    if force_removal_past_menopause:
        menopause = _as_menopause(
            female_menopause_age if agent['female'] else male_menopause_age
        )
        if not np.isnan(menopause) and agent['age'] > menopause:
            return True
    return bool(rng.random() < probability_of_death(agent, time_step, hazard))


def death_flags(
    agents: np.ndarray,
    time_step: float,
    hazard: HazardModel,
    rng: np.random.Generator,
    force_removal_past_menopause: bool = False,
    male_menopause_age: Optional[float] = None,
    female_menopause_age: Optional[float] = None,
) -> np.ndarray:
    """Vectorized ``dies`` over an agent array.

    Returns:
        (n,) bool array, True where the agent dies.
    """
    n = len(agents)
    p_death = death_probabilities(agents, time_step, hazard)
    flags = rng.random(n) < p_death
    if force_removal_past_menopause:
        menopause = np.where(
            agents['female'],
            _as_menopause(female_menopause_age),
            _as_menopause(male_menopause_age),
        )
        forced = ~np.isnan(menopause) & (agents['age'] > menopause)
        flags |= forced
    return flags


def apply_mortality(
    population: Population,
    time_step: float,
    hazard: HazardModel,
    rng: np.random.Generator,
    force_removal_past_menopause: bool = False,
    male_menopause_age: Optional[float] = None,
    female_menopause_age: Optional[float] = None,
) -> int:
    """Evaluate every agent, then remove the dead by swap-with-last.

    Row order of the population is not preserved.

    Returns:
        Number of agents removed.
    """
    flags = death_flags(
        population.agents, time_step, hazard, rng,
        force_removal_past_menopause, male_menopause_age, female_menopause_age,
    )
    dead_idx = np.flatnonzero(flags)
    return population.remove(dead_idx)
