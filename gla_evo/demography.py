"""Aging and population-level trait statistics."""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

from gla_evo.population import Population
from gla_evo.types import TRAITS, PopulationExtinctError


def increment_age(population: Population, time_step: float) -> None:
    """Advance every live agent's age by ``time_step``."""
    population.agents['age'] += time_step


def trait_stats(population: Population, trait: str) -> Tuple[float, float]:
    """Mean and population (divide-by-n) variance of a heritable trait.

    Args:
        population: Population to summarize.
        trait: 'b' or 'lmax'.

    Returns:
        (mean, variance).

    Raises:
        PopulationExtinctError: If the population is empty.
    """
    if len(population) == 0:
        raise PopulationExtinctError(
            f"cannot compute '{trait}' statistics of an empty population"
        )
    values = population.trait(trait)
    mean = float(values.mean())
    var = float(np.mean((values - mean) ** 2))
    return mean, var


def population_summary(population: Population) -> Dict[str, float]:
    """Size, sex ratio, age and trait moments in one dict.

    Empty populations report n=0 and NaN for everything else.
    """
    n = len(population)
    summary: Dict[str, float] = {'n': n}
    if n == 0:
        summary.update({
            'n_female': 0, 'mean_age': np.nan, 'max_age': np.nan,
            'mean_b': np.nan, 'var_b': np.nan,
            'mean_lmax': np.nan, 'var_lmax': np.nan,
        })
        return summary
    ages = population.ages
    summary['n_female'] = int(population.female.sum())
    summary['mean_age'] = float(ages.mean())
    summary['max_age'] = float(ages.max())
    for trait in TRAITS:
        mean, var = trait_stats(population, trait)
        summary[f'mean_{trait}'] = mean
        summary[f'var_{trait}'] = var
    return summary
