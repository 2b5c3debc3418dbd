"""Core data types for GLA-Evo.

This module is the SINGLE SOURCE OF TRUTH for:
  - make_agent_dtype(): NumPy structured array dtype for individual agents
  - Heritable slot indices (B_INDEX, LMAX_INDEX)
  - BaselineParameters: population-wide parameter vectors
  - Inter-module data transfer objects (Couples, ResultRecord)
  - PopulationExtinctError

All modules import these types from here. No other module defines agent fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# HERITABLE TRAIT SLOTS
# ═══════════════════════════════════════════════════════════════════════

B_INDEX = 1      # aging[1]: Gompertz-Makeham aging rate b
LMAX_INDEX = 0   # learning[0]: asymptotic learning capacity lmax

TRAITS = ('b', 'lmax')


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class PopulationExtinctError(RuntimeError):
    """Raised when a statistic is requested from an empty population."""


# ═══════════════════════════════════════════════════════════════════════
# BASELINE PARAMETER VECTORS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BaselineParameters:
    """Population-wide aging, learning, and growth vectors.

    Every agent carries a copy of these vectors; only aging[B_INDEX] and
    learning[LMAX_INDEX] differ between agents.
    """
    aging: np.ndarray
    learning: np.ndarray
    growth: np.ndarray

    def __post_init__(self):
        for name in ('aging', 'learning', 'growth'):
            arr = np.array(getattr(self, name), dtype=np.float64)
            if arr.ndim != 1:
                raise ValueError(f"{name} parameters must be a 1-D vector")
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)
        if len(self.aging) <= B_INDEX:
            raise ValueError(
                f"aging parameters need at least {B_INDEX + 1} entries "
                f"(b lives at index {B_INDEX}), got {len(self.aging)}"
            )
        if len(self.learning) <= LMAX_INDEX:
            raise ValueError(
                f"learning parameters need at least {LMAX_INDEX + 1} entries, "
                f"got {len(self.learning)}"
            )

    @classmethod
    def from_lists(
        cls,
        aging: Sequence[float],
        learning: Sequence[float],
        growth: Sequence[float],
    ) -> 'BaselineParameters':
        return cls(np.asarray(aging), np.asarray(learning), np.asarray(growth))

    @property
    def shape(self) -> tuple:
        """(len(aging), len(learning), len(growth))."""
        return (len(self.aging), len(self.learning), len(self.growth))


# ═══════════════════════════════════════════════════════════════════════
# AGENT DTYPE
# ═══════════════════════════════════════════════════════════════════════

def make_agent_dtype(n_aging: int, n_learning: int, n_growth: int) -> np.dtype:
    """Build the agent dtype for the given parameter vector lengths.

    Fields:
        age:       age in model time units (≥ 0)
        female:    True = female, False = male
        aging:     (n_aging,) aging parameters, aging[B_INDEX] heritable
        learning:  (n_learning,) learning parameters, learning[LMAX_INDEX] heritable
        growth:    (n_growth,) growth parameters, never heritable
    """
    return np.dtype([
        ('age',      np.float64),
        ('female',   np.bool_),
        ('aging',    np.float64, (n_aging,)),
        ('learning', np.float64, (n_learning,)),
        ('growth',   np.float64, (n_growth,)),
    ])


def allocate_agents(max_n: int, baseline: BaselineParameters) -> np.ndarray:
    """Allocate a zeroed agent array with baseline vectors pre-filled.

    Args:
        max_n: Array capacity.
        baseline: Population-wide parameter vectors.

    Returns:
        Structured array of shape (max_n,).
    """
    agents = np.zeros(max_n, dtype=make_agent_dtype(*baseline.shape))
    agents['aging'][:] = baseline.aging
    agents['learning'][:] = baseline.learning
    agents['growth'][:] = baseline.growth
    return agents


# ═══════════════════════════════════════════════════════════════════════
# INTER-MODULE DATA TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Couples:
    """Male/female pairings for one reproduction pass.

    Index arrays point into the population as ordered at formation time.
    Couples own no agents and are invalid once the population is mutated.
    """
    male_idx: np.ndarray     # (n_couples,) int
    female_idx: np.ndarray   # (n_couples,) int
    n_unmatched: int = 0     # agents of the larger sex left without a partner

    def __len__(self) -> int:
        return len(self.male_idx)


@dataclass(frozen=True)
class ResultRecord:
    """One output row per simulated step per replicate.

    Field order is the CSV column order.
    """
    mean_b: float
    mean_lmax: float
    time: float
    replicate_id: int


RESULT_FIELDS = ('mean_b', 'mean_lmax', 'time', 'replicate_id')
