"""Pluggable mortality and fertility models.

The population engine only needs two callables:
  - a hazard model h(age, aging, learning, growth), integrated over each
    time step to obtain a death probability
  - a fertility model f(age, params), normalized to [0, 1] by its maximum

Both are strategy objects injected at configuration time so that no
biological model is hard-coded into the engine.

Broadcasting contract (HazardModel):
  Parameter arrays are indexed along the LAST axis (``aging[..., j]``)
  and the resulting columns must broadcast against ``age``. A single
  agent passes (k,) vectors with scalar or 1-D ages; the vectorized
  mortality pass passes (n, 1, k) parameters with (n, 5) quadrature ages.

Default models:
  GLA hazard = Gompertz-Makeham aging + developmental (growth) mortality
               − learned mortality reduction, floored at minimum_mortality
  Brass polynomial fertility: c (x − d)(d + w − x)² on (d, d + w)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Sequence, Type

import numpy as np
from scipy.optimize import minimize_scalar


# ═══════════════════════════════════════════════════════════════════════
# COMPONENT CURVES
# ═══════════════════════════════════════════════════════════════════════

def aging_gompertz_makeham(x, params):
    """Gompertz-Makeham aging hazard a·exp(b·x) + c, params = [a, b, c]."""
    return params[..., 0] * np.exp(params[..., 1] * x) + params[..., 2]


def learning_logistic(x, params):
    """Logistic learning curve lmax / (1 + exp(−k·(x − x_half))).

    params = [lmax, x_half, k]. Learning reduces mortality, so lmax is the
    largest hazard reduction an agent can achieve.
    """
    lmax = params[..., 0]
    x_half = params[..., 1]
    k = params[..., 2]
    return lmax / (1.0 + np.exp(-k * (x - x_half)))


def growth_exponential(x, params):
    """Developmental mortality g0·exp(−g1·x), params = [g0, g1]."""
    return params[..., 0] * np.exp(-params[..., 1] * x)


def fertility_brass_polynomial(x, params):
    """Brass polynomial fertility c·(x − d)·(d + w − x)² on (d, d + w).

    params = [c, d, w]. Zero outside the reproductive window.
    """
    x = np.asarray(x, dtype=np.float64)
    c, d, w = params[0], params[1], params[2]
    inside = (x > d) & (x < d + w)
    return np.where(inside, c * (x - d) * (d + w - x) ** 2, 0.0)


# ═══════════════════════════════════════════════════════════════════════
# HAZARD MODELS
# ═══════════════════════════════════════════════════════════════════════

class HazardModel(ABC):
    """Instantaneous mortality rate as a function of age and agent parameters."""

    #: Minimum vector lengths this model reads, as (aging, learning, growth).
    min_lengths = (0, 0, 0)

    @abstractmethod
    def evaluate(self, age, aging, learning, growth):
        """Return the hazard at ``age`` (broadcast shape of age and columns)."""

    def __call__(self, age, aging, learning, growth):
        return self.evaluate(age, aging, learning, growth)

    @classmethod
    def from_config(cls, params_cfg) -> 'HazardModel':
        """Build from a ParametersSection."""
        return cls()


class GLAHazard(HazardModel):
    """Growth-learning-aging hazard.

    h(x) = max(aging(x) + growth(x) − learning(x), minimum_mortality)
    """

    min_lengths = (3, 3, 2)

    def __init__(self, minimum_mortality: float = 1e-5):
        if minimum_mortality < 0:
            raise ValueError(
                f"minimum_mortality must be >= 0, got {minimum_mortality}"
            )
        self.minimum_mortality = minimum_mortality

    @classmethod
    def from_config(cls, params_cfg) -> 'GLAHazard':
        return cls(minimum_mortality=params_cfg.minimum_mortality)

    def evaluate(self, age, aging, learning, growth):
        h = (
            aging_gompertz_makeham(age, aging)
            + growth_exponential(age, growth)
            - learning_logistic(age, learning)
        )
        return np.maximum(h, self.minimum_mortality)

    def __repr__(self) -> str:
        return f"GLAHazard(minimum_mortality={self.minimum_mortality!r})"


class GompertzMakehamHazard(HazardModel):
    """Pure Gompertz-Makeham hazard; learning and growth are ignored."""

    min_lengths = (3, 0, 0)

    def evaluate(self, age, aging, learning, growth):
        return aging_gompertz_makeham(age, aging)


HAZARD_MODELS: Dict[str, Type[HazardModel]] = {
    'gla': GLAHazard,
    'gompertz_makeham': GompertzMakehamHazard,
}


# ═══════════════════════════════════════════════════════════════════════
# FERTILITY MODELS
# ═══════════════════════════════════════════════════════════════════════

class FertilityModel(ABC):
    """Age-specific fertility curve."""

    n_params = 0

    @abstractmethod
    def evaluate(self, age, params):
        """Return fertility at ``age`` (scalar or array)."""

    def __call__(self, age, params):
        return self.evaluate(age, params)


class BrassPolynomialFertility(FertilityModel):
    n_params = 3

    def evaluate(self, age, params):
        return fertility_brass_polynomial(age, np.asarray(params, dtype=np.float64))


FERTILITY_MODELS: Dict[str, Type[FertilityModel]] = {
    'brass_polynomial': BrassPolynomialFertility,
}


def find_maximum_fertility(
    model: FertilityModel,
    params: Sequence[float],
    age_bound: float,
    n_grid: int = 1001,
) -> float:
    """Age in [0, age_bound] at which ``model`` peaks.

    A coarse grid locates the best cell, then a bounded Brent search
    refines inside the neighbouring cells. The grid pass keeps curves that
    are flat zero over most of the range (e.g. Brass) from stalling the
    local search.

    Args:
        model: Fertility model.
        params: Model parameters.
        age_bound: Upper end of the search interval (> 0).
        n_grid: Grid resolution for the coarse pass.

    Returns:
        Age of maximum fertility.
    """
    if age_bound <= 0:
        raise ValueError(f"age_bound must be positive, got {age_bound}")
    params = np.asarray(params, dtype=np.float64)
    grid = np.linspace(0.0, age_bound, n_grid)
    values = np.asarray(model(grid, params), dtype=np.float64)
    i_best = int(np.argmax(values))
    lo = grid[max(i_best - 1, 0)]
    hi = grid[min(i_best + 1, n_grid - 1)]

    res = minimize_scalar(
        lambda x: -float(model(x, params)),
        bounds=(lo, hi),
        method='bounded',
        options={'xatol': 1e-8},
    )
    if res.success and -res.fun >= values[i_best]:
        return float(res.x)
    return float(grid[i_best])


class NormalizedFertility:
    """Fertility rescaled so its maximum over [0, age_bound] maps to 1.

    Values are clipped at 1, so ages beyond the search bound with higher
    raw fertility are treated as fully fertile.
    """

    def __init__(
        self,
        model: FertilityModel,
        params: Sequence[float],
        age_bound: float,
    ):
        self.model = model
        self.params = np.asarray(params, dtype=np.float64)
        self.age_at_max = find_maximum_fertility(model, self.params, age_bound)
        self.max_fertility = float(model(self.age_at_max, self.params))
        if not self.max_fertility > 0:
            raise ValueError(
                f"maximum fertility on [0, {age_bound}] is "
                f"{self.max_fertility}; cannot normalize"
            )

    def __call__(self, age):
        raw = np.asarray(self.model(age, self.params), dtype=np.float64)
        return np.minimum(raw / self.max_fertility, 1.0)

    def __repr__(self) -> str:
        return (
            f"NormalizedFertility({type(self.model).__name__}, "
            f"age_at_max={self.age_at_max:.3f}, max={self.max_fertility:.4g})"
        )
