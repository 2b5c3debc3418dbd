"""Configuration system for GLA-Evo.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → CLI / sweep overrides

Sections map 1:1 to YAML top-level keys. Unknown keys inside a section
are ignored. ``validate_config`` raises ValueError on anything that
would make the run meaningless, before any simulation step runs.

Defaults reproduce the reference run: cap 10 000, Δt = 1, b ~ N(0.07, 0.001),
lmax fixed at 0, mutable b only.
"""

from __future__ import annotations

import copy
import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run length, replication, and the population cap."""
    time_step: float = 1.0
    simulation_time: int = 1000          # number of steps per replicate
    n_replicates: int = 1
    seed: int = 42
    population_cap: int = 10000
    initial_population: Optional[int] = None   # None = start at the cap
    parallel_workers: int = 1            # process pool over replicates


@dataclass
class InitialSection:
    """Initial cohort distributions (mean, sd) and sex ratio."""
    age_mean: float = 20.0
    age_sd: float = 10.0
    b_mean: float = 0.07
    b_sd: float = 0.001
    lmax_mean: float = 0.0
    lmax_sd: float = 0.0
    female_proportion: float = 0.5


@dataclass
class ParametersSection:
    """Baseline parameter vectors and the hazard model.

    aging[1] (b) and learning[0] (lmax) are overwritten per agent.
    """
    hazard_model: str = 'gla'
    aging: List[float] = field(
        default_factory=lambda: [1.15106610e-02, 2.71975789e-02, 4.26805906e-02]
    )
    learning: List[float] = field(
        default_factory=lambda: [2.93238557e-02, 3.94526937e+01, 9.41817943e-02]
    )
    growth: List[float] = field(
        default_factory=lambda: [1.00399978e-01, 9.23916941e-02]
    )
    minimum_mortality: float = 1e-5


@dataclass
class FertilitySection:
    """Fertility curves, normalized by their maximum on [0, search_bound]."""
    model: str = 'brass_polynomial'
    female: List[float] = field(default_factory=lambda: [2.445e-5, 14.8, 32.836])
    male: List[float] = field(default_factory=lambda: [2.445e-5, 14.8, 32.836])
    search_bound: float = 20.0


@dataclass
class MatingSection:
    assortative: bool = True


@dataclass
class MutationSection:
    """Heritable-trait mutation: per-birth probability and normal step sd."""
    mutable_b: bool = True
    mutable_lmax: bool = False
    b_rate: float = 0.02
    lmax_rate: float = 0.02
    b_strength: float = 0.006
    lmax_strength: float = 0.012


@dataclass
class MortalitySection:
    """Forced removal of post-reproductive agents.

    A menopause age of None disables forced removal for that sex.
    """
    force_removal_past_menopause: bool = False
    male_menopause_age: Optional[float] = None
    female_menopause_age: Optional[float] = None


@dataclass
class OutputSection:
    """Output control."""
    path: str = "results/simulation.csv"
    progress: bool = True
    perf: bool = False
    plot_path: Optional[str] = None


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    initial: InitialSection = field(default_factory=InitialSection)
    parameters: ParametersSection = field(default_factory=ParametersSection)
    fertility: FertilitySection = field(default_factory=FertilitySection)
    mating: MatingSection = field(default_factory=MatingSection)
    mutation: MutationSection = field(default_factory=MutationSection)
    mortality: MortalitySection = field(default_factory=MortalitySection)
    output: OutputSection = field(default_factory=OutputSection)

    @property
    def initial_size(self) -> int:
        """Initial population size (the cap unless set explicitly)."""
        n = self.simulation.initial_population
        return self.simulation.population_cap if n is None else n

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'initial': InitialSection,
    'parameters': ParametersSection,
    'fertility': FertilitySection,
    'mating': MatingSection,
    'mutation': MutationSection,
    'mortality': MortalitySection,
    'output': OutputSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def config_from_dict(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig (unvalidated)."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def apply_overrides(config: SimulationConfig, overrides: Dict) -> SimulationConfig:
    """Return a new config with ``overrides`` (nested dict) merged in."""
    merged = deep_merge(copy.deepcopy(config.to_dict()), overrides)
    return config_from_dict(merged)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value}")


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Run control is positive and the initial size fits under the cap
      - Distribution standard deviations are non-negative
      - Probabilities lie in [0, 1]
      - Parameter vectors are long enough for the heritable slots and
        for the selected hazard / fertility models
    """
    from gla_evo.models import FERTILITY_MODELS, HAZARD_MODELS
    from gla_evo.types import B_INDEX, LMAX_INDEX

    s = config.simulation
    _check_positive("simulation.time_step", s.time_step)
    _check_positive("simulation.simulation_time", s.simulation_time)
    _check_positive("simulation.n_replicates", s.n_replicates)
    _check_positive("simulation.population_cap", s.population_cap)
    _check_positive("simulation.parallel_workers", s.parallel_workers)
    if s.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if not 0 <= config.initial_size <= s.population_cap:
        raise ValueError(
            f"simulation.initial_population ({config.initial_size}) must be in "
            f"[0, population_cap={s.population_cap}]"
        )
    if s.parallel_workers > 1 and s.n_replicates == 1:
        warnings.warn(
            "simulation.parallel_workers > 1 has no effect with a single replicate",
            UserWarning,
            stacklevel=2,
        )

    init = config.initial
    _check_non_negative("initial.age_sd", init.age_sd)
    _check_non_negative("initial.b_sd", init.b_sd)
    _check_non_negative("initial.lmax_sd", init.lmax_sd)
    _check_unit_interval("initial.female_proportion", init.female_proportion)
    if init.female_proportion in (0.0, 1.0):
        warnings.warn(
            f"initial.female_proportion={init.female_proportion}: the initial "
            f"cohort is single-sex and cannot reproduce",
            UserWarning,
            stacklevel=2,
        )

    p = config.parameters
    if p.hazard_model not in HAZARD_MODELS:
        raise ValueError(
            f"parameters.hazard_model must be one of {sorted(HAZARD_MODELS)}, "
            f"got '{p.hazard_model}'"
        )
    if len(p.aging) <= B_INDEX:
        raise ValueError(
            f"parameters.aging needs index {B_INDEX} (b), got {len(p.aging)} values"
        )
    if len(p.learning) <= LMAX_INDEX:
        raise ValueError(
            f"parameters.learning needs index {LMAX_INDEX} (lmax), "
            f"got {len(p.learning)} values"
        )
    need = HAZARD_MODELS[p.hazard_model].min_lengths
    for name, vec, n_min in zip(('aging', 'learning', 'growth'),
                                (p.aging, p.learning, p.growth), need):
        if len(vec) < n_min:
            raise ValueError(
                f"parameters.{name} must have at least {n_min} values for "
                f"hazard model '{p.hazard_model}', got {len(vec)}"
            )
    _check_non_negative("parameters.minimum_mortality", p.minimum_mortality)

    f = config.fertility
    if f.model not in FERTILITY_MODELS:
        raise ValueError(
            f"fertility.model must be one of {sorted(FERTILITY_MODELS)}, "
            f"got '{f.model}'"
        )
    n_params = FERTILITY_MODELS[f.model].n_params
    for sex in ('female', 'male'):
        if len(getattr(f, sex)) != n_params:
            raise ValueError(
                f"fertility.{sex} must have {n_params} values for model "
                f"'{f.model}', got {len(getattr(f, sex))}"
            )
    _check_positive("fertility.search_bound", f.search_bound)

    m = config.mutation
    _check_unit_interval("mutation.b_rate", m.b_rate)
    _check_unit_interval("mutation.lmax_rate", m.lmax_rate)
    _check_non_negative("mutation.b_strength", m.b_strength)
    _check_non_negative("mutation.lmax_strength", m.lmax_strength)

    mort = config.mortality
    for name in ('male_menopause_age', 'female_menopause_age'):
        value = getattr(mort, name)
        if value is not None:
            _check_non_negative(f"mortality.{name}", value)
    if (mort.force_removal_past_menopause
            and mort.male_menopause_age is None
            and mort.female_menopause_age is None):
        warnings.warn(
            "mortality.force_removal_past_menopause is set but no menopause "
            "age is given; forced removal never applies",
            UserWarning,
            stacklevel=2,
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        overrides: Optional nested dict (e.g. from CLI flags).

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path (or a given scenario_path) doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = config_from_dict(config_dict)
    validate_config(config)
    return config


def save_config(config: SimulationConfig, path: Union[str, Path]) -> None:
    """Write a config as YAML (round-trips through load_config)."""
    with open(path, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
