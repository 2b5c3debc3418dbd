"""Simulation loop: one replicate, and batches of replicates.

Per step, strictly in this order:
  1. Death        : integrated-hazard survival test, swap-remove the dead
  2. Reproduction : mating, fertility, heredity + mutation, cap
  3. Aging        : age += Δt for every survivor and newborn
  4. Statistics   : mean/variance of b and lmax
  5. Emit         : ResultRecord(mean_b, mean_lmax, step × Δt, replicate_id)

An empty population after aging is an extinction: the replicate stops
early, the event is logged, and no NaN row is emitted. Other replicates
in the batch are unaffected.

Replicates are independent: each owns its population and its RNG stream
(rng.replicate_rng(seed, replicate_id)), so a batch gives identical
results whether it runs serially or on a process pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from multiprocessing import Pool
from typing import Callable, Dict, List, Optional

import numpy as np
from tqdm import tqdm

from gla_evo.config import SimulationConfig, validate_config
from gla_evo.demography import increment_age, population_summary, trait_stats
from gla_evo.models import (
    FERTILITY_MODELS,
    HAZARD_MODELS,
    HazardModel,
    NormalizedFertility,
)
from gla_evo.mortality import apply_mortality
from gla_evo.perf import PerfMonitor
from gla_evo.population import Population, initialize_population
from gla_evo.reproduction import ReproductionOutcome, apply_reproduction
from gla_evo.rng import replicate_rng
from gla_evo.types import BaselineParameters, PopulationExtinctError, ResultRecord

logger = logging.getLogger(__name__)

Sink = Callable[[ResultRecord], None]


# ═══════════════════════════════════════════════════════════════════════
# RUN CONTEXT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationContext:
    """Models and vectors shared by every replicate of a run."""
    config: SimulationConfig
    baseline: BaselineParameters
    hazard: HazardModel
    male_fertility: NormalizedFertility
    female_fertility: NormalizedFertility


def build_context(config: SimulationConfig) -> SimulationContext:
    """Validate the config and build the hazard and fertility models.

    Raises:
        ValueError: On any configuration error, before a step runs.
    """
    validate_config(config)
    p = config.parameters
    baseline = BaselineParameters.from_lists(p.aging, p.learning, p.growth)
    hazard = HAZARD_MODELS[p.hazard_model].from_config(p)

    f = config.fertility
    fert_model = FERTILITY_MODELS[f.model]()
    male = NormalizedFertility(fert_model, f.male, f.search_bound)
    female = NormalizedFertility(fert_model, f.female, f.search_bound)
    logger.debug("male fertility %r, female fertility %r", male, female)

    return SimulationContext(
        config=config,
        baseline=baseline,
        hazard=hazard,
        male_fertility=male,
        female_fertility=female,
    )


def make_initial_population(
    ctx: SimulationContext,
    rng: np.random.Generator,
) -> Population:
    """Initial cohort as configured."""
    cfg = ctx.config
    init = cfg.initial
    return initialize_population(
        n_individuals=cfg.initial_size,
        capacity=cfg.simulation.population_cap,
        baseline=ctx.baseline,
        age_distribution=(init.age_mean, init.age_sd),
        b_distribution=(init.b_mean, init.b_sd),
        lmax_distribution=(init.lmax_mean, init.lmax_sd),
        female_proportion=init.female_proportion,
        rng=rng,
    )


# ═══════════════════════════════════════════════════════════════════════
# ONE STEP
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StepOutcome:
    """Counts and statistics from one pipeline step."""
    n_deaths: int
    reproduction: ReproductionOutcome
    n_alive: int
    mean_b: float
    var_b: float
    mean_lmax: float
    var_lmax: float


def simulation_step(
    population: Population,
    ctx: SimulationContext,
    rng: np.random.Generator,
    perf: Optional[PerfMonitor] = None,
) -> StepOutcome:
    """Death → reproduction → aging → statistics, in place.

    Raises:
        PopulationExtinctError: If no agent is left for statistics.
    """
    if perf is None:
        perf = PerfMonitor(enabled=False)
    cfg = ctx.config
    dt = cfg.simulation.time_step
    mort = cfg.mortality

    with perf.track("death"):
        n_deaths = apply_mortality(
            population, dt, ctx.hazard, rng,
            force_removal_past_menopause=mort.force_removal_past_menopause,
            male_menopause_age=mort.male_menopause_age,
            female_menopause_age=mort.female_menopause_age,
        )

    with perf.track("reproduction"):
        repro = apply_reproduction(
            population,
            ctx.male_fertility,
            ctx.female_fertility,
            cfg.mutation,
            rng,
            assortative=cfg.mating.assortative,
            cap=cfg.simulation.population_cap,
        )

    with perf.track("aging"):
        increment_age(population, dt)

    with perf.track("statistics"):
        mean_b, var_b = trait_stats(population, 'b')
        mean_lmax, var_lmax = trait_stats(population, 'lmax')

    return StepOutcome(
        n_deaths=n_deaths,
        reproduction=repro,
        n_alive=len(population),
        mean_b=mean_b,
        var_b=var_b,
        mean_lmax=mean_lmax,
        var_lmax=var_lmax,
    )


# ═══════════════════════════════════════════════════════════════════════
# ONE REPLICATE
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ReplicateResult:
    """Per-step time series of one replicate.

    Arrays have one entry per completed step; an extinct replicate has
    fewer entries than n_steps.
    """
    replicate_id: int = 0
    n_steps: int = 0
    time_step: float = 1.0
    time: Optional[np.ndarray] = None
    mean_b: Optional[np.ndarray] = None
    var_b: Optional[np.ndarray] = None
    mean_lmax: Optional[np.ndarray] = None
    var_lmax: Optional[np.ndarray] = None
    pop_size: Optional[np.ndarray] = None
    deaths: Optional[np.ndarray] = None
    births: Optional[np.ndarray] = None
    couples: Optional[np.ndarray] = None
    unmatched: Optional[np.ndarray] = None
    dropped_over_cap: Optional[np.ndarray] = None

    initial_pop: int = 0
    final_pop: int = 0
    extinct: bool = False
    extinction_step: Optional[int] = None
    final_summary: Dict[str, float] = field(default_factory=dict)
    perf: Optional[PerfMonitor] = None

    @property
    def steps_completed(self) -> int:
        return 0 if self.time is None else len(self.time)

    def records(self) -> List[ResultRecord]:
        """Output rows in step order."""
        return [
            ResultRecord(
                mean_b=float(self.mean_b[i]),
                mean_lmax=float(self.mean_lmax[i]),
                time=float(self.time[i]),
                replicate_id=self.replicate_id,
            )
            for i in range(self.steps_completed)
        ]


def run_replicate(
    ctx: SimulationContext,
    replicate_id: int = 0,
    rng: Optional[np.random.Generator] = None,
    sink: Optional[Sink] = None,
    perf: Optional[PerfMonitor] = None,
    progress: bool = False,
    population: Optional[Population] = None,
) -> ReplicateResult:
    """Run one replicate to completion or extinction.

    Args:
        ctx: Run context from build_context().
        replicate_id: Replicate index (tags output rows, selects RNG stream).
        rng: Generator; defaults to the replicate's stream of the config seed.
        sink: Optional callable receiving one ResultRecord per step.
        perf: Optional per-phase profiler.
        progress: Show a tqdm bar over steps.
        population: Starting population; defaults to a fresh initial cohort.

    Returns:
        ReplicateResult.
    """
    sim = ctx.config.simulation
    n_steps = sim.simulation_time
    dt = sim.time_step
    if rng is None:
        rng = replicate_rng(sim.seed, replicate_id)
    if perf is None:
        perf = PerfMonitor(enabled=False)
    if population is None:
        population = make_initial_population(ctx, rng)

    series = {
        name: np.zeros(n_steps, dtype=np.float64)
        for name in ('time', 'mean_b', 'var_b', 'mean_lmax', 'var_lmax')
    }
    counts = {
        name: np.zeros(n_steps, dtype=np.int64)
        for name in ('pop_size', 'deaths', 'births', 'couples',
                     'unmatched', 'dropped_over_cap')
    }

    initial_pop = len(population)
    logger.info("replicate %d: start with %d agents, %d steps",
                replicate_id, initial_pop, n_steps)

    completed = 0
    extinction_step = None
    steps = tqdm(range(n_steps), desc=f"replicate {replicate_id}",
                 disable=not progress, leave=False)
    for step in steps:
        try:
            out = simulation_step(population, ctx, rng, perf)
        except PopulationExtinctError:
            extinction_step = step
            logger.warning("replicate %d extinct at step %d (t=%g)",
                           replicate_id, step, step * dt)
            break

        t = step * dt
        series['time'][step] = t
        series['mean_b'][step] = out.mean_b
        series['var_b'][step] = out.var_b
        series['mean_lmax'][step] = out.mean_lmax
        series['var_lmax'][step] = out.var_lmax
        counts['pop_size'][step] = out.n_alive
        counts['deaths'][step] = out.n_deaths
        counts['births'][step] = out.reproduction.n_births
        counts['couples'][step] = out.reproduction.n_couples
        counts['unmatched'][step] = out.reproduction.n_unmatched
        counts['dropped_over_cap'][step] = out.reproduction.n_dropped

        with perf.track("emit"):
            if sink is not None:
                sink(ResultRecord(out.mean_b, out.mean_lmax, t, replicate_id))
        completed = step + 1

        logger.debug(
            "replicate %d step %d: n=%d deaths=%d births=%d couples=%d",
            replicate_id, step, out.n_alive, out.n_deaths,
            out.reproduction.n_births, out.reproduction.n_couples,
        )
    steps.close()

    result = ReplicateResult(
        replicate_id=replicate_id,
        n_steps=n_steps,
        time_step=dt,
        initial_pop=initial_pop,
        final_pop=len(population),
        extinct=extinction_step is not None,
        extinction_step=extinction_step,
        final_summary=population_summary(population),
        perf=perf if perf.enabled else None,
        **{k: v[:completed] for k, v in series.items()},
        **{k: v[:completed] for k, v in counts.items()},
    )
    logger.info("replicate %d: done after %d steps, final population %d%s",
                replicate_id, completed, result.final_pop,
                " (extinct)" if result.extinct else "")
    return result


# ═══════════════════════════════════════════════════════════════════════
# REPLICATE BATCH
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """All replicates of one run, in replicate order."""
    replicates: List[ReplicateResult] = field(default_factory=list)

    @property
    def n_extinct(self) -> int:
        return sum(r.extinct for r in self.replicates)

    def records(self) -> List[ResultRecord]:
        rows: List[ResultRecord] = []
        for rep in self.replicates:
            rows.extend(rep.records())
        return rows


def _run_replicate_task(args) -> ReplicateResult:
    """Pool entry point: (config, replicate_id, perf_enabled)."""
    config, replicate_id, perf_enabled = args
    ctx = build_context(config)
    return run_replicate(ctx, replicate_id,
                         perf=PerfMonitor(enabled=perf_enabled))


def run_simulation(
    config: SimulationConfig,
    sink: Optional[Sink] = None,
    progress: bool = False,
    perf: Optional[PerfMonitor] = None,
    context: Optional[SimulationContext] = None,
) -> SimulationResult:
    """Run every replicate of ``config``.

    With ``simulation.parallel_workers == 1`` replicates run in turn and
    rows stream to ``sink`` as they are produced. Otherwise a process pool
    runs them and each replicate's rows are written, in step order, as the
    replicate finishes (replicates are written in replicate order).

    Args:
        config: Simulation configuration.
        sink: Optional callable receiving every ResultRecord.
        progress: Show tqdm progress (per step serially, per replicate pooled).
        perf: Optional profiler; pooled per-worker timings are merged into it.
        context: Context already built from ``config`` by build_context.

    Returns:
        SimulationResult.
    """
    ctx = context if context is not None else build_context(config)
    sim = config.simulation
    ids = list(range(sim.n_replicates))
    result = SimulationResult()

    if sim.parallel_workers == 1 or len(ids) == 1:
        for rid in ids:
            rep = run_replicate(ctx, rid, sink=sink, perf=perf, progress=progress)
            result.replicates.append(rep)
        return result

    perf_enabled = perf is not None and perf.enabled
    tasks = [(config, rid, perf_enabled) for rid in ids]
    n_workers = min(sim.parallel_workers, len(ids))
    logger.info("running %d replicates on %d workers", len(ids), n_workers)
    with Pool(processes=n_workers) as pool:
        for rep in tqdm(pool.imap(_run_replicate_task, tasks), total=len(ids),
                        desc="replicates", disable=not progress):
            if sink is not None:
                for record in rep.records():
                    sink(record)
            result.replicates.append(rep)
    if perf_enabled:
        perf.merge(rep.perf for rep in result.replicates)
    return result
