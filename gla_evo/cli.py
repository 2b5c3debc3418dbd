"""Command-line entry point.

Usage:
    gla-evo --config configs/default.yaml --replicates 8 --workers 4 \\
            --steps 100000 --output results/run.csv --plot results/run.png

Flags override the YAML layers (base → scenario → flags).
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Dict, List, Optional

from gla_evo import __version__
from gla_evo.config import (
    SimulationConfig,
    apply_overrides,
    default_config,
    load_config,
    save_config,
    validate_config,
)
from gla_evo.model import SimulationResult, build_context, run_simulation
from gla_evo.output import CsvResultSink
from gla_evo.perf import PerfMonitor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gla-evo",
        description="Evolution of aging and learning under selection: "
                    "agent-based replicates writing mean-trait time series.",
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Base YAML config (default: built-in defaults)")
    parser.add_argument("--scenario", type=str, default=None,
                        help="Scenario YAML merged over the base config")
    parser.add_argument("--output", type=str, default=None,
                        help="Result CSV path (overrides output.path)")
    parser.add_argument("--replicates", type=int, default=None,
                        help="Number of replicates")
    parser.add_argument("--steps", type=int, default=None,
                        help="Time steps per replicate")
    parser.add_argument("--seed", type=int, default=None,
                        help="Master RNG seed")
    parser.add_argument("--workers", type=int, default=None,
                        help="Worker processes for replicates")
    parser.add_argument("--cap", type=int, default=None,
                        help="Population cap")
    parser.add_argument("--random-mating", action="store_true",
                        help="Pair at random instead of by age rank")
    parser.add_argument("--no-progress", action="store_true",
                        help="Disable progress bars")
    parser.add_argument("--perf", action="store_true",
                        help="Report per-phase timing at the end")
    parser.add_argument("--plot", type=str, default=None,
                        help="Save a trait trajectory PNG here")
    parser.add_argument("--save-config", type=str, default=None,
                        help="Write the resolved config as YAML here")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="-v for INFO, -vv for DEBUG logging")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict:
    """Nested config dict from the flags that were given."""
    overrides: Dict = {}

    def put(section: str, key: str, value) -> None:
        if value is not None:
            overrides.setdefault(section, {})[key] = value

    put('simulation', 'n_replicates', args.replicates)
    put('simulation', 'simulation_time', args.steps)
    put('simulation', 'seed', args.seed)
    put('simulation', 'parallel_workers', args.workers)
    put('simulation', 'population_cap', args.cap)
    put('output', 'path', args.output)
    put('output', 'plot_path', args.plot)
    if args.random_mating:
        put('mating', 'assortative', False)
    if args.no_progress:
        put('output', 'progress', False)
    if args.perf:
        put('output', 'perf', True)
    return overrides


def resolve_config(args: argparse.Namespace) -> SimulationConfig:
    overrides = overrides_from_args(args)
    if args.config is not None:
        return load_config(args.config, args.scenario, overrides)
    if args.scenario is not None:
        raise ValueError("--scenario requires --config")
    config = apply_overrides(default_config(), overrides)
    validate_config(config)
    return config


def print_summary(result: SimulationResult, elapsed: float) -> None:
    print(f"\n{'Replicate':>9} {'Steps':>8} {'Final N':>8} "
          f"{'Mean b':>10} {'Mean lmax':>10} {'Status':>8}")
    for rep in result.replicates:
        s = rep.final_summary
        status = 'extinct' if rep.extinct else 'ok'
        print(f"{rep.replicate_id:>9} {rep.steps_completed:>8} {rep.final_pop:>8} "
              f"{s.get('mean_b', float('nan')):>10.5f} "
              f"{s.get('mean_lmax', float('nan')):>10.5f} {status:>8}")
    print(f"\n{len(result.replicates)} replicates, {result.n_extinct} extinct, "
          f"{elapsed:.1f}s")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = resolve_config(args)
        ctx = build_context(config)
    except (FileNotFoundError, ValueError) as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 2

    if args.save_config:
        save_config(config, args.save_config)
        print(f"Saved resolved config to {args.save_config}")

    out = config.output
    perf = PerfMonitor(enabled=out.perf)
    t0 = time.time()
    with CsvResultSink(out.path) as sink:
        result = run_simulation(config, sink=sink, progress=out.progress,
                                perf=perf, context=ctx)
    elapsed = time.time() - t0

    print(f"Wrote {sink.n_written} rows to {out.path}")
    print_summary(result, elapsed)
    if out.perf:
        print(perf.report())
    if out.plot_path:
        from gla_evo.viz import plot_trait_trajectories
        plot_trait_trajectories(result, save_path=out.plot_path)
        print(f"Saved trait trajectories to {out.plot_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
