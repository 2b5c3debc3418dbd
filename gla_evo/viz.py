"""Trait trajectory plots for GLA-Evo results.

Every function:
  - Accepts a SimulationResult, a list of ReplicateResults, a list of
    ResultRecords (e.g. from output.read_results) or a result DataFrame
    (output.load_results_frame)
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from collections import defaultdict
from typing import Dict, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from gla_evo.model import ReplicateResult, SimulationResult
from gla_evo.types import ResultRecord

REPLICATE_COLORS = [
    '#e94560', '#48c9b0', '#f39c12', '#3498db', '#2ecc71',
    '#533483', '#e74c3c', '#f1c40f', '#1abc9c', '#9b59b6',
]

ResultsLike = Union[SimulationResult, Sequence[ReplicateResult],
                    Sequence[ResultRecord], pd.DataFrame]


def _series_by_replicate(results: ResultsLike) -> Dict[int, Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """{replicate_id: (time, mean_b, mean_lmax)}."""
    out = {}
    if isinstance(results, pd.DataFrame):
        for rid, group in results.sort_values('time').groupby('replicate_id'):
            out[int(rid)] = (group['time'].to_numpy(), group['mean_b'].to_numpy(),
                             group['mean_lmax'].to_numpy())
        return out
    if isinstance(results, SimulationResult):
        results = results.replicates
    if len(results) and isinstance(results[0], ReplicateResult):
        for rep in results:
            out[rep.replicate_id] = (rep.time, rep.mean_b, rep.mean_lmax)
        return out
    rows = defaultdict(list)
    for rec in results:
        rows[rec.replicate_id].append((rec.time, rec.mean_b, rec.mean_lmax))
    for rid, vals in rows.items():
        arr = np.array(sorted(vals))
        out[rid] = (arr[:, 0], arr[:, 1], arr[:, 2])
    return out


def save_figure(fig, save_path, dpi=150):
    fig.tight_layout()
    fig.savefig(save_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)


def plot_trait_trajectories(
    results: ResultsLike,
    save_path: Optional[str] = None,
    show_mean: bool = True,
) -> plt.Figure:
    """Mean b and mean lmax over time, one line per replicate.

    Args:
        results: Simulation output.
        save_path: Optional path to save the figure.
        show_mean: Overlay the across-replicate mean (replicates of equal
            length only).

    Returns:
        matplotlib Figure with two stacked axes (b on top, lmax below).
    """
    series = _series_by_replicate(results)
    fig, (ax_b, ax_l) = plt.subplots(2, 1, figsize=(10, 8), sharex=True)

    for k, (rid, (t, b, lmax)) in enumerate(sorted(series.items())):
        color = REPLICATE_COLORS[k % len(REPLICATE_COLORS)]
        alpha = 0.5 if len(series) > 1 else 1.0
        ax_b.plot(t, b, color=color, linewidth=1.0, alpha=alpha,
                  label=f'replicate {rid}' if len(series) <= 10 else None)
        ax_l.plot(t, lmax, color=color, linewidth=1.0, alpha=alpha)

    lengths = {len(v[0]) for v in series.values()}
    if show_mean and len(series) > 1 and len(lengths) == 1:
        t = next(iter(series.values()))[0]
        ax_b.plot(t, np.mean([v[1] for v in series.values()], axis=0),
                  color='black', linewidth=2.0, label='mean')
        ax_l.plot(t, np.mean([v[2] for v in series.values()], axis=0),
                  color='black', linewidth=2.0)

    ax_b.set_ylabel('Mean b (aging rate)', fontsize=12)
    ax_l.set_ylabel('Mean lmax (learning capacity)', fontsize=12)
    ax_l.set_xlabel('Time', fontsize=12)
    ax_b.set_title('Heritable trait trajectories', fontsize=14, fontweight='bold')
    for ax in (ax_b, ax_l):
        ax.grid(True, alpha=0.3, linewidth=0.5)
    if series:
        ax_b.legend(fontsize=9)

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_population_size(
    results: Union[SimulationResult, Sequence[ReplicateResult]],
    carrying_capacity: Optional[int] = None,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Population size over time per replicate, with the cap as a dashed line."""
    if isinstance(results, SimulationResult):
        results = results.replicates
    fig, ax = plt.subplots(figsize=(10, 6))
    for k, rep in enumerate(results):
        ax.plot(rep.time, rep.pop_size,
                color=REPLICATE_COLORS[k % len(REPLICATE_COLORS)],
                linewidth=1.0, label=f'replicate {rep.replicate_id}')
        if rep.extinct and rep.steps_completed:
            ax.plot(rep.time[-1], rep.pop_size[-1], 'x', color='black')
    if carrying_capacity is not None:
        ax.axhline(carrying_capacity, color='grey', linestyle='--',
                   linewidth=1.5, label=f'cap = {carrying_capacity}')
    ax.set_xlabel('Time', fontsize=12)
    ax.set_ylabel('Population size', fontsize=12)
    ax.set_title('Population Size', fontsize=14, fontweight='bold')
    ax.set_ylim(bottom=0)
    ax.grid(True, alpha=0.3, linewidth=0.5)
    if len(results) <= 10:
        ax.legend(fontsize=9)

    if save_path:
        save_figure(fig, save_path)
    return fig
