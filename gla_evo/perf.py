"""Per-phase timing for the simulation step pipeline.

Usage:
    from gla_evo.perf import PerfMonitor

    perf = PerfMonitor(enabled=True)
    with perf.track("death"):
        apply_mortality(...)
    print(perf.report())

When disabled every method is a no-op. Monitors from worker processes
are combined with ``merge``.
"""

from __future__ import annotations

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

PIPELINE_PHASES = ('death', 'reproduction', 'aging', 'statistics', 'emit')


@dataclass
class PhaseStats:
    """Accumulated wall-clock time for one pipeline phase."""
    total_time: float = 0.0
    call_count: int = 0
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1
        self.max_time = max(self.max_time, elapsed)


class PerfMonitor:
    """Wall-clock accounting per named phase."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, PhaseStats] = defaultdict(PhaseStats)

    @contextmanager
    def track(self, phase: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stats[phase].add(time.perf_counter() - t0)

    def get_stats(self) -> Dict[str, PhaseStats]:
        return dict(self._stats)

    def merge(self, others: Iterable[Optional['PerfMonitor']]) -> None:
        """Fold other monitors' totals into this one."""
        for other in others:
            if other is None:
                continue
            for phase, stats in other._stats.items():
                mine = self._stats[phase]
                mine.total_time += stats.total_time
                mine.call_count += stats.call_count
                mine.max_time = max(mine.max_time, stats.max_time)

    def summary(self) -> dict:
        """JSON-serializable per-phase totals, ordered by pipeline position."""
        total = sum(s.total_time for s in self._stats.values())
        result = {}
        for phase in self._ordered():
            stats = self._stats[phase]
            result[phase] = {
                'total_s': round(stats.total_time, 4),
                'calls': stats.call_count,
                'mean_ms': round(stats.mean_time * 1000, 3),
                'pct': round(stats.total_time / total * 100, 1) if total > 0 else 0.0,
            }
        result['_total_s'] = round(total, 4)
        return result

    def report(self, title: str = "Step pipeline timing") -> str:
        total = sum(s.total_time for s in self._stats.values())
        lines = [
            f"\n{'='*56}",
            f" {title}",
            f"{'='*56}",
            f"{'Phase':<16} {'Total (s)':>10} {'Calls':>9} {'Mean (ms)':>10} {'%':>6}",
            f"{'-'*16} {'-'*10} {'-'*9} {'-'*10} {'-'*6}",
        ]
        for phase in self._ordered():
            stats = self._stats[phase]
            pct = stats.total_time / total * 100 if total > 0 else 0.0
            lines.append(
                f"{phase:<16} {stats.total_time:>10.4f} {stats.call_count:>9} "
                f"{stats.mean_time*1000:>10.3f} {pct:>5.1f}%"
            )
        lines.append(f"{'-'*16} {'-'*10} {'-'*9} {'-'*10} {'-'*6}")
        lines.append(f"{'TOTAL':<16} {total:>10.4f}")
        return '\n'.join(lines)

    def _ordered(self):
        known = [p for p in PIPELINE_PHASES if p in self._stats]
        extra = sorted(p for p in self._stats if p not in PIPELINE_PHASES)
        return known + extra
