from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

from loadreport.bench.metrics import histogram, latency_distribution
from loadreport.bench.types import PHASES, Bucket, LatencyDistribution


def _empty() -> Mapping[Any, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class PhaseStats:
    # NOTE: "max" is the smallest sample and "min" the largest. Report
    # consumers depend on these values, so the naming stays as is.
    average: float = 0.0
    max: float = 0.0
    min: float = 0.0


@dataclass(frozen=True)
class Totals:
    """Scalars computed by the Finalizer."""
    total: float
    rps: float
    average: float
    phase_averages: Mapping[str, float]


@dataclass(frozen=True)
class Snapshot:
    """Immutable, fully computed report handed to the renderers."""
    total: float = 0.0
    rps: float = 0.0
    average: float = 0.0
    fastest: float = 0.0
    slowest: float = 0.0
    duration_sum: float = 0.0

    num_results: int = 0
    num_successes: int = 0
    size_total: int = 0
    size_req: int = 0

    phases: Mapping[str, PhaseStats] = field(default_factory=_empty)

    lats: Tuple[float, ...] = ()
    phase_lats: Mapping[str, Tuple[float, ...]] = field(default_factory=_empty)
    status_codes: Tuple[int, ...] = ()
    offsets: Tuple[float, ...] = ()

    error_dist: Mapping[str, int] = field(default_factory=_empty)
    status_code_dist: Mapping[int, int] = field(default_factory=_empty)
    latency_distribution: Tuple[LatencyDistribution, ...] = ()
    histogram: Tuple[Bucket, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "rps": self.rps,
            "average": self.average,
            "fastest": self.fastest,
            "slowest": self.slowest,
            "duration_sum": self.duration_sum,
            "num_results": self.num_results,
            "num_successes": self.num_successes,
            "size_total": self.size_total,
            "size_req": self.size_req,
            "phases": {
                name: {"average": s.average, "max": s.max, "min": s.min}
                for name, s in self.phases.items()
            },
            "error_dist": dict(self.error_dist),
            "status_code_dist": {str(code): n for code, n in self.status_code_dist.items()},
            "latency_distribution": [
                {"percentage": d.percentage, "latency": d.latency}
                for d in self.latency_distribution
            ],
            "histogram": [
                {"mark": b.mark, "count": b.count, "frequency": b.frequency}
                for b in self.histogram
            ],
            "lats": list(self.lats),
            "phase_lats": {name: list(v) for name, v in self.phase_lats.items()},
            "status_codes": list(self.status_codes),
            "offsets": list(self.offsets),
        }


def build_snapshot(agg, totals: Totals) -> Snapshot:
    """
    Freeze an Aggregator's state into a Snapshot.

    Retained sequences are copied in arrival order first. Order statistics
    come from sorted private copies, so the aggregator's own lists are never
    reordered.
    """
    lats = tuple(agg.lats)
    phase_lats = {p: tuple(agg.phase_lats[p]) for p in PHASES}
    status_codes = tuple(agg.status_codes)
    offsets = tuple(agg.offsets)

    values: Dict[str, Any] = dict(
        total=totals.total,
        rps=totals.rps,
        average=totals.average,
        duration_sum=agg.duration_sum,
        num_results=agg.num_results,
        num_successes=agg.num_successes,
        size_total=agg.size_total,
        lats=lats,
        phase_lats=MappingProxyType(phase_lats),
        status_codes=status_codes,
        offsets=offsets,
        error_dist=MappingProxyType(dict(agg.error_dist)),
    )

    if not lats:
        values["phases"] = MappingProxyType(
            {p: PhaseStats(average=totals.phase_averages[p]) for p in PHASES}
        )
        return Snapshot(**values)

    values["size_req"] = agg.size_total // len(lats)

    sorted_lats = sorted(lats)
    fastest = sorted_lats[0]
    slowest = sorted_lats[-1]

    phases = {}
    for p in PHASES:
        ordered = sorted(phase_lats[p])
        phases[p] = PhaseStats(
            average=totals.phase_averages[p],
            max=ordered[0],
            min=ordered[-1],
        )

    values.update(
        fastest=fastest,
        slowest=slowest,
        phases=MappingProxyType(phases),
        status_code_dist=MappingProxyType(dict(Counter(status_codes))),
        latency_distribution=tuple(latency_distribution(sorted_lats)),
        histogram=tuple(histogram(sorted_lats, fastest, slowest)),
    )
    return Snapshot(**values)
