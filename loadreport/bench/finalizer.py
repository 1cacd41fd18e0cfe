import math
from datetime import timedelta
from typing import Union

from loadreport.bench.aggregator import Aggregator
from loadreport.bench.snapshot import Snapshot, Totals, build_snapshot
from loadreport.bench.types import PHASES

Elapsed = Union[float, timedelta]


def _div(a: float, b: float) -> float:
    # float division with IEEE results for a zero divisor: x/0 -> +-inf, 0/0 -> nan
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _seconds(total: Elapsed) -> float:
    if isinstance(total, timedelta):
        return total.total_seconds()
    return float(total)


class Finalizer:
    """Turns an Aggregator's running sums into averages and throughput."""

    def __init__(self, aggregator: Aggregator) -> None:
        self.aggregator = aggregator

    def totals(self, total: Elapsed) -> Totals:
        agg = self.aggregator
        seconds = _seconds(total)
        n = agg.num_successes
        # No successes or a zero elapsed time give nan/inf here; reports show them as is.
        return Totals(
            total=seconds,
            rps=_div(n, seconds),
            average=_div(agg.duration_sum, n),
            phase_averages={p: _div(agg.phase_sums[p], n) for p in PHASES},
        )

    def finalize(self, total: Elapsed) -> Snapshot:
        return build_snapshot(self.aggregator, self.totals(total))
