from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Dict, List

from loadreport.bench.feed import ResultFeed
from loadreport.bench.types import MAX_RETAINED, PHASES, Result

logger = logging.getLogger(__name__)


class Aggregator:
    """
    Single consumer of a ResultFeed.

    Running sums cover every success; the raw samples used for order
    statistics are kept only up to max_retained. All retained lists are
    parallel: index k of each one belongs to the same request.

    Only the thread running run() touches this state, so there is no locking.
    """

    def __init__(self, feed: ResultFeed, expected: int = 0, max_retained: int = MAX_RETAINED) -> None:
        self.feed = feed
        self.max_retained = max_retained
        self.capacity = min(expected, max_retained)
        self.done = threading.Event()

        self.num_results = 0
        self.num_successes = 0
        self.size_total = 0
        self.error_dist: Counter[str] = Counter()

        self.duration_sum = 0.0
        self.phase_sums: Dict[str, float] = dict.fromkeys(PHASES, 0.0)

        self.lats: List[float] = []
        self.phase_lats: Dict[str, List[float]] = {p: [] for p in PHASES}
        self.status_codes: List[int] = []
        self.offsets: List[float] = []

    def ingest(self, result: Result) -> None:
        self.num_results += 1
        if result.err is not None:
            self.error_dist[result.err] += 1
            return

        self.num_successes += 1
        self.duration_sum += result.duration
        for phase in PHASES:
            self.phase_sums[phase] += getattr(result, phase)

        if len(self.lats) < self.max_retained:
            self.lats.append(result.duration)
            for phase in PHASES:
                self.phase_lats[phase].append(getattr(result, phase))
            self.status_codes.append(result.status_code)
            self.offsets.append(result.offset)

        if result.content_length > 0:
            self.size_total += result.content_length

    def run(self) -> None:
        """Drain the feed until it is closed, then signal completion."""
        logger.debug("aggregator started, retaining up to %d samples", self.capacity or self.max_retained)
        try:
            for result in self.feed:
                self.ingest(result)
        finally:
            self.done.set()
        logger.debug(
            "aggregator drained %d results (%d errors)",
            self.num_results,
            self.num_results - self.num_successes,
        )

    def wait(self, timeout: float | None = None) -> bool:
        return self.done.wait(timeout)
