from __future__ import annotations

import logging
import threading
from typing import Optional

from loadreport.bench.aggregator import Aggregator
from loadreport.bench.feed import ResultFeed
from loadreport.bench.finalizer import Elapsed, Finalizer
from loadreport.bench.snapshot import Snapshot
from loadreport.bench.types import MAX_RETAINED

logger = logging.getLogger(__name__)


class Report:
    """
    Aggregation core for one run.

      1) start() drains the feed on a background thread
      2) producers push Results and close the feed
      3) wait() returns once everything was ingested
      4) finalize(total) builds the Snapshot and hands it to the sink

    The output mode is passed through to the sink untouched.
    """

    def __init__(self, sink, feed: ResultFeed, output: str = "", n: int = 0, max_retained: int = MAX_RETAINED) -> None:
        self.sink = sink
        self.feed = feed
        self.output = output
        self.aggregator = Aggregator(feed, expected=n, max_retained=max_retained)
        self.finalizer = Finalizer(self.aggregator)
        self.snapshot: Optional[Snapshot] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("report already started")
        self._thread = threading.Thread(target=self.aggregator.run, name="loadreport-aggregator", daemon=True)
        self._thread.start()

    def run(self) -> None:
        """Drain the feed on the calling thread."""
        self.aggregator.run()

    @property
    def done(self) -> threading.Event:
        return self.aggregator.done

    def wait(self, timeout: float | None = None) -> bool:
        return self.aggregator.wait(timeout)

    def finalize(self, total: Elapsed) -> Snapshot:
        if self.snapshot is not None:
            raise RuntimeError("report already finalized")
        self.snapshot = self.finalizer.finalize(total)
        logger.info(
            "finalized %d results in %.4f secs (%d retained samples)",
            self.snapshot.num_results,
            self.snapshot.total,
            len(self.snapshot.lats),
        )
        if self.sink is not None:
            self.sink.write(self.snapshot, self.output)
        return self.snapshot
