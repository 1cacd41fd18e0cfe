from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from loadreport.bench.assert_engine import AssertEngine
from loadreport.bench.feed import ResultFeed
from loadreport.bench.report import Report
from loadreport.bench.requester import Requester
from loadreport.bench.snapshot import Snapshot
from loadreport.bench.types import RunPlan

logger = logging.getLogger(__name__)


@dataclass
class PlanRunnerResult:
    ok: bool
    snapshot: Snapshot
    assertions: Dict[str, Any]
    rendered: Optional[str]


class PlanRunner:
    """
    Pure orchestrator for one run:

      1) Report starts draining a fresh ResultFeed
      2) Requester sends the plan's requests into the feed
      3) feed is closed, the report waits for the aggregator to finish
      4) Report finalizes with the measured elapsed time and writes to the sink
      5) AssertEngine checks the snapshot against the plan's thresholds
    """

    def __init__(self, sink, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.sink = sink
        self.transport = transport
        self.asserts = AssertEngine()

    def run(self, plan: RunPlan) -> PlanRunnerResult:
        feed = ResultFeed()
        report = Report(
            sink=self.sink,
            feed=feed,
            output=plan.output,
            n=plan.requests,
            max_retained=plan.max_retained,
        )
        requester = Requester(plan, feed, transport=self.transport)

        report.start()
        start = time.perf_counter()
        total = None
        try:
            total = requester.run()
        finally:
            if total is None:
                total = time.perf_counter() - start
            feed.close()
        report.wait()

        snapshot = report.finalize(total)
        assertions = self.asserts.run(plan.assertions, snapshot)
        if not assertions["ok"]:
            for failure in assertions["failures"]:
                logger.warning("assertion failed: %s (limit %s, actual %s)", failure["name"], failure["limit"], failure["actual"])

        return PlanRunnerResult(
            ok=assertions["ok"],
            snapshot=snapshot,
            assertions=assertions,
            rendered=getattr(self.sink, "rendered", None),
        )
