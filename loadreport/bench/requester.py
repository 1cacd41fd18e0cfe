from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Dict, List, Optional

import httpx

from loadreport.bench.feed import ResultFeed
from loadreport.bench.types import Result, RunPlan

logger = logging.getLogger(__name__)


def _span(marks: Dict[str, float], start: str, end: str) -> float:
    """Seconds between two trace events; event names match on suffix (http11./http2.)."""
    t0 = _find(marks, start)
    t1 = _find(marks, end)
    if t0 is None or t1 is None or t1 < t0:
        return 0.0
    return t1 - t0


def _find(marks: Dict[str, float], suffix: str) -> Optional[float]:
    for name, t in marks.items():
        if name.endswith(suffix):
            return t
    return None


def split_requests(total: int, workers: int) -> List[int]:
    """Share `total` requests between workers; the first ones take the remainder."""
    base, extra = divmod(total, workers)
    return [base + (1 if i < extra else 0) for i in range(workers)]


class Requester:
    """
    Sends the plan's requests from a pool of worker threads and pushes one
    Result per attempt into the feed. Closing the feed is left to the caller.
    """

    def __init__(self, plan: RunPlan, feed: ResultFeed, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.plan = plan
        self.feed = feed
        self.transport = transport
        self._stop = threading.Event()
        self._start = 0.0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> float:
        """Run all workers to completion; returns elapsed seconds."""
        plan = self.plan
        limits = httpx.Limits(max_connections=plan.concurrency, max_keepalive_connections=plan.concurrency)
        timer = None
        if plan.duration:
            timer = threading.Timer(plan.duration, self.stop)
            timer.daemon = True
            counts: List[Optional[int]] = [None] * plan.concurrency
        else:
            counts = list(split_requests(plan.requests, plan.concurrency))

        logger.info(
            "sending %s requests to %s with %d workers",
            "unbounded" if plan.duration else plan.requests,
            plan.url,
            plan.concurrency,
        )
        with httpx.Client(
            timeout=plan.timeout,
            limits=limits,
            transport=self.transport,
            headers=plan.headers,
        ) as client:
            self._start = time.perf_counter()
            if timer is not None:
                timer.start()
            try:
                with ThreadPoolExecutor(max_workers=plan.concurrency, thread_name_prefix="loadreport-worker") as pool:
                    futures = [pool.submit(self._worker, client, n) for n in counts]
                    try:
                        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                    except KeyboardInterrupt:
                        logger.warning("interrupted, stopping workers")
                        self.stop()
                        done, _ = wait(futures)
                    for future in done:
                        exc = future.exception()
                        if exc is not None:
                            self.stop()
                            raise exc
            finally:
                if timer is not None:
                    timer.cancel()
            return time.perf_counter() - self._start

    def _worker(self, client: httpx.Client, n: Optional[int]) -> None:
        interval = 1.0 / self.plan.qps if self.plan.qps > 0 else 0.0
        sent = 0
        while n is None or sent < n:
            if interval:
                if self._stop.wait(interval):
                    return
            elif self._stop.is_set():
                return
            self.feed.put(self.make_request(client))
            sent += 1

    def make_request(self, client: httpx.Client) -> Result:
        plan = self.plan
        marks: Dict[str, float] = {}

        def trace(event_name: str, info: dict) -> None:
            marks.setdefault(event_name, time.perf_counter())

        start = time.perf_counter()
        offset = start - self._start
        try:
            request = client.build_request(
                plan.method,
                plan.url,
                content=plan.body,
                extensions={"trace": trace},
            )
            response = client.send(request)
        except httpx.HTTPError as e:
            return Result(
                duration=time.perf_counter() - start,
                offset=offset,
                err=str(e) or type(e).__name__,
            )
        end = time.perf_counter()

        headers_done = _find(marks, "receive_response_headers.complete")
        try:
            content_length = int(response.headers.get("content-length", -1))
        except ValueError:
            content_length = -1

        return Result(
            duration=end - start,
            connect=_span(marks, "connect_tcp.started", "connect_tcp.complete"),
            tls=_span(marks, "start_tls.started", "start_tls.complete"),
            request_write=_span(marks, "send_request_headers.started", "send_request_body.complete"),
            delay_wait=_span(marks, "send_request_body.complete", "receive_response_headers.complete"),
            response_read=end - headers_done if headers_done is not None else 0.0,
            status_code=response.status_code,
            content_length=content_length,
            offset=offset,
        )
