import queue
import threading
from typing import Iterator

from loadreport.bench.types import Result

_END = object()


class ResultFeed:
    """
    Many-producer, single-consumer queue of Results.

    Producers call put() from any thread. Whoever knows that production is
    over calls close(), which enqueues the end-of-stream token once. The
    consumer iterates the feed until that token arrives.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._cond = threading.Condition()
        self._closed = False
        self._pending = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, result: Result) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError("result feed is closed")
            self._pending += 1
        # may block on a bounded feed; the lock is not held here
        try:
            self._queue.put(result)
        finally:
            with self._cond:
                self._pending -= 1
                if not self._pending:
                    self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            # puts already admitted land before the end-of-stream token
            while self._pending:
                self._cond.wait()
        self._queue.put(_END)

    def __iter__(self) -> Iterator[Result]:
        while True:
            item = self._queue.get()
            if item is _END:
                return
            yield item
