import threading
import time

from behave import given, when, then

from loadreport.bench.feed import ResultFeed
from loadreport.bench.report import Report
from loadreport.bench.types import Result


@given("a report draining a result feed in the background")
def step_report_background(context):
    context.feed = ResultFeed()
    context.report = Report(sink=None, feed=context.feed, output="", n=0)
    context.report.start()


@given("a report draining a bounded result feed of size {size:d}")
def step_report_bounded(context, size):
    context.feed = ResultFeed(maxsize=size)
    context.report = Report(sink=None, feed=context.feed, output="", n=0)
    context.report.start()


@when("{workers:d} producers each push {count:d} results")
def step_producers(context, workers, count):
    def produce(worker):
        for i in range(count):
            if i % 5 == 4:
                context.feed.put(Result(err=f"worker {worker} failed"))
            else:
                context.feed.put(Result(duration=0.001 * (i + 1), status_code=200 + worker, offset=0.01 * i))

    threads = [threading.Thread(target=produce, args=(w,)) for w in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


@when("the feed is closed")
def step_close_feed(context):
    context.feed.close()


@when("the feed is closed again")
def step_close_feed_again(context):
    context.feed.close()


@then("the report is not done yet")
def step_not_done(context):
    assert not context.report.wait(timeout=0.05)


@then("the report signals completion")
def step_done(context):
    assert context.report.wait(timeout=10), "aggregator never finished"
    assert context.report.done.is_set()


@then("the report ingested {n:d} results with {errors:d} errors")
def step_ingested(context, n, errors):
    agg = context.report.aggregator
    assert agg.num_results == n, agg.num_results
    assert sum(agg.error_dist.values()) == errors, dict(agg.error_dist)
    assert agg.num_results == agg.num_successes + errors


@then("pushing another result fails")
def step_push_after_close(context):
    try:
        context.feed.put(Result(duration=1.0))
    except RuntimeError as e:
        assert "closed" in str(e)
    else:
        raise AssertionError("put() after close() should fail")


@when("the report is finalized after {seconds} seconds")
def step_report_finalize(context, seconds):
    context.snapshot = context.report.finalize(float(seconds))


@then("finalizing the report again fails")
def step_finalize_twice(context):
    try:
        context.report.finalize(1.0)
    except RuntimeError:
        return
    raise AssertionError("second finalize() should fail")


@then("starting the report again fails")
def step_start_twice(context):
    try:
        context.report.start()
    except RuntimeError:
        return
    raise AssertionError("second start() should fail")


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "timed out waiting"
        time.sleep(0.01)


def _in_thread(target):
    t = threading.Thread(target=target, daemon=True)
    t.start()
    return t


@given("a bounded result feed of size {size:d} that nobody drains")
def step_undrained_feed(context, size):
    context.feed = ResultFeed(maxsize=size)
    context.threads = []


@when("a result fills the feed")
def step_fill_feed(context):
    context.feed.put(Result(duration=0.1, status_code=200))


@when("another producer blocks pushing a result")
def step_blocked_producer(context):
    context.threads.append(_in_thread(lambda: context.feed.put(Result(duration=0.2, status_code=200))))
    _wait_until(lambda: context.feed._pending == 1)


@when("the feed is closed from another thread")
def step_close_in_thread(context):
    context.threads.append(_in_thread(context.feed.close))
    _wait_until(lambda: context.feed.closed)


@then("pushing another result fails without waiting")
def step_push_rejected_promptly(context):
    errors = []

    def push():
        try:
            context.feed.put(Result(duration=0.3))
        except RuntimeError as e:
            errors.append(e)

    t = _in_thread(push)
    t.join(timeout=2)
    assert not t.is_alive(), "put() waited on a full, closed feed"
    assert errors and "closed" in str(errors[0]), errors


@when("the feed is drained")
def step_drain_feed(context):
    results = []
    t = _in_thread(lambda: results.extend(context.feed))
    t.join(timeout=5)
    assert not t.is_alive(), "the end of stream never arrived"
    for other in context.threads:
        other.join(timeout=5)
        assert not other.is_alive()
    context.results = results


@then("the results arrived in the order they were pushed")
def step_results_in_order(context):
    assert [r.duration for r in context.results] == [0.1, 0.2], context.results
