from datetime import timedelta

from behave import given, when, then

from common import assert_number, lookup, parse_floats, result_from_row
from loadreport.bench.aggregator import Aggregator
from loadreport.bench.feed import ResultFeed
from loadreport.bench.finalizer import Finalizer
from loadreport.bench.types import MAX_RETAINED, PHASES, Result


@given("an aggregator")
def step_aggregator(context):
    context.aggregator = Aggregator(ResultFeed())


@given("an aggregator retaining at most {r:d} samples")
def step_aggregator_capped(context, r):
    context.aggregator = Aggregator(ResultFeed(), max_retained=r)


@given("an aggregator expecting {n:d} requests")
def step_aggregator_expecting(context, n):
    context.aggregator = Aggregator(ResultFeed(), expected=n)


@when('I ingest successful results with durations "{durations}"')
def step_ingest_durations(context, durations):
    for d in parse_floats(durations):
        context.aggregator.ingest(Result(duration=d, status_code=200))


@when("I ingest {count:d} successful results of {duration:g} seconds")
def step_ingest_many(context, count, duration):
    for _ in range(count):
        context.aggregator.ingest(Result(duration=duration, status_code=200))


@when('I ingest a failed result with error "{err}"')
def step_ingest_error(context, err):
    # numeric fields of a failure must not leak into the statistics
    context.aggregator.ingest(
        Result(duration=99.0, connect=9.0, status_code=500, content_length=4096, err=err)
    )


@when("I ingest a failed result with an empty error message")
def step_ingest_empty_error(context):
    context.aggregator.ingest(Result(duration=99.0, status_code=0, err=""))


@when("I ingest the results")
def step_ingest_table(context):
    for row in context.table:
        context.aggregator.ingest(result_from_row(row))


@when("the run is finalized after {seconds} seconds")
def step_finalize(context, seconds):
    context.snapshot = Finalizer(context.aggregator).finalize(float(seconds))


@when("the run is finalized after a timedelta of {ms:d} milliseconds")
def step_finalize_timedelta(context, ms):
    context.snapshot = Finalizer(context.aggregator).finalize(timedelta(milliseconds=ms))


@then("the aggregator counted {results:d} results and {successes:d} successes")
def step_check_counts(context, results, successes):
    agg = context.aggregator
    assert agg.num_results == results, agg.num_results
    assert agg.num_successes == successes, agg.num_successes


@then("every ingested result is accounted for")
def step_check_accounted(context):
    agg = context.aggregator
    assert agg.num_results == agg.num_successes + sum(agg.error_dist.values())


@then('the error tally for "{err}" is {count:d}')
def step_check_error(context, err, count):
    assert context.aggregator.error_dist[err] == count, dict(context.aggregator.error_dist)


@then("the error tally for an empty message is {count:d}")
def step_check_empty_error(context, count):
    assert context.aggregator.error_dist[""] == count, dict(context.aggregator.error_dist)


@then("the aggregator retained {n:d} samples in every sequence")
def step_check_retained(context, n):
    agg = context.aggregator
    lengths = {
        "lats": len(agg.lats),
        "status_codes": len(agg.status_codes),
        "offsets": len(agg.offsets),
        **{p: len(agg.phase_lats[p]) for p in PHASES},
    }
    assert set(lengths.values()) == {n}, lengths


@then('the retained durations are "{durations}"')
def step_check_retained_durations(context, durations):
    assert context.aggregator.lats == parse_floats(durations), context.aggregator.lats


@then("the aggregator size total is {size:d}")
def step_check_size_total(context, size):
    assert context.aggregator.size_total == size, context.aggregator.size_total


@then("the aggregator sizes retained sequences for {n:d} samples")
def step_check_capacity(context, n):
    assert context.aggregator.capacity == n, context.aggregator.capacity


@then("the default retention cap is one million samples")
def step_check_default_cap(context):
    assert MAX_RETAINED == 1_000_000
    assert Aggregator(ResultFeed()).max_retained == MAX_RETAINED


@then('the snapshot "{path}" is {expected}')
def step_check_snapshot_value(context, path, expected):
    assert_number(lookup(context.snapshot, path), expected, path)


@then('the snapshot status code distribution is "{dist}"')
def step_check_status_dist(context, dist):
    expected = {}
    for pair in dist.split(","):
        code, n = pair.split(":")
        expected[int(code)] = int(n)
    assert dict(context.snapshot.status_code_dist) == expected, dict(context.snapshot.status_code_dist)
    assert sum(context.snapshot.status_code_dist.values()) == len(context.snapshot.status_codes)


@then('the snapshot durations in arrival order are "{durations}"')
def step_check_snapshot_lats(context, durations):
    assert list(context.snapshot.lats) == parse_floats(durations), context.snapshot.lats


@then('the snapshot "{phase}" samples in arrival order are "{values}"')
def step_check_snapshot_phase_lats(context, phase, values):
    assert list(context.snapshot.phase_lats[phase]) == parse_floats(values), context.snapshot.phase_lats[phase]


@then("the aggregator's own durations are still in arrival order")
def step_check_not_sorted(context):
    assert context.aggregator.lats == list(context.snapshot.lats)


@then("the snapshot has no distributions")
def step_check_empty(context):
    s = context.snapshot
    assert s.latency_distribution == ()
    assert s.histogram == ()
    assert dict(s.status_code_dist) == {}
    assert s.lats == ()


@then("the snapshot cannot be modified")
def step_check_frozen(context):
    s = context.snapshot
    for attempt in (
        lambda: setattr(s, "average", 0.0),
        lambda: s.error_dist.__setitem__("x", 1),
        lambda: s.status_code_dist.__setitem__(200, 1),
    ):
        try:
            attempt()
        except (AttributeError, TypeError):
            continue
        raise AssertionError("snapshot was mutated")
    assert isinstance(s.lats, tuple)
