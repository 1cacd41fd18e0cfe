import math
import random

from behave import given, when, then

from common import assert_number, parse_floats
from loadreport.bench.metrics import BUCKET_COUNT, histogram, latency_distribution


@given('the sorted latencies "{values}"')
def step_sorted_latencies(context, values):
    context.latencies = sorted(parse_floats(values))


@given("the sorted latencies 1 to {n:d}")
def step_latency_range(context, n):
    context.latencies = [float(v) for v in range(1, n + 1)]


@given("{n:d} random latencies seeded with {seed:d}")
def step_random_latencies(context, n, seed):
    rng = random.Random(seed)
    context.latencies = sorted(rng.expovariate(20.0) for _ in range(n))


@when("the latency distribution is computed")
def step_compute_distribution(context):
    context.distribution = latency_distribution(context.latencies)


@when("the histogram is computed")
def step_compute_histogram(context):
    lats = context.latencies
    context.buckets = histogram(lats, lats[0], lats[-1])


@when("the histogram is computed between {fastest:g} and {slowest:g}")
def step_compute_histogram_bounds(context, fastest, slowest):
    context.buckets = histogram(context.latencies, fastest, slowest)


@then('the latency distribution is "{expected}"')
def step_check_distribution(context, expected):
    actual = {d.percentage: d.latency for d in context.distribution}
    wanted = {}
    for pair in expected.split(","):
        pct, value = pair.split(":")
        wanted[int(pct)] = float(value)
    assert actual == wanted, actual


@then("the latency distribution is empty")
def step_check_distribution_empty(context):
    assert context.distribution == [], context.distribution


@then("the percentiles never decrease")
def step_check_monotonic(context):
    dist = context.distribution
    assert dist, "no percentiles"
    for a, b in zip(dist, dist[1:]):
        assert a.percentage < b.percentage
        assert a.latency <= b.latency, (a, b)


@then("there are {n:d} histogram buckets")
def step_check_bucket_count(context, n):
    assert len(context.buckets) == n == BUCKET_COUNT + 1, len(context.buckets)


@then('the histogram counts are "{counts}"')
def step_check_counts(context, counts):
    actual = [b.count for b in context.buckets]
    assert actual == [int(c) for c in counts.split(",")], actual


@then("the histogram counts add up to the number of latencies")
def step_check_count_total(context):
    assert sum(b.count for b in context.buckets) == len(context.latencies)
    assert math.isclose(sum(b.frequency for b in context.buckets), 1.0)


@then("the first mark is {fastest} and the last mark is {slowest}")
def step_check_marks(context, fastest, slowest):
    assert_number(context.buckets[0].mark, fastest, "first mark")
    # the last mark is the slowest sample itself, not fastest + 10 * width
    assert context.buckets[-1].mark == float(slowest), context.buckets[-1].mark


@then("bucket {i:d} has frequency {frequency}")
def step_check_frequency(context, i, frequency):
    assert_number(context.buckets[i].frequency, frequency, f"bucket {i}")


@then("the histogram marks never decrease")
def step_check_marks_monotonic(context):
    marks = [b.mark for b in context.buckets]
    assert marks == sorted(marks), marks
