import io
import threading
from pathlib import Path

import httpx
import yaml
from behave import given, when, then

from loadreport import cli
from loadreport.bench.assert_engine import AssertEngine
from loadreport.bench.feed import ResultFeed
from loadreport.bench import plan_runner
from loadreport.bench.plan_runner import PlanRunner
from loadreport.bench.requester import Requester, split_requests
from loadreport.export.result_sink import ResultSink
from loadreport.sut.factory import PlanFactory


def _coerce(raw: str):
    return yaml.safe_load(raw)


def _table_to_dict(table) -> dict:
    out = {}
    for row in table:
        out[row[0].strip()] = _coerce(row[1].strip())
    return out


class _Target:
    """MockTransport handler: every `fail_every`-th request raises ConnectError."""

    def __init__(self, status: int = 200, body: bytes = b"hello", fail_every: int = 0):
        self.status = status
        self.body = body
        self.fail_every = fail_every
        self.seen = 0
        self.requests = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.seen += 1
            n = self.seen
            self.requests.append(request)
        if self.fail_every and n % self.fail_every == 0:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status, content=self.body)


# ---- plan factory ----

@given('the environment variable "{name}" is "{value}"')
def step_env(context, name, value):
    context.environ[name] = value


@given('a plan file "{name}" containing')
def step_plan_file(context, name):
    path = Path(context.workdir) / name
    path.write_text(context.text, encoding="utf-8")


@when("I build a plan from")
def step_build_plan(context):
    factory = PlanFactory(environ=context.environ)
    try:
        context.plan = factory.build(_table_to_dict(context.table))
    except (ValueError, FileNotFoundError) as e:
        context.error = e


@when("I build a plan from the command line values")
def step_build_plan_overrides(context):
    factory = PlanFactory(environ=context.environ)
    try:
        context.plan = factory.build({}, overrides=_table_to_dict(context.table))
    except (ValueError, FileNotFoundError) as e:
        context.error = e


@when('I load the plan file "{name}" with the command line values')
def step_load_plan_overrides(context, name):
    factory = PlanFactory(environ=context.environ)
    try:
        context.plan = factory.load(str(Path(context.workdir) / name), overrides=_table_to_dict(context.table))
    except (ValueError, FileNotFoundError) as e:
        context.error = e


@when('I load the plan file "{name}"')
def step_load_plan(context, name):
    factory = PlanFactory(environ=context.environ)
    try:
        context.plan = factory.load(str(Path(context.workdir) / name))
    except (ValueError, FileNotFoundError) as e:
        context.error = e


@then('the plan has "{field}" equal to {value}')
def step_plan_value(context, field, value):
    assert context.error is None, context.error
    actual = getattr(context.plan, field)
    expected = _coerce(value)
    if isinstance(actual, bytes):
        actual = actual.decode("utf-8")
    assert actual == expected, f"{field}: {actual!r} != {expected!r}"


@then('the plan header "{name}" is "{value}"')
def step_plan_header(context, name, value):
    assert context.plan.headers.get(name) == value, context.plan.headers


@then('building the plan fails mentioning "{text}"')
def step_plan_failed(context, text):
    assert context.error is not None, "plan should have been rejected"
    assert text in str(context.error), str(context.error)


# ---- requester / runner ----

@given("a target that always answers {status:d}")
def step_target_ok(context, status):
    context.target = _Target(status=status)


@given("a target that refuses every {n:d}th connection")
def step_target_flaky(context, n):
    context.target = _Target(fail_every=n)


@when("the plan is run against the target")
def step_run_plan(context):
    assert context.error is None, context.error
    context.out = io.StringIO()
    context.sink = ResultSink(out=context.out)
    runner = PlanRunner(context.sink, transport=httpx.MockTransport(context.target))
    context.run_result = runner.run(context.plan)
    context.snapshot = context.run_result.snapshot


class _TimedRequester(Requester):
    """Requester that remembers the elapsed time it reported."""

    reported = []

    def run(self):
        took = super().run()
        self.reported.append(took)
        return took


@when("the plan is run against the target with a timed requester")
def step_run_plan_timed(context):
    _TimedRequester.reported = []
    context.add_cleanup(setattr, plan_runner, "Requester", plan_runner.Requester)
    plan_runner.Requester = _TimedRequester
    step_run_plan(context)


@then("the snapshot total is the elapsed time the requester reported")
def step_total_from_requester(context):
    assert len(_TimedRequester.reported) == 1, _TimedRequester.reported
    assert context.snapshot.total == _TimedRequester.reported[0], (context.snapshot.total, _TimedRequester.reported)


@when("the requester sends the plan to the target")
def step_requester_only(context):
    context.feed = ResultFeed()
    requester = Requester(context.plan, context.feed, transport=httpx.MockTransport(context.target))
    context.elapsed = requester.run()
    context.feed.close()
    context.results = list(context.feed)


@then("the target received {n:d} requests")
def step_target_count(context, n):
    assert context.target.seen == n, context.target.seen


@then('every request carried the header "{name}" with "{value}"')
def step_target_header(context, name, value):
    assert context.target.requests
    for request in context.target.requests:
        assert request.headers.get(name) == value, dict(request.headers)


@then("every request used method {method}")
def step_target_method(context, method):
    assert {r.method for r in context.target.requests} == {method}


@then("the feed delivered {n:d} results")
def step_feed_results(context, n):
    assert len(context.results) == n, len(context.results)


@then("every result has a duration and an offset")
def step_results_timed(context):
    assert context.elapsed > 0
    for r in context.results:
        assert r.duration >= 0
        assert 0 <= r.offset <= context.elapsed
        assert r.response_read >= 0 and r.request_write >= 0 and r.tls == 0


@then("every result has content length {n:d}")
def step_results_length(context, n):
    assert {r.content_length for r in context.results} == {n}


@then("the run passed its assertions")
def step_run_ok(context):
    assert context.run_result.ok, context.run_result.assertions


@then('the run failed the assertion "{name}"')
def step_run_failed(context, name):
    assert not context.run_result.ok
    assert name in [f["name"] for f in context.run_result.assertions["failures"]], context.run_result.assertions


@then("the rendered report was captured")
def step_rendered(context):
    assert context.run_result.rendered
    assert context.run_result.rendered in context.out.getvalue()


@then('splitting {total:d} requests over {workers:d} workers gives "{shares}"')
def step_split(context, total, workers, shares):
    expected = [int(s) for s in shares.split(",")]
    got = split_requests(total, workers)
    assert got == expected, got
    assert sum(got) == total


# ---- assertions ----

@when("the snapshot is checked against")
def step_check_thresholds(context):
    try:
        context.assertions = AssertEngine().run(_table_to_dict(context.table), context.snapshot)
    except ValueError as e:
        context.error = e


@then("all checks pass")
def step_all_pass(context):
    assert context.assertions["ok"], context.assertions
    assert context.assertions["failures"] == []


@then('only "{name}" fails')
def step_only_fails(context, name):
    failures = [f["name"] for f in context.assertions["failures"]]
    assert failures == [name], failures


@then('checking fails mentioning "{text}"')
def step_check_error(context, text):
    assert context.error is not None
    assert text in str(context.error)


# ---- cli ----

@when('I run the command line with "{args}"')
def step_cli(context, args):
    argv = [a.replace("{workdir}", context.workdir) for a in args.split()]
    context.exit_code = cli.main(argv)


@then("the command exits with status {code:d}")
def step_cli_exit(context, code):
    assert context.exit_code == code, context.exit_code


@then("the snapshot accounts for every request the target received")
def step_snapshot_matches_target(context):
    assert context.target.seen > 0
    assert context.snapshot.num_results == context.target.seen, (context.snapshot.num_results, context.target.seen)
