import csv
import io
import json
import logging
from pathlib import Path

from behave import given, when, then

from common import result_from_row
from loadreport.bench.feed import ResultFeed
from loadreport.bench.report import Report
from loadreport.export.renderers import CSV_HEADER, RENDERERS, Renderer, get_renderer
from loadreport.export.result_sink import ResultSink


class _BrokenRenderer(Renderer):
    def render(self, snapshot):
        raise KeyError("template field missing")


@given("a result sink writing to memory")
def step_memory_sink(context):
    context.out = io.StringIO()
    context.sink = ResultSink(out=context.out)


@given('a result sink writing to memory and JSON at "{path}"')
def step_memory_json_sink(context, path):
    context.out = io.StringIO()
    context.json_path = Path(context.workdir) / path
    context.sink = ResultSink(out=context.out, json_path=str(context.json_path))


@given('a result sink writing to memory and JSON below the plain file "{name}"')
def step_unwritable_json_sink(context, name):
    blocker = Path(context.workdir) / name
    blocker.write_text("not a directory", encoding="utf-8")
    context.out = io.StringIO()
    context.json_path = blocker / "report.json"
    context.sink = ResultSink(out=context.out, json_path=str(context.json_path))


@given('a broken renderer registered as "{mode}"')
def step_broken_renderer(context, mode):
    RENDERERS[mode] = _BrokenRenderer
    context.add_cleanup(RENDERERS.pop, mode, None)


@when('the snapshot is written in "{mode}" mode')
def step_write_snapshot(context, mode):
    context.written = context.sink.write(context.snapshot, mode)


@when('a report in "{mode}" mode ingests the results and is finalized after {seconds} seconds')
def step_report_through_sink(context, mode, seconds):
    feed = ResultFeed()
    context.report = Report(sink=context.sink, feed=feed, output=mode, n=len(context.table.rows))
    for row in context.table:
        feed.put(result_from_row(row))
    feed.close()
    context.report.run()
    context.snapshot = context.report.finalize(float(seconds))


@then("the sink reports success")
def step_sink_ok(context):
    assert context.written is True


@then("the sink reports a rendering failure")
def step_sink_failed(context):
    assert context.written is False
    assert context.out.getvalue() == ""


@then('the output contains "{text}"')
def step_output_contains(context, text):
    out = context.out.getvalue()
    text = text.replace("\\t", "\t")
    assert text in out, out


@then('the output does not contain "{text}"')
def step_output_lacks(context, text):
    out = context.out.getvalue()
    text = text.replace("\\t", "\t")
    assert text not in out, out


@then("the output contains the lines")
def step_output_lines(context):
    out = context.out.getvalue()
    for line in context.text.splitlines():
        assert line.replace("\\t", "\t") in out, f"missing {line!r} in:\n{out}"


@then("the CSV output has a header and {rows:d} rows")
def step_csv_rows(context, rows):
    reader = list(csv.reader(io.StringIO(context.out.getvalue().strip())))
    assert reader[0] == CSV_HEADER, reader[0]
    assert len(reader) == rows + 1, reader
    context.csv_rows = reader[1:]


@then('CSV row {i:d} is "{expected}"')
def step_csv_row(context, i, expected):
    assert ",".join(context.csv_rows[i]) == expected, context.csv_rows[i]


@then('the JSON output has "{key}" equal to {value}')
def step_json_value(context, key, value):
    doc = json.loads(context.out.getvalue())
    assert doc[key] == json.loads(value), doc[key]


@then('the JSON file has "{key}" equal to {value}')
def step_json_file_value(context, key, value):
    doc = json.loads(context.json_path.read_text(encoding="utf-8"))
    assert doc[key] == json.loads(value), doc[key]


@then('asking for the "{mode}" renderer fails')
def step_unknown_renderer(context, mode):
    try:
        get_renderer(mode)
    except ValueError as e:
        assert mode in str(e)
    else:
        raise AssertionError(f"renderer {mode!r} should not exist")


@then("the sink reports a JSON export failure")
def step_sink_json_failed(context):
    assert context.written is False
    assert context.out.getvalue() != ""
    assert not context.json_path.exists()


@then('an error was logged mentioning "{text}"')
def step_error_logged_text(context, text):
    records = [r for r in context.log_records if r.levelno >= logging.ERROR]
    assert any(text in r.getMessage() for r in records), [r.getMessage() for r in context.log_records]


@then("the snapshot was still produced")
def step_snapshot_produced(context):
    assert context.snapshot is not None
    assert context.snapshot.num_results == context.report.aggregator.num_results


@then('an error was logged for output "{mode}"')
def step_error_logged(context, mode):
    records = [r for r in context.log_records if r.levelno >= logging.ERROR]
    assert any(mode in r.getMessage() for r in records), [r.getMessage() for r in context.log_records]
