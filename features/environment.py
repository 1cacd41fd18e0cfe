import logging
import shutil
import tempfile


class _RecordingHandler(logging.Handler):
    def __init__(self, records):
        super().__init__(level=logging.DEBUG)
        self.records = records

    def emit(self, record):
        self.records.append(record)


def before_all(context):
    logging.getLogger("loadreport").setLevel(logging.DEBUG)


def before_scenario(context, scenario):
    # Reset per scenario
    context.aggregator = None
    context.report = None
    context.snapshot = None
    context.sink = None
    context.error = None
    context.plan = None
    context.run_result = None
    context.environ = {}

    context.workdir = tempfile.mkdtemp(prefix="loadreport-")
    context.log_records = []
    context.log_handler = _RecordingHandler(context.log_records)
    logging.getLogger("loadreport").addHandler(context.log_handler)


def after_scenario(context, scenario):
    logging.getLogger("loadreport").removeHandler(context.log_handler)
    shutil.rmtree(context.workdir, ignore_errors=True)
