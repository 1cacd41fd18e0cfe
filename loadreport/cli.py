import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from loadreport.bench.plan_runner import PlanRunner
from loadreport.export.result_sink import ResultSink
from loadreport.sut.factory import PlanFactory


def _parse_header(value: str):
    name, sep, val = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Invalid header {value!r}, expected 'Key: Value'")
    return name.strip(), val.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="loadreport", description="Send load to a URL and report latency statistics.")
    parser.add_argument("url", nargs="?", help="Target URL (may also come from --plan or LOADREPORT_URL)")
    parser.add_argument("-n", dest="requests", type=int, help="Number of requests to run (default 200)")
    parser.add_argument("-c", dest="concurrency", type=int, help="Number of workers to run concurrently (default 50)")
    parser.add_argument("-q", dest="qps", type=float, help="Rate limit, in queries per second per worker")
    parser.add_argument("-z", dest="duration", type=float, help="Duration in seconds; when set, -n is ignored")
    parser.add_argument("-t", dest="timeout", type=float, help="Timeout for each request in seconds (default 20)")
    parser.add_argument("-m", dest="method", help="HTTP method (default GET)")
    parser.add_argument("-H", dest="headers", action="append", type=_parse_header, default=[], help="Custom header, repeatable: -H 'Accept: text/html'")
    parser.add_argument("-d", dest="body", help="HTTP request body")
    parser.add_argument("-o", dest="output", help="Output mode: summary (default), csv or json")
    parser.add_argument("--plan", help="YAML plan file")
    parser.add_argument("--max-retained", dest="max_retained", type=int, help="Maximum number of samples kept for percentiles")
    parser.add_argument("--json-out", dest="json_path", help="Also write the JSON report to this path")
    parser.add_argument("-v", dest="verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    return parser


def _setup_logging(verbose: int) -> None:
    level = os.getenv("LOADREPORT_LOG_LEVEL")
    if verbose:
        level = "DEBUG" if verbose > 1 else "INFO"
    logging.basicConfig(
        level=(level or "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in ("url", "requests", "concurrency", "qps", "duration", "timeout", "method", "body", "output", "max_retained", "json_path"):
        val = getattr(args, key)
        if val is not None:
            out[key] = val
    if args.headers:
        out["headers"] = dict(args.headers)
    return out


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    factory = PlanFactory()
    try:
        if args.plan:
            plan = factory.load(args.plan, overrides=_overrides(args))
        else:
            plan = factory.build({}, overrides=_overrides(args))
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sink = ResultSink(out=sys.stdout, json_path=plan.json_path)
    result = PlanRunner(sink).run(plan)
    return 0 if result.ok else 2


if __name__ == "__main__":
    sys.exit(main())
