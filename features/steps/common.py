import math
from typing import Any

from loadreport.bench.types import Result


def parse_floats(text: str):
    return [float(v) for v in text.split(",") if v.strip()]


def lookup(obj: Any, path: str) -> Any:
    """Resolve "phases.connect.max" style paths over attributes and mappings."""
    for part in path.split("."):
        if isinstance(obj, (list, tuple)):
            obj = obj[int(part)]
        elif hasattr(obj, "keys"):
            key = int(part) if part.lstrip("-").isdigit() else part
            obj = obj[key]
        else:
            obj = getattr(obj, part)
    return obj


def assert_number(actual: Any, expected: str, what: str = "value") -> None:
    exp = float(expected)
    if math.isnan(exp):
        assert isinstance(actual, float) and math.isnan(actual), f"{what}: expected nan, got {actual!r}"
        return
    if math.isinf(exp):
        assert actual == exp, f"{what}: expected {exp}, got {actual!r}"
        return
    assert math.isclose(actual, exp, rel_tol=1e-9, abs_tol=1e-12), f"{what}: expected {exp}, got {actual!r}"


_INT_COLUMNS = {"status_code", "content_length"}


def result_from_row(row):
    """Build a Result from a behave table row; missing columns keep their defaults."""
    values = {}
    for heading in row.headings:
        raw = row[heading].strip()
        if heading == "err":
            values["err"] = raw or None
        elif heading in _INT_COLUMNS:
            values[heading] = int(raw)
        else:
            values[heading] = float(raw)
    return Result(**values)
