import math
import re
from typing import Any, Dict

from loadreport.bench.snapshot import Snapshot

_PCTL_KEY = re.compile(r"^p(\d+)_under_ms$")


class AssertEngine:
    def run(self, thresholds: Dict[str, Any], snapshot: Snapshot) -> dict:
        """
        Check a snapshot against thresholds:
          - p<N>_under_ms: latency at percentile N below the limit
          - availability_percent: successes / all results
          - min_rps
          - max_average_ms
        """
        checks = []
        failures = []
        for key, limit in thresholds.items():
            limit = float(limit)
            actual, passed = self._check(key, limit, snapshot)
            check = {"name": key, "limit": limit, "actual": actual, "ok": passed}
            checks.append(check)
            if not passed:
                failures.append(check)
        return {
            "ok": not failures,
            "checks": checks,
            "failures": failures,
        }

    def _check(self, key: str, limit: float, s: Snapshot):
        m = _PCTL_KEY.match(key)
        if m:
            pct = int(m.group(1))
            for d in s.latency_distribution:
                if d.percentage == pct:
                    ms = d.latency * 1000
                    return ms, ms < limit
            return None, False

        if key == "availability_percent":
            if s.num_results == 0:
                return None, False
            actual = s.num_successes * 100 / s.num_results
            return actual, actual >= limit
        if key == "min_rps":
            return s.rps, math.isfinite(s.rps) and s.rps >= limit
        if key == "max_average_ms":
            ms = s.average * 1000
            return ms, math.isfinite(ms) and ms <= limit
        raise ValueError(f"Unknown assertion: {key}")
