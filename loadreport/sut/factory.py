import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

from loadreport.bench.types import MAX_RETAINED, RunPlan
from loadreport.export.renderers import RENDERERS

ENV_PREFIX = "LOADREPORT_"

_PLAN_KEYS = {
    "url", "method", "headers", "body", "requests", "concurrency", "qps",
    "duration", "timeout", "output", "max_retained", "json_path", "assertions",
}


def _load_yaml(path: str) -> dict:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Plan file not found: {p}")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Plan file must contain a mapping: {p}")
    return data


class PlanFactory:
    """Builds a validated RunPlan from a YAML plan file and LOADREPORT_* env vars."""

    def __init__(self, environ: Optional[Dict[str, str]] = None) -> None:
        self.environ = os.environ if environ is None else environ

    def load(self, path: str, overrides: Optional[Dict[str, Any]] = None) -> RunPlan:
        plan = _load_yaml(path)
        # plans may nest everything under a "run" section
        if isinstance(plan.get("run"), dict):
            run = plan.pop("run")
            plan = {**plan, **run}
        return self.build(plan, overrides=overrides)

    def build(self, plan: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> RunPlan:
        """
        Precedence, lowest first: plan mapping, LOADREPORT_* env vars, overrides
        (command line flags). Override headers are merged into the plan's.
        """
        overrides = dict(overrides or {})
        unknown = sorted((set(plan) | set(overrides)) - _PLAN_KEYS)
        if unknown:
            raise ValueError(f"Unknown plan keys: {unknown}")

        values = dict(plan)
        # 1) env overlay
        env_url = self.environ.get(ENV_PREFIX + "URL", "").strip()
        if env_url:
            values["url"] = env_url
        env_output = self.environ.get(ENV_PREFIX + "OUTPUT")
        if env_output is not None:
            values["output"] = env_output.strip()

        # 2) explicit overrides
        explicit_headers = dict(overrides.get("headers") or {})
        if "headers" in overrides:
            overrides["headers"] = {**(values.get("headers") or {}), **overrides["headers"]}
        values.update(overrides)

        headers = {str(k): str(v) for k, v in (values.get("headers") or {}).items()}
        token = self.environ.get(ENV_PREFIX + "AUTH_TOKEN")
        if token and "Authorization" not in explicit_headers:
            headers["Authorization"] = f"Bearer {token}"
        values["headers"] = headers

        body = values.get("body")
        if isinstance(body, str):
            values["body"] = body.encode("utf-8")

        # 3) typed plan
        run_plan = RunPlan(
            url=str(values.get("url") or ""),
            method=str(values.get("method") or "GET").upper(),
            headers=values["headers"],
            body=values.get("body"),
            requests=int(values.get("requests", 200)),
            concurrency=int(values.get("concurrency", 50)),
            qps=float(values.get("qps") or 0.0),
            duration=float(values["duration"]) if values.get("duration") else None,
            timeout=float(values.get("timeout", 20.0)),
            output=str(values.get("output") or ""),
            max_retained=int(values.get("max_retained", MAX_RETAINED)),
            json_path=values.get("json_path"),
            assertions=dict(values.get("assertions") or {}),
        )

        # 4) guardrails
        self.validate(run_plan)
        return run_plan

    def validate(self, plan: RunPlan) -> None:
        if not plan.url:
            raise ValueError(f"No target URL set. Provide 'url' in the plan or {ENV_PREFIX}URL")
        parsed = urlparse(plan.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid target URL: {plan.url}")
        if plan.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {plan.concurrency}")
        if plan.duration is None and plan.requests < plan.concurrency:
            raise ValueError(
                f"requests ({plan.requests}) cannot be less than concurrency ({plan.concurrency})"
            )
        if plan.duration is not None and plan.duration <= 0:
            raise ValueError(f"duration must be positive, got {plan.duration}")
        if plan.qps < 0:
            raise ValueError(f"qps must be >= 0, got {plan.qps}")
        if plan.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {plan.timeout}")
        if plan.max_retained < 1:
            raise ValueError(f"max_retained must be >= 1, got {plan.max_retained}")
        if plan.output not in RENDERERS:
            raise ValueError(f"Unknown output mode: {plan.output!r} (expected one of {sorted(RENDERERS)})")
