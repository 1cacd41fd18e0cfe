from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Phase names, in the order they are reported.
PHASES = ("connect", "dns", "tls", "request_write", "response_read", "delay_wait")

# We report for max 1M results.
MAX_RETAINED = 1_000_000


@dataclass(frozen=True)
class Result:
    """One measured request attempt. Durations and offset are seconds."""
    duration: float = 0.0
    connect: float = 0.0
    dns: float = 0.0
    tls: float = 0.0             # 0 when the connection was plain HTTP
    request_write: float = 0.0
    response_read: float = 0.0
    delay_wait: float = 0.0
    status_code: int = 0
    content_length: int = -1     # <= 0 means unknown
    offset: float = 0.0
    err: Optional[str] = None


@dataclass(frozen=True)
class LatencyDistribution:
    percentage: int
    latency: float


@dataclass(frozen=True)
class Bucket:
    mark: float
    count: int
    frequency: float


@dataclass
class RunPlan:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    requests: int = 200
    concurrency: int = 50
    qps: float = 0.0               # per worker, 0 = no limit
    duration: Optional[float] = None  # seconds; when set, requests is ignored
    timeout: float = 20.0
    output: str = ""               # "" | "summary" | "csv" | "json"
    max_retained: int = MAX_RETAINED
    json_path: Optional[str] = None
    assertions: Dict[str, Any] = field(default_factory=dict)
