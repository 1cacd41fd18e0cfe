import csv
import io
import json
from typing import Dict, List

from loadreport.bench.snapshot import Snapshot
from loadreport.bench.types import Bucket

BAR_CHAR = "■"
BAR_WIDTH = 40

# (label, phase) rows of the "Details" section
_DETAILS = [
    ("DNS+dialup", "connect"),
    ("DNS-lookup", "dns"),
    ("TLS", "tls"),
    ("req write", "request_write"),
    ("resp wait", "delay_wait"),
    ("resp read", "response_read"),
]

CSV_HEADER = [
    "response-time",
    "DNS+dialup",
    "DNS",
    "Request-write",
    "Response-delay",
    "Response-read",
    "status-code",
    "offset",
]


def format_number(v: float) -> str:
    return "%4.4f" % v


class Renderer:
    """Turns a Snapshot into text. One subclass per output mode."""

    def render(self, snapshot: Snapshot) -> str:
        raise NotImplementedError


class SummaryRenderer(Renderer):
    def render(self, snapshot: Snapshot) -> str:
        s = snapshot
        lines = ["", "Summary:"]
        lines.append(f"  Total:\t{format_number(s.total)} secs")
        lines.append(f"  Slowest:\t{format_number(s.slowest)} secs")
        lines.append(f"  Fastest:\t{format_number(s.fastest)} secs")
        lines.append(f"  Average:\t{format_number(s.average)} secs")
        lines.append(f"  Requests/sec:\t{format_number(s.rps)}")
        if s.size_total > 0:
            lines.append("")
            lines.append(f"  Total data:\t{s.size_total} bytes")
            lines.append(f"  Size/request:\t{s.size_req} bytes")

        lines += ["", "Response time histogram:"]
        lines += self._histogram(list(s.histogram))

        lines += ["", "Latency distribution:"]
        for d in s.latency_distribution:
            lines.append(f"  {d.percentage}% in {format_number(d.latency)} secs")

        lines += ["", "Details (average, fastest, slowest):"]
        for label, phase in _DETAILS:
            stats = s.phases.get(phase)
            if stats is None:
                continue
            lines.append(
                f"  {label}:\t{format_number(stats.average)} secs, "
                f"{format_number(stats.max)} secs, {format_number(stats.min)} secs"
            )

        lines += ["", "Status code distribution:"]
        for code in sorted(s.status_code_dist):
            lines.append(f"  [{code}]\t{s.status_code_dist[code]} responses")

        if s.error_dist:
            lines += ["", "Error distribution:"]
            for err in sorted(s.error_dist):
                lines.append(f"  [{s.error_dist[err]}]\t{err}")
        return "\n".join(lines) + "\n"

    def _histogram(self, buckets: List[Bucket]) -> List[str]:
        if not buckets:
            return []
        max_count = max(b.count for b in buckets)
        width = len(str(max_count))
        out = []
        for b in buckets:
            bar_len = 0
            if max_count > 0:
                bar_len = (b.count * BAR_WIDTH + max_count // 2) // max_count
            out.append(f"  {b.mark:4.3f} [{b.count:<{width}}]\t|{BAR_CHAR * bar_len}")
        return out


class CsvRenderer(Renderer):
    def render(self, snapshot: Snapshot) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        phase = snapshot.phase_lats
        for i, lat in enumerate(snapshot.lats):
            writer.writerow([
                format_number(lat),
                format_number(phase["connect"][i]),
                format_number(phase["dns"][i]),
                format_number(phase["request_write"][i]),
                format_number(phase["delay_wait"][i]),
                format_number(phase["response_read"][i]),
                snapshot.status_codes[i],
                format_number(snapshot.offsets[i]),
            ])
        return buf.getvalue()


class JsonRenderer(Renderer):
    def render(self, snapshot: Snapshot) -> str:
        return json.dumps(snapshot.to_dict(), indent=2)


RENDERERS: Dict[str, type] = {
    "": SummaryRenderer,
    "summary": SummaryRenderer,
    "csv": CsvRenderer,
    "json": JsonRenderer,
}


def get_renderer(output: str) -> Renderer:
    try:
        return RENDERERS[output]()
    except KeyError:
        raise ValueError(f"Unknown output mode: {output!r} (expected one of {sorted(RENDERERS)})") from None
