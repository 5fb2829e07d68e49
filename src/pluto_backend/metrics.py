from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

server_requests_total = Counter(
    "pluto_server_requests_total",
    "API requests by path and status code",
    labelnames=["path", "status"],
)

server_request_latency_seconds = Histogram(
    "pluto_server_request_latency_seconds",
    "API request latency; initialize includes browser extraction",
    buckets=[0.1, 0.5, 1, 2.5, 5, 10, 20, 40, 80, 160, 320],
    labelnames=["path"],
)

server_errors_total = Counter(
    "pluto_server_errors_total",
    "Total error envelopes returned by server",
    labelnames=["type"],
)

dispatch_attempts_total = Counter(
    "pluto_dispatch_attempts_total",
    "Completion attempts by model tier and outcome",
    labelnames=["model", "outcome"],
)

credential_rotations_total = Counter(
    "pluto_credential_rotations_total",
    "Times the shared credential cursor moved to the next key",
)

dispatch_latency_seconds = Histogram(
    "pluto_dispatch_latency_seconds",
    "End-to-end dispatch latency including failover",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120],
)

extractions_total = Counter(
    "pluto_extractions_total",
    "Link extractions by outcome",
    labelnames=["outcome"],
)

extraction_gate_in_flight = Gauge(
    "pluto_extraction_gate_in_flight",
    "Extraction tasks currently holding a browser permit",
)

extraction_gate_wait_seconds = Histogram(
    "pluto_extraction_gate_wait_seconds",
    "Time spent waiting for a browser permit",
    buckets=[0.01, 0.1, 0.5, 1, 5, 10, 30, 60, 120],
)

browser_launches_total = Counter(
    "pluto_browser_launches_total",
    "Browser process launches by outcome",
    labelnames=["outcome"],
)


def maybe_start_metrics(*, enable: bool, bind: str, port: int) -> None:
    if not enable:
        return
    start_http_server(port, addr=bind)
