"""Prometheus metrics for ingestion and stats.

Served at GET /metrics in the Prometheus text exposition format.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

pings_received = Counter(
    "fleet_telemetry_pings_total",
    "Telemetry pings accepted by the ingestion endpoint",
)
write_failures = Counter(
    "fleet_telemetry_write_failures_total",
    "Telemetry data points that could not be written to the event store",
)
stats_requests = Counter(
    "fleet_stats_requests_total",
    "Stats requests by outcome",
    ["outcome"],
)
stats_duration = Histogram(
    "fleet_stats_duration_seconds",
    "End-to-end stats computation latency",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


async def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
