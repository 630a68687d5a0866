"""Telemetry ingestion router: anonymous pings from installations.

GET /telemetry and GET /telemetry.png accept the ping as query parameters
and always answer with a 1x1 transparent PNG, whatever the payload looked
like. The write to the event store runs after the response is produced and
its failures are only logged, so telemetry can never break the caller.
"""

import structlog
from fastapi import APIRouter, BackgroundTasks, Request, Response

from fleetstats.config import settings
from fleetstats.dependencies import Store
from fleetstats.metrics import pings_received, write_failures
from fleetstats.schemas.telemetry import TelemetryEvent
from fleetstats.services.sanitizer import sanitize
from fleetstats.store.base import EventStore

log = structlog.get_logger(__name__)

router = APIRouter(tags=["telemetry"])

TRANSPARENT_PNG = bytes([
    0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A, 0x00, 0x00, 0x00, 0x0D,
    0x49, 0x48, 0x44, 0x52, 0x00, 0x00, 0x00, 0x01, 0x00, 0x00, 0x00, 0x01,
    0x08, 0x06, 0x00, 0x00, 0x00, 0x1F, 0x15, 0xC4, 0x89, 0x00, 0x00, 0x00,
    0x0A, 0x49, 0x44, 0x41, 0x54, 0x78, 0x9C, 0x63, 0x00, 0x01, 0x00, 0x00,
    0x05, 0x00, 0x01, 0x0D, 0x0A, 0x2D, 0xB4, 0x00, 0x00, 0x00, 0x00, 0x49,
    0x45, 0x4E, 0x44, 0xAE, 0x42, 0x60, 0x82,
])

PIXEL_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Access-Control-Allow-Origin": "*",
}


async def record_event(store: EventStore, event: TelemetryEvent) -> None:
    """Best-effort write of one event. Errors are logged, never raised."""
    try:
        await store.write(event)
    except Exception as exc:
        write_failures.inc()
        log.error(
            "telemetry_write_failed",
            store=store.name,
            error_type=type(exc).__name__,
            error=str(exc),
        )


@router.api_route("/telemetry", methods=["GET", "POST"])
@router.api_route("/telemetry.png", methods=["GET", "POST"])
async def ingest_ping(
    request: Request,
    store: Store,
    background_tasks: BackgroundTasks,
) -> Response:
    """Accept one telemetry ping.

    Query: instance_id, version, os, arch, cpu_model, cpu, ram, cameras,
    groups, events, gpu, notifications. Country comes from the edge header
    configured in settings.country_header, never from the query string.
    """
    event = sanitize(
        request.query_params,
        country=request.headers.get(settings.country_header),
    )
    pings_received.inc()
    background_tasks.add_task(record_event, store, event)
    return Response(content=TRANSPARENT_PNG, media_type="image/png", headers=PIXEL_HEADERS)
