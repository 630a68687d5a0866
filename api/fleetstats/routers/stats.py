"""Dashboard stats endpoint.

GET /api/stats -- aggregate, privacy-preserving usage statistics.

Backend failures are logged with full detail and answered with a static
500 payload; backend error text never reaches the caller.
"""

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from fleetstats.config import settings
from fleetstats.dependencies import Store
from fleetstats.metrics import stats_duration, stats_requests
from fleetstats.schemas.telemetry import ErrorResponse, StatsResponse
from fleetstats.services.stats import compute_stats
from fleetstats.store.base import ConfigurationError, StoreError

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["stats"])

NOT_CONFIGURED_MESSAGE = "Telemetry backend credentials not configured."
INTERNAL_ERROR_MESSAGE = "Internal Server Error"

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message}, headers=CORS_HEADERS)


@router.get(
    "/stats",
    response_model=StatsResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_stats(store: Store):
    """Return the current aggregate snapshot, computed fresh per request."""
    with stats_duration.time():
        try:
            stats = await compute_stats(store, settings)
        except ConfigurationError:
            stats_requests.labels(outcome="misconfigured").inc()
            log.error("stats_backend_not_configured", store=store.name)
            return _error(NOT_CONFIGURED_MESSAGE)
        except StoreError:
            stats_requests.labels(outcome="error").inc()
            log.exception("stats_query_failed", store=store.name)
            return _error(INTERNAL_ERROR_MESSAGE)

    stats_requests.labels(outcome="ok").inc()
    return JSONResponse(content=stats.model_dump(), headers=CORS_HEADERS)
