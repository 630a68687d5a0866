from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from fleetstats.config import settings
from fleetstats.logging_config import configure_logging
from fleetstats.metrics import metrics_endpoint
from fleetstats.middleware.logging_middleware import RequestLoggingMiddleware
from fleetstats.routers import stats, telemetry
from fleetstats.store import build_store

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure structured logging before anything else
    configure_logging()

    # Startup: open the event store (shared HTTP connection pool) on app.state
    app.state.store = build_store(settings)
    log.info(
        "event_store_opened",
        store=app.state.store.name,
        configured=app.state.store.is_configured(),
    )
    try:
        yield
    finally:
        await app.state.store.close()


app = FastAPI(title=f"{settings.app_name} API", version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(telemetry.router)
app.include_router(stats.router)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.options("/telemetry", include_in_schema=False)
@app.options("/telemetry.png", include_in_schema=False)
@app.options("/api/stats", include_in_schema=False)
async def options_ok() -> Response:
    """Bare OPTIONS without preflight headers; real preflights stop at CORSMiddleware."""
    return Response(
        status_code=204,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        },
    )


@app.get("/favicon.ico", include_in_schema=False)
@app.get("/favicon.png", include_in_schema=False)
async def favicon() -> Response:
    if not settings.favicon_url:
        return Response(status_code=404)
    return RedirectResponse(settings.favicon_url, status_code=302)


@app.get("/health")
async def health_check(response: Response):
    """Configuration health check.

    Returns 200 when the event store is configured, 503 otherwise. Does not
    query the backend, so dashboards polling /health cost nothing upstream.
    """
    checks = {}
    overall_healthy = True

    try:
        store = app.state.store
        if store.is_configured():
            checks["event_store"] = {"status": "healthy", "backend": store.name}
        else:
            checks["event_store"] = {
                "status": "unhealthy",
                "backend": store.name,
                "error": "Credentials not configured",
            }
            overall_healthy = False
    except AttributeError:
        checks["event_store"] = {
            "status": "unhealthy",
            "error": "Store not initialized",
        }
        overall_healthy = False

    response.status_code = 200 if overall_healthy else 503
    return {"status": "healthy" if overall_healthy else "unhealthy", "checks": checks}
