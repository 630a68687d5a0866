"""Stats pipeline: query -> dedupe -> aggregate -> assemble.

Computed fresh on every request; nothing is cached between requests. The
two window queries (and the optional backend facet query) run concurrently
under a single deadline.
"""

import asyncio
import time
from typing import Optional

import structlog

from fleetstats.config import Settings, settings as default_settings
from fleetstats.schemas.telemetry import StatsResponse
from fleetstats.services.aggregator import aggregate, count_facet_entries
from fleetstats.services.assembler import assemble
from fleetstats.services.dedupe import dedupe, reconcile_counts
from fleetstats.store.base import ALL_TIME, BackendUnavailable, EventStore

log = structlog.get_logger(__name__)


async def compute_stats(store: EventStore, config: Optional[Settings] = None) -> StatsResponse:
    """Compute the aggregate snapshot for the dashboard.

    Raises:
        ConfigurationError: Store credentials are missing
        BackendUnavailable: Backend unreachable, or the deadline expired
        QueryError: Backend returned a non-success response
    """
    config = config or default_settings
    window = config.active_window_days
    started = time.monotonic()

    try:
        active_rows, all_time_rows, backend_facets = await asyncio.wait_for(
            asyncio.gather(
                store.query_window(window),
                store.query_window(ALL_TIME),
                store.facet_counts(window),
            ),
            timeout=config.query_timeout,
        )
    except asyncio.TimeoutError as exc:
        raise BackendUnavailable(
            f"Stats queries exceeded {config.query_timeout}s deadline"
        ) from exc

    canonical = dedupe(active_rows)
    active, total = reconcile_counts(canonical, all_time_rows)

    parts = aggregate(canonical)
    for facet, entries in backend_facets.items():
        if facet in parts.facets:
            parts.facets[facet] = count_facet_entries(facet, entries)

    stats = assemble(
        active,
        total,
        parts,
        top_k={"cpu_models": config.cpu_model_top_k, "cpu_cores": config.cpu_cores_top_k},
        default_limit=config.facet_top_k,
    )

    log.info(
        "stats_computed",
        store=store.name,
        rows=len(active_rows),
        active=active,
        total=stats.total_installs,
        backend_facets=sorted(backend_facets),
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )
    return stats
