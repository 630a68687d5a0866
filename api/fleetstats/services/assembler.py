"""Shape aggregate parts into the stats response.

Facet lists are sorted descending by count (ties keep first-seen order),
truncated to a per-facet top-K, and the remainder collapsed into a single
"Other" entry. Histograms keep their fixed bucket order.
"""

from collections import Counter
from typing import Mapping, Optional

from fleetstats.config import settings
from fleetstats.schemas.telemetry import FacetEntry, StatsResponse
from fleetstats.services.aggregator import AggregateParts

OTHER_LABEL = "Other"


def default_top_k() -> dict[str, int]:
    """Per-facet limits from settings; facets not listed use facet_top_k."""
    return {
        "cpu_models": settings.cpu_model_top_k,
        "cpu_cores": settings.cpu_cores_top_k,
    }


def rank_facet(counts: Counter, limit: Optional[int]) -> list[FacetEntry]:
    """Sort counts descending and collapse everything past `limit` into Other.

    sorted() is stable and Counter iterates in insertion order, so equal
    counts stay in first-seen order. A limit of None keeps every entry.
    """
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    if limit is None or len(ranked) <= limit:
        kept, rest = ranked, []
    else:
        kept, rest = ranked[:limit], ranked[limit:]

    entries = [FacetEntry(name=name, count=count) for name, count in kept]
    remainder = sum(count for _, count in rest)
    if remainder > 0:
        entries.append(FacetEntry(name=OTHER_LABEL, count=remainder))
    return entries


def assemble(
    active: int,
    total: int,
    parts: AggregateParts,
    top_k: Optional[Mapping[str, int]] = None,
    default_limit: Optional[int] = None,
) -> StatsResponse:
    limits = default_top_k() if top_k is None else dict(top_k)
    if default_limit is None:
        default_limit = settings.facet_top_k

    facets = {
        name: rank_facet(counts, limits.get(name, default_limit))
        for name, counts in parts.facets.items()
    }
    histograms = {
        name: [FacetEntry(name=label, count=count) for label, count in buckets]
        for name, buckets in parts.histograms.items()
    }

    return StatsResponse(
        active_installs=active,
        total_installs=max(active, total),
        **facets,
        **parts.totals,
        **parts.flags,
        **histograms,
    )
