"""Aggregation over canonical (deduplicated) rows.

Produces untruncated parts: per-facet label counters in first-seen order,
numeric totals, flag counts and fixed-bucket histograms. Ordering, top-K and
"Other" collapsing happen in the assembler.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from fleetstats.services.dedupe import is_known
from fleetstats.store.base import FACET_COLUMNS, RawRow

# (inclusive upper bound, label); None is the open-ended last bucket
CAMERA_BUCKETS: list[tuple[Optional[int], str]] = [
    (0, "0"),
    (1, "1"),
    (3, "2-3"),
    (5, "4-5"),
    (10, "6-10"),
    (20, "11-20"),
    (None, "21+"),
]

GROUP_BUCKETS: list[tuple[Optional[int], str]] = [
    (0, "0"),
    (1, "1"),
    (3, "2-3"),
    (5, "4-5"),
    (10, "6-10"),
    (None, "11+"),
]

# Histogram name -> (metric column role, bucket table)
HISTOGRAMS: dict[str, tuple[str, list[tuple[Optional[int], str]]]] = {
    "cameras_dist": ("cameras", CAMERA_BUCKETS),
    "groups_dist": ("groups", GROUP_BUCKETS),
}

# Response total -> metric column role
NUMERIC_TOTALS: dict[str, str] = {
    "total_cameras": "cameras",
    "total_groups": "groups",
    "total_events": "events",
}

# Response flag count -> metric column role; truthy means value > 0
FLAG_COUNTS: dict[str, str] = {
    "gpu_enabled": "gpu",
    "notifications_enabled": "notifications",
}


def as_number(value) -> float:
    """Coerce a backend value to a finite number; anything else is 0."""
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def _plain(number: float):
    return int(number) if float(number).is_integer() else number


def text_label(value, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value)


def cpu_model_label(row: RawRow) -> Optional[str]:
    """Identified CPU models only; unidentified rows are not counted."""
    model = row.get("cpu_model")
    if not is_known(model):
        return None
    return str(model)


def cpu_cores_label(row: RawRow) -> str:
    cores = as_number(row.get("cpu_cores"))
    return f"{_plain(cores)} Cores" if cores > 0 else "Unknown"


def ram_label(row: RawRow) -> str:
    ram = as_number(row.get("ram"))
    return f"{_plain(ram)} GB" if ram > 0 else "Unknown"


# Facet name -> label function; returning None skips the row for that facet
FACET_LABELS: dict[str, Callable[[RawRow], Optional[str]]] = {
    "versions": lambda row: text_label(row.get("version"), "unknown"),
    "countries": lambda row: text_label(row.get("country"), "Unknown"),
    "cpu_models": cpu_model_label,
    "cpu_cores": cpu_cores_label,
    "os": lambda row: text_label(row.get("os"), "Unknown"),
    "arch": lambda row: text_label(row.get("arch"), "Unknown"),
    "ram": ram_label,
}


def bucket_for(value, buckets: list[tuple[Optional[int], str]]) -> str:
    number = max(as_number(value), 0.0)
    for upper, label in buckets:
        if upper is None or number <= upper:
            return label
    return buckets[-1][1]


@dataclass
class AggregateParts:
    """Untruncated aggregation result for one set of canonical rows."""

    facets: dict[str, Counter] = field(default_factory=dict)
    totals: dict[str, int] = field(default_factory=dict)
    flags: dict[str, int] = field(default_factory=dict)
    histograms: dict[str, list[tuple[str, int]]] = field(default_factory=dict)


def aggregate(rows: Iterable[RawRow]) -> AggregateParts:
    facets = {name: Counter() for name in FACET_LABELS}
    totals = {name: 0 for name in NUMERIC_TOTALS}
    flags = {name: 0 for name in FLAG_COUNTS}
    buckets = {name: Counter() for name in HISTOGRAMS}

    for row in rows:
        for name, label_fn in FACET_LABELS.items():
            label = label_fn(row)
            if label is not None:
                facets[name][label] += 1

        for name, role in NUMERIC_TOTALS.items():
            totals[name] += int(max(as_number(row.get(role)), 0.0))

        for name, role in FLAG_COUNTS.items():
            if as_number(row.get(role)) > 0:
                flags[name] += 1

        for name, (role, table) in HISTOGRAMS.items():
            buckets[name][bucket_for(row.get(role), table)] += 1

    histograms = {
        name: [(label, buckets[name][label]) for _, label in table if buckets[name][label]]
        for name, (_, table) in HISTOGRAMS.items()
    }
    return AggregateParts(facets=facets, totals=totals, flags=flags, histograms=histograms)


def count_facet_entries(facet: str, entries: Iterable[dict]) -> Counter:
    """Relabel backend-provided {name, count} entries with the local label rules.

    Used when a dimensional backend supplies facet counts directly. Entries
    whose label maps to the same bucket ("" and None both become "Unknown")
    are merged; labels that the facet skips are dropped.
    """
    role = FACET_COLUMNS[facet]
    label_fn = FACET_LABELS[facet]
    counts: Counter = Counter()
    for entry in entries:
        label = label_fn({role: entry.get("name")})
        count = int(max(as_number(entry.get("count")), 0.0))
        if label is not None and count:
            counts[label] += count
    return counts
