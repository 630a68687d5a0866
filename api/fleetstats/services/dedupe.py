"""Instance deduplication.

The window query can return several rows per instance (one per distinct
facet combination seen in the window). Collapse them to one canonical row
per instance:

- rows with a missing, empty or "unknown" instance id are dropped (exact
  match: ids are already trimmed at ingestion and are otherwise opaque)
- a row with an identified CPU model supersedes an earlier row without one
  (early pings may predate hardware detection)
- otherwise the first row seen wins, so re-running on the same input is
  deterministic
"""

from typing import Iterable

from fleetstats.store.base import RawRow

UNKNOWN_SENTINELS = frozenset({"", "unknown"})


def is_known(value) -> bool:
    return value is not None and str(value) not in UNKNOWN_SENTINELS


def instance_key(row: RawRow):
    """Return the row's instance id, or None if it cannot identify an instance."""
    instance_id = row.get("instance_id")
    if not is_known(instance_id):
        return None
    return str(instance_id)


def has_cpu_model(row: RawRow) -> bool:
    return is_known(row.get("cpu_model"))


def dedupe(rows: Iterable[RawRow]) -> list[RawRow]:
    """Collapse rows to one canonical row per instance, in first-seen order."""
    canonical: dict[str, RawRow] = {}
    for row in rows:
        key = instance_key(row)
        if key is None:
            continue
        existing = canonical.get(key)
        if existing is None or (not has_cpu_model(existing) and has_cpu_model(row)):
            canonical[key] = row
    return list(canonical.values())


def count_instances(rows: Iterable[RawRow]) -> int:
    """Number of distinct valid instance ids in rows."""
    return len({key for key in map(instance_key, rows) if key is not None})


def reconcile_counts(canonical_rows: list[RawRow], all_time_rows: Iterable[RawRow]) -> tuple[int, int]:
    """Return (active, total) installs.

    total is max(active, distinct all-time ids): the two queries run
    independently, so a ping landing between them could otherwise make the
    7-day count exceed the all-time count.
    """
    active = len(canonical_rows)
    total = max(active, count_instances(all_time_rows))
    return active, total
