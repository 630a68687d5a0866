"""In-process event store for local development and tests.

Applies the same reduction the SQL backend does: group by every text column
within the window, max() per numeric metric.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fleetstats.schemas.telemetry import DataPoint, TelemetryEvent
from fleetstats.store.base import (
    ALL_TIME,
    METRIC_COLUMNS,
    TEXT_COLUMNS,
    EventStore,
    RawRow,
    Window,
    validate_window,
)

TEXT_ROLES = list(TEXT_COLUMNS)
METRIC_ROLES = list(METRIC_COLUMNS)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryEventStore(EventStore):
    name = "memory"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.clock = clock or _utcnow
        self.points: list[tuple[datetime, DataPoint]] = []

    def add(self, point: DataPoint, at: Optional[datetime] = None) -> None:
        self.points.append((at or self.clock(), point))

    async def write(self, event: TelemetryEvent) -> None:
        self.add(DataPoint.from_event(event))

    async def query_window(self, days: Window) -> list[RawRow]:
        days = validate_window(days)
        if days == ALL_TIME:
            seen: dict[str, None] = {}
            for _, point in self.points:
                seen.setdefault(point.blobs[0], None)
            return [{"instance_id": instance_id} for instance_id in seen]

        cutoff = self.clock() - timedelta(days=days)
        groups: dict[tuple, list[float]] = {}
        for at, point in self.points:
            if at < cutoff:
                continue
            key = tuple(point.blobs)
            current = groups.get(key)
            if current is None:
                groups[key] = list(point.doubles)
            else:
                groups[key] = [max(a, b) for a, b in zip(current, point.doubles)]

        rows = []
        for blobs, doubles in groups.items():
            row: RawRow = dict(zip(TEXT_ROLES, blobs))
            row.update(zip(METRIC_ROLES, doubles))
            rows.append(row)
        return rows
