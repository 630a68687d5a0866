"""Event store interface shared by all analytics backends.

The stats pipeline only ever talks to EventStore. Each backend maps its own
column names onto the stable column roles below, so deduplication and
aggregation never need to know which backend produced a row.
"""

import abc
from typing import Any, Union

from fleetstats.schemas.telemetry import TelemetryEvent

RawRow = dict[str, Any]
Window = Union[int, str]  # days, or ALL_TIME

ALL_TIME = "all"

# Column role -> analytics engine column
TEXT_COLUMNS: dict[str, str] = {
    "instance_id": "blob1",
    "version": "blob2",
    "os": "blob3",
    "arch": "blob4",
    "cpu_model": "blob5",
    "country": "blob6",
}

METRIC_COLUMNS: dict[str, str] = {
    "cpu_cores": "double1",
    "ram": "double2",
    "cameras": "double3",
    "groups": "double4",
    "events": "double5",
    "gpu": "double6",
    "notifications": "double7",
}

# Facet name in the stats response -> column role, for backends that
# return per-dimension counts directly
FACET_COLUMNS: dict[str, str] = {
    "versions": "version",
    "countries": "country",
    "os": "os",
    "arch": "arch",
    "cpu_models": "cpu_model",
}


class StoreError(Exception):
    """Base class for event store failures."""
    pass


class BackendUnavailable(StoreError):
    """Raised when the backend cannot be reached (timeout, connection error)."""
    pass


class ConfigurationError(BackendUnavailable):
    """Raised when backend credentials or endpoints are missing."""
    pass


class QueryError(StoreError):
    """Raised when the backend answers with a non-success response."""
    pass


def validate_window(days: Window) -> Window:
    if days == ALL_TIME:
        return days
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise ValueError(f"window must be a positive number of days or {ALL_TIME!r}, got {days!r}")
    return days


class EventStore(abc.ABC):
    """Read/write access to raw telemetry events."""

    name: str = "abstract"

    @abc.abstractmethod
    async def query_window(self, days: Window) -> list[RawRow]:
        """Return raw rows for a window.

        For a bounded window: rows keyed by column role, with each numeric
        metric max()-reduced per instance. For ALL_TIME: one row per distinct
        instance id (only "instance_id" is guaranteed to be present).

        Raises:
            ConfigurationError: Credentials are missing
            BackendUnavailable: Backend unreachable or timed out
            QueryError: Backend returned a non-success response
        """

    async def facet_counts(self, days: Window) -> dict[str, list[dict]]:
        """Per-facet counts computed by the backend itself.

        Returns {} unless the backend aggregates dimensions natively; any
        facet returned here replaces the locally counted one.
        """
        return {}

    @abc.abstractmethod
    async def write(self, event: TelemetryEvent) -> None:
        """Persist one sanitized event (one data point)."""

    def is_configured(self) -> bool:
        return True

    async def close(self) -> None:
        pass
