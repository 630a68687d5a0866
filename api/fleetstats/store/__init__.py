from fleetstats.config import Settings
from fleetstats.store.base import (
    ALL_TIME,
    BackendUnavailable,
    ConfigurationError,
    EventStore,
    QueryError,
    RawRow,
    StoreError,
)
from fleetstats.store.graphql import DimensionalGraphQLStore
from fleetstats.store.memory import MemoryEventStore
from fleetstats.store.sql import AnalyticsSQLStore


def build_store(config: Settings) -> EventStore:
    """Create the event store selected by config.store_backend."""
    backend = config.store_backend.lower()
    if backend == "sql":
        return AnalyticsSQLStore(
            account_id=config.account_id,
            api_token=config.api_token,
            dataset=config.dataset,
            api_base_url=config.api_base_url,
            ingest_url=config.ingest_url,
            write_timeout=config.write_timeout,
        )
    if backend == "graphql":
        return DimensionalGraphQLStore(
            account_id=config.account_id,
            api_token=config.api_token,
            dataset=config.dataset,
            graphql_url=config.graphql_url,
            max_groups=config.graphql_max_groups,
            ingest_url=config.ingest_url,
            write_timeout=config.write_timeout,
        )
    if backend == "memory":
        return MemoryEventStore()
    raise ValueError(f"Unknown store backend: {config.store_backend!r}")


__all__ = [
    "ALL_TIME",
    "AnalyticsSQLStore",
    "BackendUnavailable",
    "ConfigurationError",
    "DimensionalGraphQLStore",
    "EventStore",
    "MemoryEventStore",
    "QueryError",
    "RawRow",
    "StoreError",
    "build_store",
]
