"""Tests for the event store backends."""

import json
from datetime import timedelta

import httpx
import pytest

from fleetstats.schemas.telemetry import DataPoint, TelemetryEvent
from fleetstats.store import build_store
from fleetstats.config import Settings
from fleetstats.store.base import (
    ALL_TIME,
    BackendUnavailable,
    ConfigurationError,
    QueryError,
    validate_window,
)
from fleetstats.store.graphql import DimensionalGraphQLStore, group_to_row
from fleetstats.store.memory import MemoryEventStore
from fleetstats.store.sql import AnalyticsSQLStore, build_instances_sql, build_window_sql

from conftest import FIXED_NOW


class Recorder:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, response=None, exc=None):
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={"data": []})
        self.exc = exc

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return self.response


def _sql_store(handler, account_id="acct", api_token="tok", ingest_url=""):
    return AnalyticsSQLStore(
        account_id=account_id,
        api_token=api_token,
        dataset="fleet_events",
        api_base_url="https://analytics.test/v4/",
        ingest_url=ingest_url,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


# --- SQL backend -----------------------------------------------------------


def test_window_sql_reduces_metrics_with_max():
    sql = build_window_sql("fleet_events", 7)

    assert "blob1 AS instance_id" in sql
    assert "blob5 AS cpu_model" in sql
    assert "max(double3) AS cameras" in sql
    assert "max(double7) AS notifications" in sql
    assert "FROM fleet_events" in sql
    assert "INTERVAL '7' DAY" in sql
    assert sql.rstrip().endswith("GROUP BY blob1, blob2, blob3, blob4, blob5, blob6")


def test_instances_sql_selects_distinct_ids():
    assert build_instances_sql("fleet_events") == (
        "SELECT blob1 AS instance_id FROM fleet_events GROUP BY blob1"
    )


def test_sql_store_rejects_unsafe_dataset_name():
    with pytest.raises(ValueError):
        AnalyticsSQLStore(account_id="a", api_token="t", dataset="events; DROP TABLE x")


@pytest.mark.asyncio
async def test_sql_store_posts_statement_with_bearer_token():
    rows = [{"instance_id": "abc", "cameras": 3}]
    handler = Recorder(httpx.Response(200, json={"meta": [], "data": rows}))
    store = _sql_store(handler)

    result = await store.query_window(7)

    assert result == rows
    request = handler.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://analytics.test/v4/accounts/acct/analytics_engine/sql"
    assert request.headers["authorization"] == "Bearer tok"
    assert "INTERVAL '7' DAY" in request.content.decode()
    await store.close()


@pytest.mark.asyncio
async def test_sql_store_all_time_query():
    handler = Recorder(httpx.Response(200, json={"data": [{"instance_id": "a"}]}))
    store = _sql_store(handler)

    assert await store.query_window(ALL_TIME) == [{"instance_id": "a"}]
    assert "GROUP BY blob1" in handler.requests[0].content.decode()


@pytest.mark.asyncio
async def test_sql_store_missing_credentials_raise_before_any_request():
    handler = Recorder()
    store = _sql_store(handler, api_token="")

    assert store.is_configured() is False
    with pytest.raises(ConfigurationError):
        await store.query_window(7)
    assert handler.requests == []


@pytest.mark.asyncio
async def test_configuration_error_is_a_backend_unavailable():
    store = _sql_store(Recorder(), account_id="")
    with pytest.raises(BackendUnavailable):
        await store.query_window(7)


@pytest.mark.asyncio
async def test_sql_store_non_success_raises_query_error():
    store = _sql_store(Recorder(httpx.Response(422, text="syntax error near GROUP")))

    with pytest.raises(QueryError) as excinfo:
        await store.query_window(7)
    assert "422" in str(excinfo.value)


@pytest.mark.asyncio
async def test_sql_store_invalid_json_raises_query_error():
    store = _sql_store(Recorder(httpx.Response(200, text="<html>oops</html>")))
    with pytest.raises(QueryError):
        await store.query_window(7)


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [["not-a-row"], [{"instance_id": "a"}, 7], [None]])
async def test_sql_store_non_object_rows_raise_query_error(data):
    store = _sql_store(Recorder(httpx.Response(200, json={"data": data})))
    with pytest.raises(QueryError):
        await store.query_window(7)


@pytest.mark.asyncio
async def test_sql_store_connection_failure_is_backend_unavailable():
    store = _sql_store(Recorder(exc=httpx.ConnectError("connection refused")))
    with pytest.raises(BackendUnavailable):
        await store.query_window(7)


@pytest.mark.asyncio
async def test_sql_store_write_posts_data_point_to_ingest_url():
    handler = Recorder(httpx.Response(204))
    store = _sql_store(handler, ingest_url="https://ingest.test/points")
    event = TelemetryEvent(instance_id="abc", version="1.0", country="IT", cameras=2, gpu_enabled=True)

    await store.write(event)

    request = handler.requests[0]
    assert str(request.url) == "https://ingest.test/points"
    body = json.loads(request.content)
    assert body["blobs"] == ["abc", "1.0", "unknown", "unknown", "unknown", "IT"]
    assert body["doubles"] == [0, 0, 2, 0, 0, 1, 0]
    assert body["indexes"] == ["abc"]


@pytest.mark.asyncio
async def test_write_is_skipped_without_ingest_url():
    handler = Recorder()
    store = _sql_store(handler)

    await store.write(TelemetryEvent(instance_id="abc"))

    assert handler.requests == []


@pytest.mark.parametrize("days", [0, -1, "7", 1.5, True, None])
def test_invalid_windows_are_rejected(days):
    with pytest.raises(ValueError):
        validate_window(days)


# --- GraphQL backend -------------------------------------------------------


def _graphql_handler(rows_groups, facet_groups=None, errors=None):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if errors:
            return httpx.Response(200, json={"data": None, "errors": errors})
        if "FleetFacets" in body["query"]:
            return httpx.Response(200, json={"data": {"dataset": facet_groups or {}}})
        handler.variables.append(body["variables"])
        return httpx.Response(200, json={"data": {"dataset": {"groups": rows_groups}}})

    handler.variables = []
    return handler


def _graphql_store(handler, max_groups=10000):
    return DimensionalGraphQLStore(
        account_id="acct",
        api_token="tok",
        dataset="fleet_events",
        graphql_url="https://analytics.test/graphql",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        max_groups=max_groups,
    )


def test_group_to_row_maps_columns_to_roles():
    group = {
        "dimensions": {"blob1": "abc", "blob5": "Intel i7", "blob6": "IT"},
        "max": {"double1": 8, "double3": 4},
    }
    assert group_to_row(group) == {
        "instance_id": "abc",
        "cpu_model": "Intel i7",
        "country": "IT",
        "cpu_cores": 8,
        "cameras": 4,
    }


@pytest.mark.asyncio
async def test_graphql_store_window_rows():
    handler = _graphql_handler([
        {"dimensions": {"blob1": "a", "blob2": "1.0"}, "max": {"double3": 2}},
        {"dimensions": {"blob1": "b", "blob2": "1.1"}, "max": {"double3": 0}},
    ])
    store = _graphql_store(handler)

    rows = await store.query_window(7)

    assert rows == [
        {"instance_id": "a", "version": "1.0", "cameras": 2},
        {"instance_id": "b", "version": "1.1", "cameras": 0},
    ]
    variables = handler.variables[0]
    assert variables["dataset"] == "fleet_events"
    assert variables["by"] == ["blob1", "blob2", "blob3", "blob4", "blob5", "blob6"]
    assert variables["since"] is not None


@pytest.mark.asyncio
async def test_graphql_store_all_time_groups_by_instance_only():
    handler = _graphql_handler([{"dimensions": {"blob1": "a"}}])
    store = _graphql_store(handler)

    assert await store.query_window(ALL_TIME) == [{"instance_id": "a"}]
    assert handler.variables[0]["by"] == ["blob1"]
    assert handler.variables[0]["since"] is None


@pytest.mark.asyncio
async def test_graphql_store_facet_counts():
    facets = {
        "versions": [{"dimensions": {"blob2": "1.0"}, "count": 5}],
        "countries": [{"dimensions": {"blob6": "IT"}, "count": 3}],
        "os": [],
        "arch": None,
        "cpu_models": [{"dimensions": {"blob5": "Intel"}, "count": 2}],
    }
    store = _graphql_store(_graphql_handler([], facets))

    result = await store.facet_counts(7)

    assert result["versions"] == [{"name": "1.0", "count": 5}]
    assert result["countries"] == [{"name": "IT", "count": 3}]
    assert result["os"] == []
    assert result["arch"] == []
    assert result["cpu_models"] == [{"name": "Intel", "count": 2}]


@pytest.mark.asyncio
async def test_graphql_errors_raise_query_error():
    store = _graphql_store(_graphql_handler([], errors=[{"message": "unknown field"}]))
    with pytest.raises(QueryError) as excinfo:
        await store.query_window(7)
    assert "unknown field" in str(excinfo.value)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "groups",
    [
        ["not-a-group"],
        [{"dimensions": "blob1=a", "max": {}}],
        [{"dimensions": {"blob1": "a"}, "max": [4]}],
        {"blob1": "a"},
    ],
)
async def test_graphql_malformed_groups_raise_query_error(groups):
    store = _graphql_store(_graphql_handler(groups))
    with pytest.raises(QueryError):
        await store.query_window(7)


@pytest.mark.asyncio
async def test_graphql_malformed_facet_groups_raise_query_error():
    store = _graphql_store(_graphql_handler([], {"versions": ["1.0"]}))
    with pytest.raises(QueryError):
        await store.facet_counts(7)


@pytest.mark.asyncio
async def test_graphql_full_page_is_reported_as_truncated():
    groups = [{"dimensions": {"blob1": f"id-{n}"}} for n in range(3)]
    handler = _graphql_handler(groups)
    store = _graphql_store(handler, max_groups=3)

    with pytest.raises(QueryError) as excinfo:
        await store.query_window(ALL_TIME)
    assert "limit" in str(excinfo.value)
    assert handler.variables[0]["limit"] == 3

    below_limit = _graphql_store(_graphql_handler(groups[:2]), max_groups=3)
    assert len(await below_limit.query_window(ALL_TIME)) == 2


@pytest.mark.asyncio
async def test_graphql_facet_page_at_limit_is_reported_as_truncated():
    facets = {"versions": [{"dimensions": {"blob2": f"1.{n}"}, "count": 1} for n in range(2)]}
    store = _graphql_store(_graphql_handler([], facets), max_groups=2)

    with pytest.raises(QueryError):
        await store.facet_counts(7)


# --- Memory backend --------------------------------------------------------


def _point(instance_id, cpu_model="unknown", cameras=0, version="1.0"):
    return DataPoint.from_event(
        TelemetryEvent(instance_id=instance_id, cpu_model=cpu_model, cameras=cameras, version=version)
    )


@pytest.mark.asyncio
async def test_memory_store_reduces_to_max_per_facet_combination():
    store = MemoryEventStore(clock=lambda: FIXED_NOW)
    store.add(_point("a", cameras=2))
    store.add(_point("a", cameras=5))
    store.add(_point("a", cameras=1, cpu_model="Intel"))

    rows = await store.query_window(7)

    assert len(rows) == 2
    assert rows[0]["instance_id"] == "a"
    assert rows[0]["cameras"] == 5
    assert rows[1]["cpu_model"] == "Intel"
    assert rows[1]["cameras"] == 1


@pytest.mark.asyncio
async def test_memory_store_window_excludes_old_points():
    store = MemoryEventStore(clock=lambda: FIXED_NOW)
    store.add(_point("old"), at=FIXED_NOW - timedelta(days=30))
    store.add(_point("new"), at=FIXED_NOW - timedelta(days=1))

    recent = await store.query_window(7)
    everything = await store.query_window(ALL_TIME)

    assert [r["instance_id"] for r in recent] == ["new"]
    assert everything == [{"instance_id": "old"}, {"instance_id": "new"}]


@pytest.mark.asyncio
async def test_memory_store_write_round_trips_through_sanitized_event():
    store = MemoryEventStore(clock=lambda: FIXED_NOW)
    await store.write(TelemetryEvent(instance_id="abc", ram_gb=16, notifications_enabled=True))

    rows = await store.query_window(7)

    assert rows[0]["instance_id"] == "abc"
    assert rows[0]["ram"] == 16
    assert rows[0]["notifications"] == 1


# --- Factory ---------------------------------------------------------------


def test_build_store_selects_backend():
    assert isinstance(build_store(Settings(store_backend="memory")), MemoryEventStore)
    assert isinstance(build_store(Settings(store_backend="sql")), AnalyticsSQLStore)
    assert isinstance(build_store(Settings(store_backend="GraphQL")), DimensionalGraphQLStore)
    with pytest.raises(ValueError):
        build_store(Settings(store_backend="bigquery"))
