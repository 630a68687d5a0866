"""Tabular backend: SQL over the analytics engine HTTP API.

POST /accounts/{account_id}/analytics_engine/sql with the statement as the
raw request body. The response is {"data": [...rows...], ...}.

The window query groups by every text column and max()-reduces the numeric
ones, so an instance whose facets changed inside the window (an upgrade, a
CPU model that was detected later) comes back as several rows. The
deduplicator collapses those.
"""

import re
from typing import Optional

import httpx

from fleetstats.store.base import (
    ALL_TIME,
    METRIC_COLUMNS,
    TEXT_COLUMNS,
    QueryError,
    RawRow,
    Window,
    validate_window,
)
from fleetstats.store.http import HttpEventStore

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def build_window_sql(dataset: str, days: int) -> str:
    text_cols = ",\n    ".join(f"{col} AS {role}" for role, col in TEXT_COLUMNS.items())
    metric_cols = ",\n    ".join(f"max({col}) AS {role}" for role, col in METRIC_COLUMNS.items())
    group_by = ", ".join(TEXT_COLUMNS.values())
    return (
        f"SELECT\n    {text_cols},\n    {metric_cols}\n"
        f"FROM {dataset}\n"
        f"WHERE timestamp >= NOW() - INTERVAL '{days}' DAY\n"
        f"GROUP BY {group_by}"
    )


def build_instances_sql(dataset: str) -> str:
    column = TEXT_COLUMNS["instance_id"]
    return f"SELECT {column} AS instance_id FROM {dataset} GROUP BY {column}"


class AnalyticsSQLStore(HttpEventStore):
    name = "sql"

    def __init__(
        self,
        account_id: str,
        api_token: str,
        dataset: str,
        api_base_url: str = "https://api.cloudflare.com/client/v4",
        ingest_url: str = "",
        write_timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not _IDENTIFIER.match(dataset):
            raise ValueError(f"Invalid dataset name: {dataset!r}")
        super().__init__(account_id, api_token, ingest_url, write_timeout, client)
        self.dataset = dataset
        self.api_base_url = api_base_url.rstrip("/")

    @property
    def sql_url(self) -> str:
        return f"{self.api_base_url}/accounts/{self.account_id}/analytics_engine/sql"

    async def run_sql(self, statement: str) -> list[RawRow]:
        resp = await self._post(self.sql_url, content=statement)
        data = self._decode(resp).get("data") or []
        if not isinstance(data, list):
            raise QueryError("SQL API returned a non-list 'data' field")
        if not all(isinstance(row, dict) for row in data):
            raise QueryError("SQL API returned a row that is not an object")
        return data

    async def query_window(self, days: Window) -> list[RawRow]:
        days = validate_window(days)
        if days == ALL_TIME:
            return await self.run_sql(build_instances_sql(self.dataset))
        return await self.run_sql(build_window_sql(self.dataset, days))
