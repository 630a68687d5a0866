"""Dimensional backend: pre-aggregated groups over a GraphQL endpoint.

Expected schema (JSON scalars for dimensions/max):

    dataset(name: String!) {
      groups(by: [String!]!, since: Time, limit: Int) {
        dimensions   # {"blob1": "...", ...}
        count
        max          # {"double1": 4, ...}
      }
    }

Facet counts come straight from the backend (one aliased groups() per
dimension). Those counts are per ping group, not per instance, so instance
deduplication still runs on the row query to derive active/total installs.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from fleetstats.store.base import (
    ALL_TIME,
    FACET_COLUMNS,
    METRIC_COLUMNS,
    TEXT_COLUMNS,
    QueryError,
    RawRow,
    Window,
    validate_window,
)
from fleetstats.store.http import HttpEventStore

MAX_GROUPS = 10000

ROWS_QUERY = """
query FleetRows($dataset: String!, $by: [String!]!, $since: Time, $limit: Int) {
  dataset(name: $dataset) {
    groups(by: $by, since: $since, limit: $limit) {
      dimensions
      max
    }
  }
}
"""


def build_facets_query() -> str:
    selections = "\n".join(
        f'    {facet}: groups(by: ["{TEXT_COLUMNS[role]}"], since: $since, limit: $limit) '
        "{ dimensions count }"
        for facet, role in FACET_COLUMNS.items()
    )
    return (
        "query FleetFacets($dataset: String!, $since: Time, $limit: Int) {\n"
        "  dataset(name: $dataset) {\n"
        f"{selections}\n"
        "  }\n"
        "}\n"
    )


def _since(days: int, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=days)).isoformat()


def _object(value, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise QueryError(f"GraphQL {what} is not an object")
    return value


def group_to_row(group: dict) -> RawRow:
    """Map one backend group (blob/double keyed) onto column roles."""
    group = _object(group, "group")
    dimensions = _object(group.get("dimensions"), "group dimensions")
    maxima = _object(group.get("max"), "group max")
    row: RawRow = {}
    for role, column in TEXT_COLUMNS.items():
        if column in dimensions:
            row[role] = dimensions[column]
    for role, column in METRIC_COLUMNS.items():
        if column in maxima:
            row[role] = maxima[column]
    return row


class DimensionalGraphQLStore(HttpEventStore):
    name = "graphql"

    def __init__(
        self,
        account_id: str,
        api_token: str,
        dataset: str,
        graphql_url: str,
        ingest_url: str = "",
        write_timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
        max_groups: int = MAX_GROUPS,
    ) -> None:
        super().__init__(account_id, api_token, ingest_url, write_timeout, client)
        self.dataset = dataset
        self.graphql_url = graphql_url
        self.max_groups = max_groups

    def _groups(self, dataset: dict, key: str) -> list:
        """Return the group list under key, refusing a truncated result.

        The backend silently stops at `limit` groups; a full page means the
        counts derived from it would be capped, so it is reported as an error.
        """
        groups = dataset.get(key) or []
        if not isinstance(groups, list):
            raise QueryError(f"GraphQL '{key}' is not a list")
        if len(groups) >= self.max_groups:
            raise QueryError(f"GraphQL '{key}' hit the {self.max_groups} group limit; result would be truncated")
        return groups

    async def run_query(self, query: str, variables: dict) -> dict:
        resp = await self._post(
            self.graphql_url,
            json={"query": query, "variables": {"dataset": self.dataset, **variables}},
        )
        payload = self._decode(resp)
        if payload.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in payload["errors"]
            )
            raise QueryError(f"GraphQL errors: {messages}")
        dataset = (payload.get("data") or {}).get("dataset")
        if not isinstance(dataset, dict):
            raise QueryError("GraphQL response missing 'dataset'")
        return dataset

    async def query_window(self, days: Window) -> list[RawRow]:
        days = validate_window(days)
        if days == ALL_TIME:
            variables = {"by": [TEXT_COLUMNS["instance_id"]], "since": None, "limit": self.max_groups}
        else:
            variables = {
                "by": list(TEXT_COLUMNS.values()),
                "since": _since(days),
                "limit": self.max_groups,
            }
        dataset = await self.run_query(ROWS_QUERY, variables)
        return [group_to_row(group) for group in self._groups(dataset, "groups")]

    async def facet_counts(self, days: Window) -> dict[str, list[dict]]:
        days = validate_window(days)
        since = None if days == ALL_TIME else _since(days)
        dataset = await self.run_query(build_facets_query(), {"since": since, "limit": self.max_groups})

        facets: dict[str, list[dict]] = {}
        for facet, role in FACET_COLUMNS.items():
            column = TEXT_COLUMNS[role]
            entries = []
            for group in self._groups(dataset, facet):
                group = _object(group, "group")
                label = _object(group.get("dimensions"), "group dimensions").get(column)
                entries.append({"name": label, "count": group.get("count")})
            facets[facet] = entries
        return facets
