"""Shared HTTP plumbing for remote analytics backends.

HttpEventStore wraps httpx.AsyncClient to give the SQL and GraphQL stores
one place for bearer authentication, error translation and the write path.
Backend detail stays inside the exception message; the stats router logs it
and never returns it to the caller.
"""

from typing import Optional

import httpx
import structlog

from fleetstats.schemas.telemetry import DataPoint, TelemetryEvent
from fleetstats.store.base import (
    BackendUnavailable,
    ConfigurationError,
    EventStore,
    QueryError,
)

log = structlog.get_logger(__name__)

# Keep enough of an error body to debug from logs without flooding them
MAX_ERROR_BODY = 500


class HttpEventStore(EventStore):
    """Base for stores reached over HTTPS with an account id and API token."""

    def __init__(
        self,
        account_id: str,
        api_token: str,
        ingest_url: str = "",
        write_timeout: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.account_id = account_id
        self.api_token = api_token
        self.ingest_url = ingest_url
        self.write_timeout = write_timeout
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(15.0, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    def is_configured(self) -> bool:
        return bool(self.account_id and self.api_token)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("Analytics account id or API token not configured")
        return {"Authorization": f"Bearer {self.api_token}"}

    async def _post(
        self,
        url: str,
        *,
        content: Optional[str] = None,
        json: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """POST to the backend and translate failures into store errors.

        Raises:
            ConfigurationError: Credentials are missing (checked before any I/O)
            BackendUnavailable: Timeout or connection failure
            QueryError: Any non-2xx response
        """
        headers = self._headers()
        kwargs: dict = {"headers": headers}
        if content is not None:
            kwargs["content"] = content
        if json is not None:
            kwargs["json"] = json
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            resp = await self.client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendUnavailable(f"{type(exc).__name__}: {exc}") from exc

        if not resp.is_success:
            raise QueryError(
                f"Backend returned {resp.status_code}: {resp.text[:MAX_ERROR_BODY]}"
            )
        return resp

    @staticmethod
    def _decode(resp: httpx.Response) -> dict:
        try:
            payload = resp.json()
        except ValueError as exc:
            raise QueryError(f"Backend returned invalid JSON: {resp.text[:MAX_ERROR_BODY]}") from exc
        if not isinstance(payload, dict):
            raise QueryError(f"Backend returned unexpected payload type {type(payload).__name__}")
        return payload

    async def write(self, event: TelemetryEvent) -> None:
        """Forward one data point to the ingest relay, if one is configured."""
        if not self.ingest_url:
            log.debug("telemetry_write_skipped", reason="ingest_url not configured")
            return
        point = DataPoint.from_event(event)
        await self._post(
            self.ingest_url,
            json=point.model_dump(),
            timeout=self.write_timeout,
        )

    async def close(self) -> None:
        """Close the underlying httpx client and release connections."""
        await self.client.aclose()
