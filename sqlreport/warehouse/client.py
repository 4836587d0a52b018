"""
HTTP client for the warehouse query API.

The API accepts ``{"query": <sql>, "analysisType": <label>}`` on

  POST /api/bigquery            -- run the query, return rows
  POST /api/bigquery/estimate   -- dry run, return bytes processed

and answers errors with ``{"error": <message>}`` and a non-2xx status.
"""
from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field

from sqlreport.core.config import get_settings
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)

_BYTES_PER_GB = 1024 ** 3
_BYTES_PER_TB = 1024 ** 4
_USD_PER_TB = 6.25


class WarehouseError(RuntimeError):
    """The warehouse API could not be reached or rejected the query."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class QueryStats(BaseModel):
    total_bytes_processed: int = 0
    gb_processed: float = 0.0
    estimated_cost_usd: float = 0.0

    @classmethod
    def from_bytes(cls, total_bytes: int) -> "QueryStats":
        return cls(
            total_bytes_processed=total_bytes,
            gb_processed=round(total_bytes / _BYTES_PER_GB, 2),
            estimated_cost_usd=round(total_bytes / _BYTES_PER_TB * _USD_PER_TB, 3),
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "QueryStats":
        return cls.from_bytes(int(payload.get("totalBytesProcessed") or 0))


class QueryResult(BaseModel):
    data: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    query_stats: QueryStats | None = None


class WarehouseClient:
    """Thin synchronous wrapper around the warehouse query endpoints.

    Parameters
    ----------
    base_url : str, optional
        Overrides ``Settings.warehouse_base_url``.
    transport : httpx.BaseTransport, optional
        Injected transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        analysis_type: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.warehouse_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.warehouse_timeout_seconds
        self._analysis_type = analysis_type or settings.analysis_type
        self._transport = transport

    def _post(self, path: str, sql: str) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        body = {"query": sql, "analysisType": self._analysis_type}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise WarehouseError(f"Warehouse request failed: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}

        if resp.is_error:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise WarehouseError(
                message or f"Warehouse returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        return payload if isinstance(payload, dict) else {}

    def execute_query(self, sql: str) -> QueryResult:
        """Run *sql* and return its rows."""
        logger.info("Executing warehouse query (%d chars)", len(sql))
        payload = self._post("/api/bigquery", sql)
        rows = payload.get("data") or []
        stats = payload.get("queryStats")
        result = QueryResult(
            data=rows,
            row_count=int(payload.get("rowCount", len(rows))),
            query_stats=QueryStats.from_payload(stats) if stats else None,
        )
        logger.info("Warehouse returned %d rows", result.row_count)
        return result

    def estimate_query(self, sql: str) -> QueryStats:
        """Dry-run *sql* and return how much data it would scan."""
        payload = self._post("/api/bigquery/estimate", sql)
        stats = QueryStats.from_payload(payload)
        logger.info(
            "Estimated %.2f GB  ~$%.3f", stats.gb_processed, stats.estimated_cost_usd,
        )
        return stats


def get_client() -> WarehouseClient:
    return WarehouseClient()
