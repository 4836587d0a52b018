"""
Report service -- orchestrates render -> safety check -> execute -> log.

When ``execute=True`` (default) the rendered SQL is sent to the warehouse
API and the rows are returned.  Every run is recorded in the
``sql_report_runs`` history table.
"""
from __future__ import annotations

from datetime import date
from typing import Any

from sqlreport.templating.engine import render
from sqlreport.templating.models import SubstitutionParams
from sqlreport.governance.sql_safety import check_sql_safety
from sqlreport.warehouse.client import QueryStats, WarehouseClient, WarehouseError, get_client
from sqlreport.reports.cache import get_cache
from sqlreport.db.query_log import ensure_log_table, log_run
from sqlreport.core.config import get_settings
from sqlreport.core.logging import get_logger
from sqlreport.core.utils import timer

logger = get_logger(__name__)

_history_ready = False


def _record(**fields: Any) -> None:
    global _history_ready
    if not get_settings().query_log_enabled:
        return
    if not _history_ready:
        try:
            ensure_log_table()
            _history_ready = True
        except Exception:
            logger.warning("Could not ensure report history table (DB may not be available)")
            return
    log_run(**fields)


class ReportResult:
    def __init__(
        self,
        template: str,
        sql: str,
        rows: list[dict[str, Any]],
        unresolved: list[str],
        safety_errors: list[str],
        latency_ms: int = 0,
        warehouse_error: str | None = None,
        query_stats: QueryStats | None = None,
        executed: bool = False,
        cached: bool = False,
    ):
        self.template = template
        self.sql = sql
        self.rows = rows
        self.unresolved = unresolved
        self.safety_errors = safety_errors
        self.latency_ms = latency_ms
        self.warehouse_error = warehouse_error
        self.query_stats = query_stats
        self.executed = executed
        self.cached = cached

    @property
    def success(self) -> bool:
        return not self.safety_errors and self.warehouse_error is None


def run_report(
    template: str,
    params: SubstitutionParams,
    execute: bool = True,
    client: WarehouseClient | None = None,
    today: date | None = None,
) -> ReportResult:
    """End-to-end: template + filters -> rendered SQL -> rows.

    Parameters
    ----------
    template : str
        Report SQL, possibly containing placeholders.
    params : SubstitutionParams
        Current filter values.
    execute : bool
        If False, return the rendered SQL without running it (dry-run).
    client : WarehouseClient, optional
        Defaults to a client built from settings.
    """
    logger.info("Report.run | website_id=%s | execute=%s", params.website_id or "-", execute)

    rows: list[dict[str, Any]] = []
    stats: QueryStats | None = None
    warehouse_error: str | None = None
    executed = False
    cached = False

    with timer() as elapsed:
        rendered = render(template, params, today)
        unresolved = rendered.unresolved_names()
        s_errors = check_sql_safety(rendered.sql, unresolved)

        if execute and not s_errors:
            cache = get_cache()
            hit = cache.get(rendered.sql)
            if hit is not None:
                rows, stats = hit.data, hit.query_stats
                cached = True
                logger.info("Cache HIT for rendered SQL (%d rows)", len(rows))
            else:
                try:
                    result = (client or get_client()).execute_query(rendered.sql)
                    rows, stats = result.data, result.query_stats
                    cache.put(rendered.sql, result)
                except WarehouseError as exc:
                    logger.exception("Warehouse execution failed")
                    warehouse_error = str(exc)
            executed = True

    latency = elapsed["elapsed_ms"]

    _record(
        template=template,
        rendered_sql=rendered.sql,
        website_id=params.website_id,
        row_count=len(rows),
        executed=executed,
        unresolved=unresolved,
        safety_errors=s_errors,
        warehouse_error=warehouse_error,
        latency_ms=latency,
    )

    return ReportResult(
        template=template,
        sql=rendered.sql,
        rows=rows,
        unresolved=unresolved,
        safety_errors=s_errors,
        latency_ms=latency,
        warehouse_error=warehouse_error,
        query_stats=stats,
        executed=executed,
        cached=cached,
    )


def estimate_report(
    template: str,
    params: SubstitutionParams,
    client: WarehouseClient | None = None,
    today: date | None = None,
) -> tuple[str, QueryStats]:
    """Render *template* and dry-run it.  Raises ValueError on unsafe SQL."""
    rendered = render(template, params, today)
    sql = rendered.sql
    errors = check_sql_safety(sql, rendered.unresolved_names())
    if errors:
        raise ValueError("; ".join(errors))
    return sql, (client or get_client()).estimate_query(sql)
