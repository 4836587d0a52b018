"""
Report-run history -- records every template -> SQL -> result cycle.

The table is created automatically on first use via `ensure_log_table()`.
"""
from __future__ import annotations

import json
import datetime
from typing import Any

from sqlalchemy import text

from sqlreport.db.connection import get_engine
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)

_TABLE = "sql_report_runs"

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    template          TEXT NOT NULL,
    rendered_sql      TEXT,
    website_id        VARCHAR(64),
    row_count         INTEGER,
    executed          BOOLEAN NOT NULL DEFAULT 0,
    success           BOOLEAN NOT NULL DEFAULT 1,
    unresolved        TEXT,          -- JSON array
    safety_errors     TEXT,          -- JSON array
    warehouse_error   TEXT,
    latency_ms        INTEGER,
    created_at        VARCHAR(32) NOT NULL
);
"""


def ensure_log_table() -> None:
    """Create the history table if it doesn't exist."""
    engine = get_engine()
    with engine.connect() as conn:
        conn.execute(text(_CREATE_SQL))
        conn.commit()
    logger.info("Report history table '%s' ensured", _TABLE)


def log_run(
    template: str,
    rendered_sql: str,
    website_id: str | None,
    row_count: int,
    executed: bool,
    unresolved: list[str],
    safety_errors: list[str],
    warehouse_error: str | None,
    latency_ms: int,
) -> None:
    """Insert one row into the history table.  Failures are logged, never raised."""
    insert_sql = text(f"""
        INSERT INTO {_TABLE}
            (template, rendered_sql, website_id, row_count, executed, success,
             unresolved, safety_errors, warehouse_error, latency_ms, created_at)
        VALUES
            (:template, :rendered_sql, :website_id, :row_count, :executed, :success,
             :unresolved, :safety_errors, :warehouse_error, :latency_ms, :created_at)
    """)

    params = {
        "template": template,
        "rendered_sql": rendered_sql or None,
        "website_id": website_id or None,
        "row_count": row_count,
        "executed": executed,
        "success": not safety_errors and warehouse_error is None,
        "unresolved": json.dumps(unresolved) if unresolved else None,
        "safety_errors": json.dumps(safety_errors) if safety_errors else None,
        "warehouse_error": warehouse_error,
        "latency_ms": latency_ms,
        "created_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(insert_sql, params)
            conn.commit()
        logger.debug("Report run logged: %s", template[:80])
    except Exception:
        logger.exception("Failed to log report run -- continuing without logging")


def recent_runs(limit: int = 20) -> list[dict[str, Any]]:
    """Return the newest *limit* runs, newest first."""
    engine = get_engine()
    with engine.connect() as conn:
        result = conn.execute(
            text(f"SELECT * FROM {_TABLE} ORDER BY id DESC LIMIT :limit"),
            {"limit": int(limit)},
        )
        rows = [dict(r._mapping) for r in result.fetchall()]

    for row in rows:
        for key in ("unresolved", "safety_errors"):
            row[key] = json.loads(row[key]) if row[key] else []
        row["executed"] = bool(row["executed"])
        row["success"] = bool(row["success"])
    return rows
