"""POST /reports/run -- render and execute a report; history and cache endpoints."""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from sqlreport.reports.service import estimate_report, run_report
from sqlreport.reports.cache import get_cache
from sqlreport.db.query_log import recent_runs
from sqlreport.templating.models import SubstitutionParams
from sqlreport.warehouse.client import QueryStats, WarehouseError
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class RunRequest(BaseModel):
    sql: str = Field(..., min_length=1, max_length=200_000, description="SQL template")
    params: SubstitutionParams = Field(default_factory=SubstitutionParams)
    execute: bool = Field(True, description="If false, only render and check the SQL")
    today: date | None = None


class RunResponse(BaseModel):
    sql: str
    rows: list[dict]
    row_count: int
    unresolved: list[str]
    safety_errors: list[str]
    warehouse_error: str | None
    query_stats: QueryStats | None
    executed: bool
    success: bool
    latency_ms: int
    cached: bool


class EstimateResponse(BaseModel):
    sql: str
    query_stats: QueryStats


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int
    hit_rate: float


@router.post("/run", response_model=RunResponse)
def run_endpoint(req: RunRequest):
    """Full pipeline: template -> render -> safety check -> execute."""
    try:
        result = run_report(req.sql, req.params, execute=req.execute, today=req.today)
    except Exception as exc:
        logger.exception("Report.run failed")
        raise HTTPException(status_code=500, detail=str(exc))

    return RunResponse(
        sql=result.sql,
        rows=result.rows,
        row_count=len(result.rows),
        unresolved=result.unresolved,
        safety_errors=result.safety_errors,
        warehouse_error=result.warehouse_error,
        query_stats=result.query_stats,
        executed=result.executed,
        success=result.success,
        latency_ms=result.latency_ms,
        cached=result.cached,
    )


@router.post("/estimate", response_model=EstimateResponse)
def estimate_endpoint(req: RunRequest):
    """Dry-run the rendered SQL and report how much data it would scan."""
    try:
        sql, stats = estimate_report(req.sql, req.params, today=req.today)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except WarehouseError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return EstimateResponse(sql=sql, query_stats=stats)


@router.get("/history")
def history_endpoint(limit: int = 20):
    """Most recent report runs, newest first."""
    try:
        return {"runs": recent_runs(limit=max(1, min(limit, 200)))}
    except Exception as exc:
        logger.exception("Reading report history failed")
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats_endpoint():
    return CacheStatsResponse(**get_cache().stats())


@router.post("/cache/clear")
def cache_clear_endpoint():
    """Flush the result cache."""
    removed = get_cache().invalidate()
    return {"cleared": removed}
