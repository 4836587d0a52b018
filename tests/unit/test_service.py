"""
Unit tests -- report service pipeline with a fake warehouse client.
"""
from datetime import date

import pytest

from sqlreport.db.query_log import recent_runs
from sqlreport.reports.service import ReportResult, estimate_report, run_report
from sqlreport.templating.models import DateRange, SubstitutionParams
from sqlreport.warehouse.client import QueryResult, QueryStats, WarehouseError

_TEMPLATE = (
    "SELECT url_path, COUNT(*) AS views FROM `proj.umami_views.event` "
    "WHERE website_id = {{website_id}} [[AND {{created_at}} ]] GROUP BY url_path"
)


class FakeClient:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls: list[str] = []

    def execute_query(self, sql):
        self.calls.append(sql)
        if self.error:
            raise WarehouseError(self.error, status_code=400)
        return QueryResult(data=self.rows, row_count=len(self.rows))

    def estimate_query(self, sql):
        self.calls.append(sql)
        return QueryStats.from_bytes(1024 ** 3)


def _params(**kwargs):
    kwargs.setdefault("project_id", "proj")
    kwargs.setdefault("website_id", "35abb2b7-3f97-42ce-931b-cf547d40d967")
    kwargs.setdefault(
        "date_range", DateRange(from_date=date(2024, 1, 1), to_date=date(2024, 1, 31)),
    )
    return SubstitutionParams(**kwargs)


def test_dry_run_renders_without_executing():
    client = FakeClient(rows=[{"url_path": "/", "views": 1}])
    result = run_report(_TEMPLATE, _params(), execute=False, client=client)
    assert isinstance(result, ReportResult)
    assert result.executed is False
    assert result.rows == []
    assert client.calls == []
    assert "TIMESTAMP('2024-01-31T23:59:59')" in result.sql
    assert result.success is True


def test_execute_returns_rows():
    client = FakeClient(rows=[{"url_path": "/", "views": 1}])
    result = run_report(_TEMPLATE, _params(), client=client)
    assert result.executed is True
    assert result.rows == [{"url_path": "/", "views": 1}]
    assert client.calls == [result.sql]
    assert result.cached is False


def test_second_run_served_from_cache():
    client = FakeClient(rows=[{"views": 1}])
    run_report(_TEMPLATE, _params(), client=client)
    again = run_report(_TEMPLATE, _params(), client=client)
    assert again.cached is True
    assert again.rows == [{"views": 1}]
    assert len(client.calls) == 1


def test_unresolved_placeholder_blocks_execution():
    client = FakeClient()
    result = run_report(_TEMPLATE, _params(website_id=""), client=client)
    assert result.success is False
    assert result.unresolved == ["website_id"]
    assert any("Unresolved" in e for e in result.safety_errors)
    assert result.executed is False
    assert client.calls == []


def test_warehouse_error_reported():
    client = FakeClient(error="Syntax error at [1:8]")
    result = run_report(_TEMPLATE, _params(), client=client)
    assert result.success is False
    assert result.warehouse_error == "Syntax error at [1:8]"
    assert result.rows == []


def test_runs_are_recorded():
    run_report(_TEMPLATE, _params(), execute=False, client=FakeClient())
    runs = recent_runs()
    assert len(runs) == 1
    assert runs[0]["template"] == _TEMPLATE
    assert runs[0]["executed"] is False


def test_estimate_report():
    client = FakeClient()
    sql, stats = estimate_report(_TEMPLATE, _params(), client=client)
    assert client.calls == [sql]
    assert stats.gb_processed == 1.0


def test_estimate_rejects_unsafe_sql():
    with pytest.raises(ValueError, match="Unresolved"):
        estimate_report(_TEMPLATE, _params(website_id=""), client=FakeClient())


def test_value_containing_template_syntax_still_executes():
    client = FakeClient(rows=[{"n": 1}])
    result = run_report(
        "SELECT 1 AS n FROM t WHERE note = {{note}}",
        _params(custom_variables={"note": "see [[x]] and {{y}}"}),
        client=client,
    )
    assert result.safety_errors == []
    assert result.executed is True
    assert client.calls == ["SELECT 1 AS n FROM t WHERE note = 'see [[x]] and {{y}}'"]
