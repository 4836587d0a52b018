"""
Unit tests -- substitution engine: every pass, ordering and quoting rules.
"""
from datetime import date

import pytest

from sqlreport.templating.engine import (
    DEFAULT_PASSES,
    add_date_filter,
    apply_website_id_only,
    ensure_website_placeholder,
    infer_date_table,
    render,
    substitute,
    upgrade_legacy_tables,
)
from sqlreport.templating.extractor import extract
from sqlreport.templating.models import DateRange, SubstitutionParams
from sqlreport.templating.passes import SESSION_TABLE, DateClausePass, WebsiteIdPass

_WEBSITE_ID = "35abb2b7-3f97-42ce-931b-cf547d40d967"
_TODAY = date(2024, 3, 31)


def _params(**kwargs) -> SubstitutionParams:
    kwargs.setdefault("project_id", "proj")
    return SubstitutionParams(**kwargs)


# ── Website id / domain ─────────────────────────────────

def test_website_id_substituted():
    sql = "SELECT * FROM `proj.umami_views.event` WHERE website_id = {{website_id}} LIMIT 10"
    out = substitute(sql, _params(website_id=_WEBSITE_ID))
    assert f"website_id = '{_WEBSITE_ID}'" in out
    assert out.endswith(" LIMIT 10")


@pytest.mark.parametrize("placeholder", [
    "'{{website_id}}'",
    '"{{website_id}}"',
    "' {{ website_id }} '",
    "{{WEBSITE_ID}}",
])
def test_website_id_existing_quotes_absorbed(placeholder):
    out = substitute(f"WHERE website_id = {placeholder} AND x = 1", _params(website_id="abc"))
    assert out == "WHERE website_id = 'abc' AND x = 1"


def test_every_website_id_occurrence_replaced():
    out = substitute("{{website_id}} {{website_id}}", _params(website_id="w"))
    assert out == "'w' 'w'"


def test_site_domain_quote_escaped():
    out = substitute("WHERE domain = {{nettside}}", _params(site_domain="O'Brien"))
    assert out == "WHERE domain = 'O''Brien'"


def test_website_id_quote_escaped():
    out = substitute("WHERE website_id = '{{website_id}}'", _params(website_id="x' OR '1'='1"))
    assert out == "WHERE website_id = 'x'' OR ''1''=''1'"


def test_missing_website_id_left_unresolved():
    sql = "WHERE website_id = '{{website_id}}'"
    result = render(sql, _params())
    assert result.sql == sql
    assert result.unresolved_names() == ["website_id"]
    assert result.is_complete is False


# ── URL path, inline form ───────────────────────────────

def test_inline_url_path_replaced():
    sql = "SELECT * FROM t WHERE url_path = [[ {{url_sti}} -- ]] '/'"
    out = substitute(sql, _params(url_path="/soknad"))
    assert out == "SELECT * FROM t WHERE url_path = '/soknad'"


@pytest.mark.parametrize("url_path", ["", "/"])
def test_inline_url_path_falls_back_to_default(url_path):
    sql = "WHERE url_path = [[{{url_path}} --]] '/start'"
    assert substitute(sql, _params(url_path=url_path)) == "WHERE url_path = '/start'"


# ── URL path, clause form ───────────────────────────────

def test_clause_removed_without_path():
    sql = "SELECT * FROM t WHERE 1=1 [[ AND {{url_sti}} ]]"
    assert substitute(sql, _params(url_path="/")) == "SELECT * FROM t WHERE 1=1 "


def test_clause_equals():
    sql = "SELECT * FROM t WHERE 1=1 [[ AND {{url_sti}} ]]"
    out = substitute(sql, _params(url_path="/a"))
    assert out == "SELECT * FROM t WHERE 1=1 AND url_path = '/a'"


def test_clause_starts_with():
    sql = "SELECT * FROM t WHERE 1=1 [[AND {{url_path}}]] GROUP BY 1"
    out = substitute(sql, _params(url_path="/a", path_operator="starts-with"))
    assert out == "SELECT * FROM t WHERE 1=1 AND url_path LIKE '/a%' GROUP BY 1"


def test_url_path_text_untouched_without_filter_placeholder():
    sql = "SELECT * FROM t WHERE url_path = '/' AND x = {{url_sti}}"
    assert substitute(sql, _params(url_path="/other")) == sql


# ── Date clause ─────────────────────────────────────────

def test_date_clause_session_table():
    sql = "SELECT COUNT(*) FROM `proj.umami_views.session` WHERE 1=1 [[ AND {{created_at}} ]]"
    params = _params(date_range=DateRange(from_date=date(2024, 1, 1), to_date=date(2024, 1, 31)))
    out = substitute(sql, params)
    assert (
        "AND `proj.umami_views.session`.created_at BETWEEN "
        "TIMESTAMP('2024-01-01') AND TIMESTAMP('2024-01-31T23:59:59')"
    ) in out
    assert "[[" not in out


def test_date_clause_event_table_default():
    sql = "SELECT COUNT(*) FROM somewhere WHERE 1=1 [[AND {{created_at}}]]"
    params = _params(date_range=DateRange(from_date=date(2024, 1, 1), to_date=date(2024, 1, 2)))
    out = substitute(sql, params)
    assert "AND `proj.umami_views.event`.created_at BETWEEN" in out


def test_date_clause_defaults_to_last_30_days():
    sql = "SELECT 1 FROM `proj.umami_views.event` WHERE 1=1 [[AND {{created_at}} ]]"
    out = substitute(sql, _params(), today=_TODAY)
    assert "BETWEEN TIMESTAMP('2024-03-01') AND TIMESTAMP('2024-03-31T23:59:59')" in out


def test_date_clause_open_end_uses_today():
    sql = "WHERE 1=1 [[AND {{created_at}} ]]"
    params = _params(date_range=DateRange(from_date=date(2024, 2, 1)))
    out = substitute(sql, params, today=_TODAY)
    assert "TIMESTAMP('2024-02-01') AND TIMESTAMP('2024-03-31T23:59:59')" in out


def test_date_clause_without_project():
    sql = "WHERE 1=1 [[AND {{created_at}} ]]"
    out = substitute(sql, _params(project_id=""), today=_TODAY)
    assert "AND `umami_views.event`.created_at BETWEEN" in out


@pytest.mark.parametrize("sql, table", [
    ("FROM `p.umami_views.event` e JOIN `p.umami_views.session` s", "umami_views.event"),
    ("FROM `p.umami_views.session`", "umami_views.session"),
    ("FROM other_table", "umami_views.event"),
])
def test_infer_date_table(sql, table):
    assert infer_date_table(sql) == table


# ── Custom variables ────────────────────────────────────

@pytest.mark.parametrize("value, expected", [
    ("10", "LIMIT 10"),
    ("ten", "LIMIT 'ten'"),
    ("-3.14", "LIMIT -3.14"),
    ("42abc", "LIMIT '42abc'"),
    ("7.", "LIMIT 7."),
    ("it's", "LIMIT 'it''s'"),
    ("42\n", "LIMIT '42\n'"),
    ("٤٢", "LIMIT '٤٢'"),
    ("４２", "LIMIT '４２'"),
])
def test_custom_variable_typing(value, expected):
    assert substitute("LIMIT {{limit}}", _params(custom_variables={"limit": value})) == expected


def test_custom_variable_case_and_whitespace_insensitive():
    out = substitute("WHERE a = {{ Event_Name }}", _params(custom_variables={"event_name": "click"}))
    assert out == "WHERE a = 'click'"


def test_custom_variable_without_value_left_unresolved():
    sql = "WHERE a = {{event_name}} AND b = {{limit}}"
    result = render(sql, _params(custom_variables={"event_name": "", "limit": "5"}))
    assert result.sql == "WHERE a = {{event_name}} AND b = 5"
    assert result.unresolved_names() == ["event_name"]


def test_reserved_name_in_custom_map_ignored():
    sql = "WHERE website_id = {{website_id}}"
    out = substitute(sql, _params(custom_variables={"website_id": "sneaky"}))
    assert out == sql


def test_backslashes_in_values_kept_literally():
    out = substitute("WHERE a = {{pattern}}", _params(custom_variables={"pattern": r"a\1b"}))
    assert out == r"WHERE a = 'a\1b'"


# ── Pipeline properties ─────────────────────────────────

def test_plain_sql_unchanged():
    sql = "SELECT name FROM `proj.umami.public_website` LIMIT 100"
    params = _params(
        website_id=_WEBSITE_ID, site_domain="nav.no", url_path="/a",
        custom_variables={"x": "1"},
    )
    assert substitute(sql, params, today=_TODAY) == sql


def test_inserted_values_are_not_reprocessed():
    sql = "WHERE a = {{website_id}} AND b = {{nettside}} AND c = {{x}}"
    params = _params(website_id="{{nettside}}", site_domain="{{x}}", custom_variables={"x": "1"})
    out = substitute(sql, params)
    assert out == "WHERE a = '{{nettside}}' AND b = '{{x}}' AND c = 1"


def test_full_template():
    sql = (
        "SELECT url_path, COUNT(*) AS views\n"
        "FROM `proj.umami_views.event`\n"
        "WHERE website_id = {{website_id}}\n"
        "  [[AND {{created_at}} ]]\n"
        "  [[AND {{url_sti}} ]]\n"
        "  AND event_name = {{event}}\n"
        "GROUP BY url_path\n"
        "LIMIT {{limit}}"
    )
    params = _params(
        website_id=_WEBSITE_ID,
        url_path="/soknad",
        path_operator="starts-with",
        date_range=DateRange(from_date=date(2024, 1, 1), to_date=date(2024, 1, 31)),
        custom_variables={"event": "click", "limit": "50"},
    )
    result = render(sql, params)
    assert result.is_complete
    assert "{{" not in result.sql and "[[" not in result.sql
    assert f"website_id = '{_WEBSITE_ID}'" in result.sql
    assert "AND url_path LIKE '/soknad%'" in result.sql
    assert "AND event_name = 'click'" in result.sql
    assert result.sql.endswith("LIMIT 50")


def test_round_trip_through_extractor():
    sql = (
        "SELECT 1 FROM `proj.umami_views.event` "
        "WHERE website_id = {{website_id}} [[AND {{created_at}} ]]"
    )
    params = _params(
        website_id=_WEBSITE_ID,
        date_range=DateRange(from_date=date(2024, 5, 2), to_date=date(2024, 6, 30)),
    )
    found = extract(substitute(sql, params))
    assert found.website_id == _WEBSITE_ID
    assert found.date_range.from_date == date(2024, 5, 2)
    assert found.date_range.to_date == date(2024, 6, 30)


def test_template_not_mutated():
    sql = "WHERE website_id = {{website_id}}"
    substitute(sql, _params(website_id="w"))
    assert sql == "WHERE website_id = {{website_id}}"


# ── Helpers ─────────────────────────────────────────────

def test_apply_website_id_only():
    sql = "WHERE website_id = {{website_id}} [[AND {{created_at}} ]] LIMIT {{n}}"
    out = apply_website_id_only(sql, "w")
    assert out == "WHERE website_id = 'w' [[AND {{created_at}} ]] LIMIT {{n}}"


def test_ensure_website_placeholder_extends_where():
    out = ensure_website_placeholder("SELECT * FROM t WHERE x = 1", project_id="proj")
    assert out == (
        "SELECT * FROM t WHERE `proj.umami_views.event`.website_id = '{{website_id}}' AND x = 1"
    )


def test_ensure_website_placeholder_appends_where():
    out = ensure_website_placeholder("SELECT * FROM t;\n", project_id="proj")
    assert out == "SELECT * FROM t WHERE `proj.umami_views.event`.website_id = '{{website_id}}';"


@pytest.mark.parametrize("sql", [
    "SELECT * FROM t WHERE website_id = {{website_id}}",
    "SELECT * FROM t WHERE domain = {{nettside}}",
    f"SELECT * FROM t WHERE website_id = '{_WEBSITE_ID}'",
    "SELECT * FROM t WHERE website_domain = 'nav.no'",
])
def test_ensure_website_placeholder_leaves_scoped_sql(sql):
    assert ensure_website_placeholder(sql, project_id="proj") == sql


def test_ensure_website_placeholder_is_idempotent():
    once = ensure_website_placeholder("SELECT * FROM t", project_id="proj")
    assert ensure_website_placeholder(once, project_id="proj") == once


# ── Passes ──────────────────────────────────────────────

def test_pass_find_returns_every_span():
    spans = WebsiteIdPass().find("a = {{website_id}} OR b = '{{ website_id }}'")
    assert [m.group(0) for m in spans] == ["{{website_id}}", "'{{ website_id }}'"]


def test_date_clause_with_explicit_table():
    passes = tuple(
        DateClausePass(table_resolver=lambda _sql: SESSION_TABLE)
        if isinstance(step, DateClausePass) else step
        for step in DEFAULT_PASSES
    )
    sql = "SELECT 1 FROM `proj.umami_views.event` WHERE 1=1 [[AND {{created_at}} ]]"
    out = render(sql, _params(), today=_TODAY, passes=passes).sql
    assert "AND `proj.umami_views.session`.created_at BETWEEN" in out


# ── Editor helpers ──────────────────────────────────────

def test_upgrade_legacy_tables():
    sql = (
        "SELECT * FROM `p.umami.public_website_event` e "
        "JOIN `p.UMAMI.PUBLIC_SESSION` s USING (session_id)"
    )
    assert upgrade_legacy_tables(sql) == (
        "SELECT * FROM `p.umami_views.event` e "
        "JOIN `p.umami_views.session` s USING (session_id)"
    )


def test_upgrade_leaves_current_tables():
    sql = "SELECT * FROM `p.umami_views.event`"
    assert upgrade_legacy_tables(sql) == sql


@pytest.mark.parametrize("sql, expected", [
    (
        "SELECT * FROM t WHERE a = 1",
        "SELECT * FROM t WHERE a = 1\n      [[AND {{created_at}}]]",
    ),
    (
        "SELECT a, COUNT(*) FROM t\nWHERE a = 1\nGROUP BY a\nORDER BY 2 DESC",
        "SELECT a, COUNT(*) FROM t\nWHERE a = 1\n      [[AND {{created_at}}]]\nGROUP BY a\nORDER BY 2 DESC",
    ),
    (
        "SELECT * FROM t WHERE a = 1 LIMIT 10",
        "SELECT * FROM t WHERE a = 1\n      [[AND {{created_at}}]] LIMIT 10",
    ),
])
def test_add_date_filter(sql, expected):
    out = add_date_filter(sql)
    assert out == expected
    assert add_date_filter(out) == out


def test_add_date_filter_needs_where():
    assert add_date_filter("SELECT * FROM t") == "SELECT * FROM t"


def test_added_date_filter_renders():
    sql = add_date_filter("SELECT 1 FROM `proj.umami_views.session` WHERE a = 1 LIMIT 5")
    out = substitute(sql, _params(), today=_TODAY)
    assert "WHERE a = 1\n      AND `proj.umami_views.session`.created_at BETWEEN" in out
    assert out.endswith("TIMESTAMP('2024-03-31T23:59:59') LIMIT 5")


def test_differently_cased_variable_is_one_unresolved_name():
    result = render("WHERE a = {{Limit}} OR b = {{limit}}", _params())
    assert result.unresolved_names() == ["Limit"]
