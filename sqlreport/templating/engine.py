"""
Substitution engine -- turns a report template into executable SQL.

Passes run in a fixed order:

  1. {{website_id}}               -> '<website id>'
  2. {{nettside}}                 -> '<domain>'
  3. [[ {{url_sti}} -- ]] '/'     -> '<path>'  or the fallback literal
  4. [[ AND {{url_sti}} ]]        -> AND url_path = / LIKE ...  or nothing
  5. [[ AND {{created_at}} ]]     -> AND <table>.created_at BETWEEN ...
  6. {{custom}}                   -> number or '<escaped string>'

The engine never raises on template content.  A placeholder whose value is
missing stays in the SQL (and is reported as ``Unresolved``); the warehouse
rejects it at execution time.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Sequence

from sqlreport.core.config import get_settings
from sqlreport.core.logging import get_logger
from sqlreport.templating import patterns as p
from sqlreport.templating.models import SubstitutionParams, SubstitutionResult
from sqlreport.templating.passes import (
    EVENT_TABLE,
    CustomVariablePass,
    DateClausePass,
    PassContext,
    RewritePass,
    Segment,
    SiteDomainPass,
    UrlPathClausePass,
    UrlPathInlinePass,
    WebsiteIdPass,
    flatten,
    infer_date_table,
    qualified_table,
)

logger = get_logger(__name__)

__all__ = [
    "DEFAULT_PASSES",
    "render",
    "substitute",
    "apply_website_id_only",
    "ensure_website_placeholder",
    "upgrade_legacy_tables",
    "add_date_filter",
    "infer_date_table",
]

DEFAULT_PASSES: tuple[RewritePass, ...] = (
    WebsiteIdPass(),
    SiteDomainPass(),
    UrlPathInlinePass(),
    UrlPathClausePass(),
    DateClausePass(),
    CustomVariablePass(),
)

_WHERE_RE = re.compile(r"\bWHERE\b", re.IGNORECASE)
_WEBSITE_FILTER_RE = re.compile(r"website_id\s*=\s*['\"]|website_domain\s*=", re.IGNORECASE)


def _context(params: SubstitutionParams, today: date | None) -> PassContext:
    settings = get_settings()
    project_id = params.project_id if params.project_id is not None else settings.gcp_project_id
    return PassContext(
        params=params,
        today=today or date.today(),
        project_id=project_id,
        lookback_days=settings.default_lookback_days,
    )


def render(
    template: str,
    params: SubstitutionParams | None = None,
    today: date | None = None,
    passes: Sequence[RewritePass] = DEFAULT_PASSES,
) -> SubstitutionResult:
    """Run every pass over *template* and keep each placeholder's outcome."""
    params = params or SubstitutionParams()
    ctx = _context(params, today)

    segments: list[Segment] = [template] if template else []
    result = SubstitutionResult(sql="")
    for rewrite in passes:
        segments, outcomes = rewrite.apply(segments, ctx)
        result.outcomes.extend(outcomes)

    result.sql = flatten(segments)
    logger.debug(
        "Rendered template  placeholders=%d  unresolved=%s",
        len(result.outcomes), result.unresolved_names(),
    )
    return result


def substitute(
    template: str,
    params: SubstitutionParams | None = None,
    today: date | None = None,
) -> str:
    """Return the executable SQL for *template* filled in from *params*."""
    return render(template, params, today).sql


def apply_website_id_only(sql: str, website_id: str) -> str:
    """Fill in ``{{website_id}}`` and leave every other placeholder alone."""
    params = SubstitutionParams(website_id=website_id)
    return render(sql, params, passes=(WebsiteIdPass(),)).sql


def ensure_website_placeholder(sql: str, project_id: str | None = None) -> str:
    """Make sure the query is scoped to one website.

    Queries that already mention a website placeholder or filter are
    returned untouched.  Otherwise a ``website_id = '{{website_id}}'``
    predicate is added to the first WHERE, or a WHERE clause is appended.
    """
    if (
        p.WEBSITE_ID_RE.search(sql)
        or p.SITE_DOMAIN_RE.search(sql)
        or _WEBSITE_FILTER_RE.search(sql)
    ):
        return sql

    if project_id is None:
        project_id = get_settings().gcp_project_id
    predicate = f"{qualified_table(EVENT_TABLE, project_id)}.website_id = '{{{{website_id}}}}'"

    if _WHERE_RE.search(sql):
        return _WHERE_RE.sub(lambda m: f"{m.group(0)} {predicate} AND", sql, count=1)

    trimmed = sql.rstrip()
    suffix = ";" if trimmed.endswith(";") else ""
    base = trimmed[:-1] if suffix else trimmed
    return f"{base} WHERE {predicate}{suffix}"


def upgrade_legacy_tables(sql: str) -> str:
    """Point ``umami.public_*`` table references at their ``umami_views`` views."""
    upgraded = p.LEGACY_TABLE_RE.sub(lambda m: p.LEGACY_TABLES[m.group(1).lower()], sql)
    if upgraded != sql:
        logger.info("Upgraded legacy table references to umami_views")
    return upgraded


def add_date_filter(sql: str) -> str:
    """Append ``[[AND {{created_at}}]]`` to the end of the first WHERE clause.

    The clause goes before any GROUP BY, ORDER BY or LIMIT.  SQL without a
    WHERE, or that already has a date clause, is returned unchanged.
    """
    if p.DATE_CLAUSE_RE.search(sql):
        return sql
    return p.WHERE_BODY_RE.sub(
        lambda m: f"{m.group(0).rstrip()}\n      [[AND {{{{created_at}}}}]]", sql, count=1,
    )
