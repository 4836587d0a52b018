"""
Filter state carried in a report URL's query string.

A shared report link looks like::

    /sql?sql=<template>&websiteId=<uuid>&urlPath=/a,/b&pathOperator=starts-with
        &dateRange=custom&customStartDate=2024-01-01&customEndDate=2024-01-31

This module turns such a query string into ``SubstitutionParams`` and back.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Mapping
from urllib.parse import unquote, urlencode

from pydantic import BaseModel, Field

from sqlreport.core.config import get_settings
from sqlreport.core.logging import get_logger
from sqlreport.templating.detector import has_hardcoded_website_id, has_site_domain_placeholder
from sqlreport.templating.engine import ensure_website_placeholder
from sqlreport.templating.extractor import extract_website_id, replace_hardcoded_website_id
from sqlreport.templating.models import DateRange, PathOperator, SubstitutionParams

logger = get_logger(__name__)

CUSTOM = "custom"
CURRENT_MONTH = "current_month"
LAST_MONTH = "last_month"
LAST_30_DAYS = "last_30_days"

# Escapes that survive when a link was encoded twice
_STILL_ENCODED_RE = re.compile(r"%(0A|20|3D|27|2C|28|29)", re.IGNORECASE)


def decode_sql_param(value: str | None) -> str | None:
    """Undo a second round of URL encoding on a ``sql`` parameter, if present."""
    if not value or not _STILL_ENCODED_RE.search(value):
        return value
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        logger.warning("Failed to decode potentially double-encoded SQL; using it as-is")
        return value


def _parse_day(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        return None


def resolve_period(
    period: str | None,
    custom_start: str | None = None,
    custom_end: str | None = None,
    today: date | None = None,
) -> tuple[str, DateRange]:
    """Map a named period to concrete dates.

    Unknown or incomplete periods fall back to the default look-back window.
    """
    today = today or date.today()

    if period == CUSTOM:
        start, end = _parse_day(custom_start), _parse_day(custom_end)
        if start and end:
            return CUSTOM, DateRange(from_date=start, to_date=end)

    if period == CURRENT_MONTH:
        return CURRENT_MONTH, DateRange(from_date=today.replace(day=1), to_date=today)

    if period == LAST_MONTH:
        last_day = today.replace(day=1) - timedelta(days=1)
        return LAST_MONTH, DateRange(from_date=last_day.replace(day=1), to_date=last_day)

    lookback = get_settings().default_lookback_days
    return LAST_30_DAYS, DateRange(from_date=today - timedelta(days=lookback), to_date=today)


class FilterState(BaseModel):
    """Filter controls as restored from (or written to) a report URL."""

    sql: str | None = None
    website_id: str = ""
    url_path: str = "/"
    path_operator: PathOperator = "equals"
    period: str = LAST_30_DAYS
    date_range: DateRange = Field(default_factory=DateRange)

    @classmethod
    def from_query_params(
        cls, query: Mapping[str, str], today: date | None = None,
    ) -> "FilterState":
        paths = [s for s in (query.get("urlPath") or "").split(",") if s]
        operator = "starts-with" if query.get("pathOperator") == "starts-with" else "equals"
        period, date_range = resolve_period(
            query.get("dateRange"),
            query.get("customStartDate"),
            query.get("customEndDate"),
            today=today,
        )
        return cls(
            sql=decode_sql_param(query.get("sql")),
            website_id=query.get("websiteId") or "",
            url_path=paths[0] if paths else "/",
            path_operator=operator,
            period=period,
            date_range=date_range,
        )

    def to_substitution_params(
        self,
        site_domain: str | None = None,
        custom_variables: dict[str, str] | None = None,
        project_id: str | None = None,
    ) -> SubstitutionParams:
        return SubstitutionParams(
            website_id=self.website_id,
            site_domain=site_domain,
            url_path=self.url_path,
            path_operator=self.path_operator,
            date_range=self.date_range,
            custom_variables=custom_variables or {},
            project_id=project_id,
        )

    def to_query_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.sql:
            params["sql"] = self.sql
        if self.website_id:
            params["websiteId"] = self.website_id
        if self.url_path and self.url_path != "/":
            params["urlPath"] = self.url_path
            params["pathOperator"] = self.path_operator
        params["dateRange"] = self.period
        if self.period == CUSTOM and self.date_range.from_date and self.date_range.to_date:
            params["customStartDate"] = self.date_range.from_date.isoformat()
            params["customEndDate"] = self.date_range.to_date.isoformat()
        return params


def build_share_url(base_url: str, state: FilterState) -> str:
    """Link that reopens the report with the same template and filters."""
    return f"{base_url.rstrip('/')}/sql?{urlencode(state.to_query_params())}"


def apply_website_selection(sql: str, website_id: str, project_id: str | None = None) -> str:
    """Point *sql* at a newly selected website.

    A hardcoded website id is swapped in place; SQL with no website scoping
    at all gets a ``{{website_id}}`` predicate.
    """
    if not website_id:
        return sql
    if has_hardcoded_website_id(sql):
        if extract_website_id(sql) != website_id:
            return replace_hardcoded_website_id(sql, website_id)
        return sql
    if not has_site_domain_placeholder(sql):
        return ensure_website_placeholder(sql, project_id)
    return sql
