"""
Parameter extractor -- reads hardcoded filter values out of plain SQL.

Used when a user pastes (or opens a shared link to) SQL that already has a
website id, a date range or a URL path written into it, so the filter
controls can be pre-filled.  Each value is looked for independently; any of
them may be missing.

Website ids are recognised by shape only (36 hex/hyphen characters).
"""
from __future__ import annotations

from datetime import date

from sqlreport.templating import patterns as p
from sqlreport.templating.models import DateRange, ParsedFilters
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)

_DATE_CLAUSE_TEXT = " [[AND {{created_at}} ]]"
_URL_PATH_CLAUSE_TEXT = " [[AND {{url_sti}} ]]"
_WEBSITE_ID_TEXT = "website_id = {{website_id}}"


def _parse_date(raw: str) -> date | None:
    # TIMESTAMP('2024-01-31T23:59:59') -> only the calendar day matters
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        return None


def extract_website_id(sql: str) -> str | None:
    m = p.HARDCODED_WEBSITE_ID_RE.search(sql)
    return m.group(1) if m else None


def extract_date_range(sql: str) -> DateRange | None:
    m = p.DATE_BETWEEN_RE.search(sql)
    if not m:
        return None
    start, end = _parse_date(m.group(1)), _parse_date(m.group(2))
    if start is None or end is None:
        logger.debug("Unparseable TIMESTAMP bounds: %r, %r", m.group(1), m.group(2))
        return None
    return DateRange(from_date=start, to_date=end)


def extract_url_path(sql: str) -> str | None:
    m = p.URL_PATH_EQUALS_RE.search(sql)
    return m.group(1) if m else None


def extract(raw_sql: str) -> ParsedFilters:
    """Pull hardcoded website id, date range and URL path out of *raw_sql*."""
    return ParsedFilters(
        website_id=extract_website_id(raw_sql),
        date_range=extract_date_range(raw_sql),
        url_path=extract_url_path(raw_sql),
    )


def templatize(raw_sql: str) -> tuple[str, ParsedFilters]:
    """Turn hardcoded filters back into placeholders.

    Returns the rewritten template and the values that were found, so a
    shared query opens with its original filters selected but stays
    editable through the filter controls.
    """
    found = extract(raw_sql)
    template = raw_sql

    if found.website_id:
        template = p.HARDCODED_WEBSITE_ID_RE.sub(_WEBSITE_ID_TEXT, template)

    if p.DATE_BETWEEN_RE.search(template):
        template = p.DATE_PREDICATE_RE.sub(_DATE_CLAUSE_TEXT, template)

    if found.url_path:
        template = p.URL_PATH_PREDICATE_RE.sub(_URL_PATH_CLAUSE_TEXT, template)

    logger.info(
        "Templatized shared SQL  website_id=%s  date_range=%s  url_path=%s",
        bool(found.website_id), found.date_range is not None, found.url_path is not None,
    )
    return template, found


def replace_hardcoded_website_id(sql: str, new_website_id: str) -> str:
    """Swap every hardcoded website id literal, keeping its quote style."""
    return p.HARDCODED_WEBSITE_ID_QUOTED_RE.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{new_website_id}{m.group(2)}",
        sql,
    )
