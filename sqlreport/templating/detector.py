"""
Placeholder detector -- tells the UI which filter controls a template needs.

Pure and cheap: safe to run on every edit of the template text.  A template
with no placeholders at all is plain SQL and yields all-false flags.
"""
from __future__ import annotations

from sqlreport.templating import patterns as p
from sqlreport.templating.models import DetectionFlags


def has_date_filter(template: str) -> bool:
    return p.DATE_CLAUSE_RE.search(template) is not None


def has_url_path_filter(template: str) -> bool:
    """True for either the inline ``[[ {{url_sti}} -- ]] '...'`` or the clause form."""
    return (
        p.URL_PATH_INLINE_RE.search(template) is not None
        or p.URL_PATH_CLAUSE_RE.search(template) is not None
    )


def has_website_id_placeholder(template: str) -> bool:
    return p.WEBSITE_ID_RE.search(template) is not None


def has_site_domain_placeholder(template: str) -> bool:
    return p.SITE_DOMAIN_RE.search(template) is not None


def has_hardcoded_website_id(sql: str) -> bool:
    return p.HARDCODED_WEBSITE_ID_RE.search(sql) is not None


def uses_legacy_tables(sql: str) -> bool:
    """True when the SQL reads the old ``umami.public_*`` tables."""
    return p.LEGACY_TABLE_RE.search(sql) is not None


def find_custom_variables(template: str) -> list[str]:
    """Return ``{{name}}`` identifiers that are not built-in placeholders.

    Names are matched case-insensitively, as the substitution pass does, and
    keep the spelling of their first occurrence, in first-seen order.
    """
    names: list[str] = []
    seen: set[str] = set()
    for m in p.VARIABLE_RE.finditer(template):
        name = m.group(1)
        key = name.lower()
        if key in p.RESERVED_NAMES or key in seen:
            continue
        seen.add(key)
        names.append(name)
    return names


def detect(template: str) -> DetectionFlags:
    """Report which recognised placeholder forms *template* contains."""
    if not template:
        return DetectionFlags()
    return DetectionFlags(
        has_date_filter=has_date_filter(template),
        has_url_path_filter=has_url_path_filter(template),
        has_website_id_placeholder=has_website_id_placeholder(template),
        has_site_domain_placeholder=has_site_domain_placeholder(template),
        custom_variable_names=find_custom_variables(template),
        has_hardcoded_website_id=has_hardcoded_website_id(template),
        uses_legacy_tables=uses_legacy_tables(template),
    )
