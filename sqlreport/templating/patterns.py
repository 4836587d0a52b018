"""
Lexical forms of the report template language.

Every placeholder the detector reports and every span a rewrite pass
touches is matched by a pattern defined here, so detection and
substitution can never disagree about what counts as a placeholder.

  {{website_id}}                      website UUID  (optionally quoted)
  {{nettside}}                        website domain (optionally quoted)
  [[ {{url_sti}} -- ]] '<default>'    inline URL path with fallback literal
  [[ AND {{url_sti}} ]]               optional URL path clause
  [[ AND {{created_at}} ]]            date range clause
  {{<identifier>}}                    custom variable

``url_path`` is accepted everywhere ``url_sti`` is.
"""
from __future__ import annotations

import re

WEBSITE_ID = "website_id"
SITE_DOMAIN = "nettside"
CREATED_AT = "created_at"
URL_PATH_NAMES = ("url_sti", "url_path")

RESERVED_NAMES = frozenset({WEBSITE_ID, SITE_DOMAIN, CREATED_AT, *URL_PATH_NAMES})

_URL_PATH_VAR = r"\{\{\s*url_(?:sti|path)\s*\}\}"


def placeholder_pattern(name: str) -> re.Pattern[str]:
    """``{{ name }}`` with any inner whitespace, case-insensitive."""
    return re.compile(r"\{\{\s*" + re.escape(name) + r"\s*\}\}", re.IGNORECASE)


def quoted_placeholder_pattern(name: str) -> re.Pattern[str]:
    """``{{ name }}`` together with quotes the author may have put around it.

    An opening quote is consumed with its matching closing quote (when
    present). Without an opening quote no surrounding text is touched.
    """
    return re.compile(
        r"(?:(['\"])\s*)?\{\{\s*" + re.escape(name) + r"\s*\}\}(?:\s*\1)?",
        re.IGNORECASE,
    )


# ── Template placeholders ────────────────────────────────

WEBSITE_ID_RE = placeholder_pattern(WEBSITE_ID)
WEBSITE_ID_SPAN_RE = quoted_placeholder_pattern(WEBSITE_ID)

SITE_DOMAIN_RE = placeholder_pattern(SITE_DOMAIN)
SITE_DOMAIN_SPAN_RE = quoted_placeholder_pattern(SITE_DOMAIN)

# group 1: the fallback literal, quotes included
URL_PATH_INLINE_RE = re.compile(
    r"\[\[\s*" + _URL_PATH_VAR + r"\s*--\s*\]\]\s*('[^']*')",
    re.IGNORECASE,
)

URL_PATH_CLAUSE_RE = re.compile(
    r"\[\[\s*AND\s*" + _URL_PATH_VAR + r"\s*\]\]",
    re.IGNORECASE,
)

DATE_CLAUSE_RE = re.compile(
    r"\[\[\s*AND\s*\{\{\s*created_at\s*\}\}\s*\]\]",
    re.IGNORECASE,
)

VARIABLE_RE = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}")

# Anything that still looks like template syntax after substitution
LEFTOVER_RE = re.compile(r"\{\{[^}]*\}\}|\[\[[^\]]*\]\]")

# ASCII digits only; other Unicode digits are not SQL numbers
NUMERIC_RE = re.compile(r"-?[0-9]+\.?[0-9]*")


# ── Hardcoded values in plain SQL ────────────────────────

# Shape-only match: any 36 hex/hyphen characters, no version or variant check
HARDCODED_WEBSITE_ID_RE = re.compile(
    r"website_id\s*=\s*['\"]([0-9a-f-]{36})['\"]",
    re.IGNORECASE,
)
# Same literal, quote style captured so a rewrite can preserve it
HARDCODED_WEBSITE_ID_QUOTED_RE = re.compile(
    r"(website_id\s*=\s*)(['\"])([0-9a-f-]{36})\2",
    re.IGNORECASE,
)

# group 1 / 2: the quoted contents of each TIMESTAMP(...) call
DATE_BETWEEN_RE = re.compile(
    r"created_at\s+BETWEEN\s+TIMESTAMP\('([^']+)'[^)]*\)\s+AND\s+TIMESTAMP\('([^']+)'[^)]*\)",
    re.IGNORECASE,
)

URL_PATH_EQUALS_RE = re.compile(r"url_path\s*=\s*'(/[^']*)'", re.IGNORECASE)

# Whole filter predicates, with a leading AND and any table qualifier
DATE_PREDICATE_RE = re.compile(
    r"(?:AND\s+)?[\w\-`.]*" + DATE_BETWEEN_RE.pattern,
    re.IGNORECASE,
)
URL_PATH_PREDICATE_RE = re.compile(
    r"(?:AND\s+)?[\w\-`.]*" + URL_PATH_EQUALS_RE.pattern,
    re.IGNORECASE,
)

# Old raw tables and the views that replace them
LEGACY_TABLES = {
    "public_website_event": "umami_views.event",
    "public_session": "umami_views.session",
}
LEGACY_TABLE_RE = re.compile(r"umami\.(public_website_event|public_session)", re.IGNORECASE)

# The body of the first WHERE clause, up to GROUP BY / ORDER BY / LIMIT,
# a ")," closing a CTE, or the end of the text
WHERE_BODY_RE = re.compile(
    r"\bWHERE\s+[\s\S]*?(?=\s*(?:\bGROUP\s+BY\b|\bORDER\s+BY\b|\bLIMIT\b|\)\s*,|\Z))",
    re.IGNORECASE,
)
