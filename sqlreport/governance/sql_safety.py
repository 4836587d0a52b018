"""
Deterministic pre-execution checks on rendered report SQL.

These run on the output of the substitution engine, right before the SQL
is sent to the warehouse.  They operate purely on the SQL text.

Checks performed:
  1. SQL must be a SELECT (or WITH ... SELECT) statement
  2. Only one statement
  3. No DDL / DML keywords (DROP, ALTER, INSERT, UPDATE, DELETE, MERGE ...)
  4. No template placeholders left unresolved ({{...}} or [[...]] outside
     string literals, plus whatever the engine reports as unresolved)
"""
from __future__ import annotations

import re

from sqlreport.templating.patterns import LEFTOVER_RE
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
    r"CREATE|REPLACE\s+TABLE|EXECUTE\s+IMMEDIATE|CALL|EXPORT\s+DATA)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")  # semicolon followed by non-whitespace

_LINE_COMMENT = re.compile(r"--[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")


def _strip_comments_and_literals(sql: str) -> str:
    # Literal contents are user data, not SQL; keep their position only
    code = _STRING_LITERAL.sub("''", sql)
    code = _BLOCK_COMMENT.sub(" ", code)
    return _LINE_COMMENT.sub(" ", code)


def check_sql_safety(sql: str, unresolved: list[str] | None = None) -> list[str]:
    """Return a list of safety violations (empty list = safe).

    *unresolved* is the engine's own list of placeholder names it could not
    fill.  When given, string literals are treated as data and only template
    syntax outside them counts as a leftover; quoted placeholders the engine
    left behind are reported through *unresolved*.
    """
    errors: list[str] = []

    code = _strip_comments_and_literals(sql).strip()
    if unresolved is None:
        leftovers = [m.group(0) for m in LEFTOVER_RE.finditer(sql)]
    else:
        leftovers = [f"{{{{{name}}}}}" for name in unresolved]
        leftovers += [m.group(0) for m in LEFTOVER_RE.finditer(code)]

    # ── 1. Must start with SELECT (or WITH for CTEs) ──────────────
    upper = code.upper()
    if not (upper.startswith("SELECT") or upper.startswith("WITH") or upper.startswith("(")):
        errors.append("SQL must be a SELECT statement.")

    # ── 2. No multi-statement ────────────────────────
    if _MULTI_STMT.search(code):
        errors.append("Multi-statement SQL is not allowed (found ';' followed by another statement).")

    # ── 3. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(code)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    # ── 4. No unresolved placeholders ────────────────
    if leftovers:
        errors.append(f"Unresolved placeholders: {', '.join(dict.fromkeys(leftovers))}.")

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors
