"""
Rewrite passes of the substitution engine.

A template is rewritten by an ordered list of passes.  Each pass finds the
spans of one placeholder kind and renders each span to either

  Resolved(text)      -- the span is replaced by *text*
  Unresolved(reason)  -- the span is left in the SQL as written

Work is carried between passes as a list of segments: plain template text
(``str``) and already-rendered ``Resolved`` pieces.  Passes only search
plain text, so a value inserted by an earlier pass (a website id, a domain,
a custom variable) is never re-read as template syntax by a later one.
The segments are joined into the final SQL once every pass has run.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Sequence, Union

from sqlreport.core.utils import sql_literal
from sqlreport.templating import patterns as p
from sqlreport.templating.detector import find_custom_variables
from sqlreport.templating.models import Outcome, Resolved, SubstitutionParams, Unresolved

Segment = Union[str, Resolved]

EVENT_TABLE = "umami_views.event"
SESSION_TABLE = "umami_views.session"


@dataclass(frozen=True)
class PassContext:
    params: SubstitutionParams
    today: date
    project_id: str
    lookback_days: int = 30


def flatten(segments: Sequence[Segment]) -> str:
    return "".join(s if isinstance(s, str) else s.text for s in segments)


def typed_literal(value: str) -> str:
    """Numbers go in bare, everything else as an escaped string literal."""
    if p.NUMERIC_RE.fullmatch(value):
        return value
    return sql_literal(value)


def infer_date_table(sql: str) -> str:
    """Pick the view whose ``created_at`` the date clause should filter on.

    Substring heuristic: the event view wins when both are referenced, and
    is the default when neither is.
    """
    if EVENT_TABLE in sql:
        return EVENT_TABLE
    if SESSION_TABLE in sql:
        return SESSION_TABLE
    return EVENT_TABLE


def qualified_table(table: str, project_id: str) -> str:
    if project_id:
        return f"`{project_id}.{table}`"
    return f"`{table}`"


def _rewrite(
    segments: Sequence[Segment],
    pattern: re.Pattern[str],
    render: Callable[[re.Match[str]], Outcome],
) -> tuple[list[Segment], list[Outcome]]:
    out: list[Segment] = []
    outcomes: list[Outcome] = []
    for seg in segments:
        if not isinstance(seg, str):
            out.append(seg)
            continue
        pos = 0
        for m in pattern.finditer(seg):
            outcome = render(m)
            outcomes.append(outcome)
            out.append(seg[pos:m.start()])
            out.append(outcome if isinstance(outcome, Resolved) else m.group(0))
            pos = m.end()
        out.append(seg[pos:])
    return [s for s in out if s != ""], outcomes


class RewritePass:
    """One scan-and-replace over the template for a single placeholder kind."""

    kind: str = ""
    pattern: re.Pattern[str]

    def find(self, sql: str) -> list[re.Match[str]]:
        return list(self.pattern.finditer(sql))

    def render(self, match: re.Match[str], sql: str, ctx: PassContext) -> Outcome:
        raise NotImplementedError

    def apply(
        self, segments: Sequence[Segment], ctx: PassContext,
    ) -> tuple[list[Segment], list[Outcome]]:
        sql = flatten(segments)
        return _rewrite(segments, self.pattern, lambda m: self.render(m, sql, ctx))


class _QuotedValuePass(RewritePass):
    """``{{name}}`` (optionally already quoted) -> escaped string literal."""

    def value(self, params: SubstitutionParams) -> str | None:
        raise NotImplementedError

    def render(self, match, sql, ctx):
        value = self.value(ctx.params)
        if not value:
            return Unresolved(self.kind, self.kind, "no value supplied")
        return Resolved(self.kind, sql_literal(value))


class WebsiteIdPass(_QuotedValuePass):
    kind = p.WEBSITE_ID
    pattern = p.WEBSITE_ID_SPAN_RE

    def value(self, params):
        return params.website_id


class SiteDomainPass(_QuotedValuePass):
    kind = p.SITE_DOMAIN
    pattern = p.SITE_DOMAIN_SPAN_RE

    def value(self, params):
        return params.site_domain


def _active_path(params: SubstitutionParams) -> str | None:
    path = params.url_path
    if not path or path == "/":
        return None
    return path


class UrlPathInlinePass(RewritePass):
    # The path is trusted UI input and goes in unescaped.
    kind = "url_path_inline"
    pattern = p.URL_PATH_INLINE_RE

    def render(self, match, sql, ctx):
        path = _active_path(ctx.params)
        if path is None:
            return Resolved(self.kind, match.group(1))
        return Resolved(self.kind, f"'{path}'")


class UrlPathClausePass(RewritePass):
    kind = "url_path_clause"
    pattern = p.URL_PATH_CLAUSE_RE

    def render(self, match, sql, ctx):
        path = _active_path(ctx.params)
        if path is None:
            return Resolved(self.kind, "")
        if ctx.params.path_operator == "starts-with":
            return Resolved(self.kind, f"AND url_path LIKE '{path}%'")
        return Resolved(self.kind, f"AND url_path = '{path}'")


class DateClausePass(RewritePass):
    kind = p.CREATED_AT
    pattern = p.DATE_CLAUSE_RE

    def __init__(self, table_resolver: Callable[[str], str] = infer_date_table):
        self.table_resolver = table_resolver

    def render(self, match, sql, ctx):
        dr = ctx.params.date_range
        start = dr.from_date or ctx.today - timedelta(days=ctx.lookback_days)
        end = dr.to_date or ctx.today
        from_ts = f"TIMESTAMP('{start.isoformat()}')"
        to_ts = f"TIMESTAMP('{end.isoformat()}T23:59:59')"
        table = qualified_table(self.table_resolver(sql), ctx.project_id)
        return Resolved(self.kind, f"AND {table}.created_at BETWEEN {from_ts} AND {to_ts}")


class CustomVariablePass(RewritePass):
    kind = "custom"
    pattern = p.VARIABLE_RE

    def apply(self, segments, ctx):
        segments = list(segments)
        outcomes: list[Outcome] = []
        for name, value in ctx.params.custom_variables.items():
            if name.lower() in p.RESERVED_NAMES or not value:
                continue
            replacement = Resolved(self.kind, typed_literal(value))
            segments, found = _rewrite(
                segments, p.placeholder_pattern(name), lambda m: replacement,
            )
            outcomes.extend(found)

        remaining = find_custom_variables(
            "\n".join(s for s in segments if isinstance(s, str))
        )
        outcomes.extend(Unresolved(self.kind, name, "no value supplied") for name in remaining)
        return segments, outcomes
