"""
Hide template syntax from tools that expect plain SQL (formatters, linters).

Optional ``[[ ... ]]`` blocks become block comments and ``{{ ... }}``
variables become string literals, each tagged with a numbered token so the
original text can be put back exactly.
"""
from __future__ import annotations

import re

_OPTIONAL_BLOCK_RE = re.compile(r"\[\[[^\]]*\]\]")
_VARIABLE_RE = re.compile(r"\{\{[^}]+\}\}")


def mask_placeholders(sql: str) -> tuple[str, dict[str, str]]:
    """Return (masked sql, token -> original placeholder text)."""
    tokens: dict[str, str] = {}
    counter = 0

    def _block(m: re.Match[str]) -> str:
        nonlocal counter
        token = f"__METABASE_OPT_{counter}__"
        counter += 1
        tokens[token] = m.group(0)
        return f"/* {token} */"

    def _variable(m: re.Match[str]) -> str:
        nonlocal counter
        token = f"__METABASE_VAR_{counter}__"
        counter += 1
        tokens[token] = m.group(0)
        return f"'{token}'"

    masked = _OPTIONAL_BLOCK_RE.sub(_block, sql)
    masked = _VARIABLE_RE.sub(_variable, masked)
    return masked, tokens


def restore_placeholders(sql: str, tokens: dict[str, str]) -> str:
    """Undo :func:`mask_placeholders`; tolerates reformatted whitespace."""
    restored = sql
    for token, original in tokens.items():
        restored = re.sub(
            r"/\*\s*" + re.escape(token) + r"\s*\*/", lambda m: original, restored,
        )
        restored = restored.replace(f"'{token}'", original)
    return restored
