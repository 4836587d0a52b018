"""SQLAlchemy engine for the report-run history database.

Single shared engine, created lazily from ``Settings.query_log_url``.
"""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from sqlreport.core.config import get_settings
from sqlreport.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(settings.query_log_url, pool_pre_ping=True, echo=False)
        logger.info("History DB engine created  url=%s", _engine.url.render_as_string(hide_password=True))
    return _engine


def set_engine(engine: Engine | None) -> None:
    """Replace the shared engine (``None`` resets to lazy creation)."""
    global _engine
    _engine = engine
