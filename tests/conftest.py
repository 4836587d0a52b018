"""
Shared fixtures: isolated history database and an empty result cache per test.
"""
import pytest
from sqlalchemy import create_engine

from sqlreport.db import connection
from sqlreport.reports import service
from sqlreport.reports.cache import get_cache


@pytest.fixture(autouse=True)
def history_engine(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'history.db'}")
    connection.set_engine(engine)
    monkeypatch.setattr(service, "_history_ready", False)
    get_cache().invalidate()
    yield engine
    connection.set_engine(None)
    engine.dispose()
