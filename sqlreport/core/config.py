"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Warehouse ────────────────────────────────────────
    gcp_project_id: str = ""
    warehouse_base_url: str = "http://localhost:3000"
    warehouse_timeout_seconds: float = 60.0
    analysis_type: str = "Sqlverktoy"

    # ── Templating ───────────────────────────────────────
    default_lookback_days: int = 30

    # ── History / cache ──────────────────────────────────
    query_log_url: str = "sqlite:///./sqlreport_history.db"
    query_log_enabled: bool = True
    result_cache_ttl_seconds: float = 300.0

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
