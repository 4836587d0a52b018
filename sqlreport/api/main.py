"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sqlreport.api.routers import reports, sql

app = FastAPI(
    title="SQL Report Templating",
    version="0.1.0",
    description="Parameterised SQL reports over the web-analytics warehouse",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sql.router, prefix="/sql", tags=["Templating"])
app.include_router(reports.router, prefix="/reports", tags=["Reports"])


@app.get("/health")
def health():
    return {"status": "ok"}
