"""POST /sql/* -- template inspection and rendering (no warehouse access)."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter
from pydantic import BaseModel, Field

from sqlreport.templating.detector import detect
from sqlreport.templating.engine import add_date_filter, render, upgrade_legacy_tables
from sqlreport.templating.extractor import extract, templatize
from sqlreport.templating.masking import mask_placeholders, restore_placeholders
from sqlreport.templating.models import DetectionFlags, ParsedFilters, SubstitutionParams

router = APIRouter()


class TemplateRequest(BaseModel):
    sql: str = Field(..., max_length=200_000, description="SQL template or plain SQL")


class SubstituteRequest(TemplateRequest):
    params: SubstitutionParams = Field(default_factory=SubstitutionParams)
    today: date | None = Field(None, description="Override 'today' for default date ranges")


class UnresolvedItem(BaseModel):
    kind: str
    name: str
    reason: str


class SubstituteResponse(BaseModel):
    sql: str
    unresolved: list[UnresolvedItem]
    is_complete: bool


class TemplatizeResponse(BaseModel):
    template: str
    filters: ParsedFilters


class MaskResponse(BaseModel):
    masked: str
    tokens: dict[str, str]


class RestoreRequest(BaseModel):
    sql: str
    tokens: dict[str, str]


@router.post("/detect", response_model=DetectionFlags)
def detect_endpoint(req: TemplateRequest) -> DetectionFlags:
    """Which filter controls does this template need?"""
    return detect(req.sql)


@router.post("/extract", response_model=ParsedFilters)
def extract_endpoint(req: TemplateRequest) -> ParsedFilters:
    """Hardcoded website id / date range / URL path found in plain SQL."""
    return extract(req.sql)


@router.post("/templatize", response_model=TemplatizeResponse)
def templatize_endpoint(req: TemplateRequest) -> TemplatizeResponse:
    template, filters = templatize(req.sql)
    return TemplatizeResponse(template=template, filters=filters)


@router.post("/substitute", response_model=SubstituteResponse)
def substitute_endpoint(req: SubstituteRequest) -> SubstituteResponse:
    """Render the template with the given filter values."""
    result = render(req.sql, req.params, req.today)
    return SubstituteResponse(
        sql=result.sql,
        unresolved=[
            UnresolvedItem(kind=u.kind, name=u.name, reason=u.reason)
            for u in result.unresolved
        ],
        is_complete=result.is_complete,
    )


@router.post("/mask", response_model=MaskResponse)
def mask_endpoint(req: TemplateRequest) -> MaskResponse:
    masked, tokens = mask_placeholders(req.sql)
    return MaskResponse(masked=masked, tokens=tokens)


@router.post("/restore")
def restore_endpoint(req: RestoreRequest) -> dict:
    return {"sql": restore_placeholders(req.sql, req.tokens)}


@router.post("/upgrade-tables")
def upgrade_tables_endpoint(req: TemplateRequest) -> dict:
    """Rewrite old ``umami.public_*`` tables to the ``umami_views`` views."""
    return {"sql": upgrade_legacy_tables(req.sql)}


@router.post("/add-date-filter")
def add_date_filter_endpoint(req: TemplateRequest) -> dict:
    return {"sql": add_date_filter(req.sql)}
