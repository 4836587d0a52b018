"""
Value types shared by the detector, extractor and substitution engine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

PathOperator = Literal["equals", "starts-with"]


class DateRange(BaseModel):
    """Inclusive calendar-day range. Either end may be left open."""

    model_config = ConfigDict(populate_by_name=True)

    from_date: date | None = Field(None, alias="from")
    to_date: date | None = Field(None, alias="to")


class SubstitutionParams(BaseModel):
    """Resolved filter state handed to the substitution engine."""

    website_id: str = Field("", description="Selected website UUID")
    site_domain: str | None = Field(None, description="Domain of the selected website")
    url_path: str = Field("/", description="URL path filter; '/' or '' means no filter")
    path_operator: PathOperator = "equals"
    date_range: DateRange = Field(default_factory=DateRange)
    custom_variables: dict[str, str] = Field(
        default_factory=dict,
        description="Custom {{name}} placeholder -> raw value",
    )
    project_id: str | None = Field(
        None,
        description="Warehouse project used to qualify tables; falls back to settings",
    )


class DetectionFlags(BaseModel):
    has_date_filter: bool = False
    has_url_path_filter: bool = False
    has_website_id_placeholder: bool = False
    has_site_domain_placeholder: bool = False
    custom_variable_names: list[str] = Field(default_factory=list)
    has_hardcoded_website_id: bool = False
    uses_legacy_tables: bool = False


class ParsedFilters(BaseModel):
    website_id: str | None = None
    date_range: DateRange | None = None
    url_path: str | None = None


# ── Pass outcomes ────────────────────────────────────────


@dataclass(frozen=True)
class Resolved:
    """A placeholder occurrence that was rewritten to *text*."""
    kind: str
    text: str


@dataclass(frozen=True)
class Unresolved:
    """A placeholder occurrence left in place because its value is missing."""
    kind: str
    name: str
    reason: str


Outcome = Union[Resolved, Unresolved]


@dataclass
class SubstitutionResult:
    sql: str
    outcomes: list[Outcome] = field(default_factory=list)

    @property
    def unresolved(self) -> list[Unresolved]:
        return [o for o in self.outcomes if isinstance(o, Unresolved)]

    @property
    def is_complete(self) -> bool:
        return not self.unresolved

    def unresolved_names(self) -> list[str]:
        """Distinct names of unresolved placeholders, first-seen order."""
        seen: list[str] = []
        for o in self.unresolved:
            if o.name not in seen:
                seen.append(o.name)
        return seen
