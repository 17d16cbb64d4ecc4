from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged over the API: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Load(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    load_id: str
    from_address: str
    from_appointment_date_time_utc: Optional[str] = Field(
        default=None, alias="fromAppointmentDateTimeUTC"
    )
    to_address: str
    to_appointment_date_time_utc: Optional[str] = Field(
        default=None, alias="toAppointmentDateTimeUTC"
    )
    status: str = ""
    driver_name: str
    driver_phone: Optional[str] = None
    unit_number: str = ""
    broker: str = ""


class Issue(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    code: str
    severity: Literal["error", "warn"]
    message: str
    rows: Optional[List[int]] = None
    column: Optional[str] = None
    suggestion: Optional[str] = None


class MappingMeta(WireModel):
    ambiguous: List[str] = Field(default_factory=list)
    ambiguities: Dict[str, List[str]] = Field(default_factory=dict)
    unmapped: List[str] = Field(default_factory=list)
    split: Dict[str, Dict[str, Optional[str]]] = Field(default_factory=dict)


class AnalysisMeta(WireModel):
    analyzed_rows: int
    valid_rows: int = 0
    analyzed_at: str
    timezone: str = "UTC"
    mapping_meta: MappingMeta = Field(default_factory=MappingMeta)
    request_id: Optional[str] = None


class AnalysisResult(WireModel):
    ok: bool
    issues: List[Issue] = Field(default_factory=list)
    loads: Optional[List[Load]] = None
    mapping: Dict[str, str] = Field(default_factory=dict)
    meta: AnalysisMeta


class SheetEnvironment(WireModel):
    sheet_timezone: Optional[str] = None


class AnalyzeRequest(WireModel):
    headers: List[Any]
    rows: List[Any]
    environment: SheetEnvironment = Field(default_factory=SheetEnvironment)
    known_synonyms: Dict[str, List[str]] = Field(default_factory=dict)
    header_overrides: Dict[str, str] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    ok: bool = True


class ServiceInfo(BaseModel):
    message: str
    version: str
    endpoints: Dict[str, str]
    timestamp: str
