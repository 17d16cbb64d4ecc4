"""
Analysis pipeline.

header mapping -> row materialization (date normalization per datetime
field) -> validation -> result assembly. Pure and synchronous: no I/O, no
state kept between calls.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from .config import Settings, get_settings
from .dates import format_instant, normalize_datetime
from .logging_config import get_logger
from .mapping import MappingResolution, resolve_mapping
from .models import AnalysisMeta, AnalysisResult, AnalyzeRequest, Load, MappingMeta
from .rules import DATETIME_FIELDS, DEFAULT_TIMEZONE, FIRST_DATA_ROW
from .tables import PayloadError, RawTable
from .validator import (
    MISSING_COLUMN,
    RowRecord,
    ValidationOptions,
    canonical_status,
    failed_rows,
    validate,
)

logger = get_logger(__name__)

__all__ = [
    "PayloadError",
    "analyze",
    "analyze_payload",
    "materialize_rows",
]


def materialize_rows(table: RawTable, resolution: MappingResolution, timezone_name: str) -> List[RowRecord]:
    """Pull mapped cells out of each row and normalize its datetime fields."""
    records = []
    for index in range(len(table.rows)):
        values = {name: table.cell(index, column) for name, column in resolution.columns.items()}
        dates = {}

        for name, columns in resolution.split.items():
            date_value = table.cell(index, columns.date_index)
            time_value = table.cell(index, columns.time_index) if columns.time_index is not None else ""
            values[name] = f"{date_value} {time_value}".strip()
            dates[name] = normalize_datetime(date_value, time_value, timezone_name)

        for name in DATETIME_FIELDS:
            if name in resolution.columns:
                dates[name] = normalize_datetime(values[name], None, timezone_name)

        records.append(RowRecord(
            index=index,
            number=index + FIRST_DATA_ROW,
            values=values,
            dates=dates,
        ))
    return records


def build_load(row: RowRecord, accepted_statuses: Iterable[str]) -> Load:
    values = row.values

    def iso(name: str) -> Optional[str]:
        result = row.dates.get(name)
        return result.iso_string if result is not None and result.success else None

    status = values.get("status", "")
    if status:
        status = canonical_status(status, accepted_statuses) or status
    return Load(
        load_id=values.get("loadId", ""),
        from_address=values.get("fromAddress", ""),
        from_appointment_date_time_utc=iso("fromAppointmentDateTimeUTC"),
        to_address=values.get("toAddress", ""),
        to_appointment_date_time_utc=iso("toAppointmentDateTimeUTC"),
        status=status,
        driver_name=values.get("driverName", ""),
        driver_phone=values.get("driverPhone") or None,
        unit_number=values.get("unitNumber", ""),
        broker=values.get("broker", ""),
    )


def analyze(
    table: RawTable,
    timezone_name: Optional[str] = DEFAULT_TIMEZONE,
    *,
    synonyms: Optional[Mapping[str, Iterable[str]]] = None,
    overrides: Optional[Mapping[str, str]] = None,
    options: Optional[ValidationOptions] = None,
) -> AnalysisResult:
    """
    Analyze one table end to end.

    Args:
        table: Headers and rows to analyze.
        timezone_name: Timezone of wall-clock dates in the sheet; unknown
            names are treated as UTC.
        synonyms: Extra header spellings per canonical field.
        overrides: Explicit ``header -> field`` bindings.
        options: Status set, future-date horizon and analysis instant.

    Returns:
        AnalysisResult; ``loads`` is only set when no error was found.
    """
    options = options or ValidationOptions()
    if options.now is None:
        options = replace(options, now=datetime.now(timezone.utc))
    now = options.now
    zone = timezone_name or DEFAULT_TIMEZONE

    resolution = resolve_mapping(table.headers, synonyms=synonyms, overrides=overrides)
    records = materialize_rows(table, resolution, zone)
    issues = validate(records, resolution, options)

    ok = not any(issue.severity == "error" for issue in issues)
    rejected = failed_rows(issues)
    # A sheet missing a required column yields no loads at all.
    complete = not any(issue.code == MISSING_COLUMN for issue in issues)
    loads = [
        build_load(row, options.accepted_statuses)
        for row in records
        if row.number not in rejected
    ] if complete else []

    logger.info(
        "Analyzed %d rows: %d issues, %d valid loads, ok=%s",
        len(records), len(issues), len(loads), ok,
    )

    split: Dict[str, Dict[str, Optional[str]]] = {
        name: {"date": cols.date_header, "time": cols.time_header}
        for name, cols in resolution.split.items()
    }
    return AnalysisResult(
        ok=ok,
        issues=issues,
        loads=loads if ok else None,
        mapping=dict(resolution.mapping),
        meta=AnalysisMeta(
            analyzed_rows=len(table.rows),
            valid_rows=len(loads),
            analyzed_at=format_instant(now),
            timezone=zone,
            mapping_meta=MappingMeta(
                ambiguous=list(resolution.ambiguous),
                ambiguities={h: list(c) for h, c in resolution.ambiguities.items()},
                unmapped=list(resolution.unmapped),
                split=split,
            ),
        ),
    )


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{location}: {first.get('msg', 'invalid value')}"


def analyze_payload(payload: Any, settings: Optional[Settings] = None) -> AnalysisResult:
    """
    Validate a request body and analyze it.

    Raises:
        PayloadError: the body is not an object with ``headers`` and
            ``rows`` arrays, or a cell has an unsupported type.
    """
    if not isinstance(payload, dict):
        raise PayloadError("Request body must be an object")
    try:
        request = AnalyzeRequest.model_validate(payload)
    except ValidationError as exc:
        raise PayloadError(_describe_validation_error(exc)) from exc

    settings = settings or get_settings()
    table = RawTable.build(
        request.headers,
        request.rows,
        max_rows=settings.max_rows,
        max_cols=settings.max_cols,
    )
    options = ValidationOptions(
        accepted_statuses=settings.accepted_statuses,
        future_horizon_days=settings.future_horizon_days,
    )
    return analyze(
        table,
        request.environment.sheet_timezone or settings.default_timezone,
        synonyms=request.known_synonyms,
        overrides=request.header_overrides,
        options=options,
    )
