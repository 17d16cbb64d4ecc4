"""
Validation rules.

Rules run in a fixed order, each over every row, and append issues in
detection order. No rule stops the others: a row that fails one check is
still checked by the rest. Rows named by any error-severity issue are
dropped from the loads list by the orchestrator.
"""

from __future__ import annotations

import difflib
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .dates import NormalizedDate
from .mapping import MappingResolution
from .models import Issue
from .rules import (
    DATETIME_FIELDS,
    DEFAULT_ACCEPTED_STATUSES,
    DEFAULT_FUTURE_HORIZON_DAYS,
    PICKUP_FIELD,
    REQUIRED_FIELDS,
    STATUS_ALIASES,
)

NO_DATA = "NO_DATA"
MISSING_COLUMN = "MISSING_COLUMN"
HEADER_AMBIGUITY = "HEADER_AMBIGUITY"
NON_SCHEMA_FIELD = "NON_SCHEMA_FIELD"
EMPTY_REQUIRED_CELL = "EMPTY_REQUIRED_CELL"
DUPLICATE_ID = "DUPLICATE_ID"
BAD_DATE_FORMAT = "BAD_DATE_FORMAT"
NON_ISO_OUTPUT = "NON_ISO_OUTPUT"
INCONSISTENT_STATUS = "INCONSISTENT_STATUS"
FUTURE_DATE = "FUTURE_DATE"

_SEPARATORS_RE = re.compile(r"[\s\-]+")


@dataclass(frozen=True)
class RowRecord:
    """One source row with its mapped cell values and normalized dates."""

    index: int
    number: int
    values: Dict[str, str]
    dates: Dict[str, NormalizedDate] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationOptions:
    accepted_statuses: Tuple[str, ...] = DEFAULT_ACCEPTED_STATUSES
    future_horizon_days: int = DEFAULT_FUTURE_HORIZON_DAYS
    now: Optional[datetime] = None


def humanize(name: str) -> str:
    """``fromAddress`` -> ``from address``."""
    return re.sub(r"(?<!^)([A-Z])", r" \1", name).lower().replace("u t c", "UTC")


def status_key(value: str) -> str:
    return _SEPARATORS_RE.sub("_", value.strip().upper())


def canonical_status(value: str, accepted: Iterable[str]) -> Optional[str]:
    """Accepted status matching ``value`` ignoring case and separators, if any."""
    key = status_key(value)
    for status in accepted:
        if status_key(status) == key:
            return status
    return None


def suggest_status(value: str, accepted: Sequence[str]) -> Optional[str]:
    """Nearest accepted status: known alias first, then closest spelling."""
    key = status_key(value)
    alias = STATUS_ALIASES.get(key.replace("_", "")) or STATUS_ALIASES.get(key)
    if alias and alias in accepted:
        return alias
    close = difflib.get_close_matches(key, list(accepted), n=1, cutoff=0.6)
    return close[0] if close else None


def check_no_data(rows: Sequence[RowRecord]) -> List[Issue]:
    if rows:
        return []
    return [Issue(
        code=NO_DATA,
        severity="error",
        message="No data rows found to analyze",
        suggestion="Ensure the sheet has data below the header row.",
    )]


def check_missing_columns(resolution: MappingResolution) -> List[Issue]:
    issues = []
    for name in REQUIRED_FIELDS:
        if resolution.is_bound(name):
            continue
        issues.append(Issue(
            code=MISSING_COLUMN,
            severity="error",
            message=f"Missing required column for '{name}'.",
            column=name,
            suggestion=f"Add a column for {humanize(name)} or map an existing header to it.",
        ))
    return issues


def check_ambiguous_headers(resolution: MappingResolution) -> List[Issue]:
    issues = []
    for header in resolution.ambiguous:
        candidates = resolution.ambiguities.get(header, ())
        if len(candidates) == 1:
            owner = resolution.mapping.get(candidates[0], "")
            message = f"Header '{header}' matches '{candidates[0]}', which is already mapped from '{owner}'."
        else:
            message = f"Header '{header}' could map to any of: {', '.join(candidates)}."
        issues.append(Issue(
            code=HEADER_AMBIGUITY,
            severity="warn",
            message=message,
            column=header,
            suggestion="Use a header override to choose the field for this column.",
        ))
    return issues


def check_non_schema_headers(resolution: MappingResolution) -> List[Issue]:
    unused = [h for h in resolution.unused if h]
    if not unused:
        return []
    preview = ", ".join(unused[:3]) + ("..." if len(unused) > 3 else "")
    return [Issue(
        code=NON_SCHEMA_FIELD,
        severity="warn",
        message=f"Found {len(unused)} non-schema columns: {preview}",
        suggestion="These columns will be ignored during analysis.",
    )]


def check_empty_required_cells(rows: Sequence[RowRecord], resolution: MappingResolution) -> List[Issue]:
    issues = []
    bound = [name for name in REQUIRED_FIELDS if resolution.is_bound(name)]
    for row in rows:
        for name in bound:
            if row.values.get(name, "").strip():
                continue
            issues.append(Issue(
                code=EMPTY_REQUIRED_CELL,
                severity="error",
                message=f"Required field '{name}' is empty",
                rows=[row.number],
                column=name,
                suggestion=f"Provide a value for {humanize(name)}.",
            ))
    return issues


def check_duplicate_ids(rows: Sequence[RowRecord]) -> List[Issue]:
    seen: "OrderedDict[str, List[int]]" = OrderedDict()
    for row in rows:
        load_id = row.values.get("loadId", "")
        if load_id:
            seen.setdefault(load_id, []).append(row.number)

    return [
        Issue(
            code=DUPLICATE_ID,
            severity="error",
            message=f"Duplicate load ID: {load_id} appears in {len(numbers)} rows",
            rows=numbers,
            column="loadId",
            suggestion="Each load must have a unique identifier.",
        )
        for load_id, numbers in seen.items()
        if len(numbers) > 1
    ]


def check_bad_dates(rows: Sequence[RowRecord]) -> List[Issue]:
    issues = []
    for row in rows:
        for name in DATETIME_FIELDS:
            result = row.dates.get(name)
            if result is None or result.success:
                continue
            issues.append(Issue(
                code=BAD_DATE_FORMAT,
                severity="error",
                message=f"Could not normalize {name} '{row.values.get(name, '')}': {result.error}",
                rows=[row.number],
                column=name,
                suggestion="Use ISO 8601 UTC (YYYY-MM-DDTHH:mm:ssZ) or a valid date and time.",
            ))
    return issues


def check_reformatted_dates(rows: Sequence[RowRecord]) -> List[Issue]:
    issues = []
    for row in rows:
        for name in DATETIME_FIELDS:
            result = row.dates.get(name)
            if result is None or not result.success or not result.was_normalized:
                continue
            issues.append(Issue(
                code=NON_ISO_OUTPUT,
                severity="warn",
                message=f"Date normalized from {row.values.get(name, '')} to {result.iso_string}",
                rows=[row.number],
                column=name,
                suggestion="Use ISO 8601 UTC (YYYY-MM-DDTHH:mm:ssZ) for consistency.",
            ))
    return issues


def check_statuses(rows: Sequence[RowRecord], accepted: Sequence[str]) -> List[Issue]:
    offending: "OrderedDict[str, List[int]]" = OrderedDict()
    for row in rows:
        value = row.values.get("status", "").strip()
        if value and canonical_status(value, accepted) is None:
            offending.setdefault(value, []).append(row.number)

    issues = []
    for value, numbers in offending.items():
        nearest = suggest_status(value, accepted)
        if nearest:
            suggestion = f"Did you mean '{nearest}'?"
        else:
            suggestion = f"Use one of: {', '.join(accepted)}."
        issues.append(Issue(
            code=INCONSISTENT_STATUS,
            severity="warn",
            message=f"Status '{value}' is not a recognized load status",
            rows=numbers,
            column="status",
            suggestion=suggestion,
        ))
    return issues


def check_future_pickups(rows: Sequence[RowRecord], now: datetime, horizon_days: int) -> List[Issue]:
    limit = now + timedelta(days=horizon_days)
    issues = []
    for row in rows:
        result = row.dates.get(PICKUP_FIELD)
        if result is None or not result.success:
            continue
        pickup = datetime.strptime(result.iso_string, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        if pickup <= limit:
            continue
        issues.append(Issue(
            code=FUTURE_DATE,
            severity="warn",
            message=f"Pickup {result.iso_string} is more than {horizon_days} days in the future",
            rows=[row.number],
            column=PICKUP_FIELD,
            suggestion="Check the year of the pickup appointment.",
        ))
    return issues


def validate(
    rows: Sequence[RowRecord],
    resolution: MappingResolution,
    options: Optional[ValidationOptions] = None,
) -> List[Issue]:
    """
    Run every rule over the materialized rows.

    Returns:
        Issues in detection order: table-level findings first, then each row
        rule in turn.
    """
    options = options or ValidationOptions()
    now = options.now or datetime.now(timezone.utc)

    issues: List[Issue] = []
    issues += check_no_data(rows)
    issues += check_missing_columns(resolution)
    issues += check_ambiguous_headers(resolution)
    issues += check_non_schema_headers(resolution)
    issues += check_empty_required_cells(rows, resolution)
    issues += check_duplicate_ids(rows)
    issues += check_bad_dates(rows)
    issues += check_reformatted_dates(rows)
    issues += check_statuses(rows, options.accepted_statuses)
    issues += check_future_pickups(rows, now, options.future_horizon_days)
    return issues


def failed_rows(issues: Iterable[Issue]) -> Set[int]:
    """Sheet row numbers named by any error-severity issue."""
    return {n for issue in issues if issue.severity == "error" for n in (issue.rows or ())}
