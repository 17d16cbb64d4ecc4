from datetime import datetime, timezone

from load_analyzer.dates import normalize_datetime
from load_analyzer.mapping import resolve_mapping
from load_analyzer.validator import (
    RowRecord,
    ValidationOptions,
    canonical_status,
    failed_rows,
    humanize,
    suggest_status,
    validate,
)

NOW = datetime(2025, 9, 1, tzinfo=timezone.utc)
HEADERS = ["Load ID", "From", "To", "Driver", "Status", "PU Appt"]


def make_row(index, **values):
    dates = {}
    if "fromAppointmentDateTimeUTC" in values:
        dates["fromAppointmentDateTimeUTC"] = normalize_datetime(values["fromAppointmentDateTimeUTC"])
    return RowRecord(index=index, number=index + 2, values=values, dates=dates)


def full_row(index, load_id, **overrides):
    values = {
        "loadId": load_id,
        "fromAddress": "Shah Alam",
        "toAddress": "Penang",
        "driverName": "Ali",
        "status": "IN_TRANSIT",
        "fromAppointmentDateTimeUTC": "2025-09-08T10:00:00Z",
    }
    values.update(overrides)
    return make_row(index, **values)


def codes(issues):
    return [issue.code for issue in issues]


def run(rows, headers=HEADERS, **options):
    return validate(rows, resolve_mapping(headers), ValidationOptions(now=NOW, **options))


def test_clean_rows_produce_no_issues():
    issues = run([full_row(0, "A1"), full_row(1, "A2")])
    assert issues == []


def test_no_rows_is_an_error():
    issues = run([])
    assert codes(issues) == ["NO_DATA"]
    assert issues[0].severity == "error"


def test_missing_required_columns():
    issues = run([make_row(0, toAddress="Penang")], headers=["To"])
    missing = [i.column for i in issues if i.code == "MISSING_COLUMN"]
    assert missing == ["loadId", "fromAddress", "driverName"]


def test_empty_required_cell_names_row_and_column():
    issues = run([full_row(0, "A1", driverName="  ")])
    assert codes(issues) == ["EMPTY_REQUIRED_CELL"]
    assert issues[0].rows == [2]
    assert issues[0].column == "driverName"


def test_duplicate_ids_reported_together():
    rows = [full_row(0, "3752463"), full_row(1, "X"), full_row(2, "3752463")]
    issues = run(rows)
    assert codes(issues) == ["DUPLICATE_ID"]
    assert issues[0].rows == [2, 4]
    assert failed_rows(issues) == {2, 4}


def test_duplicate_ids_are_case_sensitive():
    issues = run([full_row(0, "ab1"), full_row(1, "AB1")])
    assert "DUPLICATE_ID" not in codes(issues)


def test_bad_date_embeds_normalizer_error():
    issues = run([full_row(0, "A1", fromAppointmentDateTimeUTC="TBD")])
    assert codes(issues) == ["BAD_DATE_FORMAT"]
    assert "Cannot parse TBD or similar placeholders" in issues[0].message
    assert failed_rows(issues) == {2}


def test_reformatted_date_is_a_warning():
    issues = run([full_row(0, "A1", fromAppointmentDateTimeUTC="2025-09-08 10:00")])
    assert codes(issues) == ["NON_ISO_OUTPUT"]
    assert issues[0].severity == "warn"
    assert "2025-09-08T10:00:00Z" in issues[0].message
    assert failed_rows(issues) == set()


def test_unknown_status_suggests_nearest():
    rows = [
        full_row(0, "A1", status="Rolling"),
        full_row(1, "A2", status="delivred"),
        full_row(2, "A3", status="Rolling"),
    ]
    issues = run(rows)
    assert codes(issues) == ["INCONSISTENT_STATUS", "INCONSISTENT_STATUS"]
    assert issues[0].rows == [2, 4]
    assert issues[0].suggestion == "Did you mean 'IN_TRANSIT'?"
    assert issues[1].suggestion == "Did you mean 'DELIVERED'?"


def test_status_matching_ignores_case_and_separators():
    issues = run([full_row(0, "A1", status="in transit"), full_row(1, "A2", status="Delivered")])
    assert issues == []


def test_status_set_is_configurable():
    issues = run([full_row(0, "A1", status="ON_HOLD")], accepted_statuses=("ON_HOLD",))
    assert issues == []


def test_far_future_pickup_is_flagged():
    issues = run([full_row(0, "A1", fromAppointmentDateTimeUTC="2027-01-01T00:00:00Z")])
    assert codes(issues) == ["FUTURE_DATE"]
    assert issues[0].column == "fromAppointmentDateTimeUTC"


def test_future_horizon_is_configurable():
    row = full_row(0, "A1", fromAppointmentDateTimeUTC="2025-09-20T00:00:00Z")
    assert run([row]) == []
    assert codes(run([row], future_horizon_days=7)) == ["FUTURE_DATE"]


def test_rules_report_in_fixed_order():
    rows = [
        full_row(0, "A1", status="weird", fromAppointmentDateTimeUTC="2025-09-08 10:00"),
        full_row(1, "A1", driverName="", fromAppointmentDateTimeUTC="bad"),
    ]
    issues = run(rows)
    assert codes(issues) == [
        "EMPTY_REQUIRED_CELL",
        "DUPLICATE_ID",
        "BAD_DATE_FORMAT",
        "NON_ISO_OUTPUT",
        "INCONSISTENT_STATUS",
    ]


def test_ambiguous_and_unused_headers_are_warnings():
    headers = HEADERS + ["VRID", "Notes"]
    issues = run([full_row(0, "A1")], headers=headers)
    assert codes(issues) == ["HEADER_AMBIGUITY", "NON_SCHEMA_FIELD"]
    assert issues[0].column == "VRID"
    assert "Notes" in issues[1].message


def test_status_helpers():
    accepted = ("IN_TRANSIT", "DELIVERED", "CANCELLED")
    assert canonical_status("in-transit", accepted) == "IN_TRANSIT"
    assert canonical_status("lost", accepted) is None
    assert suggest_status("canceled", accepted) == "CANCELLED"
    assert suggest_status("zzz", accepted) is None
    assert humanize("fromAddress") == "from address"
