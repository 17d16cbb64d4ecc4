"""
Deterministic analysis rules.

Static tables consulted by the header mapper, the date normalizer and the
validator. Nothing in here is computed per request.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

# Canonical load schema, in output order.
CANONICAL_FIELDS: Tuple[str, ...] = (
    "loadId",
    "fromAddress",
    "fromAppointmentDateTimeUTC",
    "toAddress",
    "toAppointmentDateTimeUTC",
    "status",
    "driverName",
    "driverPhone",
    "unitNumber",
    "broker",
)

REQUIRED_FIELDS: Tuple[str, ...] = ("loadId", "fromAddress", "toAddress", "driverName")

DATETIME_FIELDS: Tuple[str, ...] = ("fromAppointmentDateTimeUTC", "toAppointmentDateTimeUTC")

PICKUP_FIELD = "fromAppointmentDateTimeUTC"

KNOWN_SYNONYMS: Dict[str, List[str]] = {
    "loadId": ["load id", "loadid", "id", "load #", "ref", "ref #", "reference", "vrid", "load number", "load ref"],
    "fromAddress": ["from", "pu", "pickup", "origin", "pickup address", "origin address", "pickup location", "from address"],
    "fromAppointmentDateTimeUTC": [
        "pickup appt", "pu appt", "pickup date/time", "pickup datetime", "pu datetime",
        "pickup appointment", "pu date/time",
    ],
    "toAddress": ["to", "drop", "delivery", "destination", "delivery address", "destination address", "delivery location", "to address"],
    "toAppointmentDateTimeUTC": [
        "delivery appt", "del appt", "delivery date/time", "delivery datetime", "del datetime",
        "delivery appointment", "drop time", "del date/time",
    ],
    "status": ["status", "load status", "stage", "state", "condition"],
    "driverName": ["driver", "driver name", "driver/carrier", "carrier"],
    "driverPhone": ["phone", "driver phone", "driver contact", "driver cell", "mobile", "contact"],
    "unitNumber": ["unit", "unit #", "unit number", "truck", "truck #", "truck number", "tractor", "equipment"],
    "broker": ["broker", "customer", "shipper", "client", "company"],
}

# Separate date and time columns that together fill one datetime field.
SPLIT_DATETIME_SYNONYMS: Dict[str, Dict[str, List[str]]] = {
    "fromAppointmentDateTimeUTC": {
        "date": ["pu date", "pickup date", "from date", "origin date"],
        "time": ["pu time", "pickup time", "from time", "origin time"],
    },
    "toAppointmentDateTimeUTC": {
        "date": ["del date", "delivery date", "to date", "destination date"],
        "time": ["del time", "delivery time", "to time", "destination time"],
    },
}

DEFAULT_ACCEPTED_STATUSES: Tuple[str, ...] = (
    "IN_TRANSIT",
    "PENDING",
    "DELIVERED",
    "CANCELLED",
    "SCHEDULED",
    "LOADING",
    "UNLOADING",
)

# Common free-text spellings and the accepted status they stand for.
STATUS_ALIASES: Dict[str, str] = {
    "ROLLING": "IN_TRANSIT",
    "EN_ROUTE": "IN_TRANSIT",
    "ENROUTE": "IN_TRANSIT",
    "TRANSIT": "IN_TRANSIT",
    "COMPLETE": "DELIVERED",
    "COMPLETED": "DELIVERED",
    "CANCELED": "CANCELLED",
    "BOOKED": "SCHEDULED",
    "PLANNED": "SCHEDULED",
}

DEFAULT_FUTURE_HORIZON_DAYS = 365
DEFAULT_TIMEZONE = "UTC"

PLACEHOLDER_TOKEN = "TBD"

# Trailing abbreviations the sheets tend to carry, mapped to fixed offsets.
TZ_ABBR_OFFSETS: Dict[str, str] = {
    "PST": "-08:00", "PDT": "-07:00",
    "MST": "-07:00", "MDT": "-06:00",
    "CST": "-06:00", "CDT": "-05:00",
    "EST": "-05:00", "EDT": "-04:00",
}

DATE_FORMATS: Tuple[str, ...] = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y")
TIME_FORMATS: Tuple[str, ...] = ("%H:%M:%S", "%H:%M", "%I:%M:%S %p", "%I:%M %p", "%I:%M%p")

# Sheet row of the first data row (the header occupies row 1).
FIRST_DATA_ROW = 2

# Transport limits.
MAX_ROWS = 200
MAX_COLS = 50
MAX_HEADER_CHARS = 120
MAX_CELL_CHARS = 300
MAX_PAYLOAD_BYTES = 2 * 1024 * 1024

