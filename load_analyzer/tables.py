"""
Tabular input.

A RawTable is the immutable header + rows payload the analyzer works on. It
can be built from the JSON request body or from uploaded CSV bytes.

CSV rules:
- UTF-8 first, then charset-normalizer restricted to Western code pages,
  falling back to cp1252
- delimiter sniffing among comma, semicolon, tab and pipe
- the first non-empty record is the header row
- short rows are padded, long rows are cut to the header width
"""

from __future__ import annotations

import codecs
import csv
import io
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from charset_normalizer import from_bytes

from .logging_config import get_logger
from .rules import MAX_CELL_CHARS, MAX_HEADER_CHARS

logger = get_logger(__name__)

SNIFF_DELIMITERS = [",", ";", "\t", "|"]
WESTERN_ENCODINGS = ["cp1252", "latin_1", "iso8859_15"]


class PayloadError(ValueError):
    """The request payload does not have the headers/rows shape."""


def cell_to_str(value: Any, limit: int = MAX_CELL_CHARS) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise PayloadError("Cells must be strings, numbers, null, or empty strings only")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, (str, int, float)):
        raise PayloadError("Cells must be strings, numbers, null, or empty strings only")
    text = str(value).strip()
    return text[:limit]


@dataclass(frozen=True)
class RawTable:
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]

    @classmethod
    def build(
        cls,
        headers: Any,
        rows: Any,
        max_rows: Optional[int] = None,
        max_cols: Optional[int] = None,
    ) -> "RawTable":
        """
        Validate and coerce a headers/rows payload.

        Cells are coerced to trimmed strings (None -> ""). Extra rows and
        columns beyond the limits are dropped.

        Raises:
            PayloadError: headers or rows are not lists, or a cell has an
                unsupported type.
        """
        if not isinstance(headers, (list, tuple)):
            raise PayloadError("headers must be an array of strings")
        if not isinstance(rows, (list, tuple)):
            raise PayloadError("rows must be an array of arrays")

        if max_cols is not None and len(headers) > max_cols:
            logger.info("Truncating %d headers to %d", len(headers), max_cols)
            headers = headers[:max_cols]
        if max_rows is not None and len(rows) > max_rows:
            logger.info("Truncating %d rows to %d", len(rows), max_rows)
            rows = rows[:max_rows]

        clean_headers = tuple(cell_to_str(h, MAX_HEADER_CHARS) for h in headers)
        clean_rows: List[Tuple[str, ...]] = []
        for row in rows:
            if not isinstance(row, (list, tuple)):
                raise PayloadError("Each row must be an array")
            cells = row[:max_cols] if max_cols is not None else row
            clean_rows.append(tuple(cell_to_str(c) for c in cells))
        return cls(headers=clean_headers, rows=tuple(clean_rows))

    def cell(self, row_index: int, column: int) -> str:
        row = self.rows[row_index]
        return row[column] if column < len(row) else ""


def _codec_name(name: str) -> str:
    try:
        return codecs.lookup(name).name
    except LookupError:
        return name


def decode_csv_bytes(raw: bytes) -> Tuple[str, Dict[str, Any]]:
    """
    Decode uploaded bytes to text.

    Strict UTF-8 (BOM stripped) is tried first. Anything else is handed to
    charset-normalizer, limited to Western single-byte code pages. When its
    pick is outside that set, cp1252 is used.

    Returns the text plus a small report of what was detected.
    """
    detected = None
    decode_fallback = False
    try:
        text = raw.decode("utf-8-sig")
        decode_used = "utf-8-sig"
    except UnicodeDecodeError:
        match = from_bytes(raw, cp_isolation=WESTERN_ENCODINGS).best()
        if match is not None:
            detected = match.encoding
        allowed = {_codec_name(name) for name in WESTERN_ENCODINGS}
        if detected is not None and _codec_name(detected) in allowed:
            decode_used = detected
        else:
            decode_fallback = True
            decode_used = "cp1252"
        try:
            text = raw.decode(decode_used)
        except UnicodeDecodeError:
            # cp1252 leaves five bytes undefined; latin-1 maps every byte.
            decode_fallback = True
            decode_used = "latin_1"
            text = raw.decode(decode_used)

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text, {
        "detected": detected,
        "decode_used": decode_used,
        "decode_fallback": decode_fallback,
    }


def sniff_delimiter(text: str) -> str:
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=SNIFF_DELIMITERS)
    except csv.Error:
        return ","
    return dialect.delimiter


def table_from_csv_bytes(
    raw: bytes,
    max_rows: Optional[int] = None,
    max_cols: Optional[int] = None,
) -> RawTable:
    """
    Parse an uploaded CSV into a RawTable.

    Raises:
        PayloadError: the file holds no header row.
    """
    text, encoding = decode_csv_bytes(raw)
    delimiter = sniff_delimiter(text)
    logger.debug("CSV decoded as %s, delimiter %r", encoding["decode_used"], delimiter)

    records = [row for row in csv.reader(io.StringIO(text, newline=""), delimiter=delimiter) if any(c.strip() for c in row)]
    if not records:
        raise PayloadError("CSV file has no header row")

    headers = records[0]
    width = len(headers)
    rows: List[Sequence[str]] = []
    for row in records[1:]:
        if len(row) < width:
            row = row + [""] * (width - len(row))
        rows.append(row[:width])
    return RawTable.build(headers, rows, max_rows=max_rows, max_cols=max_cols)
