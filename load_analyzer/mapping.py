"""
Header mapping.

Binds source column headers to the canonical load fields using the static
synonym table. Matching is exact after trimming, whitespace collapsing and
case-folding; there is no fuzzy matching. Headers matching more than one
field, or a field that is already bound, are reported as ambiguous and left
for the caller (or a header override) to resolve.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .logging_config import get_logger
from .rules import CANONICAL_FIELDS, DATETIME_FIELDS, KNOWN_SYNONYMS, SPLIT_DATETIME_SYNONYMS

logger = get_logger(__name__)


@dataclass(frozen=True)
class SplitColumns:
    """A date column and optional time column that together fill one datetime field."""

    date_header: str
    date_index: int
    time_header: Optional[str] = None
    time_index: Optional[int] = None


@dataclass(frozen=True)
class MappingResolution:
    mapping: Dict[str, str]
    columns: Dict[str, int]
    ambiguous: Tuple[str, ...] = ()
    ambiguities: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    unmapped: Tuple[str, ...] = ()
    split: Dict[str, SplitColumns] = field(default_factory=dict)
    unused: Tuple[str, ...] = ()

    def is_bound(self, name: str) -> bool:
        return name in self.columns or name in self.split


def normalize_header(header: object) -> str:
    return " ".join(str(header).split()).casefold()


def build_synonym_index(
    extra: Optional[Mapping[str, Iterable[str]]] = None,
) -> Dict[str, List[str]]:
    """
    Invert the synonym table: normalized spelling -> candidate fields.

    ``extra`` adds spellings per field on top of the built-in table.
    Candidates keep canonical field order.
    """
    merged: Dict[str, List[str]] = {name: list(KNOWN_SYNONYMS.get(name, ())) for name in CANONICAL_FIELDS}
    for name, spellings in (extra or {}).items():
        if name not in merged:
            logger.warning("Ignoring synonyms for unknown field %r", name)
            continue
        merged[name].extend(spellings)

    index: Dict[str, List[str]] = {}
    for name in CANONICAL_FIELDS:
        for spelling in merged[name]:
            key = normalize_header(spelling)
            candidates = index.setdefault(key, [])
            if name not in candidates:
                candidates.append(name)
    return index


def _find_column(
    headers: Sequence[str], wanted: Iterable[str], taken: set
) -> Optional[int]:
    keys = {normalize_header(w) for w in wanted}
    for idx, header in enumerate(headers):
        if idx not in taken and normalize_header(header) in keys:
            return idx
    return None


def resolve_mapping(
    headers: Sequence[str],
    synonyms: Optional[Mapping[str, Iterable[str]]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> MappingResolution:
    """
    Resolve which header feeds each canonical field.

    Args:
        headers: Source headers in column order; duplicates allowed.
        synonyms: Extra spellings per canonical field.
        overrides: Explicit ``header -> field`` bindings applied before the
            synonym table. The first override naming a field wins.

    Returns:
        MappingResolution with the field -> header mapping, column indexes,
        ambiguous headers, unmapped fields and any split date/time columns.
    """
    index = build_synonym_index(synonyms)
    mapping: Dict[str, str] = {}
    columns: Dict[str, int] = {}
    ambiguities: Dict[str, Tuple[str, ...]] = {}
    ambiguous: List[str] = []
    taken: set = set()

    def bind(name: str, idx: int) -> None:
        mapping[name] = headers[idx]
        columns[name] = idx
        taken.add(idx)

    for header, name in (overrides or {}).items():
        if name not in CANONICAL_FIELDS:
            logger.warning("Ignoring override %r -> unknown field %r", header, name)
            continue
        if name in columns:
            continue
        idx = _find_column(headers, [header], taken)
        if idx is not None:
            bind(name, idx)

    for idx, header in enumerate(headers):
        if idx in taken:
            continue
        candidates = index.get(normalize_header(header), [])
        if not candidates:
            continue
        if len(candidates) == 1 and candidates[0] not in columns:
            bind(candidates[0], idx)
            continue
        # Several candidate fields, or a field some earlier header already owns.
        ambiguous.append(header)
        ambiguities[header] = tuple(candidates)
        taken.add(idx)

    split: Dict[str, SplitColumns] = {}
    for name in DATETIME_FIELDS:
        if name in columns:
            continue
        spellings = SPLIT_DATETIME_SYNONYMS[name]
        date_idx = _find_column(headers, spellings["date"], taken)
        if date_idx is None:
            continue
        taken.add(date_idx)
        time_idx = _find_column(headers, spellings["time"], taken)
        if time_idx is not None:
            taken.add(time_idx)
        split[name] = SplitColumns(
            date_header=headers[date_idx],
            date_index=date_idx,
            time_header=headers[time_idx] if time_idx is not None else None,
            time_index=time_idx,
        )
        mapping[name] = headers[date_idx]

    unmapped = tuple(name for name in CANONICAL_FIELDS if name not in mapping)
    unused = tuple(header for idx, header in enumerate(headers) if idx not in taken)

    ordered = {name: mapping[name] for name in CANONICAL_FIELDS if name in mapping}
    logger.debug(
        "Resolved %d of %d fields (%d ambiguous headers, %d split)",
        len(ordered), len(CANONICAL_FIELDS), len(ambiguous), len(split),
    )
    return MappingResolution(
        mapping=ordered,
        columns=columns,
        ambiguous=tuple(ambiguous),
        ambiguities=ambiguities,
        unmapped=unmapped,
        split=split,
        unused=unused,
    )
