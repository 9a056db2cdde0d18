"""Parsing of the report viewer's data-injection responses.

The viewer fetches each page of the report as a generated script fragment of
the form::

    window.oCVSC_<namespace>.addContextData({"17": {"r": 2, "u": "ACME"}, ...});

Keys are numeric strings giving replay order; each value is a cell descriptor
whose ``r`` is the visual column role and ``u`` the rendered text (absent for
decorative cells). Cells are replayed in numeric key order and folded into rows,
with role 14 closing each row.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List

from .error_codes import ErrorCode
from .logging_utils import _scraper_event
from .models import RawRecord
from .utils import log_line

# The namespace between "window." and ".addContextData" changes on every load.
_CONTEXT_DATA_RE = re.compile(
    r"window\.[\w$]+.*?\.addContextData\(\s*(\{.*?\})\s*\);",
    re.S,
)

HEADER_CONTRACTOR = "CONTRACTOR"
ROW_TERMINATOR_ROLE = 14
ROLE_FIELDS: Dict[int, str] = {
    2: "contractor",
    4: "start",
    6: "end",
    8: "street",
    10: "city",
    12: "zip",
}
# Seen in the payload but not mapped; possibly the county columns.
UNCLASSIFIED_ROLES = frozenset({3, 13})


class ParseError(Exception):
    """Raised when a response does not carry a decodable context payload."""

    def __init__(self, message: str, *, error_code: str = ErrorCode.MALFORMED_RESPONSE) -> None:
        super().__init__(message)
        self.error_code = error_code


@dataclass(frozen=True)
class CellEntry:
    index: int
    row: int
    value: str


def _cell_from_item(key: str, descriptor: Any) -> CellEntry | None:
    try:
        index = int(key)
    except (TypeError, ValueError):
        return None
    if not isinstance(descriptor, dict):
        return None

    value = descriptor.get("u")
    if value is None or value == "":
        return None
    try:
        role = int(descriptor.get("r"))
    except (TypeError, ValueError):
        return None
    return CellEntry(index=index, row=role, value=str(value))


def extract_cells(text: str) -> List[CellEntry]:
    """Return the non-empty cells of ``text`` in numeric key order.

    Raises ``ParseError`` when no context payload is present or it is not a
    JSON object.
    """

    match = _CONTEXT_DATA_RE.search(text or "")
    if not match:
        raise ParseError("No addContextData payload found in response")

    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        raise ParseError(f"addContextData payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ParseError("addContextData payload is not an object")

    cells = [
        cell
        for cell in (_cell_from_item(key, value) for key, value in data.items())
        if cell is not None
    ]
    # Lexical order would put "10" before "2" and splice rows together.
    cells.sort(key=lambda cell: cell.index)
    return cells


def assemble_rows(cells: List[CellEntry]) -> List[RawRecord]:
    """Fold ordered cells into records, emitting one per terminated row."""

    results: List[RawRecord] = []
    current: Dict[str, str] = {}

    for cell in cells:
        if cell.row == 2 and cell.value == HEADER_CONTRACTOR:
            continue

        field_name = ROLE_FIELDS.get(cell.row)
        if field_name:
            current[field_name] = cell.value
        elif cell.row in UNCLASSIFIED_ROLES:
            log_line(f"[PARSER] Column {cell.row} (unclassified, potential county?): {cell.value}")

        if cell.row == ROW_TERMINATOR_ROLE:
            if current.get("contractor"):
                results.append(RawRecord.from_dict(current))
            current = {}

    return results


def parse_disp_response(text: str) -> List[RawRecord]:
    """Return the records carried by one intercepted response.

    Responses without a usable payload are expected (the viewer issues many
    non-data requests against the same endpoint) and yield an empty list.
    """

    try:
        cells = extract_cells(text)
    except ParseError as exc:
        _scraper_event(
            "parse",
            phase="disp_response",
            status="skipped",
            error_code=exc.error_code,
            error=str(exc),
        )
        return []

    records = assemble_rows(cells)
    log_line(f"[PARSER] Extracted {len(records)} rows from {len(cells)} cells.")
    return records


__all__ = [
    "CellEntry",
    "ParseError",
    "extract_cells",
    "assemble_rows",
    "parse_disp_response",
    "HEADER_CONTRACTOR",
    "ROLE_FIELDS",
]
