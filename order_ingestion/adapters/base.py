"""
Source adapter protocol and shared DTOs.

Contract:
    SourceAdapter.read() returns the header row and every non-blank data row
    of an uploaded file, with native cell values (str, int, float, datetime,
    or None).  SourceAdapter.probe() returns a quick snapshot for previews.

Architecture: order_ingestion/adapters.  Bytes in, rows out; no DB imports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for reading uploaded spreadsheet bytes into rows."""

    def read(self, content: bytes, options: dict[str, Any]) -> "SourceSheet":
        ...

    def probe(self, content: bytes, options: dict[str, Any]) -> "SourceProbe":
        ...


@dataclass(frozen=True)
class SourceRow:
    """One data row. ``row_number`` is the 1-based row in the source sheet."""

    row_number: int
    values: dict[str, Any]


@dataclass(frozen=True)
class SourceSheet:
    headers: tuple[str, ...]
    rows: tuple[SourceRow, ...]


@dataclass(frozen=True)
class SourceProbe:
    """Result of probing a source file (row count, columns, first N rows)."""

    row_count: int
    columns: tuple[str, ...]
    sample_rows: tuple[dict[str, Any], ...]  # First 5 rows; do not mutate
    encoding: str | None = None
    detected_delimiter: str | None = None


def normalize_header_cell(value: Any) -> str:
    """Trim and collapse internal whitespace of a header cell."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def dedupe_headers(cells: list[Any]) -> tuple[str, ...]:
    """Header names with blanks named by position and duplicates suffixed."""
    headers: list[str] = []
    for c, v in enumerate(cells):
        key = normalize_header_cell(v) or f"Column_{c + 1}"
        base = key
        cnt = 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    return tuple(headers)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
