"""
CSV source adapter.

Uses csv.reader over decoded text.  Configurable: delimiter, encoding.
Handles BOM via utf-8-sig when encoding is utf-8.  All cell values are
strings; typed coercion happens downstream.
"""

from __future__ import annotations

import csv
from io import StringIO
from typing import Any

from order_ingestion.adapters.base import (
    SourceProbe,
    SourceRow,
    SourceSheet,
    dedupe_headers,
    is_blank,
)
from order_kernel.exceptions import EmptySourceError, StructuralParseError

_SAMPLE_SIZE = 5


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


class CsvSourceAdapter:
    """Read CSV bytes as a header tuple plus one SourceRow per data row."""

    def read(self, content: bytes, options: dict[str, Any]) -> SourceSheet:
        encoding = _get_encoding(options)
        delimiter = options.get("delimiter", ",")
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError as exc:
            raise StructuralParseError(f"CSV is not valid {encoding}: {exc}") from exc

        reader = csv.reader(StringIO(text, newline=""), delimiter=delimiter)
        headers: tuple[str, ...] | None = None
        data: list[SourceRow] = []
        for number, cells in enumerate(reader, start=1):
            if all(is_blank(v) for v in cells):
                continue
            if headers is None:
                headers = dedupe_headers(cells)
                continue
            vals = [v.strip() for v in cells[: len(headers)]]
            vals.extend([""] * (len(headers) - len(vals)))
            data.append(SourceRow(row_number=number, values=dict(zip(headers, vals))))

        if headers is None:
            raise EmptySourceError("csv")
        return SourceSheet(headers=headers, rows=tuple(data))

    def probe(self, content: bytes, options: dict[str, Any]) -> SourceProbe:
        try:
            table = self.read(content, options)
        except EmptySourceError:
            return SourceProbe(row_count=0, columns=(), sample_rows=())
        return SourceProbe(
            row_count=len(table.rows),
            columns=table.headers,
            sample_rows=tuple(r.values for r in table.rows[:_SAMPLE_SIZE]),
            encoding=_get_encoding(options),
            detected_delimiter=options.get("delimiter", ","),
        )
