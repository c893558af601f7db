"""
XLSX source adapter for order platform exports.

The first non-blank row of the sheet is the header row.  Cell values keep
their native types so that date cells and numeric serials reach the coercion
layer intact; whole-number floats are narrowed to int.

source_options:
  sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any
from zipfile import BadZipFile

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from order_ingestion.adapters.base import (
    SourceProbe,
    SourceRow,
    SourceSheet,
    dedupe_headers,
    is_blank,
)
from order_kernel.exceptions import EmptySourceError, StructuralParseError

_SAMPLE_SIZE = 5


def _cell_value(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _trim_width(cells: tuple[Any, ...]) -> int:
    """Index after the last non-blank cell."""
    n = 0
    for c, v in enumerate(cells):
        if not is_blank(v):
            n = c + 1
    return n


class XlsxSourceAdapter:
    """Read .xlsx bytes as a header tuple plus one SourceRow per data row."""

    def read(self, content: bytes, options: dict[str, Any]) -> SourceSheet:
        wb = self._open(content)
        try:
            sheet = self._get_sheet(wb, options)
            if sheet is None:
                raise EmptySourceError("xlsx")
            rows = sheet.iter_rows(values_only=True)

            header_cells: tuple[Any, ...] | None = None
            header_number = 0
            for number, cells in enumerate(rows, start=1):
                if _trim_width(cells):
                    header_cells = cells
                    header_number = number
                    break
            if header_cells is None:
                raise EmptySourceError("xlsx")

            ncols = _trim_width(header_cells)
            headers = dedupe_headers(list(header_cells[:ncols]))

            data: list[SourceRow] = []
            for number, cells in enumerate(rows, start=header_number + 1):
                vals = [_cell_value(v) for v in cells[:ncols]]
                if all(is_blank(v) for v in vals):
                    continue
                vals.extend([None] * (ncols - len(vals)))
                data.append(SourceRow(row_number=number, values=dict(zip(headers, vals))))
            return SourceSheet(headers=headers, rows=tuple(data))
        finally:
            wb.close()

    def probe(self, content: bytes, options: dict[str, Any]) -> SourceProbe:
        try:
            table = self.read(content, options)
        except EmptySourceError:
            return SourceProbe(row_count=0, columns=(), sample_rows=())
        return SourceProbe(
            row_count=len(table.rows),
            columns=table.headers,
            sample_rows=tuple(r.values for r in table.rows[:_SAMPLE_SIZE]),
        )

    @staticmethod
    def _open(content: bytes) -> Any:
        try:
            return openpyxl.load_workbook(BytesIO(content), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
            raise StructuralParseError(f"Unreadable xlsx workbook: {exc}") from exc

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active if wb.sheetnames else None
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]
