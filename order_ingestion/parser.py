"""
OrderSheetParser -- spreadsheet bytes to typed order records.

A file is rejected as a whole only when it has no readable sheet or no
order-number column.  Past that point every row is parsed independently: a
row that fails becomes a RowError and parsing continues with the next one.
"""

from __future__ import annotations

from typing import Any

from order_ingestion.adapters import adapter_for
from order_ingestion.adapters.base import SourceRow
from order_ingestion.domain.coercion import (
    clean_string,
    parse_datetime,
    parse_int,
    parse_rate,
)
from order_ingestion.domain.types import OrderRecord, ParseResult, Remarks, RowError
from order_ingestion.mapping.columns import (
    REQUIRED_COLUMN,
    REQUIRED_COLUMN_LABEL,
    build_header_mapping,
)
from order_kernel.exceptions import MissingRequiredColumnError
from order_kernel.logging_config import get_logger
from order_kernel.sharding.router import try_parse_external_order_id

logger = get_logger("ingestion.parser")


class EmptyOrderIdError(ValueError):
    """Row-level: the order number cell is blank."""


class OrderSheetParser:
    """Parse an order export into OrderRecords plus per-row errors."""

    def parse(
        self,
        content: bytes,
        source_format: str = "xlsx",
        options: dict[str, Any] | None = None,
    ) -> ParseResult:
        """
        Raises:
            EmptySourceError: The file has no sheet or no header row.
            MissingRequiredColumnError: No order-number column.
            UnsupportedSourceFormatError: Unknown ``source_format``.
            StructuralParseError: The bytes are not a readable workbook.
        """
        sheet = adapter_for(source_format).read(content, options or {})
        mapping = build_header_mapping(sheet.headers)
        if REQUIRED_COLUMN not in mapping:
            raise MissingRequiredColumnError(REQUIRED_COLUMN_LABEL, list(sheet.headers))

        records: list[OrderRecord] = []
        errors: list[RowError] = []
        for row in sheet.rows:
            try:
                records.append(self._parse_row(row, mapping))
            except Exception as exc:
                errors.append(
                    RowError(
                        row_number=row.row_number,
                        message=str(exc) or type(exc).__name__,
                        raw_values=dict(row.values),
                    )
                )

        logger.info(
            "order_sheet_parsed",
            extra={
                "source_format": source_format,
                "total_rows": len(sheet.rows),
                "record_count": len(records),
                "row_error_count": len(errors),
                "unmapped_headers": [h for h in sheet.headers if h not in mapping.values()],
            },
        )
        return ParseResult(
            records=tuple(records),
            errors=tuple(errors),
            headers=sheet.headers,
            total_rows=len(sheet.rows),
        )

    def _parse_row(self, row: SourceRow, mapping: dict[str, str]) -> OrderRecord:
        def cell(field: str) -> Any:
            header = mapping.get(field)
            return row.values.get(header) if header is not None else None

        external_order_id = clean_string(cell("external_order_id"))
        if external_order_id is None:
            raise EmptyOrderIdError("order number is empty")

        ids = try_parse_external_order_id(external_order_id)
        client_id, sequence_id = ids if ids is not None else (None, None)

        return OrderRecord(
            external_order_id=external_order_id,
            row_number=row.row_number,
            client_id=client_id,
            sequence_id=sequence_id,
            country_code=clean_string(cell("country_code")),
            quantity=parse_int(cell("quantity")),
            buyer_name=clean_string(cell("buyer_name")),
            product_name=clean_string(cell("product_name")),
            payment_time=parse_datetime(cell("payment_time")),
            waybill_number=clean_string(cell("waybill_number")),
            sku=clean_string(cell("sku")),
            spu=clean_string(cell("spu")),
            parent_spu=clean_string(cell("parent_spu")),
            discount_rate=parse_rate(cell("discount_rate")),
            order_status=clean_string(cell("order_status")),
            remarks=Remarks.from_values(
                clean_string(cell("customer_remark")),
                clean_string(cell("picking_remark")),
                clean_string(cell("order_remark")),
            ),
        )
