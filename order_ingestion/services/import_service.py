"""
OrderImportService -- one uploaded order file from bytes to stored rows.

Flow: limits -> parse -> limits on row count -> validate -> ingest
(invalid records flagged to the overflow store) -> SKU/SPU back-fill.

The caller owns the transaction; nothing here commits.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from order_config.schema import IngestLimits, SettlementSettings
from order_ingestion.adapters import SourceProbe, adapter_for, format_for_filename
from order_ingestion.domain.limits import check_limits
from order_ingestion.domain.types import FlaggedOrder, ImportSummary, OrderRecord
from order_ingestion.domain.validators import validate_orders
from order_ingestion.parser import OrderSheetParser
from order_ingestion.services.ingest_service import OrderIngestService, ProgressCallback
from order_kernel.exceptions import ImportLimitExceededError
from order_kernel.logging_config import LogContext, get_logger
from order_kernel.sharding import ShardRouter
from order_settlement.services.pricing import PricingCatalog

logger = get_logger("ingestion.import_service")


class OrderImportService:
    """Import order exports. Uses session, router, ingest limits, refunded statuses."""

    def __init__(
        self,
        session: Session,
        router: ShardRouter,
        limits: IngestLimits | None = None,
        settlement: SettlementSettings | None = None,
        parser: OrderSheetParser | None = None,
    ):
        self._session = session
        self._router = router
        self._limits = limits or IngestLimits()
        self._refunded = (settlement or SettlementSettings()).refunded_statuses
        self._parser = parser or OrderSheetParser()

    def preview(self, content: bytes, filename: str) -> SourceProbe:
        """Row count, columns and first rows of the file, without storing anything."""
        return adapter_for(format_for_filename(filename)).probe(content, {})

    def import_file(
        self,
        content: bytes,
        filename: str,
        actor_id: UUID,
        progress: ProgressCallback | None = None,
    ) -> ImportSummary:
        """
        Parse, validate and store one file.

        Raises:
            ImportLimitExceededError: File too large or too many rows.
                Nothing is stored.
            UnsupportedSourceFormatError: Unknown file extension.
            StructuralParseError: The file cannot be read as an order sheet.
        """
        source_format = format_for_filename(filename)

        with LogContext.bind(producer="order_import", actor_id=actor_id):
            precheck = check_limits(0, len(content), self._limits)
            if not precheck.ok:
                logger.warning(
                    "import_rejected",
                    extra={"source_file": filename, "reasons": list(precheck.errors)},
                )
                raise ImportLimitExceededError(list(precheck.errors))

            parsed = self._parser.parse(content, source_format)

            limits = check_limits(parsed.total_rows, len(content), self._limits)
            if not limits.ok:
                logger.warning(
                    "import_rejected",
                    extra={"source_file": filename, "reasons": list(limits.errors)},
                )
                raise ImportLimitExceededError(list(limits.errors))

            validation = validate_orders(parsed.records, self._refunded)
            items: list[OrderRecord | FlaggedOrder] = list(validation.valid)
            items.extend(
                FlaggedOrder(record=bad.record, errors=tuple(str(e) for e in bad.errors))
                for bad in validation.invalid
            )

            result = OrderIngestService(self._session, self._router, self._limits).ingest(
                items, actor_id, progress
            )

            created = PricingCatalog(self._session).backfill_sku_mappings(
                ((r.sku, r.spu) for r in parsed.records if r.sku and r.spu),
                actor_id,
            )

            max_errors = self._limits.max_error_display
            summary = ImportSummary(
                filename=filename,
                total_rows=parsed.total_rows,
                parsed=len(parsed.records),
                row_errors=parsed.errors[:max_errors],
                row_error_count=len(parsed.errors),
                invalid=len(validation.invalid),
                ingest=result,
                warnings=limits.warnings,
                sku_mappings_created=created,
            )
            logger.info(
                "order_file_imported",
                extra={
                    "source_file": filename,
                    "total_rows": summary.total_rows,
                    "parsed": summary.parsed,
                    "row_error_count": summary.row_error_count,
                    "invalid": summary.invalid,
                    "inserted_or_updated": result.inserted_or_updated,
                    "failed_count": result.failed_count,
                },
            )
            return summary
