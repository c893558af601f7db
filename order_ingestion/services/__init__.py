"""Order ingestion services (import a file, ingest records, query stored lines)."""

from order_ingestion.services.import_service import OrderImportService
from order_ingestion.services.ingest_service import (
    INVALID_ORDER_ID_REASON,
    OrderIngestService,
    ProgressCallback,
)
from order_ingestion.services.order_query import (
    ClientOrderStats,
    OrderPage,
    OrderQueryService,
)

__all__ = [
    "INVALID_ORDER_ID_REASON",
    "ClientOrderStats",
    "OrderImportService",
    "OrderIngestService",
    "OrderPage",
    "OrderQueryService",
    "ProgressCallback",
]
