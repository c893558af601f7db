"""Pure domain layer for order ingestion."""

from order_ingestion.domain.limits import LimitCheck, check_limits
from order_ingestion.domain.types import (
    FlaggedOrder,
    IngestError,
    IngestProgress,
    IngestResult,
    IngestStep,
    ImportSummary,
    InvalidOrder,
    OrderRecord,
    OrderValidationResult,
    ParseResult,
    Remarks,
    RowError,
)
from order_ingestion.domain.validators import validate_orders

__all__ = [
    "FlaggedOrder",
    "IngestError",
    "IngestProgress",
    "IngestResult",
    "IngestStep",
    "ImportSummary",
    "InvalidOrder",
    "LimitCheck",
    "OrderRecord",
    "OrderValidationResult",
    "ParseResult",
    "Remarks",
    "RowError",
    "check_limits",
    "validate_orders",
]
