"""
Typed exception hierarchy for the order system.

Every exception carries a class-level ``code`` (machine-readable, stable
across message rewording) and the structured values that caused it, so
callers catch by type and report by attribute instead of parsing messages.

Row-level problems (a bad cell, an unknown SKU, a missing price) are NOT
exceptions: they are reported inside result objects so a single bad row never
aborts a batch.  The classes below are for conditions that reject a whole
request.

    OrderSystemError (base)
    |
    +-- IngestionError
    |   +-- StructuralParseError
    |   |   +-- MissingRequiredColumnError
    |   |   +-- EmptySourceError
    |   |   +-- UnsupportedSourceFormatError
    |   +-- ImportLimitExceededError
    |
    +-- RoutingError
    |   +-- InvalidExternalOrderIdError
    |   +-- InvalidShardCountError
    |
    +-- SettlementError
    |   +-- InvalidSettlementWindowError
    |   +-- UnsettledOrdersError
    |   +-- NothingToSettleError
    |   +-- SettlementRecordNotFoundError
    |
    +-- PricingError
        +-- InvalidDiscountRuleError
        +-- DiscountRuleOverlapError
"""

from datetime import date
from decimal import Decimal


class OrderSystemError(Exception):
    """
    Base exception for all order system errors.

    All subclasses must have a `code` class attribute.
    """

    code: str = "ORDER_SYSTEM_ERROR"


# Ingestion exceptions


class IngestionError(OrderSystemError):
    """Base exception for spreadsheet ingestion errors."""

    code: str = "INGESTION_ERROR"


class StructuralParseError(IngestionError):
    """The file as a whole cannot be parsed; no rows are processed."""

    code: str = "STRUCTURAL_PARSE_ERROR"


class MissingRequiredColumnError(StructuralParseError):
    """A column without which no row can be identified is absent."""

    code: str = "MISSING_REQUIRED_COLUMN"

    def __init__(self, column: str, headers: list[str]):
        self.column = column
        self.headers = headers
        super().__init__(
            f"Required column '{column}' not found in header row: {headers}"
        )


class EmptySourceError(StructuralParseError):
    """The file holds no worksheet, or no header row."""

    code: str = "EMPTY_SOURCE"

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"No data found in source: {source}")


class UnsupportedSourceFormatError(StructuralParseError):
    """No adapter is registered for the requested format."""

    code: str = "UNSUPPORTED_SOURCE_FORMAT"

    def __init__(self, source_format: str):
        self.source_format = source_format
        super().__init__(f"Unsupported source format: {source_format}")


class ImportLimitExceededError(IngestionError):
    """File size or row count exceeds the configured import limits."""

    code: str = "IMPORT_LIMIT_EXCEEDED"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


# Routing exceptions


class RoutingError(OrderSystemError):
    """Base exception for shard routing errors."""

    code: str = "ROUTING_ERROR"


class InvalidExternalOrderIdError(RoutingError):
    """External order id is not of the form '<clientId>-<sequenceId>'."""

    code: str = "INVALID_EXTERNAL_ORDER_ID"

    def __init__(self, external_order_id: str | None):
        self.external_order_id = external_order_id
        super().__init__(
            f"Invalid external order id {external_order_id!r}: "
            "expected '<clientId>-<sequenceId>' with numeric parts"
        )


class InvalidShardCountError(RoutingError):
    code: str = "INVALID_SHARD_COUNT"

    def __init__(self, shard_count: int):
        self.shard_count = shard_count
        super().__init__(f"Shard count must be at least 1, got {shard_count}")


# Settlement exceptions


class SettlementError(OrderSystemError):
    """Base exception for settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class InvalidSettlementWindowError(SettlementError):
    """Requested settlement dates are not a closed, bounded window."""

    code: str = "INVALID_SETTLEMENT_WINDOW"

    def __init__(self, start_date: date, end_date: date, reason: str):
        self.start_date = start_date
        self.end_date = end_date
        self.reason = reason
        super().__init__(
            f"Invalid settlement window {start_date}..{end_date}: {reason}"
        )


class UnsettledOrdersError(SettlementError):
    """Ledger execution refused because orders in the window are still waiting."""

    code: str = "UNSETTLED_ORDERS"

    def __init__(
        self,
        client_id: int,
        start_date: date,
        end_date: date,
        waiting_count: int,
    ):
        self.client_id = client_id
        self.start_date = start_date
        self.end_date = end_date
        self.waiting_count = waiting_count
        super().__init__(
            f"Client {client_id} has {waiting_count} unsettled order(s) "
            f"between {start_date} and {end_date}"
        )


class NothingToSettleError(SettlementError):
    """No calculated orders exist to roll into a ledger record."""

    code: str = "NOTHING_TO_SETTLE"

    def __init__(self, client_id: int, start_date: date, end_date: date):
        self.client_id = client_id
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"No calculated orders for client {client_id} "
            f"between {start_date} and {end_date}"
        )


class SettlementRecordNotFoundError(SettlementError):
    code: str = "SETTLEMENT_RECORD_NOT_FOUND"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"Settlement record not found: {settlement_id}")


# Pricing exceptions


class PricingError(OrderSystemError):
    """Base exception for pricing catalog errors."""

    code: str = "PRICING_ERROR"


class InvalidDiscountRuleError(PricingError):
    """Discount rule bounds or rate are out of range."""

    code: str = "INVALID_DISCOUNT_RULE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid discount rule: {reason}")


class DiscountRuleOverlapError(PricingError):
    """A new discount tier overlaps an existing tier for the same client."""

    code: str = "DISCOUNT_RULE_OVERLAP"

    def __init__(
        self,
        client_id: int,
        min_quantity: int,
        max_quantity: int,
        existing_min: int,
        existing_max: int,
        existing_rate: Decimal,
    ):
        self.client_id = client_id
        self.min_quantity = min_quantity
        self.max_quantity = max_quantity
        self.existing_min = existing_min
        self.existing_max = existing_max
        self.existing_rate = existing_rate
        super().__init__(
            f"Tier {min_quantity}-{max_quantity} for client {client_id} overlaps "
            f"existing tier {existing_min}-{existing_max} (rate {existing_rate})"
        )
