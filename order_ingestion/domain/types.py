"""
order_ingestion.domain.types -- Pure frozen dataclasses for order ingestion.

ZERO I/O.  Imports only from order_kernel.domain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from order_kernel.domain.dtos import ValidationError


# =============================================================================
# Parsed rows
# =============================================================================


@dataclass(frozen=True)
class Remarks:
    """The three free-text remark columns of an order export."""

    customer: str | None = None
    picking: str | None = None
    order: str | None = None

    @classmethod
    def from_values(
        cls,
        customer: str | None,
        picking: str | None,
        order: str | None,
    ) -> Remarks | None:
        """Remarks only when at least one column is non-empty."""
        if not (customer or picking or order):
            return None
        return cls(customer=customer or None, picking=picking or None, order=order or None)

    def contains(self, marker: str) -> bool:
        return any(marker in text for text in (self.customer, self.picking, self.order) if text)


@dataclass(frozen=True)
class OrderRecord:
    """
    One order line as read from a spreadsheet row.

    ``client_id``/``sequence_id`` are None when ``external_order_id`` is
    not of the form ``<clientId>-<sequenceId>``; validation and the ingest
    engine decide what happens to such a record.
    """

    external_order_id: str
    row_number: int = 0
    client_id: int | None = None
    sequence_id: int | None = None
    country_code: str | None = None
    quantity: int | None = None
    buyer_name: str | None = None
    product_name: str | None = None
    payment_time: datetime | None = None
    waybill_number: str | None = None
    sku: str | None = None
    spu: str | None = None
    parent_spu: str | None = None
    # Stored on first insert only; the discount stage of settlement replaces it
    discount_rate: Decimal | None = None
    order_status: str | None = None
    remarks: Remarks | None = None

    @property
    def is_routable(self) -> bool:
        return self.client_id is not None and self.sequence_id is not None

    def is_refunded(self, refunded_statuses: frozenset[str]) -> bool:
        return self.order_status is not None and self.order_status in refunded_statuses

    def to_columns(self) -> dict[str, Any]:
        """Commercial column values shared by shard tables and the overflow store."""
        remarks = self.remarks or Remarks()
        return {
            "external_order_id": self.external_order_id,
            "country_code": self.country_code,
            "buyer_name": self.buyer_name,
            "product_name": self.product_name,
            "payment_time": self.payment_time,
            "waybill_number": self.waybill_number,
            "sku": self.sku or "",
            "spu": self.spu,
            "parent_spu": self.parent_spu,
            "order_status": self.order_status,
            "customer_remark": remarks.customer,
            "picking_remark": remarks.picking,
            "order_remark": remarks.order,
        }


@dataclass(frozen=True)
class RowError:
    """A row that could not be turned into an OrderRecord."""

    row_number: int
    message: str
    raw_values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParseResult:
    records: tuple[OrderRecord, ...]
    errors: tuple[RowError, ...]
    headers: tuple[str, ...] = ()
    total_rows: int = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class InvalidOrder:
    record: OrderRecord
    errors: tuple[ValidationError, ...]

    @property
    def message(self) -> str:
        return "; ".join(str(e) for e in self.errors)


@dataclass(frozen=True)
class OrderValidationResult:
    valid: tuple[OrderRecord, ...]
    invalid: tuple[InvalidOrder, ...]

    @property
    def is_valid(self) -> bool:
        return not self.invalid


# =============================================================================
# Ingest
# =============================================================================


@dataclass(frozen=True)
class FlaggedOrder:
    """A record the caller has already marked abnormal; it goes to the overflow store."""

    record: OrderRecord
    errors: tuple[str, ...]


class IngestStep(str, Enum):
    GROUPING = "grouping"
    ABNORMAL = "abnormal"
    SHARD_BATCH = "shard_batch"
    DONE = "done"


@dataclass(frozen=True)
class IngestProgress:
    step: IngestStep
    percent: int
    processed: int
    total: int
    message: str = ""


@dataclass(frozen=True)
class IngestError:
    """A record that could not be written, with the reason."""

    external_order_id: str
    sku: str | None
    message: str
    shard_id: int | None = None


@dataclass(frozen=True)
class IngestResult:
    """
    Outcome of one ingest call.

    Classification: ``routable_count + abnormal_routed == total``.
    Outcome: ``inserted_or_updated + abnormal_count + failed_count == total``;
    ``abnormal_count`` counts overflow rows actually written, so a failed
    overflow batch moves its records from abnormal_count to failed_count.
    """

    total: int
    inserted_or_updated: int
    abnormal_count: int
    failed_count: int
    routable_count: int
    abnormal_routed: int = 0
    errors: tuple[IngestError, ...] = ()
    error_count: int = 0
    batch_size: int = 0

    @property
    def success(self) -> bool:
        return self.failed_count == 0


@dataclass(frozen=True)
class ImportSummary:
    """Parse, validation and ingest outcome of one uploaded file."""

    filename: str
    total_rows: int
    parsed: int
    row_errors: tuple[RowError, ...]
    row_error_count: int
    invalid: int
    ingest: IngestResult
    warnings: tuple[str, ...] = ()
    sku_mappings_created: int = 0

    @property
    def success(self) -> bool:
        return self.ingest.success
