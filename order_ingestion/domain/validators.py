"""
Order record validation.

Refunded orders are kept only so settlement can cancel them, so they need
nothing but an id and a status.  Every other order must carry what pricing
needs.  The compound id format is checked for all orders.

Architecture: order_ingestion/domain.  ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Iterable

from order_ingestion.domain.types import InvalidOrder, OrderRecord, OrderValidationResult
from order_kernel.domain.dtos import ValidationError

# Field -> label used in messages
_REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("country_code", "country code"),
    ("quantity", "product total"),
    ("buyer_name", "buyer name"),
    ("payment_time", "payment time"),
    ("order_status", "order status"),
)


def _missing(field: str, label: str) -> ValidationError:
    return ValidationError(
        code="MISSING_REQUIRED_FIELD",
        message=f"{label} is required",
        field=field,
    )


def validate_order_id(record: OrderRecord) -> list[ValidationError]:
    if not record.external_order_id:
        return [_missing("external_order_id", "order number")]
    if not record.is_routable:
        return [
            ValidationError(
                code="INVALID_ORDER_ID_FORMAT",
                message=(
                    f"order number {record.external_order_id!r} must be "
                    "'<clientId>-<sequenceId>' with numeric parts"
                ),
                field="external_order_id",
            )
        ]
    return []


def validate_refunded_order(record: OrderRecord) -> list[ValidationError]:
    errors = validate_order_id(record)
    if not record.order_status:
        errors.append(_missing("order_status", "order status"))
    return errors


def validate_billable_order(record: OrderRecord) -> list[ValidationError]:
    errors = validate_order_id(record)
    for field, label in _REQUIRED_FIELDS:
        if getattr(record, field) in (None, ""):
            errors.append(_missing(field, label))
    if record.quantity is not None and record.quantity < 1:
        errors.append(
            ValidationError(
                code="INVALID_QUANTITY",
                message=f"product total must be at least 1, got {record.quantity}",
                field="quantity",
            )
        )
    return errors


def validate_orders(
    records: Iterable[OrderRecord],
    refunded_statuses: frozenset[str],
) -> OrderValidationResult:
    """Split records into valid ones and invalid ones with their errors."""
    valid: list[OrderRecord] = []
    invalid: list[InvalidOrder] = []
    for record in records:
        if record.is_refunded(refunded_statuses):
            errors = validate_refunded_order(record)
        else:
            errors = validate_billable_order(record)
        if errors:
            invalid.append(InvalidOrder(record=record, errors=tuple(errors)))
        else:
            valid.append(record)
    return OrderValidationResult(valid=tuple(valid), invalid=tuple(invalid))
