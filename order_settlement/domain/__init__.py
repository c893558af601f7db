"""Pure domain layer for settlement."""

from order_settlement.domain.rules import (
    AmountDecision,
    CancellationPolicy,
    DiscountTier,
    compute_settlement_amount,
    generate_settlement_id,
    price_field_for,
    select_discount_rate,
    tiers_overlap,
    validate_settlement_window,
)
from order_settlement.domain.types import (
    DateOutcome,
    DateRange,
    RangeSettlementResult,
    SettlementRecord,
    SettlementReport,
    SettlementStats,
    SettlementStatus,
    StatusSummary,
)

__all__ = [
    "AmountDecision",
    "CancellationPolicy",
    "DateOutcome",
    "DateRange",
    "DiscountTier",
    "RangeSettlementResult",
    "SettlementRecord",
    "SettlementReport",
    "SettlementStats",
    "SettlementStatus",
    "StatusSummary",
    "compute_settlement_amount",
    "generate_settlement_id",
    "price_field_for",
    "select_discount_rate",
    "tiers_overlap",
    "validate_settlement_window",
]
