"""Settlement services (pipeline, ledger, pricing catalog)."""

from order_settlement.services.ledger import (
    CommissionNotifier,
    SettledOrderLine,
    SettlementLedger,
)
from order_settlement.services.pipeline import SettlementPipeline
from order_settlement.services.pricing import PricingCatalog, tiers_from_rules

__all__ = [
    "CommissionNotifier",
    "PricingCatalog",
    "SettledOrderLine",
    "SettlementLedger",
    "SettlementPipeline",
    "tiers_from_rules",
]
