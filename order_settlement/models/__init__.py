"""ORM models owned by settlement."""

from order_settlement.models.pricing import (
    DiscountRuleModel,
    SkuSpuMappingModel,
    SpuPriceModel,
)
from order_settlement.models.settlement_record import (
    SettlementRecordModel,
    SettlementRecordStatus,
)

__all__ = [
    "DiscountRuleModel",
    "SettlementRecordModel",
    "SettlementRecordStatus",
    "SkuSpuMappingModel",
    "SpuPriceModel",
]
