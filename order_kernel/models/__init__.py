"""ORM models owned by the kernel: sharded order lines and shard config."""

from order_kernel.models.order_line import (
    INGEST_UPDATABLE_COLUMNS,
    OrderCommercialColumns,
    OrderLineColumns,
    OrderSettlementStatus,
    order_line_model,
    shard_table_name,
)
from order_kernel.models.sharding_config import ShardingConfigModel

__all__ = [
    "INGEST_UPDATABLE_COLUMNS",
    "OrderCommercialColumns",
    "OrderLineColumns",
    "OrderSettlementStatus",
    "ShardingConfigModel",
    "order_line_model",
    "shard_table_name",
]
