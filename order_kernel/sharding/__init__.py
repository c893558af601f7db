"""Client-keyed routing over the order shard tables."""

from order_kernel.sharding.router import (
    ShardId,
    ShardRouter,
    parse_external_order_id,
    try_parse_external_order_id,
)
from order_kernel.sharding.shard import OrderFilter, OrderShard, StatusBreakdown, StatusTotals

__all__ = [
    "OrderFilter",
    "OrderShard",
    "ShardId",
    "ShardRouter",
    "StatusBreakdown",
    "StatusTotals",
    "parse_external_order_id",
    "try_parse_external_order_id",
]
