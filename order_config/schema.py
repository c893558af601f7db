"""
Configuration schema (``order_config.schema``).

Frozen dataclasses for every tunable of the order system.  Defaults match
``defaults.yaml`` so a bare ``OrderSystemConfig()`` is usable in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BatchSizeTier:
    """Inputs of at most ``max_total`` rows use ``batch_size`` (0 = all at once)."""

    max_total: int
    batch_size: int


@dataclass(frozen=True)
class ShardingSettings:
    # Only used to initialise the persisted count on an empty database
    default_shard_count: int = 10


@dataclass(frozen=True)
class IngestLimits:
    max_file_size_bytes: int = 50 * 1024 * 1024
    max_total_orders: int = 100_000
    max_error_display: int = 50
    progress_update_interval: int = 100
    batch_size_tiers: tuple[BatchSizeTier, ...] = (
        BatchSizeTier(max_total=1_000, batch_size=0),
        BatchSizeTier(max_total=10_000, batch_size=2_000),
        BatchSizeTier(max_total=50_000, batch_size=5_000),
    )
    oversize_batch_size: int = 3_000

    def batch_size_for(self, total: int) -> int:
        """
        Batch size for an ingest of ``total`` rows.

        Small inputs go in one batch.  Very large inputs use a smaller batch
        than the mid tier to bound per-statement memory and lock time.
        """
        for tier in self.batch_size_tiers:
            if total <= tier.max_total:
                return max(total, 1) if tier.batch_size == 0 else tier.batch_size
        return self.oversize_batch_size


@dataclass(frozen=True)
class SettlementSettings:
    max_batch_days: int = 31
    refunded_statuses: frozenset[str] = frozenset({"refunded", "已退款"})
    no_settle_markers: tuple[str, ...] = ("不结算", "do not settle")
    excluded_skus: frozenset[str] = frozenset({"Upsell"})
    default_discount_rate: str = "1.0"
    max_error_display: int = 50
    default_cancel_reason: str = "cancelled by administrator"


@dataclass(frozen=True)
class OrderSystemConfig:
    sharding: ShardingSettings = field(default_factory=ShardingSettings)
    ingest: IngestLimits = field(default_factory=IngestLimits)
    settlement: SettlementSettings = field(default_factory=SettlementSettings)
