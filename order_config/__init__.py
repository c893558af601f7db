"""
order_config -- single public entrypoint for order system configuration.

``get_active_config()`` returns the frozen ``OrderSystemConfig`` built from
``defaults.yaml`` or from a deployment file.  Services receive the relevant
settings section by constructor injection; none of them reads files.
"""

from __future__ import annotations

from pathlib import Path

from order_config.loader import load_config
from order_config.schema import (
    BatchSizeTier,
    IngestLimits,
    OrderSystemConfig,
    SettlementSettings,
    ShardingSettings,
)
from order_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "BatchSizeTier",
    "IngestLimits",
    "OrderSystemConfig",
    "SettlementSettings",
    "ShardingSettings",
    "get_active_config",
]


def get_active_config(path: Path | str | None = None) -> OrderSystemConfig:
    """Load configuration from ``path``, or the packaged defaults."""
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(config_path)
    _logger.info(
        "order_config_loaded",
        extra={
            "config_path": str(config_path),
            "default_shard_count": config.sharding.default_shard_count,
            "max_total_orders": config.ingest.max_total_orders,
            "max_batch_days": config.settlement.max_batch_days,
        },
    )
    return config
