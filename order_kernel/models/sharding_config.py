"""
Module: order_kernel.models.sharding_config
Responsibility: Persisted shard count.  The first read initialises the row
    from configuration; afterwards the stored value is authoritative, so a
    config change can never silently re-route existing clients.
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import TrackedBase


class ShardingConfigModel(TrackedBase):
    __tablename__ = "order_sharding_config"

    __table_args__ = (UniqueConstraint("config_key", name="uq_sharding_config_key"),)

    config_key: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="order_shard_count",
    )

    shard_count: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<ShardingConfig {self.config_key}={self.shard_count}>"
