"""
Pricing reference data: SKU->SPU mappings, SPU price entries, discount tiers.

Settlement only reads these tables.  Writes go through PricingCatalog, which
enforces the tier rules (min >= 1, min <= max, no overlap per client).

Architecture: order_settlement/models.  Imports from order_kernel.db only.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import TrackedBase
from order_kernel.db.types import MONEY_TYPE, RATE_TYPE


class SkuSpuMappingModel(TrackedBase):
    __tablename__ = "sku_spu_mappings"

    __table_args__ = (UniqueConstraint("sku", name="uq_sku_spu_mapping_sku"),)

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    spu: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<SkuSpuMapping {self.sku} -> {self.spu}>"


class SpuPriceModel(TrackedBase):
    """
    Total price for ``quantity`` units of an SPU shipped to a country.

    Quantity 1 is the unit price; larger quantities are multi-unit bundle
    prices.  A missing entry is a normal state (the line is skipped).
    """

    __tablename__ = "spu_prices"

    __table_args__ = (
        UniqueConstraint(
            "client_id", "spu", "country_code", "quantity", name="uq_spu_price_key"
        ),
    )

    client_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    spu: Mapped[str] = mapped_column(String(100), nullable=False)

    country_code: Mapped[str] = mapped_column(String(8), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    total_price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SpuPrice client={self.client_id} {self.spu}/{self.country_code} "
            f"x{self.quantity}: {self.total_price}>"
        )


class DiscountRuleModel(TrackedBase):
    """Quantity tier [min_quantity, max_quantity] -> discount multiplier for a client."""

    __tablename__ = "discount_rules"

    __table_args__ = (
        Index("idx_discount_rule_client_min", "client_id", "min_quantity"),
    )

    client_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    max_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    discount_rate: Mapped[Decimal] = mapped_column(RATE_TYPE, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<DiscountRule client={self.client_id} "
            f"{self.min_quantity}-{self.max_quantity}: {self.discount_rate}>"
        )
