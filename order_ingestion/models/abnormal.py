"""
Overflow store for order lines that cannot be routed to a shard.

Contract:
    A row whose order number is not ``<clientId>-<sequenceId>``, or that
    failed validation, is kept here with the reason instead of being
    dropped.  (external_order_id, sku) is unique; re-ingesting the same
    line overwrites it in place.

Architecture: order_ingestion/models.  Imports from order_kernel only.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import TrackedBase
from order_kernel.models.order_line import OrderCommercialColumns

# Columns overwritten when an abnormal line is ingested again
ABNORMAL_UPDATABLE_COLUMNS: tuple[str, ...] = (
    "client_id",
    "sequence_id",
    "country_code",
    "quantity",
    "buyer_name",
    "product_name",
    "payment_time",
    "waybill_number",
    "spu",
    "parent_spu",
    "order_status",
    "customer_remark",
    "picking_remark",
    "order_remark",
    "parse_error",
)


class AbnormalOrderModel(OrderCommercialColumns, TrackedBase):
    """Order line held outside the shard tables, with why it was diverted."""

    __tablename__ = "order_abnormal"

    __table_args__ = (
        UniqueConstraint("external_order_id", "sku", name="uq_order_abnormal_order_sku"),
        Index("idx_order_abnormal_created", "created_at"),
    )

    # Set only when the id parsed but the row was flagged for another reason
    client_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    sequence_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    parse_error: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<AbnormalOrder {self.external_order_id}/{self.sku}: {self.parse_error}>"
