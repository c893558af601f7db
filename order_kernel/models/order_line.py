"""
Module: order_kernel.models.order_line
Responsibility: ORM persistence for order line items, horizontally
    partitioned across N identical tables ``orders_0 .. orders_{N-1}``.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (external_order_id, sku) is unique per shard table.  The shard is a
      function of the client id embedded in external_order_id, so the pair
      is unique across the whole store.
    - sku is never NULL ('' when the export has none) so the unique key
      stays total and re-ingesting a SKU-less row updates it in place.
    - id is a uuid4, unique across shards; administrative operations
      address orders by it without knowing the shard.

Lifecycle:
    Rows are created ``waiting`` by ingestion and mutated afterwards only by
    the settlement pipeline, the ledger, or administrative override.  They
    are never deleted.
"""

import threading
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import TrackedBase, UUIDString
from order_kernel.db.types import MONEY_TYPE, RATE_TYPE


class OrderSettlementStatus(str, Enum):
    """Settlement state of an order line.

    Transitions: WAITING -> CALCULATED -> SETTLED, WAITING -> CANCEL.
    Any state returns to WAITING only through re-settlement.
    """

    WAITING = "waiting"
    CALCULATED = "calculated"
    SETTLED = "settled"
    CANCEL = "cancel"


class OrderCommercialColumns:
    """
    Columns copied from the order platform export.

    Shared by the shard tables and the overflow store so that an abnormal
    row can be inspected with exactly the data it arrived with.
    """

    external_order_id: Mapped[str] = mapped_column(String(64), nullable=False)

    country_code: Mapped[str | None] = mapped_column(String(8), nullable=True)

    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    buyer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    product_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Wall-clock time as exported; no timezone
    payment_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    waybill_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    sku: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    spu: Mapped[str | None] = mapped_column(String(100), nullable=True)

    parent_spu: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Free text from the platform (e.g. "已发货", "已退款", "refunded")
    order_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    customer_remark: Mapped[str | None] = mapped_column(Text, nullable=True)

    picking_remark: Mapped[str | None] = mapped_column(Text, nullable=True)

    order_remark: Mapped[str | None] = mapped_column(Text, nullable=True)


class OrderLineColumns(OrderCommercialColumns):
    """Shard-table columns: identity, pricing and settlement state."""

    client_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    sequence_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    unit_price: Mapped[Decimal | None] = mapped_column(MONEY_TYPE, nullable=True)

    multi_unit_total_price: Mapped[Decimal | None] = mapped_column(
        MONEY_TYPE, nullable=True
    )

    # Multiplier in (0, 1]; NULL until the discount stage runs
    discount_rate: Mapped[Decimal | None] = mapped_column(RATE_TYPE, nullable=True)

    settlement_amount: Mapped[Decimal | None] = mapped_column(
        MONEY_TYPE, nullable=True
    )

    settlement_status: Mapped[OrderSettlementStatus] = mapped_column(
        String(20),
        default=OrderSettlementStatus.WAITING,
        nullable=False,
    )

    settlement_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # SettlementRecordModel.id of the ledger record that settled this line
    settlement_record_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.external_order_id}/{self.sku}: "
            f"{self.settlement_status}>"
        )


# Columns bulk ingestion may overwrite on conflict.  Pricing, settlement
# state and audit creator are owned by settlement and never touched here.
INGEST_UPDATABLE_COLUMNS: tuple[str, ...] = (
    "order_status",
    "country_code",
    "quantity",
    "buyer_name",
    "product_name",
    "payment_time",
    "waybill_number",
    "sku",
    "customer_remark",
    "picking_remark",
    "order_remark",
)


_models: dict[int, type[TrackedBase]] = {}
_models_lock = threading.Lock()


def shard_table_name(index: int) -> str:
    return f"orders_{index}"


def order_line_model(index: int) -> type[TrackedBase]:
    """
    Return the mapped class for shard table ``orders_{index}``.

    Classes are declared on first use and cached; every call with the same
    index returns the same class, so the declarative registry and metadata
    hold exactly one mapping per table.
    """
    if index < 0:
        raise ValueError(f"Shard index must be non-negative, got {index}")

    with _models_lock:
        model = _models.get(index)
        if model is not None:
            return model

        table = shard_table_name(index)
        model = type(
            f"OrderLineShard{index}",
            (OrderLineColumns, TrackedBase),
            {
                "__tablename__": table,
                "__table_args__": (
                    UniqueConstraint(
                        "external_order_id", "sku", name=f"uq_{table}_order_sku"
                    ),
                    Index(f"idx_{table}_status_paid", "settlement_status", "payment_time"),
                    Index(f"idx_{table}_client_buyer", "client_id", "buyer_name"),
                    Index(f"idx_{table}_record", "settlement_record_id"),
                ),
                "__module__": __name__,
            },
        )
        _models[index] = model
        return model
