"""
Settlement ledger record.

Contract:
    One row per executed settlement of a client's calculated orders over a
    date window.  Written once by SettlementLedger.execute() in the same
    transaction that marks the orders settled; never updated afterwards.
    ``settlement_id`` is the business key shown to users.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import BigInteger, Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import TrackedBase
from order_kernel.db.types import MONEY_TYPE


class SettlementRecordStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"


class SettlementRecordModel(TrackedBase):
    __tablename__ = "settlement_records"

    __table_args__ = (
        UniqueConstraint("settlement_id", name="uq_settlement_record_business_id"),
        Index("idx_settlement_record_client_dates", "client_id", "start_date", "end_date"),
    )

    # "<YYYYMMDD of end date>-<6 random uppercase alphanumerics>"
    settlement_id: Mapped[str] = mapped_column(String(32), nullable=False)

    client_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)

    order_count: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[SettlementRecordStatus] = mapped_column(
        String(20),
        default=SettlementRecordStatus.COMPLETED,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SettlementRecord {self.settlement_id}: {self.order_count} orders, {self.total_amount}>"
