"""
OrderShard -- one backing table of the order store.

Every query the services run against order lines goes through a shard
handle.  Statements are built from the mapped table object; table names are
never formatted into SQL text and all values are bound parameters.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from order_kernel.db.base import TrackedBase
from order_kernel.db.upsert import upsert_rows
from order_kernel.models.order_line import (
    INGEST_UPDATABLE_COLUMNS,
    OrderSettlementStatus,
)


@dataclass(frozen=True)
class StatusTotals:
    """Row count and amount sum for one settlement status."""

    status: OrderSettlementStatus
    count: int
    amount: Decimal


@dataclass(frozen=True)
class OrderFilter:
    """
    Optional narrowing of one client's order lines.  None disables a filter.

    ``buyer_name`` is a substring match; ``paid_from``/``paid_to`` are
    inclusive bounds on the payment time.
    """

    order_status: str | None = None
    settlement_status: OrderSettlementStatus | None = None
    buyer_name: str | None = None
    paid_from: datetime | None = None
    paid_to: datetime | None = None


@dataclass(frozen=True)
class StatusBreakdown:
    """One (order status, settlement status) group of a client's lines."""

    order_status: str | None
    settlement_status: OrderSettlementStatus
    line_count: int
    order_count: int
    quantity: int
    amount: Decimal


class OrderShard:
    """Handle on a single ``orders_{n}`` table."""

    def __init__(self, shard_id: int, model: type[TrackedBase]):
        self.shard_id = shard_id
        self.model = model

    def __repr__(self) -> str:
        return f"<OrderShard {self.shard_id}: {self.table_name}>"

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(
        self,
        session: Session,
        rows: Sequence[dict[str, Any]],
        actor_id: UUID,
    ) -> int:
        """
        Insert rows, or update the ingest-owned columns of existing rows with
        the same (external_order_id, sku).

        Pricing, discount, settlement status, note and record reference of an
        existing row are left untouched.  Every row must carry the same keys.

        Returns:
            Number of input rows written.
        """
        if not rows:
            return 0

        table = self.model.__table__
        values = [
            {
                **row,
                "id": uuid4(),
                "created_by_id": actor_id,
                "settlement_status": OrderSettlementStatus.WAITING.value,
            }
            for row in rows
        ]

        return upsert_rows(
            session,
            table,
            values,
            conflict_columns=("external_order_id", "sku"),
            update_columns=INGEST_UPDATABLE_COLUMNS,
            extra_set={"updated_at": func.now(), "updated_by_id": actor_id},
        )

    def update_by_ids(
        self,
        session: Session,
        order_ids: Iterable[UUID],
        values: dict[str, Any],
        only_statuses: Iterable[OrderSettlementStatus] | None = None,
    ) -> int:
        """Bulk UPDATE of the given ids, optionally guarded by current status."""
        ids = list(order_ids)
        if not ids:
            return 0
        model = self.model
        stmt = update(model).where(model.id.in_(ids))
        if only_statuses is not None:
            stmt = stmt.where(
                model.settlement_status.in_([s.value for s in only_statuses])
            )
        stmt = stmt.values(**values).execution_options(synchronize_session="fetch")
        return session.execute(stmt).rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select_pending(
        self,
        session: Session,
        start: datetime,
        end: datetime,
        client_id: int | None = None,
    ) -> list[Any]:
        """
        Waiting lines paid within [start, end], ordered by client, buyer and
        payment time.
        """
        return self.select_window(
            session,
            start,
            end,
            client_id=client_id,
            statuses=[OrderSettlementStatus.WAITING],
        )

    def select_window(
        self,
        session: Session,
        start: datetime,
        end: datetime,
        client_id: int | None = None,
        statuses: Iterable[OrderSettlementStatus] | None = None,
    ) -> list[Any]:
        model = self.model
        stmt = select(model).where(model.payment_time.between(start, end))
        if client_id is not None:
            stmt = stmt.where(model.client_id == client_id)
        if statuses is not None:
            stmt = stmt.where(
                model.settlement_status.in_([s.value for s in statuses])
            )
        stmt = stmt.order_by(model.client_id, model.buyer_name, model.payment_time)
        return list(session.execute(stmt).scalars())

    def count_window(
        self,
        session: Session,
        start: datetime,
        end: datetime,
        client_id: int,
        status: OrderSettlementStatus,
    ) -> int:
        model = self.model
        stmt = (
            select(func.count())
            .select_from(model)
            .where(model.client_id == client_id)
            .where(model.payment_time.between(start, end))
            .where(model.settlement_status == status.value)
        )
        return session.execute(stmt).scalar_one()

    def select_by_ids(self, session: Session, order_ids: Iterable[UUID]) -> list[Any]:
        ids = list(order_ids)
        if not ids:
            return []
        model = self.model
        return list(session.execute(select(model).where(model.id.in_(ids))).scalars())

    def select_by_record(self, session: Session, record_id: UUID) -> list[Any]:
        model = self.model
        stmt = (
            select(model)
            .where(model.settlement_record_id == record_id)
            .order_by(model.payment_time)
        )
        return list(session.execute(stmt).scalars())

    def select_by_external_id(
        self, session: Session, external_order_id: str
    ) -> list[Any]:
        model = self.model
        stmt = (
            select(model)
            .where(model.external_order_id == external_order_id)
            .order_by(model.sku)
        )
        return list(session.execute(stmt).scalars())

    def status_totals(
        self,
        session: Session,
        start: datetime,
        end: datetime,
    ) -> list[StatusTotals]:
        """Per-status count and settlement amount sum for lines paid in the window."""
        model = self.model
        stmt = (
            select(
                model.settlement_status,
                func.count(),
                func.coalesce(func.sum(model.settlement_amount), 0),
            )
            .where(model.payment_time.between(start, end))
            .group_by(model.settlement_status)
        )
        return [
            StatusTotals(
                status=OrderSettlementStatus(status),
                count=count,
                amount=Decimal(str(amount)),
            )
            for status, count, amount in session.execute(stmt)
        ]

    # ------------------------------------------------------------------
    # Per-client browsing
    # ------------------------------------------------------------------

    def _client_conditions(self, client_id: int, filters: OrderFilter) -> list[Any]:
        model = self.model
        conditions = [model.client_id == client_id]
        if filters.order_status is not None:
            conditions.append(model.order_status == filters.order_status)
        if filters.settlement_status is not None:
            conditions.append(
                model.settlement_status == OrderSettlementStatus(filters.settlement_status).value
            )
        if filters.buyer_name:
            # LIKE wildcards in the search text match literally
            conditions.append(model.buyer_name.contains(filters.buyer_name, autoescape=True))
        if filters.paid_from is not None:
            conditions.append(model.payment_time >= filters.paid_from)
        if filters.paid_to is not None:
            conditions.append(model.payment_time <= filters.paid_to)
        return conditions

    def search(
        self,
        session: Session,
        client_id: int,
        filters: OrderFilter,
        limit: int,
        offset: int,
    ) -> tuple[list[Any], int]:
        """
        One page of the client's lines, newest payment first, plus the total
        number of matching lines.
        """
        model = self.model
        conditions = self._client_conditions(client_id, filters)
        total = session.execute(
            select(func.count()).select_from(model).where(*conditions)
        ).scalar_one()
        stmt = (
            select(model)
            .where(*conditions)
            .order_by(
                model.payment_time.desc().nulls_last(),
                model.external_order_id,
                model.sku,
            )
            .limit(limit)
            .offset(offset)
        )
        return list(session.execute(stmt).scalars()), total

    def status_breakdown(self, session: Session, client_id: int) -> list[StatusBreakdown]:
        model = self.model
        stmt = (
            select(
                model.order_status,
                model.settlement_status,
                func.count(),
                func.count(func.distinct(model.external_order_id)),
                func.coalesce(func.sum(model.quantity), 0),
                func.coalesce(func.sum(model.settlement_amount), 0),
            )
            .where(model.client_id == client_id)
            .group_by(model.order_status, model.settlement_status)
            .order_by(model.settlement_status, model.order_status)
        )
        return [
            StatusBreakdown(
                order_status=order_status,
                settlement_status=OrderSettlementStatus(settlement_status),
                line_count=lines,
                order_count=orders,
                quantity=int(quantity),
                amount=Decimal(str(amount)),
            )
            for order_status, settlement_status, lines, orders, quantity, amount in session.execute(stmt)
        ]

    def count_orders(self, session: Session, client_id: int) -> int:
        """Distinct external order numbers of the client (an order spans several lines)."""
        model = self.model
        stmt = select(func.count(func.distinct(model.external_order_id))).where(
            model.client_id == client_id
        )
        return session.execute(stmt).scalar_one()
