"""
SettlementLedger -- roll calculated order lines into immutable ledger records.

Also owns the administrative overrides on settled data: re-settlement of
named lines and cancellation.  Every public method is one transaction.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from order_config.schema import SettlementSettings
from order_kernel.db.engine import transaction_scope
from order_kernel.domain.clock import Clock
from order_kernel.domain.dtos import SYSTEM_ACTOR_ID
from order_kernel.exceptions import (
    InvalidSettlementWindowError,
    NothingToSettleError,
    SettlementRecordNotFoundError,
    UnsettledOrdersError,
)
from order_kernel.logging_config import LogContext, get_logger
from order_kernel.sharding import ShardRouter
from order_settlement.domain.rules import generate_settlement_id
from order_settlement.domain.types import (
    ClientSettlementTotals,
    DateRange,
    SettlementRecord,
    SettlementReport,
    SettlementStats,
    SettlementStatus,
    StatusSummary,
)
from order_settlement.models.settlement_record import (
    SettlementRecordModel,
    SettlementRecordStatus,
)
from order_settlement.services.pipeline import SettlementPipeline

logger = get_logger("settlement.ledger")

_MAX_ID_ATTEMPTS = 5
_MAX_PAGE_SIZE = 200

# Columns cleared when a line goes back to waiting
_RESET_VALUES = {
    "settlement_status": SettlementStatus.WAITING.value,
    "settlement_amount": None,
    "discount_rate": None,
    "unit_price": None,
    "multi_unit_total_price": None,
    "settlement_note": None,
    "settlement_record_id": None,
}


@runtime_checkable
class CommissionNotifier(Protocol):
    """Receives every newly written ledger record (commission accounting lives elsewhere)."""

    def settlement_recorded(self, record: SettlementRecord) -> None:
        ...


@dataclass(frozen=True)
class SettledOrderLine:
    """Read-only view of one order line belonging to a ledger record."""

    order_id: UUID
    external_order_id: str
    sku: str
    quantity: int | None
    payment_time: datetime | None
    settlement_amount: Decimal | None
    settlement_status: str
    settlement_note: str | None


def _to_dto(row: SettlementRecordModel) -> SettlementRecord:
    return SettlementRecord(
        record_id=row.id,
        settlement_id=row.settlement_id,
        client_id=row.client_id,
        start_date=row.start_date,
        end_date=row.end_date,
        total_amount=row.total_amount,
        order_count=row.order_count,
        status=row.status,
        notes=row.notes,
        created_at=row.created_at,
        created_by_id=row.created_by_id,
    )


class SettlementLedger:
    """Ledger writes and queries. Uses session factory, router, pipeline, clock."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        router: ShardRouter,
        pipeline: SettlementPipeline,
        clock: Clock,
        settings: SettlementSettings | None = None,
        notifier: CommissionNotifier | None = None,
        rng: random.Random | None = None,
    ):
        self._session_factory = session_factory
        self._router = router
        self._pipeline = pipeline
        self._clock = clock
        self._settings = settings or SettlementSettings()
        self._notifier = notifier
        self._rng = rng

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(
        self,
        date_range: DateRange,
        client_id: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> SettlementRecord:
        """
        Write one ledger record for the client's calculated lines in the
        window and mark those lines settled, atomically.

        Raises:
            InvalidSettlementWindowError: The window reaches today or later.
            UnsettledOrdersError: A line in the window is still waiting.
                Nothing is written.
            NothingToSettleError: No calculated lines in the window.
        """
        today = self._clock.today()
        if date_range.end >= today:
            raise InvalidSettlementWindowError(
                date_range.start, date_range.end, f"end date must be before today ({today})"
            )

        shard = self._router.shard_for_client(client_id)
        start, end = date_range.bounds()

        with LogContext.bind(producer="settlement_ledger", actor_id=actor_id, client_id=client_id):
            with transaction_scope(self._session_factory) as session:
                waiting = shard.count_window(
                    session, start, end, client_id, SettlementStatus.WAITING
                )
                if waiting:
                    raise UnsettledOrdersError(
                        client_id, date_range.start, date_range.end, waiting
                    )

                orders = shard.select_window(
                    session, start, end, client_id=client_id,
                    statuses=[SettlementStatus.CALCULATED],
                )
                if not orders:
                    raise NothingToSettleError(client_id, date_range.start, date_range.end)

                total = sum((o.settlement_amount or Decimal("0") for o in orders), Decimal("0"))
                row = SettlementRecordModel(
                    settlement_id=self._mint_settlement_id(session, date_range.end),
                    client_id=client_id,
                    start_date=date_range.start,
                    end_date=date_range.end,
                    total_amount=total,
                    order_count=len(orders),
                    status=SettlementRecordStatus.COMPLETED.value,
                    notes=notes,
                    created_by_id=actor_id,
                )
                session.add(row)
                session.flush()

                for order in orders:
                    order.settlement_status = SettlementStatus.SETTLED.value
                    order.settlement_record_id = row.id
                    order.updated_by_id = actor_id
                session.flush()
                session.refresh(row)
                record = _to_dto(row)

            logger.info(
                "settlement_recorded",
                extra={
                    "settlement_id": record.settlement_id,
                    "order_count": record.order_count,
                    "total_amount": record.total_amount,
                },
            )

        self._notify(record)
        return record

    def _mint_settlement_id(self, session: Session, end_date: date) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = generate_settlement_id(end_date, self._rng)
            taken = session.execute(
                select(SettlementRecordModel.id).where(
                    SettlementRecordModel.settlement_id == candidate
                )
            ).first()
            if taken is None:
                return candidate
        raise RuntimeError(
            f"Could not mint a unique settlement id for {end_date} "
            f"after {_MAX_ID_ATTEMPTS} attempts"
        )

    def _notify(self, record: SettlementRecord) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.settlement_recorded(record)
        except Exception:
            # The record is committed; a notifier failure must not undo it.
            logger.error(
                "commission_notification_failed",
                extra={"settlement_id": record.settlement_id},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Administrative overrides
    # ------------------------------------------------------------------

    def re_settle(
        self,
        order_ids: Iterable[UUID],
        settlement_date: date,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> SettlementStats:
        """
        Put the named lines back to waiting with all pricing cleared, then
        run the full pipeline for ``settlement_date``.

        The reset commits before the pipeline starts.  A line already rolled
        into a ledger record loses its back reference; the record itself is
        not changed.
        """
        ids = list(order_ids)
        with LogContext.bind(producer="settlement_ledger", actor_id=actor_id):
            with transaction_scope(self._session_factory) as session:
                reset = 0
                for shard in self._router.shards():
                    reset += shard.update_by_ids(
                        session, ids, {**_RESET_VALUES, "updated_by_id": actor_id}
                    )
            logger.info(
                "orders_reset_for_resettlement",
                extra={"requested": len(ids), "reset": reset},
            )
        return self._pipeline.settle(
            DateRange.single(settlement_date), actor_id=actor_id
        )

    def cancel(
        self,
        order_ids: Iterable[UUID],
        reason: str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> int:
        """
        Cancel waiting or settled lines.  Lines in any other state are left
        alone.

        Returns:
            Number of lines cancelled.
        """
        ids = list(order_ids)
        note = reason or self._settings.default_cancel_reason
        with LogContext.bind(producer="settlement_ledger", actor_id=actor_id):
            with transaction_scope(self._session_factory) as session:
                changed = 0
                for shard in self._router.shards():
                    changed += shard.update_by_ids(
                        session,
                        ids,
                        {
                            "settlement_status": SettlementStatus.CANCEL.value,
                            "settlement_note": note,
                            "updated_by_id": actor_id,
                        },
                        only_statuses=[SettlementStatus.WAITING, SettlementStatus.SETTLED],
                    )
            logger.info(
                "orders_cancelled",
                extra={"requested": len(ids), "cancelled": changed, "reason": note},
            )
        return changed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_record(self, settlement_id: str) -> SettlementRecord:
        with transaction_scope(self._session_factory) as session:
            return _to_dto(self._load_record(session, settlement_id))

    def list_records(
        self,
        client_id: int | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> list[SettlementRecord]:
        """Newest first.  ``page`` is 1-based; both values are clamped to sane bounds."""
        page = max(int(page), 1)
        page_size = min(max(int(page_size), 1), _MAX_PAGE_SIZE)
        stmt = select(SettlementRecordModel)
        if client_id is not None:
            stmt = stmt.where(SettlementRecordModel.client_id == client_id)
        stmt = (
            stmt.order_by(
                SettlementRecordModel.end_date.desc(),
                SettlementRecordModel.settlement_id,
            )
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        with transaction_scope(self._session_factory) as session:
            return [_to_dto(r) for r in session.execute(stmt).scalars()]

    def record_orders(self, settlement_id: str) -> list[SettledOrderLine]:
        with transaction_scope(self._session_factory) as session:
            row = self._load_record(session, settlement_id)
            shard = self._router.shard_for_client(row.client_id)
            return [
                SettledOrderLine(
                    order_id=o.id,
                    external_order_id=o.external_order_id,
                    sku=o.sku,
                    quantity=o.quantity,
                    payment_time=o.payment_time,
                    settlement_amount=o.settlement_amount,
                    settlement_status=o.settlement_status,
                    settlement_note=o.settlement_note,
                )
                for o in shard.select_by_record(session, row.id)
            ]

    def report(self, settlement_date: date) -> SettlementReport:
        """Status counts and amounts for every line paid on the date, across shards."""
        start, end = DateRange.single(settlement_date).bounds()
        counts: dict[SettlementStatus, int] = {}
        amounts: dict[SettlementStatus, Decimal] = {}
        with transaction_scope(self._session_factory) as session:
            for shard in self._router.shards():
                for totals in shard.status_totals(session, start, end):
                    counts[totals.status] = counts.get(totals.status, 0) + totals.count
                    amounts[totals.status] = amounts.get(totals.status, Decimal("0")) + totals.amount
        return SettlementReport(
            settlement_date=settlement_date,
            by_status={
                status: StatusSummary(count=counts[status], amount=amounts[status])
                for status in counts
            },
        )

    def client_totals(self, client_id: int) -> ClientSettlementTotals:
        """Record count, amount and order count over every record of the client."""
        rec = SettlementRecordModel

        def _with_status(status: SettlementRecordStatus) -> Any:
            return func.coalesce(func.sum(case((rec.status == status.value, 1), else_=0)), 0)

        stmt = select(
            func.count(),
            func.coalesce(func.sum(rec.total_amount), 0),
            func.coalesce(func.sum(rec.order_count), 0),
            _with_status(SettlementRecordStatus.COMPLETED),
            _with_status(SettlementRecordStatus.PENDING),
        ).where(rec.client_id == client_id)
        with transaction_scope(self._session_factory) as session:
            records, amount, orders, completed, pending = session.execute(stmt).one()
        return ClientSettlementTotals(
            client_id=client_id,
            record_count=records,
            total_amount=Decimal(str(amount)),
            order_count=int(orders),
            completed_records=int(completed),
            pending_records=int(pending),
        )

    @staticmethod
    def _load_record(session: Session, settlement_id: str) -> SettlementRecordModel:
        row = session.execute(
            select(SettlementRecordModel).where(
                SettlementRecordModel.settlement_id == settlement_id
            )
        ).scalar_one_or_none()
        if row is None:
            raise SettlementRecordNotFoundError(settlement_id)
        return row
