"""
SettlementPipeline -- compute settlement amounts for waiting order lines.

Stages, always in this order, over the lines paid on one date:

    1. cancel    refunded / marked not to settle / excluded SKU -> cancel
    2. resolve   fill missing SPUs from the SKU->SPU mapping
    3. discount  one tier rate per (client, buyer) group, from summed quantity
    4. price     look up (client, spu, country, quantity) -> unit or bundle price
    5. finalize  bundle price verbatim, else unit price x discount -> calculated

Each date is one transaction: it commits when all stages finish and rolls
back entirely on an uncaught error.  Inside it, discount groups and price
lookups run in SAVEPOINTs so that one failing group or order is recorded
and skipped while the rest of the date proceeds.

Concurrent runs over the same date are not coordinated here; callers must
run at most one settlement per date at a time.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from order_config.schema import SettlementSettings
from order_kernel.db.engine import transaction_scope
from order_kernel.domain.clock import Clock
from order_kernel.domain.dtos import SYSTEM_ACTOR_ID
from order_kernel.logging_config import LogContext, get_logger
from order_kernel.sharding import ShardRouter
from order_settlement.domain.rules import (
    CancellationPolicy,
    DiscountTier,
    compute_settlement_amount,
    price_field_for,
    select_discount_rate,
    validate_settlement_window,
)
from order_settlement.domain.types import (
    DateOutcome,
    DateRange,
    RangeSettlementResult,
    SettlementStats,
    SettlementStatus,
)
from order_settlement.services.pricing import PricingCatalog

logger = get_logger("settlement.pipeline")


class _RunState:
    """Mutable counters for one date; frozen into SettlementStats at the end."""

    def __init__(self, max_errors: int):
        self.max_errors = max_errors
        self.processed = 0
        self.cancelled = 0
        self.calculated = 0
        self.skipped = 0
        self.discount_groups = 0
        self.priced = 0
        self.errors: list[str] = []
        self.error_count = 0
        # ids of lines that must not reach finalize
        self.flagged: set[UUID] = set()

    def error(self, message: str) -> None:
        self.error_count += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(message)

    def freeze(self) -> SettlementStats:
        return SettlementStats(
            processed=self.processed,
            cancelled=self.cancelled,
            calculated=self.calculated,
            skipped=self.skipped,
            discount_groups=self.discount_groups,
            priced=self.priced,
            errors=tuple(self.errors),
            error_count=self.error_count,
        )


def _label(order: Any) -> str:
    return f"{order.external_order_id}/{order.sku or '-'}"


class SettlementPipeline:
    """Runs the five settlement stages. Uses session factory, router, clock, settings."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        router: ShardRouter,
        clock: Clock,
        settings: SettlementSettings | None = None,
    ):
        self._session_factory = session_factory
        self._router = router
        self._clock = clock
        self._settings = settings or SettlementSettings()
        self._policy = CancellationPolicy.from_settings(self._settings)
        self._default_rate = Decimal(self._settings.default_discount_rate)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def settle(
        self,
        date_range: DateRange,
        client_id: int | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> SettlementStats:
        """
        Settle every date of the range, one transaction per date.

        An error on a date rolls that date back and propagates; dates
        already committed stay committed.
        """
        total = SettlementStats()
        for day in date_range.days():
            total = total.merged(
                self.settle_date(day, client_id, actor_id),
                self._settings.max_error_display,
            )
        return total

    def settle_date(
        self,
        settlement_date: date,
        client_id: int | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> SettlementStats:
        with LogContext.bind(
            producer="settlement",
            actor_id=actor_id,
            client_id=client_id,
            settlement_date=settlement_date.isoformat(),
        ):
            with transaction_scope(self._session_factory) as session:
                stats = self._run(session, settlement_date, client_id, actor_id)
            logger.info(
                "settlement_date_completed",
                extra={
                    "processed": stats.processed,
                    "cancelled": stats.cancelled,
                    "calculated": stats.calculated,
                    "skipped": stats.skipped,
                    "error_count": stats.error_count,
                },
            )
            return stats

    def settle_range(
        self,
        start: date,
        end: date,
        client_id: int | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> RangeSettlementResult:
        """
        Batch trigger over a closed window.  A failing date is recorded and
        the remaining dates still run.

        Raises:
            InvalidSettlementWindowError: end not before today, start after
                end, or window longer than the configured maximum.
        """
        validate_settlement_window(
            start, end, self._clock.today(), self._settings.max_batch_days
        )
        date_range = DateRange(start, end)
        outcomes: list[DateOutcome] = []
        for day in date_range.days():
            try:
                stats = self.settle_date(day, client_id, actor_id)
            except Exception as exc:
                logger.error(
                    "settlement_date_failed",
                    extra={"settlement_date": day.isoformat(), "error_msg": str(exc)},
                    exc_info=True,
                )
                outcomes.append(DateOutcome(settlement_date=day, error=str(exc)))
            else:
                outcomes.append(DateOutcome(settlement_date=day, stats=stats))

        result = RangeSettlementResult(date_range=date_range, outcomes=tuple(outcomes))
        logger.info(
            "settlement_range_completed",
            extra={
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "days": len(outcomes),
                "failed_days": len(result.failed_dates),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(
        self,
        session: Session,
        settlement_date: date,
        client_id: int | None,
        actor_id: UUID,
    ) -> SettlementStats:
        state = _RunState(self._settings.max_error_display)
        catalog = PricingCatalog(session)

        start, end = DateRange.single(settlement_date).bounds()
        candidates: list[Any] = []
        for shard in self._router.shards(client_id):
            candidates.extend(shard.select_pending(session, start, end, client_id))
        state.processed = len(candidates)
        if not candidates:
            return state.freeze()

        active = self._cancel_stage(session, candidates, state, actor_id)
        self._resolve_stage(session, catalog, active, actor_id)
        self._discount_stage(session, catalog, active, state, actor_id)
        self._price_stage(session, catalog, active, state, actor_id)
        self._finalize_stage(session, active, state, actor_id)
        return state.freeze()

    def _cancel_stage(
        self,
        session: Session,
        candidates: list[Any],
        state: _RunState,
        actor_id: UUID,
    ) -> list[Any]:
        active: list[Any] = []
        for order in candidates:
            reason = self._policy.reason_for(
                order.order_status,
                order.sku,
                (
                    order.customer_remark,
                    order.picking_remark,
                    order.order_remark,
                    order.settlement_note,
                ),
            )
            if reason is None:
                active.append(order)
                continue
            order.settlement_status = SettlementStatus.CANCEL.value
            order.settlement_note = reason
            order.updated_by_id = actor_id
            state.cancelled += 1
        session.flush()
        logger.info("cancel_stage_completed", extra={"cancelled": state.cancelled})
        return active

    def _resolve_stage(
        self,
        session: Session,
        catalog: PricingCatalog,
        active: list[Any],
        actor_id: UUID,
    ) -> None:
        missing = [o for o in active if not o.spu and o.sku]
        if not missing:
            return
        mapping = catalog.resolve_spus(o.sku for o in missing)
        resolved = 0
        for order in missing:
            spu = mapping.get(order.sku)
            if spu:
                order.spu = spu
                order.updated_by_id = actor_id
                resolved += 1
        session.flush()
        logger.info(
            "resolve_stage_completed",
            extra={"missing_spu": len(missing), "resolved": resolved},
        )

    def _discount_stage(
        self,
        session: Session,
        catalog: PricingCatalog,
        active: list[Any],
        state: _RunState,
        actor_id: UUID,
    ) -> None:
        groups: OrderedDict[tuple[int, str | None], list[Any]] = OrderedDict()
        for order in active:
            groups.setdefault((order.client_id, order.buyer_name), []).append(order)

        tiers: dict[int, list[DiscountTier]] = {}
        for (client_id, buyer_name), orders in groups.items():
            savepoint = session.begin_nested()
            try:
                if client_id not in tiers:
                    tiers[client_id] = catalog.tiers_for(client_id)
                total_quantity = sum(o.quantity or 1 for o in orders)
                rate = select_discount_rate(tiers[client_id], total_quantity, self._default_rate)
                for order in orders:
                    order.discount_rate = rate
                    order.updated_by_id = actor_id
                session.flush()
                savepoint.commit()
                state.discount_groups += 1
            except Exception as exc:
                savepoint.rollback()
                state.error(f"buyer group {client_id}/{buyer_name}: {exc}")
                state.flagged.update(o.id for o in orders)
                logger.warning(
                    "discount_group_failed",
                    extra={"buyer_name": buyer_name, "error_msg": str(exc)},
                )
        logger.info(
            "discount_stage_completed",
            extra={"groups": len(groups), "discount_groups": state.discount_groups},
        )

    def _price_stage(
        self,
        session: Session,
        catalog: PricingCatalog,
        active: list[Any],
        state: _RunState,
        actor_id: UUID,
    ) -> None:
        for order in active:
            if order.id in state.flagged:
                continue
            quantity = order.quantity or 1
            if not order.spu or not order.country_code:
                order.settlement_note = "missing SPU or country code"
                order.updated_by_id = actor_id
                state.flagged.add(order.id)
                continue

            savepoint = session.begin_nested()
            try:
                price = catalog.price_for(
                    order.client_id, order.spu, order.country_code, quantity
                )
                if price is None:
                    savepoint.commit()
                    order.settlement_note = (
                        f"no price for {order.spu}/{order.country_code} x{quantity}"
                    )
                    order.updated_by_id = actor_id
                    state.flagged.add(order.id)
                    continue
                order.unit_price = None
                order.multi_unit_total_price = None
                setattr(order, price_field_for(quantity), price)
                order.updated_by_id = actor_id
                session.flush()
                savepoint.commit()
                state.priced += 1
            except Exception as exc:
                savepoint.rollback()
                order.settlement_note = f"price lookup failed: {exc}"
                state.flagged.add(order.id)
                state.error(f"order {_label(order)}: {exc}")
                logger.warning(
                    "price_lookup_failed",
                    extra={"external_order_id": order.external_order_id, "error_msg": str(exc)},
                )
        session.flush()
        logger.info("price_stage_completed", extra={"priced": state.priced})

    def _finalize_stage(
        self,
        session: Session,
        active: list[Any],
        state: _RunState,
        actor_id: UUID,
    ) -> None:
        for order in active:
            if order.id in state.flagged:
                state.skipped += 1
                continue
            decision = compute_settlement_amount(
                order.unit_price,
                order.multi_unit_total_price,
                order.discount_rate,
            )
            order.settlement_note = decision.note
            order.updated_by_id = actor_id
            if decision.settled:
                order.settlement_amount = decision.amount
                order.settlement_status = SettlementStatus.CALCULATED.value
                state.calculated += 1
            else:
                state.skipped += 1
        session.flush()
        logger.info(
            "finalize_stage_completed",
            extra={"calculated": state.calculated, "skipped": state.skipped},
        )
