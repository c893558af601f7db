"""Tests for SettlementLedger: execute, re-settle, cancel, queries."""

import random
import re
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from order_kernel.db.engine import transaction_scope
from order_kernel.exceptions import (
    InvalidSettlementWindowError,
    NothingToSettleError,
    SettlementRecordNotFoundError,
    UnsettledOrdersError,
)
from order_settlement.domain.types import DateRange, SettlementStatus
from order_settlement.models.settlement_record import SettlementRecordModel
from order_settlement.services.ledger import SettlementLedger
from order_settlement.services.pipeline import SettlementPipeline

DAY = date(2024, 6, 10)
WEEK = DateRange(date(2024, 6, 10), date(2024, 6, 14))


class _RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.records = []
        self.fail = fail

    def settlement_recorded(self, record):
        self.records.append(record)
        if self.fail:
            raise RuntimeError("commission service down")


@pytest.fixture
def pipeline(session_factory, router, deterministic_clock, settlement_settings):
    return SettlementPipeline(session_factory, router, deterministic_clock, settlement_settings)


@pytest.fixture
def notifier():
    return _RecordingNotifier()


@pytest.fixture
def ledger(session_factory, router, pipeline, deterministic_clock, settlement_settings, notifier):
    return SettlementLedger(
        session_factory,
        router,
        pipeline,
        deterministic_clock,
        settlement_settings,
        notifier=notifier,
        rng=random.Random(1),
    )


def _calculated(external_order_id: str, amount: str, **extra) -> dict:
    return {
        "external_order_id": external_order_id,
        "settlement_status": SettlementStatus.CALCULATED.value,
        "settlement_amount": Decimal(amount),
        **extra,
    }


def _record_count(session_factory) -> int:
    with transaction_scope(session_factory) as sess:
        return sess.execute(select(func.count()).select_from(SettlementRecordModel)).scalar_one()


class TestExecute:
    def test_records_and_marks_settled(self, ledger, seed_orders, load_order, notifier, test_actor_id):
        first, second = seed_orders(_calculated("42-1", "20"), _calculated("42-2", "28"))

        record = ledger.execute(WEEK, 42, test_actor_id, notes="June week 2")

        assert re.fullmatch(r"20240614-[A-Z0-9]{6}", record.settlement_id)
        assert record.total_amount == Decimal("48")
        assert record.order_count == 2
        assert record.status == "completed"
        assert record.notes == "June week 2"
        assert record.created_by_id == test_actor_id
        for order_id in (first, second):
            order = load_order(42, order_id)
            assert order.settlement_status == SettlementStatus.SETTLED.value
            assert order.settlement_record_id == record.record_id
        assert notifier.records == [record]

    def test_waiting_line_blocks_everything(self, ledger, seed_orders, load_order, session_factory, test_actor_id):
        (calc,) = seed_orders(_calculated("42-1", "20"))
        seed_orders({"external_order_id": "42-2", "payment_time": datetime(2024, 6, 12, 8)})

        with pytest.raises(UnsettledOrdersError) as exc_info:
            ledger.execute(WEEK, 42, test_actor_id)

        assert exc_info.value.waiting_count == 1
        assert _record_count(session_factory) == 0
        assert load_order(42, calc).settlement_status == SettlementStatus.CALCULATED.value

    def test_other_clients_and_dates_ignored(self, ledger, seed_orders, load_order, test_actor_id):
        seed_orders(_calculated("42-1", "20"))
        (outside,) = seed_orders(_calculated("42-2", "5", payment_time=datetime(2024, 6, 9, 23, 59)))
        (neighbour,) = seed_orders(_calculated("46-1", "7"))  # same shard as 42

        record = ledger.execute(WEEK, 42, test_actor_id)

        assert record.order_count == 1
        assert load_order(42, outside).settlement_status == SettlementStatus.CALCULATED.value
        assert load_order(46, neighbour).settlement_status == SettlementStatus.CALCULATED.value

    def test_nothing_to_settle(self, ledger, seed_orders, test_actor_id):
        seed_orders({"external_order_id": "42-1", "settlement_status": SettlementStatus.CANCEL.value})
        with pytest.raises(NothingToSettleError):
            ledger.execute(WEEK, 42, test_actor_id)

    def test_window_must_be_closed(self, ledger, test_actor_id):
        with pytest.raises(InvalidSettlementWindowError):
            ledger.execute(DateRange(date(2024, 6, 10), date(2024, 6, 15)), 42, test_actor_id)

    def test_notifier_failure_does_not_undo_record(
        self, session_factory, router, pipeline, deterministic_clock, seed_orders, test_actor_id, captured_logs
    ):
        failing = _RecordingNotifier(fail=True)
        ledger = SettlementLedger(
            session_factory, router, pipeline, deterministic_clock, notifier=failing
        )
        seed_orders(_calculated("42-1", "20"))

        record = ledger.execute(WEEK, 42, test_actor_id)

        assert ledger.get_record(record.settlement_id).order_count == 1
        assert any(r["message"] == "commission_notification_failed" for r in captured_logs())

    def test_second_execute_finds_nothing(self, ledger, seed_orders, test_actor_id):
        seed_orders(_calculated("42-1", "20"))
        ledger.execute(WEEK, 42, test_actor_id)
        with pytest.raises(NothingToSettleError):
            ledger.execute(WEEK, 42, test_actor_id)


class TestReSettle:
    def test_resets_and_recomputes(self, ledger, seed_orders, seed_pricing, load_order, test_actor_id):
        seed_pricing(prices=[(42, "X", "US", 1, "12")])
        (order_id,) = seed_orders(
            _calculated(
                "42-1",
                "10",
                spu="X",
                unit_price=Decimal("10"),
                discount_rate=Decimal("1.0"),
                settlement_note="unit price × discount: 10.00 × 1.00 = 10.00",
            )
        )

        stats = ledger.re_settle([order_id], DAY, test_actor_id)

        assert stats.calculated == 1
        order = load_order(42, order_id)
        assert order.settlement_status == SettlementStatus.CALCULATED.value
        assert order.unit_price == Decimal("12")
        assert order.settlement_amount == Decimal("12.00")

    def test_settled_line_loses_record_link_record_unchanged(
        self, ledger, seed_orders, load_order, test_actor_id
    ):
        (order_id,) = seed_orders(_calculated("42-1", "20", spu="X"))
        record = ledger.execute(WEEK, 42, test_actor_id)

        ledger.re_settle([order_id], DAY, test_actor_id)

        order = load_order(42, order_id)
        assert order.settlement_record_id is None
        # no price exists, so the line is left waiting
        assert order.settlement_status == SettlementStatus.WAITING.value
        assert order.settlement_amount is None
        assert ledger.get_record(record.settlement_id).total_amount == Decimal("20")

    def test_unknown_ids_are_ignored(self, ledger, test_actor_id):
        stats = ledger.re_settle([uuid4()], DAY, test_actor_id)
        assert stats.processed == 0


class TestCancel:
    def test_cancels_waiting_and_settled_only(self, ledger, seed_orders, load_order, test_actor_id):
        waiting, calculated = seed_orders(
            {"external_order_id": "42-1"},
            _calculated("43-1", "9"),
        )
        (settled,) = seed_orders(
            {"external_order_id": "44-1", "settlement_status": SettlementStatus.SETTLED.value}
        )

        changed = ledger.cancel([waiting, calculated, settled], actor_id=test_actor_id)

        assert changed == 2
        assert load_order(42, waiting).settlement_status == SettlementStatus.CANCEL.value
        assert load_order(42, waiting).settlement_note == "cancelled by administrator"
        assert load_order(43, calculated).settlement_status == SettlementStatus.CALCULATED.value
        assert load_order(44, settled).settlement_status == SettlementStatus.CANCEL.value

    def test_custom_reason(self, ledger, seed_orders, load_order, test_actor_id):
        (order_id,) = seed_orders({"external_order_id": "42-1"})
        ledger.cancel([order_id], reason="duplicate shipment", actor_id=test_actor_id)
        assert load_order(42, order_id).settlement_note == "duplicate shipment"

    def test_cancelled_line_not_picked_up_by_pipeline(self, ledger, pipeline, seed_orders, test_actor_id):
        (order_id,) = seed_orders({"external_order_id": "42-1"})
        ledger.cancel([order_id], actor_id=test_actor_id)
        assert pipeline.settle_date(DAY).processed == 0


class TestQueries:
    def test_get_record_not_found(self, ledger):
        with pytest.raises(SettlementRecordNotFoundError):
            ledger.get_record("20240614-NOPE00")

    def test_list_records_newest_first_and_paged(self, ledger, seed_orders, test_actor_id):
        seed_orders(_calculated("42-1", "1", payment_time=datetime(2024, 6, 3, 9)))
        seed_orders(_calculated("42-2", "2", payment_time=datetime(2024, 6, 10, 9)))
        seed_orders(_calculated("43-1", "3", payment_time=datetime(2024, 6, 10, 9)))
        older = ledger.execute(DateRange(date(2024, 6, 1), date(2024, 6, 7)), 42, test_actor_id)
        newer = ledger.execute(WEEK, 42, test_actor_id)
        other = ledger.execute(WEEK, 43, test_actor_id)

        mine = ledger.list_records(client_id=42)
        assert [r.settlement_id for r in mine] == [newer.settlement_id, older.settlement_id]
        assert len(ledger.list_records()) == 3
        assert [r.settlement_id for r in ledger.list_records(client_id=42, page=2, page_size=1)] == [
            older.settlement_id
        ]
        assert ledger.list_records(client_id=43, page=0, page_size=0)[0].settlement_id == other.settlement_id

    def test_record_orders(self, ledger, seed_orders, test_actor_id):
        seed_orders(_calculated("42-1", "20", sku="A"), _calculated("42-2", "28", sku="B"))
        record = ledger.execute(WEEK, 42, test_actor_id)
        lines = ledger.record_orders(record.settlement_id)
        assert sorted(line.external_order_id for line in lines) == ["42-1", "42-2"]
        assert sum(line.settlement_amount for line in lines) == Decimal("48")

    def test_report_across_shards(self, ledger, seed_orders):
        seed_orders(
            _calculated("42-1", "20"),
            _calculated("43-1", "28"),
            {"external_order_id": "44-1"},
            {"external_order_id": "45-1", "settlement_status": SettlementStatus.CANCEL.value},
            {"external_order_id": "45-2", "payment_time": datetime(2024, 6, 11, 9)},
        )
        report = ledger.report(DAY)
        assert report.total_orders == 4
        assert report.count(SettlementStatus.CALCULATED) == 2
        assert report.count(SettlementStatus.WAITING) == 1
        assert report.count(SettlementStatus.SETTLED) == 0
        assert report.settled_amount == Decimal("48")

    def test_client_totals(self, ledger, seed_orders, test_actor_id):
        seed_orders(
            _calculated("42-1", "20", sku="A"),
            _calculated("42-1", "5", sku="B"),
            _calculated("42-2", "28", payment_time=datetime(2024, 6, 3, 9)),
            _calculated("43-1", "99"),
        )
        ledger.execute(DateRange(date(2024, 6, 1), date(2024, 6, 7)), 42, test_actor_id)
        ledger.execute(WEEK, 42, test_actor_id)
        ledger.execute(WEEK, 43, test_actor_id)

        totals = ledger.client_totals(42)
        assert totals.record_count == 2
        assert totals.total_amount == Decimal("53")
        assert totals.order_count == 3
        assert totals.completed_records == 2
        assert totals.pending_records == 0

    def test_client_totals_without_records(self, ledger):
        totals = ledger.client_totals(42)
        assert totals.record_count == 0
        assert totals.total_amount == Decimal("0")
        assert totals.order_count == 0
