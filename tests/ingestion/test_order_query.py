"""Tests for OrderQueryService: per-client search, lookups and statistics."""

from datetime import datetime
from decimal import Decimal

import pytest

from order_ingestion.services.order_query import OrderPage, OrderQueryService
from order_kernel.exceptions import InvalidExternalOrderIdError
from order_kernel.models.order_line import OrderSettlementStatus
from order_kernel.sharding import OrderFilter


@pytest.fixture
def queries(session, router):
    return OrderQueryService(session, router, max_page_size=3)


def _line(external_order_id: str, sku: str, **extra) -> dict:
    return {"external_order_id": external_order_id, "sku": sku, **extra}


class TestSearch:
    def test_newest_payment_first_within_client(self, queries, seed_orders):
        seed_orders(
            _line("42-1", "A", payment_time=datetime(2024, 6, 1, 9)),
            _line("42-2", "A", payment_time=datetime(2024, 6, 5, 9)),
            _line("42-3", "A", payment_time=None),
            _line("46-1", "A"),  # same shard, other client
        )
        page = queries.search(42)
        assert [o.external_order_id for o in page.orders] == ["42-2", "42-1", "42-3"]
        assert page.total == 3

    def test_filters_combine(self, queries, seed_orders):
        seed_orders(
            _line("42-1", "A", order_status="shipped", buyer_name="Ann 100% Lee"),
            _line("42-2", "A", order_status="shipped", buyer_name="Ann 1000 Lee"),
            _line("42-3", "A", order_status="refunded", buyer_name="Ann 100% Lee"),
            _line(
                "42-4",
                "A",
                order_status="shipped",
                buyer_name="Ann 100% Lee",
                settlement_status=OrderSettlementStatus.CANCEL.value,
            ),
        )
        page = queries.search(
            42,
            OrderFilter(
                order_status="shipped",
                settlement_status=OrderSettlementStatus.WAITING,
                buyer_name="100%",
            ),
        )
        assert [o.external_order_id for o in page.orders] == ["42-1"]
        assert page.total == 1

    def test_payment_bounds_inclusive(self, queries, seed_orders):
        seed_orders(
            _line("42-1", "A", payment_time=datetime(2024, 6, 1, 0, 0, 0)),
            _line("42-2", "A", payment_time=datetime(2024, 6, 2, 0, 0, 0)),
            _line("42-3", "A", payment_time=datetime(2024, 6, 3, 0, 0, 0)),
        )
        page = queries.search(
            42,
            OrderFilter(paid_from=datetime(2024, 6, 1), paid_to=datetime(2024, 6, 2)),
        )
        assert sorted(o.external_order_id for o in page.orders) == ["42-1", "42-2"]

    def test_paging_is_clamped(self, queries, seed_orders):
        seed_orders(
            *(
                _line(f"42-{i}", "A", payment_time=datetime(2024, 6, 10 - i, 9))
                for i in range(1, 6)
            )
        )
        first = queries.search(42, page=0, page_size=500)
        assert first.page == 1
        assert first.page_size == 3
        assert first.total == 5
        assert first.pages == 2
        assert [o.external_order_id for o in first.orders] == ["42-1", "42-2", "42-3"]

        second = queries.search(42, page=2, page_size=3)
        assert [o.external_order_id for o in second.orders] == ["42-4", "42-5"]

        assert queries.search(42, page=9, page_size=-4).orders == ()
        assert queries.search(42, page=1, page_size=-4).page_size == 1

    def test_unknown_client_is_empty(self, queries):
        page = queries.search(77)
        assert page == OrderPage(orders=(), total=0, page=1, page_size=3)
        assert page.pages == 0


class TestLookups:
    def test_find_by_external_id_routes_to_client_shard(self, queries, seed_orders):
        seed_orders(_line("42-1", "B"), _line("42-1", "A"), _line("42-2", "A"))
        lines = queries.find_by_external_id(" 42-1 ")
        assert [line.sku for line in lines] == ["A", "B"]

    def test_find_by_external_id_rejects_free_form_numbers(self, queries):
        with pytest.raises(InvalidExternalOrderIdError):
            queries.find_by_external_id("PO-0042")

    def test_find_by_ids_across_shards(self, queries, seed_orders):
        ids = seed_orders(_line("41-1", "A"), _line("42-1", "A"), _line("43-1", "A"))
        found = queries.find_by_ids([ids[0], ids[2]])
        assert sorted(o.external_order_id for o in found) == ["41-1", "43-1"]
        assert queries.find_by_ids([]) == []


class TestClientStats:
    def test_rollup_by_status(self, queries, seed_orders):
        seed_orders(
            _line(
                "42-1",
                "A",
                quantity=2,
                settlement_status=OrderSettlementStatus.CALCULATED.value,
                settlement_amount=Decimal("20.00"),
            ),
            _line(
                "42-1",
                "B",
                quantity=1,
                settlement_status=OrderSettlementStatus.CALCULATED.value,
                settlement_amount=Decimal("7.50"),
            ),
            _line("42-2", "A", quantity=3),
            _line("42-3", "A", quantity=1, order_status="refunded"),
            _line("46-1", "A", quantity=9),
        )
        stats = queries.client_stats(42)
        assert stats.line_count == 4
        assert stats.order_count == 3
        assert stats.quantity == 7
        assert stats.amount == Decimal("27.50")

        calculated = [
            b for b in stats.breakdown if b.settlement_status == OrderSettlementStatus.CALCULATED
        ]
        assert len(calculated) == 1
        assert calculated[0].line_count == 2
        assert calculated[0].order_count == 1
        assert calculated[0].amount == Decimal("27.50")

        waiting = {
            b.order_status: b.line_count
            for b in stats.breakdown
            if b.settlement_status == OrderSettlementStatus.WAITING
        }
        assert waiting == {"shipped": 1, "refunded": 1}
        assert stats.client_id == 42

    def test_empty_client(self, queries):
        stats = queries.client_stats(42)
        assert stats.line_count == 0
        assert stats.order_count == 0
        assert stats.amount == Decimal("0")
        assert stats.breakdown == ()
