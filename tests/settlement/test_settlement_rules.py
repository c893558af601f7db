"""Tests for the pure settlement rules."""

import random
import re
from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from order_config.schema import SettlementSettings
from order_kernel.exceptions import InvalidSettlementWindowError
from order_settlement.domain.rules import (
    CancellationPolicy,
    DiscountTier,
    compute_settlement_amount,
    generate_settlement_id,
    price_field_for,
    select_discount_rate,
    tiers_overlap,
    validate_settlement_window,
)
from order_settlement.domain.types import DateRange, SettlementStats


@pytest.fixture
def policy():
    return CancellationPolicy.from_settings(SettlementSettings())


class TestCancellationPolicy:
    @pytest.mark.parametrize("status", ["refunded", "已退款"])
    def test_refunded_statuses(self, policy, status):
        assert policy.reason_for(status, "SKU-A", ()) == f"refunded order (status: {status})"

    def test_no_settle_marker_in_any_text(self, policy):
        reason = policy.reason_for("shipped", "SKU-A", (None, "请勿结算 不结算", None, None))
        assert reason == "marked not to settle (不结算)"
        assert policy.reason_for("shipped", "SKU-A", ("", "", "", "Do not settle please")) is None
        assert policy.reason_for("shipped", "SKU-A", ("do not settle",)) is not None

    def test_excluded_sku(self, policy):
        assert policy.reason_for("shipped", "Upsell", ()) == "excluded SKU (Upsell)"

    def test_refund_reason_takes_precedence(self, policy):
        assert policy.reason_for("refunded", "Upsell", ("不结算",)).startswith("refunded order")

    def test_normal_order_not_cancelled(self, policy):
        assert policy.reason_for("shipped", "SKU-A", ("gift wrap",)) is None


class TestDiscountTiers:
    TIERS = [
        DiscountTier(1, 3, Decimal("1.00")),
        DiscountTier(4, 8, Decimal("0.90")),
        DiscountTier(9, 999, Decimal("0.80")),
    ]

    @pytest.mark.parametrize(
        "qty, expected",
        [(1, "1.00"), (3, "1.00"), (4, "0.90"), (5, "0.90"), (8, "0.90"), (9, "0.80"), (1000, "1.0")],
    )
    def test_tier_bounds_inclusive(self, qty, expected):
        assert select_discount_rate(self.TIERS, qty) == Decimal(expected)

    def test_no_tiers_gives_default(self):
        assert select_discount_rate([], 5, Decimal("0.95")) == Decimal("0.95")

    def test_overlap_largest_min_wins(self):
        tiers = [DiscountTier(1, 10, Decimal("0.95")), DiscountTier(5, 10, Decimal("0.85"))]
        assert select_discount_rate(tiers, 6) == Decimal("0.85")
        assert select_discount_rate(tiers, 4) == Decimal("0.95")

    @given(st.integers(min_value=1, max_value=2000))
    def test_selected_rate_belongs_to_a_matching_tier(self, qty):
        rate = select_discount_rate(self.TIERS, qty, Decimal("1.0"))
        matching = [t for t in self.TIERS if t.min_quantity <= qty <= t.max_quantity]
        if matching:
            assert rate == max(matching, key=lambda t: t.min_quantity).discount_rate
        else:
            assert rate == Decimal("1.0")

    def test_tiers_overlap(self):
        assert tiers_overlap(1, 5, 5, 9)
        assert not tiers_overlap(1, 4, 5, 9)


class TestAmounts:
    def test_price_field_by_quantity(self):
        assert price_field_for(1) == "unit_price"
        assert price_field_for(2) == "multi_unit_total_price"

    def test_multi_unit_price_taken_verbatim(self):
        decision = compute_settlement_amount(None, Decimal("28"), Decimal("0.90"))
        assert decision.amount == Decimal("28")
        assert decision.note == "multi-unit price: 28.00"

    def test_unit_price_times_discount(self):
        decision = compute_settlement_amount(Decimal("10.00"), None, Decimal("0.90"))
        assert decision.amount == Decimal("9.00")
        assert decision.note == "unit price × discount: 10.00 × 0.90 = 9.00"

    def test_unit_price_rounds_half_up(self):
        assert compute_settlement_amount(Decimal("10.05"), None, Decimal("0.5")).amount == Decimal("5.03")

    @pytest.mark.parametrize(
        "unit, multi, rate",
        [(None, None, Decimal("1")), (Decimal("0"), None, Decimal("1")), (Decimal("5"), Decimal("0"), None)],
    )
    def test_nothing_to_settle(self, unit, multi, rate):
        decision = compute_settlement_amount(unit, multi, rate)
        assert not decision.settled
        assert decision.note == "no valid price to settle"

    @given(
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2),
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1"), places=2),
    )
    def test_unit_amount_never_exceeds_price(self, unit, rate):
        amount = compute_settlement_amount(unit, None, rate).amount
        assert amount <= unit
        assert amount.as_tuple().exponent == -2


class TestWindowsAndIds:
    TODAY = date(2024, 6, 15)

    def test_valid_window(self):
        validate_settlement_window(date(2024, 6, 1), date(2024, 6, 14), self.TODAY, 31)

    @pytest.mark.parametrize(
        "start, end",
        [
            (date(2024, 6, 10), date(2024, 6, 15)),
            (date(2024, 6, 10), date(2024, 6, 9)),
            (date(2024, 4, 1), date(2024, 6, 1)),
        ],
    )
    def test_invalid_windows(self, start, end):
        with pytest.raises(InvalidSettlementWindowError):
            validate_settlement_window(start, end, self.TODAY, 31)

    def test_settlement_id_format(self):
        sid = generate_settlement_id(date(2024, 6, 14), random.Random(7))
        assert re.fullmatch(r"20240614-[A-Z0-9]{6}", sid)
        assert sid == generate_settlement_id(date(2024, 6, 14), random.Random(7))


class TestDomainTypes:
    def test_date_range_days_and_bounds(self):
        rng = DateRange(date(2024, 6, 1), date(2024, 6, 3))
        assert list(rng.days()) == [date(2024, 6, 1), date(2024, 6, 2), date(2024, 6, 3)]
        start, end = DateRange.single(date(2024, 6, 1)).bounds()
        assert (start.hour, end.hour, end.minute, end.second) == (0, 23, 59, 59)

    def test_date_range_rejects_reversed(self):
        with pytest.raises(ValueError):
            DateRange(date(2024, 6, 2), date(2024, 6, 1))

    def test_stats_add(self):
        a = SettlementStats(processed=2, calculated=1, errors=("x",), error_count=1)
        b = SettlementStats(processed=3, cancelled=1)
        total = a + b
        assert (total.processed, total.calculated, total.cancelled, total.error_count) == (5, 1, 1, 1)

    def test_stats_error_sample_stays_bounded(self):
        day = SettlementStats(errors=tuple(f"e{i}" for i in range(40)), error_count=40)
        total = day + day
        assert len(total.errors) == 50
        assert total.error_count == 80
        assert day.merged(day, max_errors=3).errors == ("e0", "e1", "e2")
