"""
Settlement rules as pure functions.

Every decision the pipeline makes about a single order or buyer group
lives here so it can be tested without a database: whether an order is
cancelled, which discount tier applies, which price field a quantity
uses, and how the final amount is derived.
"""

from __future__ import annotations

import random
import string
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from order_config.schema import SettlementSettings
from order_kernel.db.types import round_money
from order_kernel.exceptions import InvalidSettlementWindowError

UNIT_PRICE_FIELD = "unit_price"
MULTI_UNIT_PRICE_FIELD = "multi_unit_total_price"

_SETTLEMENT_ID_ALPHABET = string.ascii_uppercase + string.digits
_SETTLEMENT_ID_SUFFIX_LENGTH = 6


# -----------------------------------------------------------------------------
# Stage 1: cancellation
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CancellationPolicy:
    refunded_statuses: frozenset[str]
    no_settle_markers: tuple[str, ...]
    excluded_skus: frozenset[str]

    @classmethod
    def from_settings(cls, settings: SettlementSettings) -> CancellationPolicy:
        return cls(
            refunded_statuses=frozenset(settings.refunded_statuses),
            no_settle_markers=tuple(settings.no_settle_markers),
            excluded_skus=frozenset(settings.excluded_skus),
        )

    def reason_for(
        self,
        order_status: str | None,
        sku: str | None,
        texts: Iterable[str | None],
    ) -> str | None:
        """
        Why the order must not be settled, or None.

        ``texts`` are the customer, picking and order remarks plus the
        current settlement note.
        """
        if order_status and order_status in self.refunded_statuses:
            return f"refunded order (status: {order_status})"
        for text in texts:
            if not text:
                continue
            for marker in self.no_settle_markers:
                if marker in text:
                    return f"marked not to settle ({marker})"
        if sku and sku in self.excluded_skus:
            return f"excluded SKU ({sku})"
        return None


# -----------------------------------------------------------------------------
# Stage 3: discount tiers
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class DiscountTier:
    min_quantity: int
    max_quantity: int
    discount_rate: Decimal


def select_discount_rate(
    tiers: Sequence[DiscountTier],
    total_quantity: int,
    default: Decimal = Decimal("1.0"),
) -> Decimal:
    """
    Rate of the tier with min <= total_quantity <= max.

    When tiers overlap the one with the largest min_quantity wins.  No match
    gives ``default``.
    """
    best: DiscountTier | None = None
    for tier in tiers:
        if tier.min_quantity <= total_quantity <= tier.max_quantity:
            if best is None or tier.min_quantity > best.min_quantity:
                best = tier
    return best.discount_rate if best is not None else default


def tiers_overlap(a_min: int, a_max: int, b_min: int, b_max: int) -> bool:
    return a_min <= b_max and b_min <= a_max


# -----------------------------------------------------------------------------
# Stage 4/5: pricing and final amount
# -----------------------------------------------------------------------------


def price_field_for(quantity: int) -> str:
    """Quantity 1 prices by unit; larger quantities use the bundle total."""
    return UNIT_PRICE_FIELD if quantity == 1 else MULTI_UNIT_PRICE_FIELD


@dataclass(frozen=True)
class AmountDecision:
    amount: Decimal | None
    note: str

    @property
    def settled(self) -> bool:
        return self.amount is not None


def compute_settlement_amount(
    unit_price: Decimal | None,
    multi_unit_total_price: Decimal | None,
    discount_rate: Decimal | None,
) -> AmountDecision:
    """
    Final amount for one order line.

    A positive bundle total is taken verbatim.  Otherwise a positive unit
    price times the discount rate, rounded half-up to cents.  Anything else
    cannot be settled.
    """
    if multi_unit_total_price is not None and multi_unit_total_price > 0:
        return AmountDecision(
            amount=multi_unit_total_price,
            note=f"multi-unit price: {round_money(multi_unit_total_price)}",
        )
    if unit_price is not None and unit_price > 0 and discount_rate is not None:
        amount = round_money(unit_price * discount_rate)
        return AmountDecision(
            amount=amount,
            note=(
                f"unit price × discount: {round_money(unit_price)} × "
                f"{round_money(discount_rate)} = {amount}"
            ),
        )
    return AmountDecision(amount=None, note="no valid price to settle")


# -----------------------------------------------------------------------------
# Windows and identifiers
# -----------------------------------------------------------------------------


def validate_settlement_window(
    start: date,
    end: date,
    today: date,
    max_days: int,
) -> None:
    """
    A window may only cover closed dates and at most ``max_days`` days.

    Raises:
        InvalidSettlementWindowError
    """
    if start > end:
        raise InvalidSettlementWindowError(start, end, "start date is after end date")
    if end >= today:
        raise InvalidSettlementWindowError(
            start, end, f"end date must be before today ({today})"
        )
    span = (end - start).days + 1
    if span > max_days:
        raise InvalidSettlementWindowError(
            start, end, f"window spans {span} days; at most {max_days} allowed"
        )


def generate_settlement_id(end_date: date, rng: random.Random | None = None) -> str:
    """Business key: end date as YYYYMMDD, a dash, 6 random uppercase alphanumerics."""
    chooser = rng or random.SystemRandom()
    suffix = "".join(
        chooser.choice(_SETTLEMENT_ID_ALPHABET)
        for _ in range(_SETTLEMENT_ID_SUFFIX_LENGTH)
    )
    return f"{end_date:%Y%m%d}-{suffix}"
