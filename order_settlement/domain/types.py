"""
order_settlement.domain.types -- Pure frozen dataclasses for settlement.

ZERO I/O.  Imports only from order_kernel.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from order_kernel.models.order_line import OrderSettlementStatus

# Matches the default SettlementSettings.max_error_display
DEFAULT_ERROR_SAMPLE = 50

# Settlement state of one order line
SettlementStatus = OrderSettlementStatus


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar dates."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")

    @classmethod
    def single(cls, day: date) -> DateRange:
        return cls(day, day)

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[date]:
        for offset in range(self.day_count):
            yield self.start + timedelta(days=offset)

    def bounds(self) -> tuple[datetime, datetime]:
        """First and last instant of the range as naive datetimes."""
        return datetime.combine(self.start, time.min), datetime.combine(self.end, time.max)


@dataclass(frozen=True)
class SettlementStats:
    """
    Counters for one settlement run.

    ``errors`` is a bounded sample; ``error_count`` is the full count.
    Stats of several dates combine with ``+`` (default sample bound) or
    ``merged`` (explicit bound).
    """

    processed: int = 0
    cancelled: int = 0
    calculated: int = 0
    skipped: int = 0
    discount_groups: int = 0
    priced: int = 0
    errors: tuple[str, ...] = ()
    error_count: int = 0

    def __add__(self, other: SettlementStats) -> SettlementStats:
        if not isinstance(other, SettlementStats):
            return NotImplemented
        return self.merged(other)

    def merged(
        self, other: SettlementStats, max_errors: int = DEFAULT_ERROR_SAMPLE
    ) -> SettlementStats:
        return SettlementStats(
            processed=self.processed + other.processed,
            cancelled=self.cancelled + other.cancelled,
            calculated=self.calculated + other.calculated,
            skipped=self.skipped + other.skipped,
            discount_groups=self.discount_groups + other.discount_groups,
            priced=self.priced + other.priced,
            errors=(self.errors + other.errors)[: max(max_errors, 0)],
            error_count=self.error_count + other.error_count,
        )


@dataclass(frozen=True)
class DateOutcome:
    """Result of settling one date inside a multi-day run."""

    settlement_date: date
    stats: SettlementStats | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RangeSettlementResult:
    date_range: DateRange
    outcomes: tuple[DateOutcome, ...]

    @property
    def totals(self) -> SettlementStats:
        total = SettlementStats()
        for outcome in self.outcomes:
            if outcome.stats is not None:
                total = total + outcome.stats
        return total

    @property
    def failed_dates(self) -> tuple[date, ...]:
        return tuple(o.settlement_date for o in self.outcomes if not o.succeeded)


@dataclass(frozen=True)
class SettlementRecord:
    """Immutable snapshot of a ledger record."""

    record_id: UUID
    settlement_id: str
    client_id: int
    start_date: date
    end_date: date
    total_amount: Decimal
    order_count: int
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    created_by_id: UUID | None = None


@dataclass(frozen=True)
class StatusSummary:
    count: int = 0
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class SettlementReport:
    """Per-status roll-up of all order lines paid on one date, across shards."""

    settlement_date: date
    by_status: dict[SettlementStatus, StatusSummary] = field(default_factory=dict)

    @property
    def total_orders(self) -> int:
        return sum(s.count for s in self.by_status.values())

    @property
    def settled_amount(self) -> Decimal:
        """Amount of calculated plus settled lines."""
        return sum(
            (
                self.by_status.get(status, StatusSummary()).amount
                for status in (SettlementStatus.CALCULATED, SettlementStatus.SETTLED)
            ),
            Decimal("0"),
        )

    def count(self, status: SettlementStatus) -> int:
        return self.by_status.get(status, StatusSummary()).count


@dataclass(frozen=True)
class ClientSettlementTotals:
    """Ledger roll-up for one client over all of its settlement records."""

    client_id: int
    record_count: int = 0
    total_amount: Decimal = Decimal("0")
    order_count: int = 0
    completed_records: int = 0
    pending_records: int = 0
