"""
OrderQueryService -- read access to stored order lines.

Browsing is per client: a client's lines all live in one shard, so a search
touches exactly one table.  Lookups by order number route through the
compound id; lookups by line id fan out to every shard.

The caller owns the session; nothing here writes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from order_kernel.sharding import (
    OrderFilter,
    ShardRouter,
    StatusBreakdown,
    parse_external_order_id,
)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class OrderPage:
    """One page of a client's order lines and the size of the full result."""

    orders: tuple[Any, ...]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.page_size)


@dataclass(frozen=True)
class ClientOrderStats:
    client_id: int
    line_count: int
    order_count: int
    quantity: int
    amount: Decimal
    breakdown: tuple[StatusBreakdown, ...] = ()


class OrderQueryService:
    """Order line search and statistics. Uses session, router."""

    def __init__(
        self,
        session: Session,
        router: ShardRouter,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self._session = session
        self._router = router
        self._max_page_size = max(max_page_size, 1)

    def search(
        self,
        client_id: int,
        filters: OrderFilter | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> OrderPage:
        """
        Filtered, paginated lines of one client, newest payment first.

        ``page`` is 1-based.  Both values are clamped: page to at least 1,
        page_size to 1..max_page_size.
        """
        page = max(int(page), 1)
        page_size = min(max(int(page_size), 1), self._max_page_size)
        orders, total = self._router.shard_for_client(client_id).search(
            self._session,
            client_id,
            filters or OrderFilter(),
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        return OrderPage(orders=tuple(orders), total=total, page=page, page_size=page_size)

    def find_by_external_id(self, external_order_id: str) -> list[Any]:
        """
        Every line of one platform order, ordered by SKU.

        Raises:
            InvalidExternalOrderIdError: Not ``<clientId>-<sequenceId>``;
                such orders are only in the overflow store.
        """
        client_id, _ = parse_external_order_id(external_order_id)
        return self._router.shard_for_client(client_id).select_by_external_id(
            self._session, external_order_id.strip()
        )

    def find_by_ids(self, order_ids: Iterable[UUID]) -> list[Any]:
        ids = list(order_ids)
        found: list[Any] = []
        for shard in self._router.shards():
            found.extend(shard.select_by_ids(self._session, ids))
        return found

    def client_stats(self, client_id: int) -> ClientOrderStats:
        shard = self._router.shard_for_client(client_id)
        breakdown = tuple(shard.status_breakdown(self._session, client_id))
        return ClientOrderStats(
            client_id=client_id,
            line_count=sum(b.line_count for b in breakdown),
            order_count=shard.count_orders(self._session, client_id),
            quantity=sum(b.quantity for b in breakdown),
            amount=sum((b.amount for b in breakdown), Decimal("0")),
            breakdown=breakdown,
        )
