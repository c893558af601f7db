"""
ShardRouter -- maps a client id to the order table that holds its lines.

    shard_of(client_id) = client_id mod shard_count

The mapping is pure and total.  The shard count is read once, from the
persisted ``order_sharding_config`` row, and then fixed for the router's
lifetime; changing it would re-route existing clients and strand their rows.
"""

import re
from typing import NewType
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_kernel.domain.dtos import SYSTEM_ACTOR_ID
from order_kernel.exceptions import InvalidExternalOrderIdError, InvalidShardCountError
from order_kernel.logging_config import get_logger
from order_kernel.models.order_line import order_line_model
from order_kernel.models.sharding_config import ShardingConfigModel
from order_kernel.sharding.shard import OrderShard

logger = get_logger("sharding.router")

ShardId = NewType("ShardId", int)

_EXTERNAL_ID_PATTERN = re.compile(r"^(\d+)-(\d+)$")


def parse_external_order_id(value: str | None) -> tuple[int, int]:
    """
    Split ``"<clientId>-<sequenceId>"`` into its two integers.

    Surrounding whitespace is ignored.  Anything else (missing part, extra
    dash, non-digit characters, signs) is rejected.

    Raises:
        InvalidExternalOrderIdError: If the value is not well formed.
    """
    if value is None:
        raise InvalidExternalOrderIdError(value)
    match = _EXTERNAL_ID_PATTERN.match(str(value).strip())
    if match is None:
        raise InvalidExternalOrderIdError(value)
    return int(match.group(1)), int(match.group(2))


def try_parse_external_order_id(value: str | None) -> tuple[int, int] | None:
    """Like parse_external_order_id but returns None for malformed ids."""
    try:
        return parse_external_order_id(value)
    except InvalidExternalOrderIdError:
        return None


class ShardRouter:
    """
    Routes clients to shards and hands out OrderShard handles.

    Contract:
        - shard_of() is deterministic: equal inputs give equal shards for
          the lifetime of the router.
        - all_shards() lists every shard id, ascending, for fan-out queries.
    """

    def __init__(self, shard_count: int):
        if shard_count < 1:
            raise InvalidShardCountError(shard_count)
        self._shard_count = shard_count
        self._shards: dict[int, OrderShard] = {}

    @classmethod
    def from_session(
        cls,
        session: Session,
        default_count: int,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> "ShardRouter":
        """
        Build a router from the persisted shard count.

        The first call on an empty database stores ``default_count``; later
        calls ignore the default and return the stored value.
        """
        row = session.execute(select(ShardingConfigModel)).scalars().first()
        if row is None:
            if default_count < 1:
                raise InvalidShardCountError(default_count)
            row = ShardingConfigModel(
                shard_count=default_count,
                created_by_id=actor_id,
            )
            session.add(row)
            session.flush()
            logger.info(
                "shard_count_initialized",
                extra={"shard_count": default_count},
            )
        elif row.shard_count != default_count:
            logger.warning(
                "shard_count_config_ignored",
                extra={
                    "persisted_shard_count": row.shard_count,
                    "configured_shard_count": default_count,
                },
            )
        return cls(row.shard_count)

    @property
    def shard_count(self) -> int:
        return self._shard_count

    def shard_of(self, client_id: int) -> ShardId:
        return ShardId(client_id % self._shard_count)

    def all_shards(self) -> tuple[ShardId, ...]:
        return tuple(ShardId(i) for i in range(self._shard_count))

    def shard(self, shard_id: int) -> OrderShard:
        if not 0 <= shard_id < self._shard_count:
            raise ValueError(
                f"Shard {shard_id} out of range for {self._shard_count} shards"
            )
        handle = self._shards.get(shard_id)
        if handle is None:
            handle = OrderShard(shard_id, order_line_model(shard_id))
            self._shards[shard_id] = handle
        return handle

    def shard_for_client(self, client_id: int) -> OrderShard:
        return self.shard(self.shard_of(client_id))

    def shards(self, client_id: int | None = None) -> list[OrderShard]:
        """Shards to scan: the client's own shard, or every shard."""
        if client_id is not None:
            return [self.shard_for_client(client_id)]
        return [self.shard(i) for i in self.all_shards()]
