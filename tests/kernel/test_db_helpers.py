"""Tests for money rounding, transaction scopes and the clock."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from order_kernel.db.engine import transaction_scope
from order_kernel.db.types import round_money
from order_kernel.domain.clock import DeterministicClock
from order_kernel.models.sharding_config import ShardingConfigModel


class TestRoundMoney:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("9.005"), Decimal("9.01")),
            (Decimal("9.004"), Decimal("9.00")),
            (Decimal("10") * Decimal("0.90"), Decimal("9.00")),
            (Decimal("-1.005"), Decimal("-1.01")),
        ],
    )
    def test_half_up_to_cents(self, value, expected):
        assert round_money(value) == expected
        assert round_money(value).as_tuple().exponent == -2


class TestTransactionScope:
    def test_commits_on_success(self, session_factory, test_actor_id):
        with transaction_scope(session_factory) as sess:
            sess.add(ShardingConfigModel(shard_count=4, created_by_id=test_actor_id))

        with transaction_scope(session_factory) as sess:
            assert sess.execute(select(func.count()).select_from(ShardingConfigModel)).scalar_one() == 1

    def test_rolls_back_and_reraises(self, session_factory, test_actor_id):
        with pytest.raises(RuntimeError, match="boom"):
            with transaction_scope(session_factory) as sess:
                sess.add(ShardingConfigModel(shard_count=4, created_by_id=test_actor_id))
                sess.flush()
                raise RuntimeError("boom")

        with transaction_scope(session_factory) as sess:
            assert sess.execute(select(func.count()).select_from(ShardingConfigModel)).scalar_one() == 0

    def test_savepoint_rollback_keeps_outer_work(self, session, test_actor_id):
        session.add(ShardingConfigModel(config_key="a", shard_count=4, created_by_id=test_actor_id))
        session.flush()
        savepoint = session.begin_nested()
        session.add(ShardingConfigModel(config_key="b", shard_count=8, created_by_id=test_actor_id))
        session.flush()
        savepoint.rollback()

        keys = session.execute(select(ShardingConfigModel.config_key)).scalars().all()
        assert keys == ["a"]


class TestDeterministicClock:
    def test_today_follows_set_time(self):
        clock = DeterministicClock(datetime(2024, 6, 15, 23, 59, tzinfo=timezone.utc))
        assert clock.today() == date(2024, 6, 15)
        clock.advance(60)
        assert clock.today() == date(2024, 6, 16)
