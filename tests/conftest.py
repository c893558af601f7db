"""
Pytest fixtures for the order store test suite.

Provides:
- An in-memory SQLite database per test, with every table created
- A session for single-transaction tests and a session factory for
  services that own their transactions (settlement pipeline, ledger)
- Clock, router and seeding helpers
- Structured log capture

SQLite notes:
    The pysqlite driver manages transactions itself and breaks SAVEPOINT
    handling.  The engine disables that and emits BEGIN from a SQLAlchemy
    event instead, so ``session.begin_nested()`` behaves as on PostgreSQL.
    StaticPool keeps the single in-memory connection alive; tests open at
    most one session at a time.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from order_config.schema import IngestLimits, SettlementSettings
from order_kernel.db.base import Base
from order_kernel.db.engine import transaction_scope
from order_kernel.domain.clock import DeterministicClock
from order_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from order_kernel.models.order_line import order_line_model
from order_kernel.sharding import ShardRouter
import order_ingestion.models  # noqa: F401
import order_kernel.models  # noqa: F401
import order_settlement.models  # noqa: F401


# Small enough to keep DDL cheap, large enough for cross-shard fan-out
TEST_SHARD_COUNT = 4

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# "Today" for every test; settlement windows must end before it
TEST_NOW = datetime(2024, 6, 15, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture order_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ingest_service):
            ingest_service.ingest(...)
            logs = captured_logs()
            assert any(r["message"] == "ingest_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("order_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with all tables, one per test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_savepoints(eng)
    for index in range(TEST_SHARD_COUNT):
        order_line_model(index)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def session(session_factory) -> Generator[Session, None, None]:
    """Single session for tests that do not hand a factory to a service."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def router():
    return ShardRouter(TEST_SHARD_COUNT)


@pytest.fixture
def ingest_limits():
    return IngestLimits()


@pytest.fixture
def settlement_settings():
    return SettlementSettings()


# =============================================================================
# Seeding helpers
# =============================================================================


@pytest.fixture
def seed_orders(session_factory, router) -> Callable[..., list]:
    """
    Insert order lines directly into their shard tables and commit.

    Each keyword dict overrides the defaults below.  Returns the ids in
    input order.

    Usage::

        ids = seed_orders(
            {"external_order_id": "42-1", "quantity": 2},
            {"external_order_id": "42-2", "quantity": 3},
        )
    """

    def _seed(*overrides: dict) -> list:
        ids = []
        with transaction_scope(session_factory) as sess:
            for i, extra in enumerate(overrides):
                values = {
                    "external_order_id": f"42-{1000 + i}",
                    "sku": f"SKU-{i}",
                    "country_code": "US",
                    "quantity": 1,
                    "buyer_name": "Alice",
                    "payment_time": datetime(2024, 6, 10, 12, 0, 0),
                    "order_status": "shipped",
                    "created_by_id": TEST_ACTOR_ID,
                }
                values.update(extra)
                client_id, sequence_id = (
                    int(part) for part in values["external_order_id"].split("-")
                )
                values.setdefault("client_id", client_id)
                values.setdefault("sequence_id", sequence_id)
                model = router.shard_for_client(values["client_id"]).model
                row = model(**values)
                sess.add(row)
                sess.flush()
                ids.append(row.id)
        return ids

    return _seed


@pytest.fixture
def load_order(session_factory, router) -> Callable:
    """Fetch one order line by client and id in a fresh session."""

    def _load(client_id: int, order_id):
        with transaction_scope(session_factory) as sess:
            model = router.shard_for_client(client_id).model
            return sess.get(model, order_id)

    return _load


@pytest.fixture
def seed_pricing(session_factory, test_actor_id) -> Callable[..., None]:
    """
    Seed SKU mappings, prices and discount tiers and commit.

    Usage::

        seed_pricing(
            mappings={"SKU-A": "X"},
            prices=[(42, "X", "US", 1, Decimal("10.00"))],
            tiers=[(42, 4, 8, Decimal("0.90"))],
        )
    """
    from order_settlement.services.pricing import PricingCatalog

    def _seed(mappings=None, prices=(), tiers=()) -> None:
        with transaction_scope(session_factory) as sess:
            catalog = PricingCatalog(sess)
            for sku, spu in (mappings or {}).items():
                catalog.set_sku_mapping(sku, spu, test_actor_id)
            for client_id, spu, country, qty, total in prices:
                catalog.set_price(client_id, spu, country, qty, Decimal(total), test_actor_id)
            for client_id, lo, hi, rate in tiers:
                catalog.add_discount_rule(client_id, lo, hi, Decimal(rate), test_actor_id)

    return _seed
