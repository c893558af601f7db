"""
Dialect-aware bulk upsert.

INSERT ... ON CONFLICT DO UPDATE on PostgreSQL and SQLite, INSERT ... ON
DUPLICATE KEY UPDATE on MySQL/MariaDB.  Rows are sent as one executemany;
callers must not pass two rows with the same conflict key in one call.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session


def upsert_rows(
    session: Session,
    table: Table,
    rows: Sequence[dict[str, Any]],
    conflict_columns: Sequence[str],
    update_columns: Iterable[str],
    extra_set: dict[str, Any] | None = None,
) -> int:
    """
    Insert ``rows`` into ``table``; on a conflict over ``conflict_columns``
    copy ``update_columns`` from the incoming row and apply ``extra_set``.

    Returns:
        Number of rows sent.
    """
    if not rows:
        return 0

    update_columns = tuple(update_columns)
    dialect = session.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        module = postgresql if dialect == "postgresql" else sqlite
        stmt = module.insert(table)
        set_ = {name: stmt.excluded[name] for name in update_columns}
        set_.update(extra_set or {})
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=set_)
    elif dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(table)
        set_ = {name: stmt.inserted[name] for name in update_columns}
        set_.update(extra_set or {})
        stmt = stmt.on_duplicate_key_update(set_)
    else:
        raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

    session.execute(stmt, list(rows))
    return len(rows)
