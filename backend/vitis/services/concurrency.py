# Overview: Service-layer transaction helpers for stock mutations; row locking and all-or-nothing commits.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import StoreFailure


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, write_transaction() takes the database write lock up front instead.
    """
    return query.with_for_update()


@contextmanager
def write_transaction():
    """
    Run the enclosed block as one all-or-nothing unit.

    - SQLite: opens with BEGIN IMMEDIATE so concurrent check-and-decrement
      sequences serialize on the write lock.
    - Commits on success; rolls back on any exception.
    - SQLAlchemyError is surfaced as StoreFailure; service errors propagate as-is.

    No retries: the caller sees the failure immediately.
    """
    try:
        if db.engine.dialect.name == "sqlite":
            raw = db.session.connection().connection.dbapi_connection
            if not raw.in_transaction:
                db.session.execute(text("BEGIN IMMEDIATE"))
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreFailure("Database transaction failed", details={"reason": exc.__class__.__name__}) from exc
    except Exception:
        db.session.rollback()
        raise
