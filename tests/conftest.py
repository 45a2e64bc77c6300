"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import random
from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from coinhaven.config import CoinhavenConfig, EconomyConfig
from coinhaven.database.models import Base

GUILD_ID = 100
ADMIN_ROLE_ID = 900
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


def enable_sqlite_savepoints(engine: Engine, begin: str = "BEGIN") -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT behaves on pysqlite.

    *begin* may be ``"BEGIN IMMEDIATE"`` to take the write lock up front,
    which lets concurrent writers queue instead of failing.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql(begin)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Coinhaven tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cfg() -> CoinhavenConfig:
    return CoinhavenConfig(
        community_name="Coinhaven Test",
        bot_prefix="!",
        guild_id=GUILD_ID,
        admin_role_id=ADMIN_ROLE_ID,
        economy=EconomyConfig(),
    )


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
