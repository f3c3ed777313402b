"""Common test fixtures and configuration for pytest.

Store-backed tests run against a SQLite file per test. Transactions are opened with
BEGIN IMMEDIATE so concurrent sessions serialize on the database write lock, which
is how row locks behave for the single-statement updates under test.
"""

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import docbill.models  # noqa: F401
from docbill.models._base import Base

# Import all fixtures so they are automatically available for all tests
from tests.fixtures.common import (  # noqa
    fake_gateway,
    ledger,
    reconciliation,
    state_machine,
    tenant_id,
)


def _serialize_sqlite_transactions(engine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest.fixture
async def db_engine(tmp_path):
    """Create a fresh SQLite database with every table for each test function."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'docbill.db'}",
        connect_args={"timeout": 30},
        pool_size=20,
        max_overflow=0,
    )
    _serialize_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory; concurrent tasks each open their own session from it."""
    return async_sessionmaker(db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a new database session for a test."""
    async with session_factory() as session:
        yield session
