"""Database session configuration."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docbill.core.config import settings

# Request handlers hold a connection only for the few statements of one ledger or
# reconciliation step, so a small pool absorbs bursts of concurrent reservations.
POOL_SIZE = 10
MAX_OVERFLOW = POOL_SIZE

async_engine = create_async_engine(
    settings.SQLALCHEMY_ASYNC_DATABASE_URI,
    pool_size=POOL_SIZE,
    max_overflow=MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=300,
    pool_timeout=30,
    # Conditional UPDATEs re-evaluate their WHERE clause against the latest committed
    # row under READ COMMITTED, which is what the quota and CAS statements rely on.
    isolation_level="READ COMMITTED",
    connect_args={
        "server_settings": {
            "idle_in_transaction_session_timeout": "60000",
        },
        "command_timeout": 60,
    },
)

AsyncSessionLocal = async_sessionmaker(
    autocommit=False, autoflush=False, bind=async_engine, expire_on_commit=False
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session that can be used as a context manager.

    Example:
    -------
        async with get_db_context() as db:
            await quota_ledger.reserve(db, ...)

    """
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            await db.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session to be used in dependency injection."""
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            await db.close()
