"""Base CRUD class shared by the data access singletons."""

from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from docbill.db.unit_of_work import UnitOfWork
from docbill.models._base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """Common reads plus helpers for single-statement writes."""

    def __init__(self, model: Type[ModelType]):
        """Initialize the CRUD object.

        Args:
        ----
            model (Type[ModelType]): The model to be used in the CRUD operations.

        """
        self.model = model

    async def get(self, db: AsyncSession, id: UUID) -> Optional[ModelType]:
        """Get a row by primary key, bypassing the identity map cache."""
        query = select(self.model).where(self.model.id == id).execution_options(
            populate_existing=True
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    def _insert(self, db: AsyncSession) -> Any:
        """Dialect-native INSERT so ON CONFLICT clauses are available.

        PostgreSQL in production, SQLite in the test suite; both expose the same
        `on_conflict_do_nothing` / `on_conflict_do_update` API.
        """
        if db.bind.dialect.name == "sqlite":
            return sqlite.insert(self.model)
        return postgresql.insert(self.model)

    async def _finish(self, db: AsyncSession, uow: Optional[UnitOfWork]) -> None:
        """Commit unless a unit of work owns the transaction."""
        if not uow:
            await db.commit()
