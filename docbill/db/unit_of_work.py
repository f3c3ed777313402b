"""Unit of work for statements that must commit or roll back together."""

from types import TracebackType
from typing import Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork:
    """Groups several CRUD calls into one transaction.

    CRUD methods accept an optional `uow`; when one is passed they leave the commit
    to the unit of work instead of committing themselves.

    ```python
    async with UnitOfWork(db) as uow:
        await crud.payment_intent.transition(db, ..., uow=uow)
        await crud.subscription.upsert_active(db, ..., uow=uow)
    ```
    """

    def __init__(self, session: AsyncSession):
        """Bind the unit of work to a session."""
        self.session = session
        self._committed = False

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the unit of work."""
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        """Commit on success, roll back on error or when nothing was committed."""
        if exc_type is None and not self._committed:
            await self.commit()
        elif exc_type is not None:
            await self.rollback()

    async def commit(self) -> None:
        """Commit the unit of work."""
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the unit of work."""
        await self.session.rollback()
