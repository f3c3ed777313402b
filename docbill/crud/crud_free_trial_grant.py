"""CRUD operations for the FreeTrialGrant model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docbill.core.shared_models import ResourceKind
from docbill.crud._base import CRUDBase
from docbill.db.unit_of_work import UnitOfWork
from docbill.models.free_trial_grant import FreeTrialGrant

_SLOT_COLUMNS = {
    ResourceKind.INVOICE: FreeTrialGrant.invoice_used_at,
    ResourceKind.ACT: FreeTrialGrant.act_used_at,
}


class CRUDFreeTrialGrant(CRUDBase[FreeTrialGrant]):
    """CRUD operations for FreeTrialGrant model."""

    async def get_by_key_hash(self, db: AsyncSession, *, key_hash: str) -> Optional[FreeTrialGrant]:
        """Get the grant row for a hashed caller key."""
        query = (
            select(FreeTrialGrant)
            .where(FreeTrialGrant.key_hash == key_hash)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def ensure(
        self,
        db: AsyncSession,
        *,
        key_hash: str,
        now: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> None:
        """Create the grant row if it does not exist yet; a no-op otherwise."""
        stmt = (
            self._insert(db)
            .values(key_hash=key_hash, created_at=now, modified_at=now)
            .on_conflict_do_nothing(index_elements=["key_hash"])
        )
        await db.execute(stmt)
        await self._finish(db, uow)

    async def claim_slot(
        self,
        db: AsyncSession,
        *,
        key_hash: str,
        kind: ResourceKind,
        now: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Set the slot timestamp for `kind` only if it is still unset.

        Returns:
            True for the single caller that claimed the slot.
        """
        column = _SLOT_COLUMNS[kind]
        stmt = (
            update(FreeTrialGrant)
            .where(FreeTrialGrant.key_hash == key_hash, column.is_(None))
            .values({column.key: now, "modified_at": now})
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await self._finish(db, uow)
        return result.rowcount == 1


free_trial_grant = CRUDFreeTrialGrant(FreeTrialGrant)
