"""CRUD operations for the Subscription model.

Every mutation here is one SQL statement whose WHERE clause carries the
precondition, so concurrent requests cannot both pass a stale read.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docbill.core.shared_models import ResourceKind, SubscriptionStatus
from docbill.crud._base import CRUDBase
from docbill.db.unit_of_work import UnitOfWork
from docbill.models.subscription import Subscription

_USAGE_COLUMNS = {
    ResourceKind.INVOICE: Subscription.invoices_used,
    ResourceKind.ACT: Subscription.acts_used,
}


class CRUDSubscription(CRUDBase[Subscription]):
    """CRUD operations for Subscription model."""

    async def get_by_tenant(self, db: AsyncSession, *, tenant_id: UUID) -> Optional[Subscription]:
        """Get the subscription row of a tenant regardless of status."""
        query = (
            select(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_active(
        self, db: AsyncSession, *, tenant_id: UUID, now: datetime
    ) -> Optional[Subscription]:
        """Get the subscription only if it is ACTIVE and valid strictly after `now`."""
        query = (
            select(Subscription)
            .where(
                Subscription.tenant_id == tenant_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.valid_to > now,
            )
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def increment_usage_if_below(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        kind: ResourceKind,
        quota: int,
        now: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Add one unit of usage if the counter is below `quota` and the row is still active.

        Returns:
            True when the row was updated, False when the quota or the validity window
            no longer allows it.
        """
        column = _USAGE_COLUMNS[kind]
        stmt = (
            update(Subscription)
            .where(
                Subscription.tenant_id == tenant_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.valid_to > now,
                column < quota,
            )
            .values({column.key: column + 1, "modified_at": now})
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await self._finish(db, uow)
        return result.rowcount == 1

    async def upsert_active(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        plan_code: str,
        valid_from: datetime,
        valid_to: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> Subscription:
        """Create or overwrite the tenant subscription as ACTIVE with both counters at zero."""
        values = {
            "plan_code": plan_code,
            "status": SubscriptionStatus.ACTIVE.value,
            "valid_from": valid_from,
            "valid_to": valid_to,
            "invoices_used": 0,
            "acts_used": 0,
            "modified_at": valid_from,
        }
        insert_stmt = self._insert(db).values(
            tenant_id=tenant_id, created_at=valid_from, **values
        )
        stmt = insert_stmt.on_conflict_do_update(index_elements=["tenant_id"], set_=values)
        await db.execute(stmt)
        await self._finish(db, uow)
        return await self.get_by_tenant(db, tenant_id=tenant_id)

    async def cancel(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        now: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Mark the subscription CANCELED and end its validity now.

        Returns:
            Whether a subscription row existed.
        """
        stmt = (
            update(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .values(status=SubscriptionStatus.CANCELED.value, valid_to=now, modified_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await self._finish(db, uow)
        return result.rowcount == 1

    async def set_valid_to_if_unchanged(
        self,
        db: AsyncSession,
        *,
        tenant_id: UUID,
        expected_valid_to: datetime,
        new_valid_to: datetime,
        now: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Compare-and-swap the validity end; also re-marks the subscription ACTIVE."""
        stmt = (
            update(Subscription)
            .where(
                Subscription.tenant_id == tenant_id,
                Subscription.valid_to == expected_valid_to,
            )
            .values(
                valid_to=new_valid_to,
                status=SubscriptionStatus.ACTIVE.value,
                modified_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await self._finish(db, uow)
        return result.rowcount == 1


subscription = CRUDSubscription(Subscription)
