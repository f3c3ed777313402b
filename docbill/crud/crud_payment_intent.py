"""CRUD operations for the PaymentIntent model."""

from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docbill.core.datetime_utils import utc_now_naive
from docbill.core.shared_models import PaymentStatus
from docbill.crud._base import CRUDBase
from docbill.db.unit_of_work import UnitOfWork
from docbill.models.payment_intent import PaymentIntent
from docbill.schemas.payment_intent import PaymentIntentCreate

TERMINAL_STATUSES = frozenset(
    {
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.EXPIRED,
        PaymentStatus.CANCELED,
    }
)


class CRUDPaymentIntent(CRUDBase[PaymentIntent]):
    """CRUD operations for PaymentIntent model."""

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: PaymentIntentCreate,
        uow: Optional[UnitOfWork] = None,
    ) -> PaymentIntent:
        """Persist a new intent in CREATED state."""
        db_obj = PaymentIntent(**obj_in.model_dump(), status=PaymentStatus.CREATED.value)
        db.add(db_obj)
        if not uow:
            await db.commit()
            await db.refresh(db_obj)
        return db_obj

    async def get_for_tenant(
        self, db: AsyncSession, *, tenant_id: UUID, id: UUID
    ) -> Optional[PaymentIntent]:
        """Get an intent only if it belongs to the tenant."""
        query = (
            select(PaymentIntent)
            .where(PaymentIntent.id == id, PaymentIntent.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_external_id(
        self, db: AsyncSession, *, external_payment_id: str
    ) -> Optional[PaymentIntent]:
        """Get the intent the gateway knows under `external_payment_id`."""
        query = (
            select(PaymentIntent)
            .where(PaymentIntent.external_payment_id == external_payment_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def attach_external(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        external_payment_id: str,
        approval_url: str,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Store the gateway id and approval URL and move CREATED -> REDIRECT_REQUIRED.

        The external id can only be written while it is still empty.
        """
        stmt = (
            update(PaymentIntent)
            .where(
                PaymentIntent.id == id,
                PaymentIntent.external_payment_id.is_(None),
                PaymentIntent.status == PaymentStatus.CREATED.value,
            )
            .values(
                external_payment_id=external_payment_id,
                approval_url=approval_url,
                status=PaymentStatus.REDIRECT_REQUIRED.value,
                modified_at=utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await self._finish(db, uow)
        return result.rowcount == 1

    async def transition(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        payload: Optional[dict[str, Any]],
        gateway_status: Optional[str],
        requires_review: bool = False,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Compare-and-swap the status from `from_status` to `to_status`.

        Returns:
            True only for the caller whose swap landed; a concurrent reconcile that
            already moved the row makes this return False.
        """
        stmt = (
            update(PaymentIntent)
            .where(PaymentIntent.id == id, PaymentIntent.status == from_status.value)
            .values(
                status=to_status.value,
                last_callback_payload=payload,
                last_gateway_status=gateway_status,
                requires_review=requires_review,
                modified_at=utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await self._finish(db, uow)
        return result.rowcount == 1

    async def record_observation(
        self,
        db: AsyncSession,
        *,
        id: UUID,
        payload: Optional[dict[str, Any]],
        gateway_status: Optional[str],
        requires_review: Optional[bool] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> None:
        """Keep the latest gateway answer for audit without touching the status."""
        values: dict[str, Any] = {
            "last_callback_payload": payload,
            "last_gateway_status": gateway_status,
            "modified_at": utc_now_naive(),
        }
        if requires_review is not None:
            values["requires_review"] = requires_review
        stmt = (
            update(PaymentIntent)
            .where(PaymentIntent.id == id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
        await self._finish(db, uow)

    async def list_unresolved(
        self,
        db: AsyncSession,
        *,
        older_than: datetime,
        limit: int = 100,
    ) -> Sequence[PaymentIntent]:
        """Intents with a gateway id that are still not terminal and untouched since `older_than`."""
        query = (
            select(PaymentIntent)
            .where(
                PaymentIntent.external_payment_id.is_not(None),
                PaymentIntent.status.not_in([s.value for s in TERMINAL_STATUSES]),
                PaymentIntent.modified_at < older_than,
            )
            .order_by(PaymentIntent.modified_at)
            .limit(limit)
        )
        result = await db.execute(query)
        return result.scalars().all()


payment_intent = CRUDPaymentIntent(PaymentIntent)
