"""Admin endpoints: subscription overrides and the pending payment sweep."""

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from docbill import schemas
from docbill.api import deps
from docbill.api.router import TrailingSlashRouter
from docbill.billing.quota_ledger import QuotaLedger
from docbill.billing.reconciliation import ReconciliationService
from docbill.core.exceptions import InvalidExtension, ValidationFailed
from docbill.core.logging import logger

router = TrailingSlashRouter(dependencies=[Depends(deps.require_admin)])


@router.post("/tenants/{tenant_id}/subscription", response_model=schemas.AdminSubscriptionResult)
async def override_subscription(
    tenant_id: UUID,
    request: schemas.AdminSubscriptionAction,
    db: AsyncSession = Depends(deps.get_db),
    ledger: QuotaLedger = Depends(deps.get_quota_ledger),
) -> schemas.AdminSubscriptionResult:
    """Set, extend or cancel a tenant subscription.

    Args:
        tenant_id: Tenant to act on
        request: `set` (plan_code, optional duration_days), `extend` (extend_days) or `cancel`
        db: Database session
        ledger: Quota ledger

    Returns:
        The resulting plan and validity, or whether a subscription existed for cancel
    """
    log = logger.with_context(tenant_id=str(tenant_id), context_base="admin")
    log.info(f"Admin subscription action {request.action}")

    if request.action == "cancel":
        existed = await ledger.cancel(db, tenant_id)
        return schemas.AdminSubscriptionResult(action=request.action, existed=existed)

    if request.action == "extend":
        if not request.extend_days:
            raise InvalidExtension()
        subscription = await ledger.extend(db, tenant_id, request.extend_days)
    else:
        if not request.plan_code:
            raise ValidationFailed("plan_code is required for set")
        if request.duration_days is not None and request.duration_days <= 0:
            raise ValidationFailed("duration_days must be positive")
        subscription = await ledger.activate(
            db, tenant_id, request.plan_code, duration_days=request.duration_days
        )

    return schemas.AdminSubscriptionResult(
        action=request.action,
        plan_code=subscription.plan_code,
        valid_to=subscription.valid_to,
    )


@router.post("/payments/sweep", response_model=list[schemas.ReconcileResult])
async def sweep_pending_payments(
    older_than_minutes: int | None = None,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db),
    service: ReconciliationService = Depends(deps.get_reconciliation_service),
) -> list[schemas.ReconcileResult]:
    """Re-query payment intents stuck in a non-terminal state."""
    return await service.sweep_pending(db, older_than_minutes=older_than_minutes, limit=limit)
