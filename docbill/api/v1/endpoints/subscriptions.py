"""API endpoints for plans and the tenant's own subscription."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from docbill import schemas
from docbill.api import deps
from docbill.api.context import ApiContext
from docbill.api.router import TrailingSlashRouter
from docbill.billing.plan_catalog import list_plans
from docbill.billing.quota_ledger import QuotaLedger, plan_info
from docbill.core.config import settings
from docbill.core.exceptions import MockBillingDisabled

router = TrailingSlashRouter()


@router.get("/plans", response_model=list[schemas.PlanInfo])
async def get_plans() -> list[schemas.PlanInfo]:
    """List the plan catalog with prices and limits."""
    return [plan_info(plan) for plan in list_plans()]


@router.get("/me", response_model=schemas.SubscriptionOverview)
async def get_my_subscription(
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: QuotaLedger = Depends(deps.get_quota_ledger),
) -> schemas.SubscriptionOverview:
    """Get the tenant's subscription with remaining allowances.

    Args:
        db: Database session
        ctx: Tenant context
        ledger: Quota ledger

    Returns:
        Active flag, subscription details and the plan list
    """
    return await ledger.get_overview(db, ctx.tenant_id)


@router.get("/client-module", response_model=schemas.ClientModuleAccess)
async def check_client_module(
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: QuotaLedger = Depends(deps.get_quota_ledger),
) -> schemas.ClientModuleAccess:
    """Tell the clients collaborator whether the tenant may use the client module.

    Answers 402 without an active subscription and 403 when the plan excludes clients.
    """
    plan = await ledger.assert_client_module_allowed(db, ctx.tenant_id)
    return schemas.ClientModuleAccess(allowed=True, plan_code=plan.code.value)


@router.post("/mock/activate", response_model=schemas.Subscription)
async def mock_activate(
    request: schemas.MockActivateRequest,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: QuotaLedger = Depends(deps.get_quota_ledger),
) -> schemas.Subscription:
    """Activate a plan without payment. Dev/QA only, off unless ALLOW_MOCK_BILLING is set."""
    if not settings.ALLOW_MOCK_BILLING:
        raise MockBillingDisabled()

    ctx.logger.warning(f"Mock activation of {request.plan_code}")
    subscription = await ledger.activate(db, ctx.tenant_id, request.plan_code)
    return schemas.Subscription.model_validate(subscription)
