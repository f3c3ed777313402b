"""API endpoints for checkout, gateway callbacks and payment lookups.

This module provides the HTTP interface for payments, delegating all business
logic to the reconciliation service.
"""

import json
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docbill import schemas
from docbill.api import deps
from docbill.api.context import ApiContext
from docbill.api.router import TrailingSlashRouter
from docbill.billing.reconciliation import ReconciliationService

router = TrailingSlashRouter()


@router.post("/tbc/checkout", response_model=schemas.CheckoutResponse)
async def start_checkout(
    request: schemas.CheckoutRequest,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: ReconciliationService = Depends(deps.get_reconciliation_service),
) -> schemas.CheckoutResponse:
    """Start a TBC checkout for a plan.

    Args:
        request: Plan to buy
        http_request: Raw request, for the payer's address
        db: Database session
        ctx: Tenant context
        service: Reconciliation service

    Returns:
        Payment intent id and the approval URL to redirect the payer to

    Raises:
        UnknownPlan: 400
        GatewayUnavailable: 503, the user may retry
        GatewayBadResponse: 502
    """
    return await service.start_checkout(
        db, ctx.tenant_id, request.plan_code, deps.get_client_ip(http_request)
    )


@router.post("/tbc/callback", response_model=schemas.CallbackAck)
async def tbc_callback(
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    service: ReconciliationService = Depends(deps.get_reconciliation_service),
) -> schemas.CallbackAck:
    """Receive a TBC payment callback.

    TBC posts `{"PaymentId": "<payId>"}` once a payment reaches a final status and
    retries until it gets a 200. The body is only a trigger; the status is queried
    from TBC. Malformed bodies, unknown ids and foreign sources are acknowledged too.
    """
    raw = await http_request.body()
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        payload = None

    return await service.handle_callback(db, payload, deps.get_client_ip(http_request))


@router.get("/payments/{payment_intent_id}", response_model=schemas.PaymentIntent)
async def get_payment(
    payment_intent_id: UUID,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: ReconciliationService = Depends(deps.get_reconciliation_service),
) -> schemas.PaymentIntent:
    """Get one of the tenant's payment intents, e.g. after the payer returns."""
    intent = await service.get_payment_intent(db, ctx.tenant_id, payment_intent_id)
    return schemas.PaymentIntent.model_validate(intent)
