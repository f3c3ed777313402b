"""API endpoints creating billable documents (invoices and acts).

Rendering, delivery and listing belong to other services. This module only runs
the billable part: reserve one unit, then persist the document under a fresh number.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docbill import schemas
from docbill.api import deps
from docbill.api.context import ApiContext
from docbill.api.router import TrailingSlashRouter
from docbill.billing.quota_ledger import QuotaLedger
from docbill.billing.sequencer import DocumentSequencer
from docbill.core.exceptions import ValidationFailed
from docbill.core.shared_models import ResourceKind

router = TrailingSlashRouter()


async def _create_document(
    kind: ResourceKind,
    request: schemas.DocumentCreateRequest,
    http_request: Request,
    db: AsyncSession,
    ctx: ApiContext,
    ledger: QuotaLedger,
    sequencer: DocumentSequencer,
) -> schemas.DocumentCreated:
    if not ctx.registration_id:
        raise ValidationFailed("Tenant registration id required (X-Tenant-Registration-ID)")

    reservation = await ledger.reserve(db, ctx.tenant_id, kind, deps.get_client_ip(http_request))
    document = await sequencer.create_document(
        db,
        registration_id=ctx.registration_id,
        obj_in=schemas.DocumentCreate(
            tenant_id=ctx.tenant_id,
            kind=kind,
            counterparty_tax_id=request.counterparty_tax_id,
            purpose=request.purpose,
            amount_minor=request.amount_minor,
        ),
    )
    ctx.logger.info(f"Created {kind.value} {document.number} ({reservation.mode.value})")
    return schemas.DocumentCreated(
        document=schemas.Document.model_validate(document),
        reservation_mode=reservation.mode,
    )


@router.post("/invoices", response_model=schemas.DocumentCreated)
async def create_invoice(
    request: schemas.DocumentCreateRequest,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: QuotaLedger = Depends(deps.get_quota_ledger),
    sequencer: DocumentSequencer = Depends(deps.get_document_sequencer),
) -> schemas.DocumentCreated:
    """Create an invoice, consuming one invoice from the plan or the free trial.

    Answers 402 when the quota or the free trial is exhausted and 409 when no
    number could be allocated.
    """
    return await _create_document(
        ResourceKind.INVOICE, request, http_request, db, ctx, ledger, sequencer
    )


@router.post("/acts", response_model=schemas.DocumentCreated)
async def create_act(
    request: schemas.DocumentCreateRequest,
    http_request: Request,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    ledger: QuotaLedger = Depends(deps.get_quota_ledger),
    sequencer: DocumentSequencer = Depends(deps.get_document_sequencer),
) -> schemas.DocumentCreated:
    """Create an act, consuming one act from the plan or the free trial."""
    return await _create_document(ResourceKind.ACT, request, http_request, db, ctx, ledger, sequencer)
