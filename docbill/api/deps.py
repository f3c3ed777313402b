"""Dependencies that are used in the API endpoints."""

import hmac
import uuid
from typing import Optional

from fastapi import Header, HTTPException, Request

from docbill.api.context import ApiContext
from docbill.billing import document_sequencer, quota_ledger, reconciliation_service
from docbill.billing.quota_ledger import QuotaLedger
from docbill.billing.reconciliation import ReconciliationService
from docbill.billing.sequencer import DocumentSequencer
from docbill.core.config import settings
from docbill.core.exceptions import AdminAuthRequired
from docbill.core.logging import logger
from docbill.db.session import get_db

__all__ = [
    "get_client_ip",
    "get_context",
    "get_db",
    "get_document_sequencer",
    "get_quota_ledger",
    "get_reconciliation_service",
    "require_admin",
]


def get_client_ip(request: Request) -> Optional[str]:
    """Caller address: the direct peer, else the first X-Forwarded-For hop, else X-Real-IP."""
    if request.client and request.client.host:
        return request.client.host

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    return request.headers.get("x-real-ip") or None


async def get_context(
    request: Request,
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    x_tenant_registration_id: Optional[str] = Header(None, alias="X-Tenant-Registration-ID"),
) -> ApiContext:
    """Create the tenant context for the request.

    Args:
    ----
        request (Request): The FastAPI request object.
        x_tenant_id (Optional[str]): Tenant id resolved by the authenticating proxy.
        x_tenant_registration_id (Optional[str]): Tenant registration id, used in document numbers.

    Returns:
    -------
        ApiContext: Tenant context with a pre-configured logger.

    Raises:
    ------
        HTTPException: If the tenant header is missing or malformed.
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    if not x_tenant_id:
        raise HTTPException(status_code=401, detail="Tenant context required (X-Tenant-ID missing)")
    try:
        tenant_id = uuid.UUID(x_tenant_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="X-Tenant-ID is not a valid UUID") from e

    return ApiContext(
        request_id=request_id,
        tenant_id=tenant_id,
        registration_id=x_tenant_registration_id,
        logger=logger.with_context(
            request_id=request_id, tenant_id=str(tenant_id), context_base="api"
        ),
    )


async def require_admin(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")) -> None:
    """Reject callers without the shared admin token.

    Raises:
        AdminAuthRequired: No token configured, none sent, or a mismatch.
    """
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token:
        raise AdminAuthRequired()
    if not hmac.compare_digest(expected.encode("utf-8"), x_admin_token.encode("utf-8")):
        raise AdminAuthRequired()


def get_quota_ledger() -> QuotaLedger:
    """Quota ledger used by the endpoints."""
    return quota_ledger


def get_document_sequencer() -> DocumentSequencer:
    """Document sequencer used by the endpoints."""
    return document_sequencer


def get_reconciliation_service() -> ReconciliationService:
    """Reconciliation service used by the endpoints."""
    return reconciliation_service
