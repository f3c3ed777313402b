"""Reconciliation service.

Boundary between the payment gateway and the rest of the system: starts checkouts,
receives the gateway's untrusted callbacks and re-queries the authoritative status.
Callbacks are acknowledged for every policy outcome (missing id, unknown id,
foreign source address, terminal intent, gateway hiccup) so the gateway never
retry-storms. Store failures still propagate; a non-2xx answer then makes the
gateway deliver the callback again.
"""

from datetime import timedelta
from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from docbill import crud, schemas
from docbill.billing.payment_intents import PaymentIntentStateMachine
from docbill.billing.quota_ledger import quota_ledger
from docbill.core.config import settings
from docbill.core.datetime_utils import utc_now_naive
from docbill.core.exceptions import PaymentIntentNotFound
from docbill.core.logging import LoggerConfigurator
from docbill.core.shared_models import CallbackOutcome
from docbill.integrations.tbc_client import TBCCheckoutClient
from docbill.models.payment_intent import PaymentIntent

logger = LoggerConfigurator.configure_logger(__name__, dimensions={"component": "reconciliation"})

REASON_PAYMENT_ID_MISSING = "PAYMENT_ID_MISSING"
REASON_IP_NOT_ALLOWED = "CALLBACK_IP_NOT_ALLOWED"


class ReconciliationService:
    """Orchestrates checkout, callbacks and the pending sweep."""

    def __init__(
        self,
        state_machine: PaymentIntentStateMachine,
        allowed_ips: Optional[list[str]] = None,
    ):
        """Initialize the service.

        Args:
            state_machine: Owner of payment intent transitions.
            allowed_ips: Callback source allow-list; empty or None accepts every source.
        """
        self.state_machine = state_machine
        self.allowed_ips = (
            allowed_ips if allowed_ips is not None else settings.callback_allowed_ips
        )

    def is_allowed_source(self, source_ip: Optional[str]) -> bool:
        """Whether a callback from `source_ip` may be processed."""
        if not self.allowed_ips:
            return True
        if not source_ip:
            return False
        return source_ip in self.allowed_ips

    async def start_checkout(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        plan_code: str,
        caller_ip: Optional[str] = None,
    ) -> schemas.CheckoutResponse:
        """Create a payment intent and return the URL the payer is redirected to."""
        return await self.state_machine.create(db, tenant_id, plan_code, caller_ip)

    async def handle_callback(
        self,
        db: AsyncSession,
        raw_payload: Any,
        source_ip: Optional[str] = None,
    ) -> schemas.CallbackAck:
        """Treat a callback as a trigger to re-query the gateway and acknowledge it.

        Nothing in the body other than the payment id is read; a status embedded in
        the callback is never trusted.
        """
        try:
            payload = schemas.GatewayCallbackPayload.model_validate(raw_payload or {})
            payment_id = (payload.payment_id or "").strip()
        except ValidationError:
            payment_id = ""

        if not payment_id:
            logger.warning("Callback without a payment id")
            return schemas.CallbackAck(
                matched=False, outcome=CallbackOutcome.UNMATCHED, reason=REASON_PAYMENT_ID_MISSING
            )

        log = logger.with_context(external_payment_id=payment_id, source_ip=source_ip)
        if not self.is_allowed_source(source_ip):
            log.warning("Callback from a source outside the allow-list ignored")
            return schemas.CallbackAck(
                matched=False,
                ignored=True,
                outcome=CallbackOutcome.IGNORED,
                reason=REASON_IP_NOT_ALLOWED,
            )

        # one short status query; a transient failure is left to the sweep
        result = await self.state_machine.reconcile_by_external_id(
            db, payment_id, retry_transient=False
        )
        log.info(f"Callback handled: {result.outcome.value}")
        return schemas.CallbackAck(
            matched=result.matched,
            outcome=result.outcome,
            status=result.status or result.previous_status,
        )

    async def get_payment_intent(
        self, db: AsyncSession, tenant_id: UUID, payment_intent_id: UUID
    ) -> PaymentIntent:
        """Return an intent owned by the tenant.

        Raises:
            PaymentIntentNotFound: Unknown id or owned by another tenant.
        """
        intent = await crud.payment_intent.get_for_tenant(
            db, tenant_id=tenant_id, id=payment_intent_id
        )
        if not intent:
            raise PaymentIntentNotFound()
        return intent

    async def sweep_pending(
        self,
        db: AsyncSession,
        older_than_minutes: Optional[int] = None,
        limit: int = 100,
    ) -> list[schemas.ReconcileResult]:
        """Re-query non-terminal intents that have not moved for a while.

        Covers callbacks that never arrived or were deferred by a gateway failure.
        """
        minutes = (
            older_than_minutes
            if older_than_minutes is not None
            else settings.PENDING_SWEEP_AGE_MINUTES
        )
        cutoff = utc_now_naive() - timedelta(minutes=minutes)
        stale = await crud.payment_intent.list_unresolved(db, older_than=cutoff, limit=limit)
        external_ids = [intent.external_payment_id for intent in stale]
        await db.commit()

        results = []
        for external_id in external_ids:
            results.append(await self.state_machine.reconcile_by_external_id(db, external_id))

        processed = sum(1 for r in results if r.outcome == CallbackOutcome.PROCESSED)
        logger.info(f"Pending sweep checked {len(results)} intents, {processed} moved")
        return results


payment_gateway = TBCCheckoutClient()
payment_intent_state_machine = PaymentIntentStateMachine(payment_gateway, quota_ledger)
reconciliation_service = ReconciliationService(payment_intent_state_machine)
