"""Payment intent state machine.

CREATED -> REDIRECT_REQUIRED -> [WAITING_CONFIRM] -> SUCCEEDED | FAILED | EXPIRED | CANCELED

Transitions only move forward and terminal states are final. Every transition is a
compare-and-swap on the status the reconciler last saw, so of several concurrent
reconciles of one payment exactly one wins. Only the winner of the swap into
SUCCEEDED activates the subscription, inside the same transaction as the swap.
"""

from types import MappingProxyType
from typing import Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from docbill import crud, schemas
from docbill.billing.plan_catalog import get_plan
from docbill.billing.quota_ledger import QuotaLedger
from docbill.core.config import settings
from docbill.core.exceptions import DocbillException, GatewayError
from docbill.core.logging import LoggerConfigurator
from docbill.core.shared_models import CallbackOutcome, PaymentStatus
from docbill.crud.crud_payment_intent import TERMINAL_STATUSES
from docbill.db.unit_of_work import UnitOfWork
from docbill.integrations.gateway import BasePaymentGateway

logger = LoggerConfigurator.configure_logger(__name__, dimensions={"component": "payment_intents"})

# Keys are vendor strings with whitespace removed and upper-cased.
GATEWAY_STATUS_MAP: Mapping[str, PaymentStatus] = MappingProxyType(
    {
        "SUCCEEDED": PaymentStatus.SUCCEEDED,
        "FAILED": PaymentStatus.FAILED,
        "EXPIRED": PaymentStatus.EXPIRED,
        "CANCELED": PaymentStatus.CANCELED,
        "CANCELLED": PaymentStatus.CANCELED,
        "WAITINGCONFIRM": PaymentStatus.WAITING_CONFIRM,
        "WAITING_CONFIRM": PaymentStatus.WAITING_CONFIRM,
        "WAITINGFORCONFIRMATION": PaymentStatus.WAITING_CONFIRM,
        "WAITING_FOR_CONFIRMATION": PaymentStatus.WAITING_CONFIRM,
        "CREATED": PaymentStatus.REDIRECT_REQUIRED,
        "PROCESSING": PaymentStatus.REDIRECT_REQUIRED,
        "INPROCESS": PaymentStatus.REDIRECT_REQUIRED,
        "REDIRECTREQUIRED": PaymentStatus.REDIRECT_REQUIRED,
    }
)

UNRECOGNIZED_STATUS_FALLBACK = PaymentStatus.CREATED

# One swap per forward step is enough to reach a terminal state from CREATED.
MAX_TRANSITION_ATTEMPTS = 4

_RANK = {
    PaymentStatus.CREATED: 0,
    PaymentStatus.REDIRECT_REQUIRED: 1,
    PaymentStatus.WAITING_CONFIRM: 2,
    PaymentStatus.SUCCEEDED: 3,
    PaymentStatus.FAILED: 3,
    PaymentStatus.EXPIRED: 3,
    PaymentStatus.CANCELED: 3,
}


def normalize_gateway_status(raw_status: Optional[str]) -> str:
    """Drop all whitespace and upper-case a vendor status string."""
    return "".join((raw_status or "").split()).upper()


def map_gateway_status(raw_status: Optional[str]) -> tuple[PaymentStatus, bool]:
    """Map a vendor status onto the internal enum.

    Returns:
        The mapped status and whether the vendor string was recognized. Unrecognized
        strings map to CREATED, never to a success.
    """
    mapped = GATEWAY_STATUS_MAP.get(normalize_gateway_status(raw_status))
    if mapped is None:
        return UNRECOGNIZED_STATUS_FALLBACK, False
    return mapped, True


def is_terminal(status: PaymentStatus) -> bool:
    """Whether no further transition may leave `status`."""
    return status in TERMINAL_STATUSES


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """Forward-only rule: leave non-terminal states for strictly later ones."""
    if is_terminal(current):
        return False
    return _RANK[target] > _RANK[current]


class PaymentIntentStateMachine:
    """Creates payment intents and reconciles them with the gateway."""

    def __init__(self, gateway: BasePaymentGateway, ledger: QuotaLedger):
        """Initialize the state machine.

        Args:
            gateway: Payment gateway client.
            ledger: Receives exactly one `activate` per successful payment.
        """
        self.gateway = gateway
        self.ledger = ledger

    @staticmethod
    def return_url(payment_intent_id: UUID) -> str:
        """Where the gateway sends the payer back to."""
        base = settings.WEB_BASE_URL.rstrip("/")
        return f"{base}/cabinet/subscription?checkout=return&intent={payment_intent_id}"

    async def create(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        plan_code: str,
        caller_ip: Optional[str] = None,
    ) -> schemas.CheckoutResponse:
        """Persist a CREATED intent, register it with the gateway, store the redirect.

        A gateway failure leaves the intent in CREATED and propagates to the caller.
        No transaction is held open across the gateway call.

        Raises:
            UnknownPlan: The plan code is not in the catalog.
            GatewayUnavailable: Transient gateway failure; the user may retry.
            GatewayBadResponse: The gateway rejected the payment or answered incompletely.
        """
        plan = get_plan(plan_code)
        intent = await crud.payment_intent.create(
            db,
            obj_in=schemas.PaymentIntentCreate(
                tenant_id=tenant_id,
                plan_code=plan.code.value,
                amount_minor=plan.price_minor,
                currency=settings.GATEWAY_CURRENCY,
                provider=self.gateway.provider,
            ),
        )
        log = logger.with_context(tenant_id=str(tenant_id), payment_intent_id=str(intent.id))

        try:
            payment = await self.gateway.create_payment(
                amount_minor=intent.amount_minor,
                currency=intent.currency,
                return_url=self.return_url(intent.id),
                callback_url=settings.gateway_callback_url,
                merchant_reference_id=str(intent.id),
                caller_ip=caller_ip,
                description=f"Subscription {plan.code.value}",
            )
        except GatewayError as e:
            log.error(f"Gateway refused checkout for plan {plan.code.value}: {e.message}")
            raise

        attached = await crud.payment_intent.attach_external(
            db,
            id=intent.id,
            external_payment_id=payment.external_id,
            approval_url=payment.approval_url,
        )
        if not attached:
            log.error(f"Could not attach external payment {payment.external_id}")
            raise DocbillException("Payment intent changed while checkout was being created")

        log.with_context(external_payment_id=payment.external_id).info(
            f"Checkout started for plan {plan.code.value}"
        )
        return schemas.CheckoutResponse(
            payment_intent_id=intent.id,
            external_payment_id=payment.external_id,
            approval_url=payment.approval_url,
        )

    async def reconcile_by_external_id(
        self, db: AsyncSession, external_id: str, *, retry_transient: bool = True
    ) -> schemas.ReconcileResult:
        """Bring the stored intent in line with the gateway's authoritative status.

        Never raises for an unknown id or a gateway failure: the first is reported as
        unmatched, the second as deferred with the stored state untouched.

        Args:
            db: Database session.
            external_id: Gateway payment id.
            retry_transient: Passed to the gateway status query. Callback handling turns
                it off so the acknowledgment is not held up by retries.
        """
        log = logger.with_context(external_payment_id=external_id)

        intent = await crud.payment_intent.get_by_external_id(db, external_payment_id=external_id)
        if intent is None:
            await db.commit()
            log.warning("No payment intent for external payment id")
            return schemas.ReconcileResult(matched=False, outcome=CallbackOutcome.UNMATCHED)

        # end the read before the gateway round trip
        await db.commit()
        current = PaymentStatus(intent.status)
        log = log.with_context(tenant_id=str(intent.tenant_id), payment_intent_id=str(intent.id))

        try:
            details = await self.gateway.get_payment_status(
                external_id, retry_transient=retry_transient
            )
        except GatewayError as e:
            outcome = CallbackOutcome.UNCHANGED if is_terminal(current) else CallbackOutcome.DEFERRED
            log.error(f"Gateway status query failed, leaving {current.value}: {e.message}")
            return self._result(intent.id, current, current, outcome)

        target, recognized = map_gateway_status(details.status)
        if not recognized:
            log.warning(f"Unrecognized gateway status {details.status!r}, flagged for review")

        seen = current
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            if not can_transition(seen, target):
                await crud.payment_intent.record_observation(
                    db,
                    id=intent.id,
                    payload=details.raw,
                    gateway_status=details.status,
                    requires_review=None if recognized else True,
                )
                log.info(f"Gateway reports {details.status}, staying in {seen.value}")
                return self._result(intent.id, seen, seen, CallbackOutcome.UNCHANGED)

            activated = False
            async with UnitOfWork(db) as uow:
                swapped = await crud.payment_intent.transition(
                    db,
                    id=intent.id,
                    from_status=seen,
                    to_status=target,
                    payload=details.raw,
                    gateway_status=details.status,
                    uow=uow,
                )
                if swapped and target == PaymentStatus.SUCCEEDED:
                    await self.ledger.activate(db, intent.tenant_id, intent.plan_code, uow=uow)
                    activated = True

            if swapped:
                log.info(f"Intent moved {seen.value} -> {target.value} (gateway {details.status})")
                result = self._result(intent.id, seen, target, CallbackOutcome.PROCESSED)
                result.activated = activated
                return result

            # a concurrent reconcile moved the row; swap again from where it is now
            fresh = await crud.payment_intent.get(db, id=intent.id)
            log.info(f"Intent left {seen.value} concurrently, now {fresh.status}")
            seen = PaymentStatus(fresh.status)

        await db.commit()
        log.warning(f"Gave up moving intent to {target.value} after concurrent updates")
        return self._result(intent.id, seen, seen, CallbackOutcome.DEFERRED)

    @staticmethod
    def _result(intent_id, previous, status, outcome) -> schemas.ReconcileResult:
        return schemas.ReconcileResult(
            matched=True,
            outcome=outcome,
            payment_intent_id=intent_id,
            previous_status=previous,
            status=status,
        )
