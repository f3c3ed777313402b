"""Quota ledger.

Decides whether a tenant (or an anonymous caller) may consume one unit of a
metered resource and records the consumption. All contended writes go through
single conditional statements in `docbill.crud`; nothing here does
read-modify-write across statements for counters or trial slots.

A successful reserve is not rolled back if the caller later fails to persist
its document. Reserve happens before the document exists and there is no
compensation step, so that unit stays consumed.
"""

import hashlib
import hmac
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from docbill import crud, schemas
from docbill.billing.plan_catalog import Plan, get_plan, list_plans
from docbill.core.config import settings
from docbill.core.datetime_utils import days_from, utc_now_naive
from docbill.core.exceptions import (
    CallerKeyRequired,
    FreeTrialExhausted,
    InvalidExtension,
    PlanForbidsClients,
    QuotaExhausted,
    SubscriptionNotFound,
    SubscriptionRequired,
    SubscriptionUpdateConflict,
)
from docbill.core.logging import LoggerConfigurator
from docbill.core.shared_models import ReservationMode, ResourceKind
from docbill.db.unit_of_work import UnitOfWork
from docbill.models.subscription import Subscription

logger = LoggerConfigurator.configure_logger(__name__, dimensions={"component": "quota_ledger"})


def plan_info(plan: Plan) -> schemas.PlanInfo:
    """Presentation view of a catalog plan."""
    return schemas.PlanInfo(
        code=plan.code.value,
        title=plan.title,
        price_minor=plan.price_minor,
        currency=settings.GATEWAY_CURRENCY,
        duration_days=plan.duration_days,
        limits=schemas.PlanLimits(
            invoices=plan.invoice_quota,
            acts=plan.act_quota,
            allow_clients=plan.allows_client_module,
        ),
    )


class QuotaLedger:
    """Owner of Subscription and FreeTrialGrant rows."""

    def __init__(
        self,
        hash_salt: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now_naive,
        extend_max_attempts: Optional[int] = None,
    ):
        """Initialize the ledger.

        Args:
            hash_salt: Secret mixed into caller key hashes. Defaults to settings.
            clock: Source of "now" as naive UTC.
            extend_max_attempts: Compare-and-swap budget of `extend`. Defaults to settings.
        """
        self._hash_salt = hash_salt if hash_salt is not None else settings.FREE_TRIAL_HASH_SALT
        self._clock = clock
        self.extend_max_attempts = (
            extend_max_attempts
            if extend_max_attempts is not None
            else settings.SUBSCRIPTION_EXTEND_MAX_ATTEMPTS
        )

    def hash_caller_key(self, caller_key: str) -> str:
        """One-way hash of a caller key (source IP) with the server secret."""
        return hmac.new(
            self._hash_salt.encode("utf-8"), caller_key.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    async def get_active_subscription(
        self, db: AsyncSession, tenant_id: UUID
    ) -> Optional[Subscription]:
        """Return the subscription if ACTIVE and not yet expired, else None."""
        return await crud.subscription.get_active(db, tenant_id=tenant_id, now=self._clock())

    async def reserve(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        kind: ResourceKind,
        caller_key: Optional[str],
    ) -> schemas.ReservationResult:
        """Consume one unit of `kind` for the tenant, or a free-trial slot.

        Raises:
            QuotaExhausted: Finite plan quota already used up.
            FreeTrialExhausted: No subscription and the caller's trial slot is spent.
            CallerKeyRequired: No subscription and no caller key to key the trial on.
        """
        log = logger.with_context(tenant_id=str(tenant_id), resource_kind=kind.value)
        now = self._clock()
        active = await crud.subscription.get_active(db, tenant_id=tenant_id, now=now)

        if active:
            plan = get_plan(active.plan_code)
            quota = plan.quota_for(kind)
            if quota is None:
                await db.commit()
                return schemas.ReservationResult(
                    mode=ReservationMode.SUBSCRIPTION, plan_code=plan.code.value
                )

            reserved = await crud.subscription.increment_usage_if_below(
                db, tenant_id=tenant_id, kind=kind, quota=quota, now=now
            )
            if not reserved:
                log.info(f"Quota exhausted on plan {plan.code.value} ({quota})")
                raise QuotaExhausted(kind.value, limit=quota)

            log.debug(f"Reserved one {kind.value} on plan {plan.code.value}")
            return schemas.ReservationResult(
                mode=ReservationMode.SUBSCRIPTION, plan_code=plan.code.value
            )

        return await self._reserve_free_trial(db, kind, caller_key, now, log)

    async def _reserve_free_trial(self, db, kind, caller_key, now, log) -> schemas.ReservationResult:
        if not caller_key:
            raise CallerKeyRequired()

        key_hash = self.hash_caller_key(caller_key)
        await crud.free_trial_grant.ensure(db, key_hash=key_hash, now=now)
        claimed = await crud.free_trial_grant.claim_slot(db, key_hash=key_hash, kind=kind, now=now)
        if not claimed:
            log.info("Free trial slot already used")
            raise FreeTrialExhausted(kind.value)

        log.info("Granted free trial slot")
        return schemas.ReservationResult(mode=ReservationMode.FREE_TRIAL)

    async def activate(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        plan_code: str,
        duration_days: Optional[int] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> Subscription:
        """Create or overwrite the subscription as ACTIVE with fresh counters.

        Idempotent by construction: repeating the call only moves the window start.

        Args:
            db: Database session.
            tenant_id: Tenant to activate.
            plan_code: Catalog plan code.
            duration_days: Overrides the plan duration (admin "set" action).
            uow: Joins an outer transaction instead of committing.
        """
        plan = get_plan(plan_code)
        now = self._clock()
        valid_to = days_from(now, duration_days or plan.duration_days)

        sub = await crud.subscription.upsert_active(
            db,
            tenant_id=tenant_id,
            plan_code=plan.code.value,
            valid_from=now,
            valid_to=valid_to,
            uow=uow,
        )
        logger.with_context(tenant_id=str(tenant_id)).info(
            f"Activated plan {plan.code.value} until {valid_to.isoformat()}"
        )
        return sub

    async def cancel(self, db: AsyncSession, tenant_id: UUID) -> bool:
        """Cancel the subscription if there is one. Returns whether it existed."""
        existed = await crud.subscription.cancel(db, tenant_id=tenant_id, now=self._clock())
        logger.with_context(tenant_id=str(tenant_id)).info(
            f"Cancel requested, subscription existed={existed}"
        )
        return existed

    async def extend(self, db: AsyncSession, tenant_id: UUID, days: int) -> Subscription:
        """Push the validity end to max(valid_to, now) + days. Counters stay as they are.

        Raises:
            InvalidExtension: If days is not positive.
            SubscriptionNotFound: If the tenant never had a subscription.
            SubscriptionUpdateConflict: Concurrent writers moved valid_to on every attempt.
        """
        if days is None or days <= 0:
            raise InvalidExtension()

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(SubscriptionUpdateConflict),
            stop=stop_after_attempt(self.extend_max_attempts),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                new_valid_to = await self._try_extend(db, tenant_id, days)

        logger.with_context(tenant_id=str(tenant_id)).info(
            f"Extended subscription by {days} days until {new_valid_to.isoformat()}"
        )
        return await crud.subscription.get_by_tenant(db, tenant_id=tenant_id)

    async def _try_extend(self, db: AsyncSession, tenant_id: UUID, days: int) -> datetime:
        current = await crud.subscription.get_by_tenant(db, tenant_id=tenant_id)
        if current is None:
            raise SubscriptionNotFound()

        now = self._clock()
        base = current.valid_to if current.valid_to > now else now
        new_valid_to = days_from(base, days)
        swapped = await crud.subscription.set_valid_to_if_unchanged(
            db,
            tenant_id=tenant_id,
            expected_valid_to=current.valid_to,
            new_valid_to=new_valid_to,
            now=now,
        )
        if not swapped:
            # another writer moved valid_to between the read and the swap
            raise SubscriptionUpdateConflict()
        return new_valid_to

    async def assert_client_module_allowed(self, db: AsyncSession, tenant_id: UUID) -> Plan:
        """Return the active plan if it includes the client module.

        Raises:
            SubscriptionRequired: No active subscription.
            PlanForbidsClients: The active plan excludes the client module.
        """
        active = await self.get_active_subscription(db, tenant_id)
        if not active:
            raise SubscriptionRequired()

        plan = get_plan(active.plan_code)
        if not plan.allows_client_module:
            raise PlanForbidsClients(plan.code.value)
        return plan

    async def get_overview(self, db: AsyncSession, tenant_id: UUID) -> schemas.SubscriptionOverview:
        """Subscription state with remaining allowances and the plan list."""
        plans = [plan_info(p) for p in list_plans()]
        active = await self.get_active_subscription(db, tenant_id)
        if not active:
            return schemas.SubscriptionOverview(active=False, subscription=None, plans=plans)

        plan = get_plan(active.plan_code)
        details = schemas.SubscriptionDetails(
            plan_code=active.plan_code,
            status=active.status,
            valid_from=active.valid_from,
            valid_to=active.valid_to,
            invoices_used=active.invoices_used,
            acts_used=active.acts_used,
            invoices_remaining=_remaining(plan.invoice_quota, active.invoices_used),
            acts_remaining=_remaining(plan.act_quota, active.acts_used),
            allow_clients=plan.allows_client_module,
        )
        return schemas.SubscriptionOverview(active=True, subscription=details, plans=plans)


def _remaining(quota: Optional[int], used: int) -> Optional[int]:
    if quota is None:
        return None
    return max(0, quota - used)


quota_ledger = QuotaLedger()
