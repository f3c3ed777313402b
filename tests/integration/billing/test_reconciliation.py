"""Store-backed tests for checkout, callbacks and the pending sweep."""

import asyncio
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, update

from docbill import crud
from docbill.billing.payment_intents import PaymentIntentStateMachine
from docbill.billing.plan_catalog import PlanCode
from docbill.billing.reconciliation import (
    REASON_IP_NOT_ALLOWED,
    REASON_PAYMENT_ID_MISSING,
    ReconciliationService,
)
from docbill.core.datetime_utils import utc_now_naive
from docbill.core.exceptions import GatewayUnavailable, PaymentIntentNotFound
from docbill.core.shared_models import CallbackOutcome, PaymentStatus
from docbill.models.payment_intent import PaymentIntent
from tests.fixtures.common import FakeGateway


async def start(reconciliation, db, tenant_id, plan=PlanCode.PAYG_5_5):
    return await reconciliation.start_checkout(db, tenant_id, plan.value, "198.51.100.7")


async def load(session_factory, intent_id) -> PaymentIntent:
    async with session_factory() as db:
        return await crud.payment_intent.get(db, id=intent_id)


@pytest.fixture
def activate_spy(ledger, monkeypatch):
    spy = AsyncMock(wraps=ledger.activate)
    monkeypatch.setattr(ledger, "activate", spy)
    return spy


async def test_checkout_stores_redirect(db_session, reconciliation, fake_gateway, tenant_id):
    checkout = await start(reconciliation, db_session, tenant_id)

    assert checkout.external_payment_id == "pay-1"
    assert checkout.approval_url == "https://checkout.example/pay-1"
    sent = fake_gateway.created[0]
    assert sent["amount_minor"] == 2000
    assert sent["merchant_reference_id"] == str(checkout.payment_intent_id)
    assert sent["caller_ip"] == "198.51.100.7"
    assert f"intent={checkout.payment_intent_id}" in sent["return_url"]

    intent = await reconciliation.get_payment_intent(
        db_session, tenant_id, checkout.payment_intent_id
    )
    assert intent.status == PaymentStatus.REDIRECT_REQUIRED.value
    assert intent.external_payment_id == "pay-1"


async def test_checkout_gateway_failure_leaves_intent_created(
    db_session, reconciliation, fake_gateway, tenant_id
):
    fake_gateway.create_error = GatewayUnavailable()

    with pytest.raises(GatewayUnavailable):
        await start(reconciliation, db_session, tenant_id)

    result = await db_session.execute(
        select(PaymentIntent).where(PaymentIntent.tenant_id == tenant_id)
    )
    intents = result.scalars().all()
    assert len(intents) == 1
    assert intents[0].status == PaymentStatus.CREATED.value
    assert intents[0].external_payment_id is None


async def test_repeated_callbacks_activate_once(
    db_session, session_factory, reconciliation, ledger, activate_spy, tenant_id
):
    checkout = await start(reconciliation, db_session, tenant_id)

    acks = [
        await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"}, "192.0.2.1")
        for _ in range(3)
    ]

    assert all(ack.ok for ack in acks)
    assert [ack.outcome for ack in acks] == [
        CallbackOutcome.PROCESSED,
        CallbackOutcome.UNCHANGED,
        CallbackOutcome.UNCHANGED,
    ]
    assert activate_spy.await_count == 1

    intent = await load(session_factory, checkout.payment_intent_id)
    assert intent.status == PaymentStatus.SUCCEEDED.value
    sub = await ledger.get_active_subscription(db_session, tenant_id)
    assert sub.plan_code == PlanCode.PAYG_5_5.value


async def test_concurrent_callbacks_activate_once(
    db_session, session_factory, reconciliation, activate_spy, tenant_id
):
    await start(reconciliation, db_session, tenant_id)

    async def deliver():
        async with session_factory() as db:
            return await reconciliation.handle_callback(db, {"PaymentId": "pay-1"})

    acks = await asyncio.gather(*[deliver() for _ in range(4)])

    outcomes = [ack.outcome for ack in acks]
    assert outcomes.count(CallbackOutcome.PROCESSED) == 1
    assert outcomes.count(CallbackOutcome.UNCHANGED) == 3
    assert all(ack.status == PaymentStatus.SUCCEEDED for ack in acks)
    assert activate_spy.await_count == 1


class AdvancingGateway(FakeGateway):
    """Moves the intent to WAITING_CONFIRM from another session before answering."""

    def __init__(self, session_factory, status: str = "Succeeded"):
        super().__init__(status)
        self.session_factory = session_factory

    async def get_payment_status(self, external_id, *, retry_transient=True):
        async with self.session_factory() as db:
            intent = await crud.payment_intent.get_by_external_id(
                db, external_payment_id=external_id
            )
            await crud.payment_intent.transition(
                db,
                id=intent.id,
                from_status=PaymentStatus.REDIRECT_REQUIRED,
                to_status=PaymentStatus.WAITING_CONFIRM,
                payload=None,
                gateway_status="WaitingConfirm",
            )
        return await super().get_payment_status(external_id, retry_transient=retry_transient)


async def test_success_lands_after_concurrent_move_to_waiting_confirm(
    db_session, session_factory, ledger, activate_spy, tenant_id
):
    gateway = AdvancingGateway(session_factory)
    reconciliation = ReconciliationService(
        PaymentIntentStateMachine(gateway, ledger), allowed_ips=[]
    )
    checkout = await start(reconciliation, db_session, tenant_id)

    ack = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})

    assert ack.outcome == CallbackOutcome.PROCESSED
    assert ack.status == PaymentStatus.SUCCEEDED
    assert activate_spy.await_count == 1
    intent = await load(session_factory, checkout.payment_intent_id)
    assert intent.status == PaymentStatus.SUCCEEDED.value


async def test_callback_queries_once_and_sweep_retries(
    db_session, reconciliation, fake_gateway, tenant_id
):
    checkout = await start(reconciliation, db_session, tenant_id)
    fake_gateway.status = "Processing"

    await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})
    assert fake_gateway.retry_flags == [False]

    await db_session.execute(
        update(PaymentIntent)
        .where(PaymentIntent.id == checkout.payment_intent_id)
        .values(modified_at=utc_now_naive() - timedelta(hours=1))
    )
    await db_session.commit()
    await reconciliation.sweep_pending(db_session, older_than_minutes=15)
    assert fake_gateway.retry_flags == [False, True]


async def test_callback_status_in_body_is_not_trusted(
    db_session, session_factory, reconciliation, fake_gateway, activate_spy, tenant_id
):
    checkout = await start(reconciliation, db_session, tenant_id)
    fake_gateway.status = "Failed"

    ack = await reconciliation.handle_callback(
        db_session, {"PaymentId": "pay-1", "Status": "Succeeded"}
    )

    assert ack.outcome == CallbackOutcome.PROCESSED
    assert ack.status == PaymentStatus.FAILED
    activate_spy.assert_not_awaited()

    # terminal: a later success report does not reopen it
    fake_gateway.status = "Succeeded"
    ack = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})
    assert ack.outcome == CallbackOutcome.UNCHANGED
    assert ack.status == PaymentStatus.FAILED
    activate_spy.assert_not_awaited()
    intent = await load(session_factory, checkout.payment_intent_id)
    assert intent.status == PaymentStatus.FAILED.value


async def test_waiting_confirm_moves_forward_then_succeeds(
    db_session, reconciliation, fake_gateway, activate_spy, tenant_id
):
    await start(reconciliation, db_session, tenant_id)
    fake_gateway.status = "WaitingConfirm"

    first = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})
    fake_gateway.status = "Succeeded"
    second = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})

    assert first.status == PaymentStatus.WAITING_CONFIRM
    assert second.status == PaymentStatus.SUCCEEDED
    assert activate_spy.await_count == 1


@pytest.mark.parametrize("payload", [None, {}, {"PaymentId": "   "}, "not-an-object", [1, 2]])
async def test_callback_without_payment_id(db_session, reconciliation, fake_gateway, payload):
    ack = await reconciliation.handle_callback(db_session, payload, "192.0.2.1")

    assert ack.ok
    assert not ack.matched
    assert ack.outcome == CallbackOutcome.UNMATCHED
    assert ack.reason == REASON_PAYMENT_ID_MISSING
    assert fake_gateway.status_queries == []


async def test_callback_for_unknown_payment(db_session, reconciliation, fake_gateway):
    ack = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-404"})

    assert ack.ok
    assert not ack.matched
    assert ack.outcome == CallbackOutcome.UNMATCHED
    assert fake_gateway.status_queries == []


async def test_callback_from_foreign_source_is_ignored(
    db_session, state_machine, fake_gateway, activate_spy, tenant_id
):
    service = ReconciliationService(state_machine, allowed_ips=["192.0.2.10"])
    await start(service, db_session, tenant_id)

    ignored = await service.handle_callback(db_session, {"PaymentId": "pay-1"}, "192.0.2.99")
    assert ignored.ok
    assert ignored.ignored
    assert ignored.outcome == CallbackOutcome.IGNORED
    assert ignored.reason == REASON_IP_NOT_ALLOWED
    assert fake_gateway.status_queries == []

    missing = await service.handle_callback(db_session, {"PaymentId": "pay-1"}, None)
    assert missing.outcome == CallbackOutcome.IGNORED

    accepted = await service.handle_callback(db_session, {"PaymentId": "pay-1"}, "192.0.2.10")
    assert accepted.outcome == CallbackOutcome.PROCESSED
    assert activate_spy.await_count == 1


async def test_gateway_failure_defers_without_moving_state(
    db_session, session_factory, reconciliation, fake_gateway, activate_spy, tenant_id
):
    checkout = await start(reconciliation, db_session, tenant_id)
    fake_gateway.status_error = GatewayUnavailable()

    ack = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})

    assert ack.ok
    assert ack.matched
    assert ack.outcome == CallbackOutcome.DEFERRED
    assert ack.status == PaymentStatus.REDIRECT_REQUIRED
    activate_spy.assert_not_awaited()
    intent = await load(session_factory, checkout.payment_intent_id)
    assert intent.status == PaymentStatus.REDIRECT_REQUIRED.value


async def test_unrecognized_status_is_flagged_and_never_moves_backward(
    db_session, session_factory, reconciliation, fake_gateway, activate_spy, tenant_id
):
    checkout = await start(reconciliation, db_session, tenant_id)
    fake_gateway.status = "PartiallyRefundedMaybe"

    ack = await reconciliation.handle_callback(db_session, {"PaymentId": "pay-1"})

    assert ack.outcome == CallbackOutcome.UNCHANGED
    assert ack.status == PaymentStatus.REDIRECT_REQUIRED
    activate_spy.assert_not_awaited()
    intent = await load(session_factory, checkout.payment_intent_id)
    assert intent.status == PaymentStatus.REDIRECT_REQUIRED.value
    assert intent.requires_review is True
    assert intent.last_gateway_status == "PartiallyRefundedMaybe"


async def test_sweep_requeries_only_stale_unresolved_intents(
    db_session, reconciliation, fake_gateway, activate_spy, tenant_id
):
    stale = await start(reconciliation, db_session, tenant_id)
    fresh = await start(reconciliation, db_session, uuid.uuid4())
    await db_session.execute(
        update(PaymentIntent)
        .where(PaymentIntent.id == stale.payment_intent_id)
        .values(modified_at=utc_now_naive() - timedelta(hours=1))
    )
    await db_session.commit()

    results = await reconciliation.sweep_pending(db_session, older_than_minutes=15)

    assert fake_gateway.status_queries == [stale.external_payment_id]
    assert [r.payment_intent_id for r in results] == [stale.payment_intent_id]
    assert results[0].activated is True
    assert activate_spy.await_count == 1

    # terminal intents drop out of later sweeps
    await db_session.execute(
        update(PaymentIntent)
        .where(PaymentIntent.id == fresh.payment_intent_id)
        .values(modified_at=utc_now_naive() - timedelta(hours=1))
    )
    await db_session.commit()
    results = await reconciliation.sweep_pending(db_session, older_than_minutes=15)
    assert [r.payment_intent_id for r in results] == [fresh.payment_intent_id]


async def test_payment_intent_is_private_to_its_tenant(db_session, reconciliation, tenant_id):
    checkout = await start(reconciliation, db_session, tenant_id)

    with pytest.raises(PaymentIntentNotFound):
        await reconciliation.get_payment_intent(db_session, uuid.uuid4(), checkout.payment_intent_id)
    with pytest.raises(PaymentIntentNotFound):
        await reconciliation.get_payment_intent(db_session, tenant_id, uuid.uuid4())
