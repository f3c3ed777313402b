"""Common test fixtures."""

import uuid
from typing import Optional

import pytest

from docbill.billing.payment_intents import PaymentIntentStateMachine
from docbill.billing.quota_ledger import QuotaLedger
from docbill.billing.reconciliation import ReconciliationService
from docbill.core.exceptions import GatewayError
from docbill.integrations.gateway import BasePaymentGateway
from docbill.schemas.payment_intent import GatewayPayment, GatewayPaymentDetails


class FakeGateway(BasePaymentGateway):
    """In-memory gateway whose reported status the test controls."""

    provider = "TBC"

    def __init__(self, status: str = "Succeeded"):
        self.status = status
        self.create_error: Optional[GatewayError] = None
        self.status_error: Optional[GatewayError] = None
        self.created: list[dict] = []
        self.status_queries: list[str] = []
        self.retry_flags: list[bool] = []

    async def create_payment(self, **kwargs) -> GatewayPayment:
        if self.create_error:
            raise self.create_error
        self.created.append(kwargs)
        pay_id = f"pay-{len(self.created)}"
        return GatewayPayment(
            external_id=pay_id,
            approval_url=f"https://checkout.example/{pay_id}",
            initial_status="Created",
        )

    async def get_payment_status(
        self, external_id: str, *, retry_transient: bool = True
    ) -> GatewayPaymentDetails:
        self.status_queries.append(external_id)
        self.retry_flags.append(retry_transient)
        if self.status_error:
            raise self.status_error
        return GatewayPaymentDetails(
            external_id=external_id,
            status=self.status,
            raw={"payId": external_id, "status": self.status},
        )


@pytest.fixture
def tenant_id() -> uuid.UUID:
    """A fresh tenant id."""
    return uuid.uuid4()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Gateway double reporting success unless told otherwise."""
    return FakeGateway()


@pytest.fixture
def ledger() -> QuotaLedger:
    """Quota ledger with a fixed hash salt."""
    return QuotaLedger(hash_salt="test-salt")


@pytest.fixture
def state_machine(fake_gateway, ledger) -> PaymentIntentStateMachine:
    """Payment intent state machine over the fake gateway."""
    return PaymentIntentStateMachine(fake_gateway, ledger)


@pytest.fixture
def reconciliation(state_machine) -> ReconciliationService:
    """Reconciliation service accepting callbacks from any source."""
    return ReconciliationService(state_machine, allowed_ips=[])
