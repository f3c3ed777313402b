"""Payment intent and gateway callback schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from docbill.core.shared_models import CallbackOutcome, PaymentProvider, PaymentStatus


class PaymentIntentCreate(BaseModel):
    """Fields of a new intent."""

    model_config = ConfigDict(use_enum_values=True)

    tenant_id: UUID
    plan_code: str
    amount_minor: int = Field(..., gt=0)
    currency: str
    provider: PaymentProvider = PaymentProvider.TBC


class PaymentIntent(BaseModel):
    """Stored intent as returned to its tenant."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    provider: str
    plan_code: str
    amount_minor: int
    currency: str
    status: PaymentStatus
    external_payment_id: Optional[str] = None
    approval_url: Optional[str] = None
    requires_review: bool = False
    created_at: datetime
    modified_at: datetime


class CheckoutRequest(BaseModel):
    """Checkout request from the cabinet."""

    plan_code: str


class CheckoutResponse(BaseModel):
    """Where to send the payer."""

    payment_intent_id: UUID
    external_payment_id: str
    approval_url: str


class GatewayPayment(BaseModel):
    """Gateway answer to a create-payment call."""

    external_id: str
    approval_url: str
    initial_status: str


class GatewayPaymentDetails(BaseModel):
    """Gateway answer to a status query."""

    external_id: str
    status: str
    raw: dict[str, Any] = Field(default_factory=dict)


class GatewayCallbackPayload(BaseModel):
    """Inbound callback body. The payment id is the only field we trust."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    payment_id: Optional[str] = Field(None, alias="PaymentId")


class ReconcileResult(BaseModel):
    """Outcome of reconciling one external payment id."""

    matched: bool
    outcome: CallbackOutcome
    payment_intent_id: Optional[UUID] = None
    previous_status: Optional[PaymentStatus] = None
    status: Optional[PaymentStatus] = None
    activated: bool = False


class CallbackAck(BaseModel):
    """Acknowledgment returned to the gateway. Always ok."""

    ok: bool = True
    matched: bool = False
    ignored: bool = False
    outcome: CallbackOutcome
    status: Optional[PaymentStatus] = None
    reason: Optional[str] = None
