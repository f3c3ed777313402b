"""Subscription schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from docbill.core.shared_models import ReservationMode
from docbill.schemas.plan import PlanInfo


class Subscription(BaseModel):
    """Stored subscription state."""

    model_config = ConfigDict(from_attributes=True)

    plan_code: str
    status: str
    valid_from: datetime
    valid_to: datetime
    invoices_used: int = Field(..., ge=0)
    acts_used: int = Field(..., ge=0)


class SubscriptionDetails(Subscription):
    """Active subscription with remaining allowance. Remaining None means unlimited."""

    invoices_remaining: Optional[int] = None
    acts_remaining: Optional[int] = None
    allow_clients: bool


class SubscriptionOverview(BaseModel):
    """What the cabinet shows on the subscription page."""

    active: bool
    subscription: Optional[SubscriptionDetails] = None
    plans: list[PlanInfo]


class ReservationResult(BaseModel):
    """Outcome of a successful reservation."""

    mode: ReservationMode
    plan_code: Optional[str] = None


class MockActivateRequest(BaseModel):
    """Dev/QA activation without payment."""

    plan_code: str


class AdminSubscriptionAction(BaseModel):
    """Admin override of a tenant subscription."""

    action: Literal["set", "extend", "cancel"]
    plan_code: Optional[str] = None
    duration_days: Optional[int] = Field(None, description="Overrides the plan duration for set.")
    extend_days: Optional[int] = None


class AdminSubscriptionResult(BaseModel):
    """Result of an admin override."""

    ok: bool = True
    action: str
    existed: Optional[bool] = None
    plan_code: Optional[str] = None
    valid_to: Optional[datetime] = None


class ClientModuleAccess(BaseModel):
    """Client module gate answer."""

    allowed: bool
    plan_code: str
