"""Subscription model."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from docbill.core.shared_models import SubscriptionStatus
from docbill.models._base import Base, TenantMixin


class Subscription(TenantMixin, Base):
    """Current plan, validity window and usage counters of one tenant.

    One row per tenant. Renewals overwrite the row in place; only the current
    state matters for quota enforcement.
    """

    __tablename__ = "subscription"

    plan_code: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value
    )
    valid_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    valid_to: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    invoices_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    acts_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("tenant_id", name="uq_subscription_tenant_id"),)
