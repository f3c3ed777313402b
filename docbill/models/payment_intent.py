"""Payment intent model."""

from typing import Optional

from sqlalchemy import JSON, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from docbill.core.shared_models import PaymentProvider, PaymentStatus
from docbill.models._base import Base, TenantMixin


class PaymentIntent(TenantMixin, Base):
    """Our own record of one checkout attempt against the payment gateway."""

    __tablename__ = "payment_intent"

    provider: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentProvider.TBC.value
    )
    plan_code: Mapped[str] = mapped_column(String(50), nullable=False)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PaymentStatus.CREATED.value
    )

    # Assigned once by the gateway, never rewritten
    external_payment_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, unique=True
    )
    approval_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    last_callback_payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    last_gateway_status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    requires_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_payment_intent_status_modified", "status", "modified_at"),)
