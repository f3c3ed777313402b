"""Base models for the application."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from docbill.core.datetime_utils import utc_now_naive


class Base(DeclarativeBase):
    """Base class for all models."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, nullable=False)
    modified_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, onupdate=utc_now_naive, nullable=False
    )


class TenantMixin:
    """Mixin for tenant-owned rows.

    Tenants live in the account service; only their id is stored here.
    """

    @declared_attr
    def tenant_id(cls) -> Mapped[uuid.UUID]:
        """Owning tenant id."""
        return mapped_column(Uuid, nullable=False, index=True)
