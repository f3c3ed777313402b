"""Billable document model (invoices and acts)."""

from typing import Optional

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from docbill.models._base import Base, TenantMixin


class Document(TenantMixin, Base):
    """Numbered invoice or act.

    Only the fields the numbering needs are modelled; rendering and delivery
    data belong to the document service.
    """

    __tablename__ = "document"

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    number: Mapped[str] = mapped_column(String(200), nullable=False)
    counterparty_tax_id: Mapped[str] = mapped_column(String(50), nullable=False)
    purpose: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    amount_minor: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (UniqueConstraint("tenant_id", "number", name="uq_document_tenant_number"),)
