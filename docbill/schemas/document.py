"""Document schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from docbill.core.shared_models import ResourceKind, ReservationMode


class DocumentCreateRequest(BaseModel):
    """Body of an invoice/act creation request."""

    counterparty_tax_id: str = Field(..., min_length=1, max_length=50)
    purpose: Optional[str] = None
    amount_minor: Optional[int] = Field(None, ge=0)


class DocumentCreate(BaseModel):
    """Fields persisted for a new document, apart from its number."""

    model_config = ConfigDict(use_enum_values=True)

    tenant_id: UUID
    kind: ResourceKind
    counterparty_tax_id: str
    purpose: Optional[str] = None
    amount_minor: Optional[int] = None


class Document(BaseModel):
    """Stored document."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: ResourceKind
    number: str
    counterparty_tax_id: str
    purpose: Optional[str] = None
    amount_minor: Optional[int] = None
    created_at: datetime


class DocumentCreated(BaseModel):
    """Response of document creation."""

    document: Document
    reservation_mode: ReservationMode
