"""Tenant context for API requests.

Authentication happens upstream; by the time a request reaches this service the
gateway in front of it has resolved the tenant and forwards it in headers.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from docbill.core.logging import ContextualLogger


class ApiContext(BaseModel):
    """Request id, tenant identity and a logger carrying both."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    request_id: str
    tenant_id: UUID
    registration_id: Optional[str] = None

    logger: ContextualLogger
