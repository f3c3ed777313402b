"""Plan catalog schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class PlanLimits(BaseModel):
    """Quotas of a plan. None means unlimited."""

    invoices: Optional[int] = Field(None, description="Invoices per billing cycle.")
    acts: Optional[int] = Field(None, description="Acts per billing cycle.")
    allow_clients: bool = Field(..., description="Whether the client module is included.")


class PlanInfo(BaseModel):
    """Presentation view of one catalog plan."""

    code: str
    title: str
    price_minor: int = Field(..., description="Price in minor currency units.")
    currency: str
    duration_days: int
    limits: PlanLimits
