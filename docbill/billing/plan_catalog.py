"""Static plan catalog.

The table is built once at import time and exposed read-only; nothing mutates it
at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from docbill.core.exceptions import UnknownPlan
from docbill.core.shared_models import ResourceKind


class PlanCode(str, Enum):
    """Known plan codes."""

    BASIC_NO_CLIENTS = "BASIC_NO_CLIENTS"
    PRO_UNLIMITED = "PRO_UNLIMITED"
    PAYG_5_5 = "PAYG_5_5"


@dataclass(frozen=True)
class Plan:
    """One purchasable plan. A quota of None means unlimited."""

    code: PlanCode
    title: str
    price_minor: int
    duration_days: int
    invoice_quota: Optional[int]
    act_quota: Optional[int]
    allows_client_module: bool

    def quota_for(self, kind: ResourceKind) -> Optional[int]:
        """Return the quota for a resource kind."""
        if kind == ResourceKind.INVOICE:
            return self.invoice_quota
        return self.act_quota

    @property
    def price_units(self) -> float:
        """Price in major currency units, as the gateway expects it."""
        return round(self.price_minor / 100, 2)


PLANS: Mapping[PlanCode, Plan] = MappingProxyType(
    {
        PlanCode.BASIC_NO_CLIENTS: Plan(
            code=PlanCode.BASIC_NO_CLIENTS,
            title="1 month unlimited invoices & acts (no clients module)",
            price_minor=10000,
            duration_days=30,
            invoice_quota=None,
            act_quota=None,
            allows_client_module=False,
        ),
        PlanCode.PRO_UNLIMITED: Plan(
            code=PlanCode.PRO_UNLIMITED,
            title="1 month unlimited clients, invoices & acts",
            price_minor=25000,
            duration_days=30,
            invoice_quota=None,
            act_quota=None,
            allows_client_module=True,
        ),
        PlanCode.PAYG_5_5: Plan(
            code=PlanCode.PAYG_5_5,
            title="5 invoices + 5 acts (pay-as-you-go)",
            price_minor=2000,
            duration_days=30,
            invoice_quota=5,
            act_quota=5,
            allows_client_module=True,
        ),
    }
)


def get_plan(plan_code: str | PlanCode) -> Plan:
    """Look up a plan by code.

    Raises:
        UnknownPlan: If the code is not in the catalog.
    """
    try:
        return PLANS[PlanCode(plan_code)]
    except (KeyError, ValueError):
        raise UnknownPlan(str(getattr(plan_code, "value", plan_code))) from None


def list_plans() -> list[Plan]:
    """All plans in catalog order."""
    return list(PLANS.values())
