"""Billing core for docbill.

This package holds the quota reservation and payment reconciliation engine:
- Static plan catalog
- Quota ledger owning subscriptions and free-trial grants
- Document sequencer for collision-free numbers
- Payment intent state machine and the reconciliation service around it

Usage:
    from docbill.billing import quota_ledger

    result = await quota_ledger.reserve(db, tenant_id, ResourceKind.INVOICE, caller_ip)
"""

from docbill.billing.quota_ledger import quota_ledger
from docbill.billing.reconciliation import reconciliation_service
from docbill.billing.sequencer import document_sequencer

__all__ = [
    "document_sequencer",
    "quota_ledger",
    "reconciliation_service",
]
