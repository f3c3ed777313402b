"""CRUD operations for the application."""

from .crud_document import document
from .crud_free_trial_grant import free_trial_grant
from .crud_payment_intent import payment_intent
from .crud_subscription import subscription

__all__ = [
    "document",
    "free_trial_grant",
    "payment_intent",
    "subscription",
]
