"""Models for the application."""

from .document import Document
from .free_trial_grant import FreeTrialGrant
from .payment_intent import PaymentIntent
from .subscription import Subscription

__all__ = [
    "Document",
    "FreeTrialGrant",
    "PaymentIntent",
    "Subscription",
]
