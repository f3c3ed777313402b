"""Shared enums for the service."""

from enum import Enum


class ResourceKind(str, Enum):
    """Metered resource kinds."""

    INVOICE = "invoice"
    ACT = "act"


class SubscriptionStatus(str, Enum):
    """Stored subscription status."""

    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"


class PaymentStatus(str, Enum):
    """Payment intent lifecycle status."""

    CREATED = "CREATED"
    REDIRECT_REQUIRED = "REDIRECT_REQUIRED"
    WAITING_CONFIRM = "WAITING_CONFIRM"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


class PaymentProvider(str, Enum):
    """External payment providers."""

    TBC = "TBC"


class ReservationMode(str, Enum):
    """Which entitlement paid for a reservation."""

    SUBSCRIPTION = "subscription"
    FREE_TRIAL = "free_trial"


class CallbackOutcome(str, Enum):
    """How a gateway callback was handled. None of these are errors for the gateway."""

    PROCESSED = "processed"
    UNCHANGED = "unchanged"
    UNMATCHED = "unmatched"
    IGNORED = "ignored"
    DEFERRED = "deferred"
