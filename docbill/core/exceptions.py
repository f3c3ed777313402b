"""Shared exceptions module.

Every exception carries a stable `code` so clients can tell an entitlement
problem ("upgrade") from a validation problem ("fix your input").
"""

from typing import Optional

from pydantic import ValidationError


class DocbillException(Exception):
    """Base exception for docbill services."""

    code: str = "DOCBILL_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        """Create a new DocbillException instance.

        Args:
        ----
            message (str, optional): The error message. Defaults to the class message.

        """
        self.message = message or self.default_message
        super().__init__(self.message)


# Entitlement family: the caller has to pay or upgrade


class EntitlementError(DocbillException):
    """Raised when the tenant is not entitled to consume a resource."""

    code = "ENTITLEMENT_REQUIRED"
    default_message = "An active subscription is required for this action"


class QuotaExhausted(EntitlementError):
    """Raised when a finite plan quota has been fully consumed."""

    code = "QUOTA_EXHAUSTED"

    def __init__(self, resource_kind: str, limit: Optional[int] = None):
        """Create a new QuotaExhausted instance.

        Args:
        ----
            resource_kind (str): The metered resource (invoice or act).
            limit (int, optional): The plan quota that was reached.

        """
        self.resource_kind = resource_kind
        self.limit = limit
        message = f"Plan quota exhausted for {resource_kind}"
        if limit is not None:
            message += f" ({limit}/{limit} used)"
        super().__init__(message)


class FreeTrialExhausted(EntitlementError):
    """Raised when the one-time free allowance for a resource kind was already used."""

    code = "FREE_TRIAL_EXHAUSTED"

    def __init__(self, resource_kind: str):
        """Create a new FreeTrialExhausted instance."""
        self.resource_kind = resource_kind
        super().__init__(f"Free trial {resource_kind} has already been used")


class CallerKeyRequired(EntitlementError):
    """Raised when the free tier is requested without an identifying caller key."""

    code = "CALLER_KEY_REQUIRED"
    default_message = "A caller address is required to use the free trial"


class SubscriptionRequired(EntitlementError):
    """Raised when an action needs an active subscription and none exists."""

    code = "SUBSCRIPTION_REQUIRED"


class PlanForbidsClients(DocbillException):
    """Raised when the active plan does not include the client module."""

    code = "PLAN_FORBIDS_CLIENTS"

    def __init__(self, plan_code: str):
        """Create a new PlanForbidsClients instance."""
        self.plan_code = plan_code
        super().__init__(f"Plan {plan_code} does not include the client module")


# Not found family


class NotFoundException(DocbillException):
    """Exception raised when an object is not found."""

    code = "NOT_FOUND"
    default_message = "Object not found"


class SubscriptionNotFound(NotFoundException):
    """Raised when an operation needs an existing subscription row."""

    code = "SUBSCRIPTION_NOT_FOUND"
    default_message = "Subscription not found"


class PaymentIntentNotFound(NotFoundException):
    """Raised when a payment intent does not exist for the tenant."""

    code = "PAYMENT_NOT_FOUND"
    default_message = "Payment not found"


# Validation family: the caller has to fix the input


class ValidationFailed(DocbillException):
    """Raised when request input is invalid."""

    code = "VALIDATION_FAILED"
    default_message = "Invalid request"


class UnknownPlan(ValidationFailed):
    """Raised when a plan code is not in the catalog."""

    code = "UNKNOWN_PLAN"

    def __init__(self, plan_code: str):
        """Create a new UnknownPlan instance."""
        self.plan_code = plan_code
        super().__init__(f"Unknown plan: {plan_code}")


class InvalidExtension(ValidationFailed):
    """Raised when a subscription extension is not a positive number of days."""

    code = "EXTEND_DAYS_REQUIRED"
    default_message = "Extension must be a positive number of days"


# Conflicts


class NumberGenerationFailed(DocbillException):
    """Raised when a collision-free document number could not be found within the budget."""

    code = "NUMBER_GENERATION_FAILED"

    def __init__(self, prefix: str, attempts: int):
        """Create a new NumberGenerationFailed instance."""
        self.prefix = prefix
        self.attempts = attempts
        super().__init__(f"Could not allocate a number for {prefix}* after {attempts} attempts")


class SubscriptionUpdateConflict(DocbillException):
    """Raised when concurrent writers keep moving a subscription during an extension."""

    code = "SUBSCRIPTION_UPDATE_CONFLICT"
    default_message = "Subscription changed concurrently, try again"


# Gateway


class GatewayError(DocbillException):
    """Base class for payment gateway failures."""

    code = "GATEWAY_ERROR"
    retryable: bool = False


class GatewayUnavailable(GatewayError):
    """Raised on timeouts, transport errors and 5xx answers. Safe to retry."""

    code = "GATEWAY_UNAVAILABLE"
    default_message = "Payment gateway is temporarily unavailable"
    retryable = True


class GatewayBadResponse(GatewayError):
    """Raised when the gateway rejects a request or answers without required fields."""

    code = "GATEWAY_BAD_RESPONSE"
    default_message = "Payment gateway returned an unexpected response"

    def __init__(self, message: Optional[str] = None, response: Optional[dict] = None):
        """Create a new GatewayBadResponse instance.

        Args:
        ----
            message (str, optional): The error message.
            response (dict, optional): The decoded gateway body, kept for logging.

        """
        self.response = response
        super().__init__(message)


# Access


class PermissionException(DocbillException):
    """Exception raised when the caller may not perform an action."""

    code = "FORBIDDEN"
    default_message = "Caller does not have the right to perform this action"


class MockBillingDisabled(PermissionException):
    """Raised when the mock activation endpoint is used while disabled."""

    code = "MOCK_BILLING_DISABLED"
    default_message = "Mock billing is disabled"


class AdminAuthRequired(PermissionException):
    """Raised when an admin endpoint is called without the admin token."""

    code = "ADMIN_AUTH_REQUIRED"
    default_message = "Admin token missing or invalid"


def unpack_validation_error(exc: ValidationError) -> dict:
    """Unpack a Pydantic validation error into a dictionary.

    Args:
    ----
        exc (ValidationError): The Pydantic validation error.

    Returns:
    -------
        dict: The dictionary representation of the validation error.

    """
    error_messages = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        error_messages.append({field: error["msg"]})

    return {"code": ValidationFailed.code, "errors": error_messages}
