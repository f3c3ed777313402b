"""Schemas for the application."""

from .document import Document, DocumentCreate, DocumentCreated, DocumentCreateRequest
from .payment_intent import (
    CallbackAck,
    CheckoutRequest,
    CheckoutResponse,
    GatewayCallbackPayload,
    GatewayPayment,
    GatewayPaymentDetails,
    PaymentIntent,
    PaymentIntentCreate,
    ReconcileResult,
)
from .plan import PlanInfo, PlanLimits
from .subscription import (
    AdminSubscriptionAction,
    AdminSubscriptionResult,
    ClientModuleAccess,
    MockActivateRequest,
    ReservationResult,
    Subscription,
    SubscriptionDetails,
    SubscriptionOverview,
)
