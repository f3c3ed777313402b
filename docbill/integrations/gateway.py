"""Payment gateway interface."""

from abc import ABC, abstractmethod

from docbill.schemas.payment_intent import GatewayPayment, GatewayPaymentDetails


class BasePaymentGateway(ABC):
    """Client side of an external card-payment gateway.

    Only `get_payment_status` is authoritative. Callback bodies are never trusted for
    status, they only tell us which payment to look at.
    """

    provider: str

    @abstractmethod
    async def create_payment(
        self,
        *,
        amount_minor: int,
        currency: str,
        return_url: str,
        callback_url: str,
        merchant_reference_id: str,
        caller_ip: str | None = None,
        description: str | None = None,
    ) -> GatewayPayment:
        """Register a payment and return its external id and approval URL.

        Raises:
            GatewayUnavailable: Timeout, transport error or 5xx.
            GatewayBadResponse: Rejected request or a body without the required fields.
        """

    @abstractmethod
    async def get_payment_status(
        self, external_id: str, *, retry_transient: bool = True
    ) -> GatewayPaymentDetails:
        """Return the gateway's current view of a payment, vendor vocabulary included.

        With `retry_transient=False` the client makes one short attempt; callers that
        have to answer quickly use it and leave transient failures to a later retry.
        """
