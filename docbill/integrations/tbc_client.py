"""TBC Checkout (tpay) client.

This module wraps the TBC Checkout REST API: access token, create payment and
payment details. It maps transport failures onto the gateway error family and
leaves every business decision to the reconciliation service.
"""

import time
from typing import Any, Optional
from urllib.parse import quote

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from docbill.core.config import settings
from docbill.core.exceptions import GatewayBadResponse, GatewayUnavailable
from docbill.core.logging import LoggerConfigurator
from docbill.core.shared_models import PaymentProvider
from docbill.integrations.gateway import BasePaymentGateway
from docbill.schemas.payment_intent import GatewayPayment, GatewayPaymentDetails

logger = LoggerConfigurator.configure_logger(__name__, dimensions={"component": "tbc_client"})

DESCRIPTION_MAX_LENGTH = 30
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def pick_approval_url(links: Any) -> Optional[str]:
    """Return the `approval_url` link of a create-payment answer."""
    if not isinstance(links, list):
        return None
    for link in links:
        if isinstance(link, dict) and str(link.get("rel") or "").lower() == "approval_url":
            return link.get("uri") or None
    return None


class TBCCheckoutClient(BasePaymentGateway):
    """Client for TBC Checkout API operations."""

    provider = PaymentProvider.TBC.value

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL. Defaults to settings.
            api_key: Developer app key sent as the `apikey` header.
            client_id: Merchant client id for the access token.
            client_secret: Merchant client secret for the access token.
            timeout: Seconds allowed per HTTP call.
            transport: Custom httpx transport, used by tests.
        """
        self.base_url = (base_url or settings.TBC_TPAY_BASE_URL).rstrip("/")
        self.api_key = api_key or settings.TBC_API_KEY
        self.client_id = client_id or settings.TBC_CLIENT_ID
        self.client_secret = client_secret or settings.TBC_CLIENT_SECRET
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._transport = transport

        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def _http(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout or self.timeout, transport=self._transport
        )

    def _ensure_configured(self) -> None:
        missing = [
            name
            for name, value in (
                ("TBC_API_KEY", self.api_key),
                ("TBC_CLIENT_ID", self.client_id),
                ("TBC_CLIENT_SECRET", self.client_secret),
            )
            if not value
        ]
        if missing:
            raise GatewayUnavailable(f"TBC gateway is not configured: {', '.join(missing)} missing")

    async def _request(
        self, client: httpx.AsyncClient, method: str, path: str, **kwargs
    ) -> dict[str, Any]:
        """Send one request and decode the JSON body.

        Raises:
            GatewayUnavailable: Timeout, transport error or 5xx.
            GatewayBadResponse: 4xx or a body that is not a JSON object.
        """
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"TBC {method} {path} timed out after {self.timeout}s")
            raise GatewayUnavailable(f"TBC request timed out: {path}") from e
        except httpx.TransportError as e:
            logger.error(f"TBC {method} {path} transport error: {str(e)}")
            raise GatewayUnavailable(f"TBC request failed: {path}") from e

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"raw": response.text}

        if response.status_code >= 500:
            logger.error(f"TBC {method} {path} answered {response.status_code}")
            raise GatewayUnavailable(f"TBC answered {response.status_code} for {path}")
        if response.status_code >= 400:
            logger.error(f"TBC {method} {path} rejected with {response.status_code}: {body}")
            raise GatewayBadResponse(
                f"TBC rejected {path} with {response.status_code}",
                response=body if isinstance(body, dict) else {"raw": body},
            )
        if not isinstance(body, dict):
            raise GatewayBadResponse(f"TBC answered {path} with a non-object body")
        return body

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        """Return the cached token, fetching a new one shortly before it expires."""
        if self._token and self._token_expires_at > time.monotonic():
            return self._token

        body = await self._request(
            client,
            "POST",
            "/v1/tpay/access-token",
            data={"client_id": self.client_id, "client_secret": self.client_secret},
            headers={"apikey": self.api_key},
        )
        token = body.get("access_token")
        try:
            expires_in = int(body.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        if not token or not expires_in:
            raise GatewayBadResponse("TBC token response is missing fields", response=body)

        self._token = token
        self._token_expires_at = time.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
        return token

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "apikey": self.api_key}

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
        """Create a checkout payment. Not retried: a lost answer could mean a live payment."""
        self._ensure_configured()
        total = round(amount_minor / 100, 2)
        payload: dict[str, Any] = {
            "amount": {
                "currency": currency,
                "total": total,
                "subTotal": total,
                "tax": 0,
                "shipping": 0,
            },
            "returnurl": return_url,
            "callbackUrl": callback_url,
            "preAuth": False,
            "language": settings.GATEWAY_LANGUAGE,
            "merchantPaymentId": merchant_reference_id,
        }
        if caller_ip:
            payload["userIpAddress"] = caller_ip
        if description:
            payload["description"] = description[:DESCRIPTION_MAX_LENGTH]

        async with self._http() as client:
            token = await self._get_access_token(client)
            body = await self._request(
                client, "POST", "/v1/tpay/payments", json=payload, headers=self._auth_headers(token)
            )

        pay_id = body.get("payId")
        status = body.get("status")
        approval_url = pick_approval_url(body.get("links"))
        if not pay_id or not status or not approval_url:
            logger.error(f"TBC create payment answer is missing fields: {body}")
            raise GatewayBadResponse("TBC create payment response is missing fields", response=body)

        logger.with_context(external_payment_id=pay_id).info(
            f"Created TBC payment for {merchant_reference_id} with status {status}"
        )
        return GatewayPayment(external_id=pay_id, approval_url=approval_url, initial_status=status)

    async def get_payment_status(
        self, external_id: str, *, retry_transient: bool = True
    ) -> GatewayPaymentDetails:
        """Fetch payment details.

        Args:
            external_id: TBC payId.
            retry_transient: Retry timeouts, transport errors and 5xx answers. When False
                a single attempt is made under the shorter callback timeout.
        """
        self._ensure_configured()
        if retry_transient:
            return await self._fetch_payment(external_id)

        single_attempt = TBCCheckoutClient._fetch_payment.retry_with(stop=stop_after_attempt(1))
        return await single_attempt(
            self, external_id, timeout=settings.GATEWAY_CALLBACK_TIMEOUT_SECONDS
        )

    @retry(
        retry=retry_if_exception_type(GatewayUnavailable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _fetch_payment(
        self, external_id: str, timeout: Optional[float] = None
    ) -> GatewayPaymentDetails:
        async with self._http(timeout) as client:
            token = await self._get_access_token(client)
            body = await self._request(
                client,
                "GET",
                f"/v1/tpay/payments/{quote(external_id, safe='')}",
                headers=self._auth_headers(token),
            )

        return GatewayPaymentDetails(
            external_id=body.get("payId") or external_id,
            status=str(body.get("status") or "Unknown"),
            raw=body,
        )
