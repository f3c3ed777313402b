"""Unit tests for the TBC Checkout client, using an httpx mock transport."""

import json

import httpx
import pytest
from tenacity import stop_after_attempt, wait_none

from docbill.core.config import settings
from docbill.core.exceptions import GatewayBadResponse, GatewayUnavailable
from docbill.integrations.tbc_client import TBCCheckoutClient, pick_approval_url

TOKEN_BODY = {"access_token": "tok-1", "expires_in": 86400}


class TBCStub:
    """Routes requests to canned answers and records what was sent."""

    def __init__(self, payment_answer=None, details_answer=None):
        self.requests: list[httpx.Request] = []
        self.payment_answer = payment_answer or httpx.Response(
            200,
            json={
                "payId": "tbc-pay-1",
                "status": "Created",
                "links": [
                    {"uri": "https://ecom.tbcpayment.ge/pay/1", "rel": "approval_url"},
                ],
            },
        )
        self.details_answers = list(details_answer or [])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/tpay/access-token":
            return httpx.Response(200, json=TOKEN_BODY)
        if request.url.path == "/v1/tpay/payments" and request.method == "POST":
            return self.payment_answer
        answer = self.details_answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def make_client(stub: TBCStub, timeout: float = 5) -> TBCCheckoutClient:
    return TBCCheckoutClient(
        base_url="https://tbc.test",
        api_key="key",
        client_id="client",
        client_secret="secret",
        timeout=timeout,
        transport=httpx.MockTransport(stub),
    )


async def create(client: TBCCheckoutClient):
    return await client.create_payment(
        amount_minor=2000,
        currency="GEL",
        return_url="https://app.test/cabinet/subscription?checkout=return&intent=i-1",
        callback_url="https://api.test/billing/tbc/callback",
        merchant_reference_id="i-1",
        caller_ip="10.0.0.7",
        description="Subscription PAYG_5_5 for a very long tenant name",
    )


async def test_create_payment_sends_checkout_payload():
    stub = TBCStub()
    client = make_client(stub)

    payment = await create(client)

    assert payment.external_id == "tbc-pay-1"
    assert payment.approval_url == "https://ecom.tbcpayment.ge/pay/1"
    assert payment.initial_status == "Created"

    token_request, create_request = stub.requests
    assert token_request.headers["apikey"] == "key"
    assert b"client_id=client" in token_request.content

    body = json.loads(create_request.content)
    assert create_request.headers["Authorization"] == "Bearer tok-1"
    assert body["amount"] == {
        "currency": "GEL",
        "total": 20.0,
        "subTotal": 20.0,
        "tax": 0,
        "shipping": 0,
    }
    assert body["merchantPaymentId"] == "i-1"
    assert body["userIpAddress"] == "10.0.0.7"
    assert body["preAuth"] is False
    assert len(body["description"]) == 30


async def test_token_is_cached_between_calls():
    stub = TBCStub()
    client = make_client(stub)

    await create(client)
    await create(client)

    assert stub.paths().count("/v1/tpay/access-token") == 1


async def test_create_without_approval_link_is_a_bad_response():
    stub = TBCStub(payment_answer=httpx.Response(200, json={"payId": "p", "status": "Created"}))

    with pytest.raises(GatewayBadResponse):
        await create(make_client(stub))


async def test_create_rejected_with_4xx_is_a_bad_response():
    stub = TBCStub(payment_answer=httpx.Response(400, json={"title": "invalid amount"}))

    with pytest.raises(GatewayBadResponse) as exc_info:
        await create(make_client(stub))

    assert exc_info.value.response == {"title": "invalid amount"}


async def test_create_with_5xx_is_unavailable_and_not_retried():
    stub = TBCStub(payment_answer=httpx.Response(502, text="bad gateway"))

    with pytest.raises(GatewayUnavailable):
        await create(make_client(stub))

    assert stub.paths().count("/v1/tpay/payments") == 1


async def test_create_timeout_is_unavailable():
    def handler(request):
        if request.url.path == "/v1/tpay/access-token":
            return httpx.Response(200, json=TOKEN_BODY)
        raise httpx.ReadTimeout("timed out", request=request)

    client = TBCCheckoutClient(
        base_url="https://tbc.test",
        api_key="key",
        client_id="client",
        client_secret="secret",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(GatewayUnavailable):
        await create(client)


async def test_missing_credentials_fail_before_any_request():
    stub = TBCStub()
    client = TBCCheckoutClient(
        base_url="https://tbc.test",
        api_key="key",
        client_id="client",
        client_secret="",
        transport=httpx.MockTransport(stub),
    )
    client.client_secret = None

    with pytest.raises(GatewayUnavailable):
        await create(client)
    assert stub.requests == []


async def test_payment_status_defaults_to_unknown():
    stub = TBCStub(details_answer=[httpx.Response(200, json={"payId": "tbc-pay-1"})])

    details = await make_client(stub).get_payment_status("tbc-pay-1")

    assert details.external_id == "tbc-pay-1"
    assert details.status == "Unknown"
    assert stub.paths()[-1] == "/v1/tpay/payments/tbc-pay-1"


async def test_payment_status_retries_transient_failures():
    stub = TBCStub(
        details_answer=[
            httpx.ConnectError("connection refused"),
            httpx.Response(503, text="maintenance"),
            httpx.Response(200, json={"payId": "tbc-pay-1", "status": "Succeeded"}),
        ]
    )
    client = make_client(stub)
    fetch = TBCCheckoutClient._fetch_payment.retry_with(wait=wait_none(), stop=stop_after_attempt(3))

    details = await fetch(client, "tbc-pay-1")

    assert details.status == "Succeeded"
    assert details.raw["status"] == "Succeeded"


async def test_payment_status_does_not_retry_rejections():
    stub = TBCStub(details_answer=[httpx.Response(404, json={"title": "not found"})])

    with pytest.raises(GatewayBadResponse):
        await make_client(stub).get_payment_status("missing")

    assert stub.paths().count("/v1/tpay/payments/missing") == 1


async def test_callback_status_query_makes_one_short_attempt():
    stub = TBCStub(
        details_answer=[
            httpx.Response(503, text="maintenance"),
            httpx.Response(200, json={"payId": "tbc-pay-1", "status": "Succeeded"}),
        ]
    )
    client = make_client(stub, timeout=30)

    with pytest.raises(GatewayUnavailable):
        await client.get_payment_status("tbc-pay-1", retry_transient=False)

    assert stub.paths().count("/v1/tpay/payments/tbc-pay-1") == 1
    timeout = stub.requests[-1].extensions["timeout"]
    assert timeout["read"] == settings.GATEWAY_CALLBACK_TIMEOUT_SECONDS


def test_pick_approval_url():
    links = [
        {"uri": "https://a", "rel": "self"},
        {"uri": "https://b", "rel": "APPROVAL_URL"},
    ]
    assert pick_approval_url(links) == "https://b"
    assert pick_approval_url(None) is None
    assert pick_approval_url([{"rel": "self"}]) is None
