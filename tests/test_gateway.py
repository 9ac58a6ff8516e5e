"""Pesapal client and token cache over httpx.MockTransport."""

import json

import httpx
import pytest

from streamcoin.core.exceptions import GatewayAuthError, GatewayRequestError
from streamcoin.services.gateway import GatewayTokenCache, PesapalClient, normalize_status


BASE = "https://pesapal.test/v3"


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_client(handler, clock=None, ipn_id="ipn-1") -> PesapalClient:
    http = httpx.AsyncClient(base_url=BASE, transport=httpx.MockTransport(handler))
    return PesapalClient(
        BASE, "key", "secret", ipn_id=ipn_id, http_client=http,
        token_validity_seconds=290, clock=clock or Clock(),
    )


class PesapalStub:
    """Minimal Pesapal: token endpoint plus configurable order/status answers."""

    def __init__(self):
        self.token_requests = 0
        self.requests: list[httpx.Request] = []
        self.status_body = {
            "payment_status_description": "Completed",
            "status_code": 1,
            "merchant_reference": "ref-1",
            "error": {"error_type": None, "code": None, "message": None, "call_back_url": None},
        }
        self.order_body = {
            "order_tracking_id": "trk-1",
            "merchant_reference": "ref-1",
            "redirect_url": "https://pay.test/redirect",
            "error": None,
            "status": "200",
        }
        self.order_status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/api/Auth/RequestToken"):
            self.token_requests += 1
            return httpx.Response(200, json={"token": f"tok-{self.token_requests}", "status": "200", "error": None})
        if path.endswith("/api/Transactions/SubmitOrderRequest"):
            return httpx.Response(self.order_status_code, json=self.order_body)
        if path.endswith("/api/Transactions/GetTransactionStatus"):
            return httpx.Response(200, json=self.status_body)
        if path.endswith("/api/URLSetup/RegisterIPN"):
            return httpx.Response(200, json={"ipn_id": "ipn-registered", "url": json.loads(request.content)["url"]})
        return httpx.Response(404)


async def test_token_cache_reuses_until_expiry():
    clock = Clock()
    calls = []

    async def fetch():
        calls.append(clock.now)
        return f"t{len(calls)}"

    cache = GatewayTokenCache(fetch, validity_seconds=290, clock=clock)
    assert await cache.get_token() == "t1"
    clock.now += 289
    assert await cache.get_token() == "t1"
    clock.now += 1
    assert await cache.get_token() == "t2"
    assert len(calls) == 2


async def test_token_cache_invalidate_forces_refresh():
    n = 0

    async def fetch():
        nonlocal n
        n += 1
        return f"t{n}"

    cache = GatewayTokenCache(fetch, clock=Clock())
    await cache.get_token()
    cache.invalidate()
    assert await cache.get_token() == "t2"


async def test_token_cache_failure_keeps_nothing():
    async def fetch():
        raise GatewayAuthError()

    cache = GatewayTokenCache(fetch, clock=Clock())
    with pytest.raises(GatewayAuthError):
        await cache.get_token()
    assert not cache.is_valid


async def test_calls_share_one_token():
    stub = PesapalStub()
    client = make_client(stub)
    await client.get_transaction_status("trk-1")
    await client.get_transaction_status("trk-1")
    assert stub.token_requests == 1
    status_request = stub.requests[-1]
    assert status_request.headers["Authorization"] == "Bearer tok-1"
    assert status_request.url.params["orderTrackingId"] == "trk-1"


async def test_auth_non_2xx_raises_gateway_auth_error():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    client = make_client(handler)
    with pytest.raises(GatewayAuthError):
        await client.get_token()


async def test_auth_without_token_raises():
    def handler(request):
        return httpx.Response(200, json={"token": None, "error": {"code": "invalid_consumer_key_or_secret_provided"}})

    client = make_client(handler)
    with pytest.raises(GatewayAuthError):
        await client.get_token()


async def test_auth_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = make_client(handler)
    with pytest.raises(GatewayAuthError):
        await client.get_token()


async def test_submit_order_returns_redirect():
    stub = PesapalStub()
    client = make_client(stub)
    data = await client.submit_order({"id": "ref-1", "amount": 20.0})
    assert data["redirect_url"] == "https://pay.test/redirect"
    sent = json.loads(stub.requests[-1].content)
    assert sent == {"id": "ref-1", "amount": 20.0}


async def test_submit_order_error_block_raises():
    stub = PesapalStub()
    stub.order_body = {"error": {"error_type": "api_error", "code": "invalid_amount", "message": "bad"}}
    client = make_client(stub)
    with pytest.raises(GatewayRequestError):
        await client.submit_order({"id": "ref-1"})


async def test_unauthorized_response_drops_cached_token():
    stub = PesapalStub()
    stub.order_status_code = 401
    client = make_client(stub)
    with pytest.raises(GatewayRequestError):
        await client.submit_order({"id": "ref-1"})
    assert not client.token_cache.is_valid


async def test_status_with_error_block_is_still_a_status():
    stub = PesapalStub()
    stub.status_body = {
        "payment_status_description": "Failed",
        "status_code": 2,
        "error": {"error_type": "api_error", "code": "payment_details_not_found", "message": "Pending Payment"},
    }
    client = make_client(stub)
    data = await client.get_transaction_status("trk-1")
    assert normalize_status(data) == "failed"


async def test_status_without_any_status_raises():
    stub = PesapalStub()
    stub.status_body = {"error": {"code": "x"}}
    client = make_client(stub)
    with pytest.raises(GatewayRequestError):
        await client.get_transaction_status("trk-1")


async def test_ensure_ipn_id_registers_once():
    stub = PesapalStub()
    client = make_client(stub, ipn_id="")
    assert await client.ensure_ipn_id("https://api.test/api/recharge/webhook") == "ipn-registered"
    assert await client.ensure_ipn_id("https://api.test/api/recharge/webhook") == "ipn-registered"
    registrations = [r for r in stub.requests if r.url.path.endswith("RegisterIPN")]
    assert len(registrations) == 1


def test_normalize_status_falls_back_to_code():
    assert normalize_status({"payment_status_description": " COMPLETED "}) == "completed"
    assert normalize_status({"status_code": 2}) == "failed"
    assert normalize_status({"status_code": 0}) == "invalid"
    assert normalize_status({}) == "pending"
