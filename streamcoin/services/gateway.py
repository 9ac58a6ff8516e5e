"""Pesapal v3 API client and its cached bearer credential."""

import time
from typing import Any, Awaitable, Callable

import httpx

from streamcoin.core.config import Settings
from streamcoin.core.exceptions import GatewayAuthError, GatewayRequestError
from streamcoin.core.logging import get_logger

log = get_logger(__name__)

# Pesapal status_code -> payment_status_description
STATUS_CODES = {0: "invalid", 1: "completed", 2: "failed", 3: "reversed"}


class GatewayTokenCache:
    """
    One bearer token per process. Refreshed lazily once its recorded expiry
    passes. Two requests racing on an expired token may both refresh; the last
    write wins and both tokens stay usable, so no lock is taken.
    """

    def __init__(
        self,
        fetch_token: Callable[[], Awaitable[str]],
        validity_seconds: float = 290,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_token = fetch_token
        self._validity = validity_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self._token) and self._expires_at is not None and self._clock() < self._expires_at

    async def get_token(self) -> str:
        if self.is_valid:
            return self._token
        issued_at = self._clock()
        token = await self._fetch_token()
        self._token = token
        self._expires_at = issued_at + self._validity
        return token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = None


def _has_error(error: Any) -> bool:
    # Pesapal sends "error": {"error_type": null, "code": null, ...} on success
    if isinstance(error, dict):
        return any(error.get(k) for k in ("error_type", "code", "message"))
    return bool(error)


def normalize_status(data: dict) -> str:
    """Lower-cased status description ('completed', 'failed', ...) from a status response."""
    desc = data.get("payment_status_description")
    if isinstance(desc, str) and desc.strip():
        return desc.strip().lower()
    return STATUS_CODES.get(data.get("status_code"), "pending")


class PesapalClient:
    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        *,
        ipn_id: str = "",
        timeout: float = 15.0,
        token_validity_seconds: float = 290,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._ipn_id = ipn_id
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )
        self.token_cache = GatewayTokenCache(self._request_token, token_validity_seconds, clock)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PesapalClient":
        return cls(
            settings.pesapal_api_url,
            settings.pesapal_consumer_key,
            settings.pesapal_consumer_secret,
            ipn_id=settings.pesapal_ipn_id,
            timeout=settings.pesapal_timeout_seconds,
            token_validity_seconds=settings.pesapal_token_validity_seconds,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request_token(self) -> str:
        try:
            resp = await self._http.post(
                "/api/Auth/RequestToken",
                json={"consumer_key": self._consumer_key, "consumer_secret": self._consumer_secret},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.error("pesapal_auth_failed", error=str(e))
            raise GatewayAuthError("Could not authenticate with Pesapal.") from e
        token = data.get("token") if isinstance(data, dict) else None
        if not token or _has_error(data.get("error")):
            log.error("pesapal_auth_failed", error=data.get("error") if isinstance(data, dict) else data)
            raise GatewayAuthError("Could not authenticate with Pesapal.")
        log.info("pesapal_token_refreshed")
        return token

    async def get_token(self) -> str:
        return await self.token_cache.get_token()

    async def _call(self, method: str, path: str, check_error: bool = True, **kwargs) -> dict:
        token = await self.get_token()
        try:
            resp = await self._http.request(
                method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
        except httpx.HTTPError as e:
            log.error("pesapal_request_failed", path=path, error=str(e))
            raise GatewayRequestError(f"Pesapal {path} unreachable") from e
        if resp.status_code == 401:
            self.token_cache.invalidate()
        if resp.is_error:
            log.error("pesapal_request_failed", path=path, status_code=resp.status_code)
            raise GatewayRequestError(
                f"Pesapal {path} returned {resp.status_code}", details={"status_code": resp.status_code}
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise GatewayRequestError(f"Pesapal {path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise GatewayRequestError(f"Pesapal {path} returned an unexpected body")
        if check_error and _has_error(data.get("error")):
            log.error("pesapal_request_failed", path=path, error=data.get("error"))
            raise GatewayRequestError(f"Pesapal {path} rejected the request", details={"error": data.get("error")})
        return data

    async def register_ipn(self, url: str) -> str:
        data = await self._call(
            "POST", "/api/URLSetup/RegisterIPN", json={"url": url, "ipn_notification_type": "POST"}
        )
        ipn_id = data.get("ipn_id")
        if not ipn_id:
            raise GatewayRequestError("Pesapal did not return an IPN id")
        log.info("pesapal_ipn_registered", ipn_id=ipn_id, url=url)
        return ipn_id

    async def ensure_ipn_id(self, url: str) -> str:
        """Configured IPN id, or register the webhook URL once and remember the id."""
        if not self._ipn_id:
            self._ipn_id = await self.register_ipn(url)
        return self._ipn_id

    async def submit_order(self, order: dict[str, Any]) -> dict:
        """Returns the gateway response; always carries redirect_url and order_tracking_id."""
        data = await self._call("POST", "/api/Transactions/SubmitOrderRequest", json=order)
        if not data.get("redirect_url") or not data.get("order_tracking_id"):
            raise GatewayRequestError("Pesapal order response missing redirect_url")
        return data

    async def get_transaction_status(self, order_tracking_id: str) -> dict:
        # Failed and pending payments come back with a populated "error" block, so
        # only a response without any status is treated as a request failure.
        data = await self._call(
            "GET",
            "/api/Transactions/GetTransactionStatus",
            check_error=False,
            params={"orderTrackingId": order_tracking_id},
        )
        if data.get("payment_status_description") is None and data.get("status_code") is None:
            log.error("pesapal_status_missing", order_tracking_id=order_tracking_id, error=data.get("error"))
            raise GatewayRequestError("Pesapal status response carried no status")
        return data
