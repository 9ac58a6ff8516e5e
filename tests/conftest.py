import asyncio
import os
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory Mongo has no sessions, so run without multi-document transactions
os.environ.setdefault("MONGODB_TRANSACTIONS", "false")
os.environ.setdefault("MONGODB_DB_NAME", "streamcoin_test")
os.environ.setdefault("PUBLIC_BASE_URL", "https://api.streamcoin.test")
os.environ.setdefault("LIVEKIT_API_KEY", "lk-test-key")
os.environ.setdefault("LIVEKIT_API_SECRET", "lk-test-secret-at-least-32-characters")
os.environ.setdefault("PESAPAL_IPN_ID", "ipn-test")
os.environ.setdefault("OVER_DEBIT_POLICY", "clamp")


class FakeGateway:
    """Stands in for PesapalClient: records orders, answers status queries from a table."""

    def __init__(self):
        self.submitted: list[dict] = []
        self.status_calls: list[str] = []
        self.statuses: dict[str, str] = {}
        # order_tracking_id -> merchant reference echoed by the status endpoint
        self.references: dict[str, str] = {}
        self.default_status = "Completed"
        self.submit_error: Exception | None = None
        self.status_error: Exception | None = None

    async def ensure_ipn_id(self, url: str) -> str:
        return "ipn-test"

    async def submit_order(self, order: dict[str, Any]) -> dict:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(order)
        tracking_id = f"trk-{len(self.submitted)}"
        self.references.setdefault(tracking_id, order["id"])
        return {
            "order_tracking_id": tracking_id,
            "merchant_reference": order["id"],
            "redirect_url": f"https://pay.pesapal.test/iframe?OrderTrackingId={tracking_id}",
            "error": None,
            "status": "200",
        }

    def track(self, order_tracking_id: str, reference: str) -> None:
        """Make the status endpoint echo `reference` for an order created outside submit_order."""
        self.references[order_tracking_id] = reference

    async def get_transaction_status(self, order_tracking_id: str) -> dict:
        self.status_calls.append(order_tracking_id)
        await asyncio.sleep(0)  # let concurrent deliveries interleave
        if self.status_error is not None:
            raise self.status_error
        return {
            "payment_status_description": self.statuses.get(order_tracking_id, self.default_status),
            "merchant_reference": self.references.get(order_tracking_id),
            "confirmation_code": "CONF123",
        }


class FakeVerifier:
    """Accepts tokens of the form 'token-<uid>'."""

    def __init__(self):
        self.emails: dict[str, str | None] = {}

    async def verify(self, token: str):
        from streamcoin.core.exceptions import InvalidTokenError
        from streamcoin.core.security import VerifiedIdentity
        if not token.startswith("token-"):
            raise InvalidTokenError("Unauthorized: Invalid token.")
        uid = token[len("token-"):]
        return VerifiedIdentity(user_id=uid, email=self.emails.get(uid, f"{uid}@example.com"))


class FakeRedis:
    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def decr(self, key):
        self.values[key] = self.values.get(key, 0) - 1
        return self.values[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True


def auth(uid: str) -> dict[str, str]:
    return {"Authorization": f"Bearer token-{uid}"}


@pytest_asyncio.fixture
async def db():
    from mongomock_motor import AsyncMongoMockClient

    from streamcoin.db.init import init_db
    client = AsyncMongoMockClient()
    await init_db(client["streamcoin_test"])
    yield client


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def make_user(db):
    from streamcoin.models.user import UserAccount

    async def _make(uid: str = "user-1", coins: int = 0, **fields) -> UserAccount:
        user = UserAccount(id=uid, email=f"{uid}@example.com", coins=coins, **fields)
        await user.insert()
        return user

    return _make


@pytest_asyncio.fixture
async def client(db, gateway, verifier, redis) -> AsyncGenerator[AsyncClient, None]:
    from streamcoin import deps
    from streamcoin.main import app
    app.dependency_overrides[deps.get_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_identity_verifier] = lambda: verifier
    app.dependency_overrides[deps.get_redis] = lambda: redis
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
