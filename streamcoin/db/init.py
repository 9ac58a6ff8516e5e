import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from streamcoin.core.config import get_settings
from streamcoin.models.audit_log import AuditLog
from streamcoin.models.failed_job import FailedJob
from streamcoin.models.recharge_transaction import RechargeTransaction
from streamcoin.models.user import UserAccount

DOCUMENT_MODELS = [
    UserAccount,
    RechargeTransaction,
    AuditLog,
    FailedJob,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client() -> AsyncIOMotorClient | None:
    """Client registered by init_db; sessions for transactions come from here."""
    return _client


async def init_db(database: AsyncIOMotorDatabase | None = None) -> None:
    """Register document models. Pass a database to reuse an existing client (tests)."""
    global _client
    if database is not None:
        _client = getattr(database, "client", None)
        await init_beanie(database=database, document_models=DOCUMENT_MODELS)
        return
    settings = get_settings()
    kwargs = {
        "serverSelectionTimeoutMS": settings.mongodb_timeout_ms,
        "socketTimeoutMS": settings.mongodb_timeout_ms,
        "connectTimeoutMS": settings.mongodb_timeout_ms,
    }
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    _client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    await init_beanie(database=_client[settings.mongodb_db_name], document_models=DOCUMENT_MODELS)
