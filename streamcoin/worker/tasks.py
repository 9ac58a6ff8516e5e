"""ARQ job definitions."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from streamcoin.core.config import get_settings
from streamcoin.core.logging import configure_logging, get_logger
from streamcoin.services.gateway import PesapalClient

log = get_logger(__name__)


async def _run_with_dlq(job_name: str, job_id: str | None, payload: dict[str, Any], coro):
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        return await coro
    except Exception as e:
        from streamcoin.models.failed_job import FailedJob
        fid = job_id or str(uuid.uuid4())
        await FailedJob(
            job_name=job_name,
            job_id=fid,
            payload=payload,
            error_type=type(e).__name__,
            error=str(e)[:2000],
        ).insert()
        log.exception("job_failed", job=job_name, job_id=fid, error=str(e))
        raise


async def reconcile_stale_transactions(ctx: dict[str, Any]) -> dict[str, int]:
    """Cron job: reconcile PENDING recharges whose IPN was lost."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    from streamcoin.worker.cron import sweep_stale_transactions
    return await _run_with_dlq(
        "reconcile_stale_transactions", job_id, {}, sweep_stale_transactions(ctx["gateway"])
    )


async def startup(ctx: dict) -> None:
    from streamcoin.db.init import init_db
    settings = get_settings()
    configure_logging(debug=settings.debug)
    await init_db()
    ctx["gateway"] = PesapalClient.from_settings(settings)


async def shutdown(ctx: dict) -> None:
    gateway = ctx.get("gateway")
    if gateway is not None:
        await gateway.aclose()


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
