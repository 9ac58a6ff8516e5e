"""Cron: settle recharge transactions whose IPN never arrived."""

from collections import Counter
from datetime import datetime, timedelta

from streamcoin.core.config import get_settings
from streamcoin.core.logging import get_logger
from streamcoin.models.recharge_transaction import FAILED
from streamcoin.services import transactions as transactions_service
from streamcoin.services.gateway import PesapalClient
from streamcoin.services.webhooks import ALREADY_PROCESSED, reconcile

log = get_logger(__name__)

ABANDONED = "abandoned"
WAITING = "waiting"
ERROR = "error"


async def sweep_stale_transactions(gateway: PesapalClient, now: datetime | None = None) -> dict[str, int]:
    """
    PENDING transactions older than the stale threshold are reconciled through
    the same path as an IPN. Ones that never got a tracking id (order submission
    failed and the FAILED mark was lost) are failed after the abandon threshold.
    """
    settings = get_settings()
    now = now or datetime.utcnow()
    stale_cutoff = now - timedelta(minutes=settings.stale_pending_minutes)
    abandon_cutoff = now - timedelta(minutes=settings.abandon_untracked_minutes)
    outcomes: Counter = Counter()
    for tx in await transactions_service.list_pending_before(stale_cutoff):
        if tx.order_tracking_id:
            try:
                outcome = await reconcile(tx.id, tx.order_tracking_id, gateway)
            except Exception as e:
                log.warning("stale_reconcile_failed", reference=tx.id, error=str(e))
                outcome = ERROR
        elif tx.created_at <= abandon_cutoff:
            won = await transactions_service.transition_if_pending(
                tx.id, FAILED, failure_reason="Order was never accepted by the gateway"
            )
            outcome = ABANDONED if won else ALREADY_PROCESSED
        else:
            outcome = WAITING
        outcomes[outcome] += 1
    if outcomes:
        log.info("stale_transactions_swept", **outcomes)
    return dict(outcomes)
