"""
Pesapal IPN handling.

Notifications arrive at least once, possibly duplicated or out of order. The
payload only says "something changed for this order"; the outcome is always
read back from Pesapal's status endpoint. Crediting is tied to the
PENDING -> COMPLETED flip, which is a single conditional update, so a merchant
reference credits coins at most once however many notifications arrive.
"""

from datetime import datetime

from streamcoin.core.audit import log_event
from streamcoin.core.logging import get_logger
from streamcoin.db.transactions import atomic
from streamcoin.models.recharge_transaction import COMPLETED, FAILED, RechargeTransaction
from streamcoin.services import ledger
from streamcoin.services import transactions as transactions_service
from streamcoin.services.gateway import PesapalClient, normalize_status

log = get_logger(__name__)

IPN_CHANGE = "IPNCHANGE"
SUCCESS_STATUSES = frozenset({"completed"})
FAILURE_STATUSES = frozenset({"failed", "invalid", "cancelled"})

# Outcomes returned to callers (route, stale sweep) and logged
IGNORED = "ignored"
UNKNOWN = "unknown_reference"
ALREADY_PROCESSED = "already_processed"
CREDITED = "completed"
MARKED_FAILED = "failed"
STILL_PENDING = "pending"
MISMATCH = "reference_mismatch"


def registration_ack() -> dict:
    """Body Pesapal expects when it checks the IPN URL with a GET."""
    return {
        "order_notification_type": "GET",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "status": "200",
        "message": "Callback URL successfully registered",
    }


def notification_ack(payload: dict, status: int = 200) -> dict:
    return {
        "orderNotificationType": payload.get("OrderNotificationType"),
        "orderTrackingId": payload.get("OrderTrackingId"),
        "orderMerchantReference": payload.get("OrderMerchantReference"),
        "status": status,
    }


async def handle_notification(payload: dict, gateway: PesapalClient) -> str:
    notification_type = payload.get("OrderNotificationType")
    reference = payload.get("OrderMerchantReference")
    tracking_id = payload.get("OrderTrackingId")
    if notification_type != IPN_CHANGE:
        log.info("ipn_ignored", notification_type=notification_type, reference=reference)
        return IGNORED
    if not reference or not tracking_id:
        log.warning("ipn_incomplete", reference=reference, order_tracking_id=tracking_id)
        return IGNORED
    return await reconcile(reference, tracking_id, gateway)


async def reconcile(reference: str, tracking_id: str, gateway: PesapalClient) -> str:
    """Bring one transaction in line with Pesapal's authoritative status."""
    tx = await transactions_service.find(reference)
    if tx is None:
        log.warning("ipn_unknown_reference", reference=reference, order_tracking_id=tracking_id)
        return UNKNOWN
    if tx.is_terminal:
        log.info("ipn_already_processed", reference=reference, status=tx.status)
        return ALREADY_PROCESSED
    if tx.order_tracking_id and tx.order_tracking_id != tracking_id:
        log.warning(
            "ipn_tracking_id_mismatch",
            reference=reference,
            order_tracking_id=tracking_id,
            stored_tracking_id=tx.order_tracking_id,
        )
        return MISMATCH

    data = await gateway.get_transaction_status(tracking_id)
    status = normalize_status(data)
    gateway_reference = data.get("merchant_reference")
    if gateway_reference and gateway_reference != reference:
        log.warning(
            "ipn_reference_mismatch",
            reference=reference,
            gateway_reference=gateway_reference,
            order_tracking_id=tracking_id,
        )
        return MISMATCH

    if status in SUCCESS_STATUSES:
        return await _complete(tx, tracking_id, status, data)
    if status in FAILURE_STATUSES:
        return await _fail(tx, tracking_id, status, data)
    log.info("ipn_still_pending", reference=reference, gateway_status=status)
    return STILL_PENDING


async def _complete(tx: RechargeTransaction, tracking_id: str, status: str, data: dict) -> str:
    async with atomic() as session:
        won = await transactions_service.transition_if_pending(
            tx.id, COMPLETED, session=session, order_tracking_id=tracking_id, gateway_status=status
        )
        if not won:
            log.info("ipn_already_processed", reference=tx.id)
            return ALREADY_PROCESSED
        try:
            balance = await ledger.credit(tx.user_id, tx.coins, session=session)
        except Exception:
            if session is None:
                # No transaction to abort: put the record back so a redelivery retries
                await transactions_service.revert_to_pending(tx.id, COMPLETED)
            raise
        await log_event(
            tx.user_id, "payment_completed", "recharge_transaction", tx.id,
            {
                "coins": tx.coins,
                "amount": tx.amount,
                "order_tracking_id": tracking_id,
                "confirmation_code": data.get("confirmation_code"),
            },
            session=session,
        )
    log.info("payment_completed", reference=tx.id, user_id=tx.user_id, coins=tx.coins, balance=balance)
    return CREDITED


async def _fail(tx: RechargeTransaction, tracking_id: str, status: str, data: dict) -> str:
    reason = data.get("description") or status
    won = await transactions_service.transition_if_pending(
        tx.id, FAILED, order_tracking_id=tracking_id, gateway_status=status, failure_reason=str(reason)[:500]
    )
    if not won:
        log.info("ipn_already_processed", reference=tx.id)
        return ALREADY_PROCESSED
    log.info("payment_failed", reference=tx.id, user_id=tx.user_id, gateway_status=status)
    await log_event(
        tx.user_id, "payment_failed", "recharge_transaction", tx.id,
        {"gateway_status": status, "order_tracking_id": tracking_id},
    )
    return MARKED_FAILED
