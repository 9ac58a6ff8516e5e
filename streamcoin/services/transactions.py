"""Recharge transactions keyed by merchant reference."""

from datetime import datetime
from typing import Any

from pymongo.errors import DuplicateKeyError

from streamcoin.core.exceptions import BadRequestError, ConflictError, NotFoundError
from streamcoin.core.logging import get_logger
from streamcoin.models.recharge_transaction import (
    COMPLETED,
    FAILED,
    PENDING,
    RechargeTransaction,
)

log = get_logger(__name__)

STATUSES = (PENDING, COMPLETED, FAILED)


def _transactions():
    return RechargeTransaction.get_motor_collection()


async def create(
    reference: str,
    *,
    user_id: str,
    package_id: str,
    amount: float,
    currency: str,
    coins: int,
) -> RechargeTransaction:
    """Insert a PENDING record. The reference is the _id, so reuse is rejected by the store."""
    tx = RechargeTransaction(
        id=reference,
        user_id=user_id,
        package_id=package_id,
        amount=amount,
        currency=currency,
        coins=coins,
        status=PENDING,
    )
    try:
        await tx.insert()
    except DuplicateKeyError as e:
        raise ConflictError("Transaction reference already exists", details={"reference": reference}) from e
    return tx


async def find(reference: str, session=None) -> RechargeTransaction | None:
    return await RechargeTransaction.get(reference, session=session)


async def get(reference: str, session=None) -> RechargeTransaction:
    tx = await find(reference, session=session)
    if not tx:
        raise NotFoundError("Transaction not found")
    return tx


def _status_update(new_status: str, extra: dict[str, Any]) -> dict:
    if new_status not in STATUSES:
        raise BadRequestError(f"Invalid transaction status: {new_status}")
    fields = {"status": new_status, **extra}
    if new_status != PENDING:
        fields.setdefault("processed_at", datetime.utcnow())
    return {"$set": fields}


async def transition(reference: str, new_status: str, session=None, **extra: Any) -> None:
    """Set status unconditionally. Callers check the current status first."""
    result = await _transactions().update_one(
        {"_id": reference}, _status_update(new_status, extra), session=session
    )
    if result.matched_count == 0:
        raise NotFoundError("Transaction not found")


async def transition_if_pending(reference: str, new_status: str, session=None, **extra: Any) -> bool:
    """
    Move a PENDING transaction to new_status in one conditional update.
    Returns False when the record is already terminal (another writer won).
    """
    result = await _transactions().update_one(
        {"_id": reference, "status": PENDING}, _status_update(new_status, extra), session=session
    )
    return result.modified_count == 1


async def revert_to_pending(reference: str, from_status: str) -> bool:
    """Undo a conditional flip whose companion writes failed (no-transaction mode only)."""
    result = await _transactions().update_one(
        {"_id": reference, "status": from_status},
        {"$set": {"status": PENDING, "processed_at": None}},
    )
    return result.modified_count == 1


async def set_tracking_id(reference: str, order_tracking_id: str) -> None:
    await _transactions().update_one(
        {"_id": reference}, {"$set": {"order_tracking_id": order_tracking_id}}
    )


async def mark_failed_best_effort(reference: str, reason: str) -> None:
    """Compensating action after a failed order submission. Never raises; failures are only logged."""
    try:
        await transition_if_pending(reference, FAILED, failure_reason=reason[:500])
    except Exception as e:
        # The transaction stays PENDING; the stale sweep picks it up later
        log.error("mark_failed_error", reference=reference, error=str(e))


async def list_pending_before(cutoff: datetime, limit: int = 100) -> list[RechargeTransaction]:
    return (
        await RechargeTransaction.find(
            RechargeTransaction.status == PENDING,
            RechargeTransaction.created_at <= cutoff,
        )
        .sort(+RechargeTransaction.created_at)
        .limit(limit)
        .to_list()
    )
