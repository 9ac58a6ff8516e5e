"""Coin balance mutations. UserAccount.coins is only ever changed from here."""

from pymongo import ReturnDocument

from streamcoin.core.audit import log_event
from streamcoin.core.config import get_settings
from streamcoin.core.exceptions import BadRequestError, InsufficientFundsError, NotFoundError, StoreError
from streamcoin.core.logging import get_logger
from streamcoin.models.user import UserAccount

log = get_logger(__name__)

# A debit that keeps losing races with concurrent credits gives up after this many tries
MAX_DEBIT_ATTEMPTS = 5


def _users():
    return UserAccount.get_motor_collection()


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise BadRequestError(f"Invalid coin amount: {amount!r}")


async def get_balance(user_id: str, session=None) -> int:
    doc = await _users().find_one({"_id": user_id}, {"coins": 1}, session=session)
    if doc is None:
        raise NotFoundError("User profile not found.")
    return doc.get("coins", 0)


async def credit(user_id: str, amount: int, session=None) -> int:
    """Server-side increment of the user's coins; returns the balance after."""
    _check_amount(amount)
    doc = await _users().find_one_and_update(
        {"_id": user_id},
        {"$inc": {"coins": amount}},
        projection={"coins": 1},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if doc is None:
        raise NotFoundError("User profile not found.")
    return doc["coins"]


async def debit(
    user_id: str,
    amount: int,
    session=None,
    policy: str | None = None,
) -> tuple[int, int]:
    """
    Take coins from a user. Returns (coins_debited, balance_after).

    The full debit only applies while the balance covers it. Otherwise the
    over-debit policy decides: "clamp" takes what is left and leaves 0,
    "reject" leaves the balance alone and raises InsufficientFundsError.
    The balance is never written below zero.
    """
    _check_amount(amount)
    policy = policy or get_settings().over_debit_policy
    users = _users()
    for _ in range(MAX_DEBIT_ATTEMPTS):
        doc = await users.find_one_and_update(
            {"_id": user_id, "coins": {"$gte": amount}},
            {"$inc": {"coins": -amount}},
            projection={"coins": 1},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is not None:
            return amount, doc["coins"]

        available = await get_balance(user_id, session=session)
        if available >= amount:
            # a credit landed between the two reads
            continue
        if policy == "reject":
            log.warning("over_debit_rejected", user_id=user_id, requested=amount, available=available)
            await log_event(
                user_id, "over_debit_rejected", "user", user_id,
                {"requested": amount, "available": available},
                session=session,
            )
            raise InsufficientFundsError(details={"required": amount, "available": available})

        clamped = await users.find_one_and_update(
            {"_id": user_id, "coins": available},
            {"$set": {"coins": 0}},
            projection={"coins": 1},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if clamped is not None:
            log.warning("over_debit_clamped", user_id=user_id, requested=amount, debited=available)
            await log_event(
                user_id, "over_debit_clamped", "user", user_id,
                {"requested": amount, "debited": available},
                session=session,
            )
            return available, 0
    raise StoreError("Balance kept changing; debit not applied")
