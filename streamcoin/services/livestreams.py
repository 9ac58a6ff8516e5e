"""Live presence flag on the user profile."""

from streamcoin.core.exceptions import ForbiddenError, NotFoundError
from streamcoin.core.logging import get_logger
from streamcoin.models.user import UserAccount

log = get_logger(__name__)

LIVE_TIERS = ("vip",)


async def _set_live(user_id: str, is_live: bool) -> None:
    result = await UserAccount.get_motor_collection().update_one(
        {"_id": user_id}, {"$set": {"is_live": is_live}}
    )
    if result.matched_count == 0:
        raise NotFoundError("User profile not found.")


async def start(user: UserAccount) -> None:
    if user.subscription_tier not in LIVE_TIERS:
        raise ForbiddenError("A VIP subscription is required to go live.")
    await _set_live(user.id, True)
    log.info("livestream_started", user_id=user.id)


async def stop(user_id: str) -> None:
    await _set_live(user_id, False)
    log.info("livestream_stopped", user_id=user_id)


async def list_live(limit: int = 50, offset: int = 0) -> list[dict]:
    users = (
        await UserAccount.find(UserAccount.is_live == True)  # noqa: E712
        .sort(+UserAccount.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )
    return [
        {"uid": u.id, "username": u.username, "profilePictureUrl": u.profile_picture_url}
        for u in users
    ]
