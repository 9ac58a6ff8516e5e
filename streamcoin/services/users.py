from pymongo.errors import DuplicateKeyError

from streamcoin.core.audit import log_event
from streamcoin.core.config import get_settings
from streamcoin.core.logging import get_logger
from streamcoin.core.security import VerifiedIdentity
from streamcoin.models.user import UserAccount

log = get_logger(__name__)


async def setup_new_user(identity: VerifiedIdentity) -> tuple[UserAccount, bool]:
    """Create the profile with the starting bonus once. Returns (user, created)."""
    existing = await UserAccount.get(identity.user_id)
    if existing:
        return existing, False
    bonus = get_settings().starting_bonus_coins
    user = UserAccount(id=identity.user_id, email=identity.email or "", coins=bonus)
    try:
        await user.insert()
    except DuplicateKeyError:
        # Concurrent first call won the insert; the bonus was granted there
        return await UserAccount.get(identity.user_id), False
    log.info("user_created", user_id=user.id, email=user.email, coins=bonus)
    await log_event(user.id, "user_created", "user", user.id, {"starting_bonus": bonus})
    return user, True


def public_profile(user: UserAccount) -> dict:
    return {
        "uid": user.id,
        "email": user.email,
        "username": user.username,
        "profilePictureUrl": user.profile_picture_url,
        "subscriptionTier": user.subscription_tier,
        "coins": user.coins,
        "isLive": user.is_live,
    }
