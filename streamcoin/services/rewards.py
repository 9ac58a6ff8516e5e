"""Coins granted for watching a rewarded ad."""

from streamcoin.core.audit import log_event
from streamcoin.core.config import get_settings
from streamcoin.core.exceptions import RateLimitedError
from streamcoin.core.logging import get_logger
from streamcoin.services import ledger
from streamcoin.services.rate_limit import claim_ad_reward_slot, release_ad_reward_slot

log = get_logger(__name__)


async def grant_ad_reward(user_id: str, redis) -> dict:
    settings = get_settings()
    count = await claim_ad_reward_slot(redis, user_id, settings.ad_rewards_per_day)
    if count is None:
        raise RateLimitedError("Daily ad reward limit reached.")
    try:
        balance = await ledger.credit(user_id, settings.ad_reward_coins)
    except Exception:
        await release_ad_reward_slot(redis, user_id)
        raise
    log.info("ad_reward_granted", user_id=user_id, coins=settings.ad_reward_coins, count_today=count)
    await log_event(user_id, "ad_reward_granted", "user", user_id, {"coins": settings.ad_reward_coins})
    return {
        "coinsGranted": settings.ad_reward_coins,
        "balance": balance,
        "rewardsRemainingToday": settings.ad_rewards_per_day - count,
    }
