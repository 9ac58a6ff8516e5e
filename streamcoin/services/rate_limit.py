"""Per-user daily counters in Redis (rewarded-ad grants)."""

from datetime import datetime

KEY_PREFIX = "rewards:ad_count"
TTL_SECONDS = 25 * 3600  # 25 hours so key expires after the day


def _key(user_id: str) -> str:
    date = datetime.utcnow().strftime("%Y-%m-%d")
    return f"{KEY_PREFIX}:{user_id}:{date}"


async def claim_ad_reward_slot(redis, user_id: str, daily_cap: int) -> int | None:
    """Increment today's count; None when the cap was already reached (the slot is given back)."""
    key = _key(user_id)
    n = await redis.incr(key)
    if n == 1:
        await redis.expire(key, TTL_SECONDS)
    if n > daily_cap:
        await redis.decr(key)
        return None
    return n


async def release_ad_reward_slot(redis, user_id: str) -> None:
    await redis.decr(_key(user_id))
