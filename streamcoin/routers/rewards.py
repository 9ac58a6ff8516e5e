from fastapi import APIRouter, Depends

from streamcoin.core.security import VerifiedIdentity
from streamcoin.deps import get_identity, get_redis
from streamcoin.services import rewards as rewards_service

router = APIRouter()


@router.post("/grant-ad-reward")
async def grant_ad_reward(identity: VerifiedIdentity = Depends(get_identity), redis=Depends(get_redis)):
    """Credit coins for a watched rewarded ad (daily cap per user)."""
    result = await rewards_service.grant_ad_reward(identity.user_id, redis)
    return {"success": True, **result}
