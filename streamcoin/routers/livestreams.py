from fastapi import APIRouter, Depends, Query

from streamcoin.core.security import VerifiedIdentity
from streamcoin.deps import get_current_user, get_identity
from streamcoin.models.user import UserAccount
from streamcoin.services import livestreams as livestreams_service

router = APIRouter()


@router.post("/start")
async def start_live(user: UserAccount = Depends(get_current_user)):
    await livestreams_service.start(user)
    return {"success": True, "message": "User is now live."}


@router.post("/stop")
async def stop_live(identity: VerifiedIdentity = Depends(get_identity)):
    await livestreams_service.stop(identity.user_id)
    return {"success": True, "message": "User has stopped being live."}


@router.get("")
async def list_live(
    identity: VerifiedIdentity = Depends(get_identity),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Users currently live (oldest profiles first)."""
    live_users = await livestreams_service.list_live(limit=limit, offset=offset)
    return {"success": True, "liveUsers": live_users, "limit": limit, "offset": offset}
