from fastapi import APIRouter, Depends, Response, status

from streamcoin.core.security import VerifiedIdentity
from streamcoin.deps import get_current_user, get_identity
from streamcoin.models.user import UserAccount
from streamcoin.services import users as user_service

router = APIRouter()


@router.post("/setupNewUser")
async def setup_new_user(response: Response, identity: VerifiedIdentity = Depends(get_identity)):
    """Create the caller's profile with the starting bonus; safe to call repeatedly."""
    user, created = await user_service.setup_new_user(identity)
    if not created:
        return {"success": True, "message": "User profile already exists."}
    response.status_code = status.HTTP_201_CREATED
    return {
        "success": True,
        "message": f"User profile created with {user.coins} bonus coins.",
        "user": user_service.public_profile(user),
    }


@router.get("/users/me")
async def me(user: UserAccount = Depends(get_current_user)):
    """Return the caller's profile and coin balance."""
    return user_service.public_profile(user)
