from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from streamcoin.core.security import VerifiedIdentity
from streamcoin.deps import get_identity, get_media_issuer
from streamcoin.services import calls as calls_service
from streamcoin.services.media import LiveKitTokenIssuer

router = APIRouter()


class CallTokenRequest(BaseModel):
    roomName: str
    participantIdentity: str


class ChargeDurationRequest(BaseModel):
    # Validated by the service so the message names the field and its rule
    durationInSeconds: Any = None


@router.post("/livekit-token")
async def livekit_token(
    body: CallTokenRequest,
    identity: VerifiedIdentity = Depends(get_identity),
    issuer: LiveKitTokenIssuer = Depends(get_media_issuer),
):
    """Mint a LiveKit token if the caller can afford at least one minute."""
    token = await calls_service.request_session_token(
        identity.user_id, body.roomName, body.participantIdentity, issuer
    )
    return {"token": token}


@router.post("/charge-duration")
async def charge_duration(body: ChargeDurationRequest, identity: VerifiedIdentity = Depends(get_identity)):
    """Charge a finished call by the started minute."""
    result = await calls_service.charge_duration(identity.user_id, body.durationInSeconds)
    return {"success": True, **result}
