"""LiveKit access tokens (HS256 JWT with a video grant)."""

import time
import uuid

import jwt

from streamcoin.core.config import Settings
from streamcoin.core.exceptions import AppError


class LiveKitTokenIssuer:
    def __init__(self, api_key: str, api_secret: str, ttl_seconds: int = 6 * 3600):
        self.api_key = api_key
        self.api_secret = api_secret
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "LiveKitTokenIssuer":
        return cls(settings.livekit_api_key, settings.livekit_api_secret, settings.livekit_token_ttl_seconds)

    def mint(
        self,
        identity: str,
        room: str,
        can_publish: bool = True,
        can_subscribe: bool = True,
        name: str | None = None,
    ) -> str:
        """Signed grant letting `identity` join `room`."""
        if not self.api_key or not self.api_secret:
            raise AppError("Call service not configured", code="MEDIA_NOT_CONFIGURED")
        now = int(time.time())
        payload = {
            "iss": self.api_key,
            "sub": identity,
            "nbf": now,
            "exp": now + self.ttl_seconds,
            "jti": str(uuid.uuid4()),
            "video": {
                "room": room,
                "roomJoin": True,
                "canPublish": can_publish,
                "canSubscribe": can_subscribe,
            },
        }
        if name:
            payload["name"] = name
        return jwt.encode(payload, self.api_secret, algorithm="HS256")
