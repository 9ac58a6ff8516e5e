"""Bearer token verification against Firebase Authentication."""

import asyncio
from dataclasses import dataclass

import firebase_admin
from firebase_admin import auth as fb_auth
from firebase_admin import credentials as fb_credentials

from streamcoin.core.config import Settings
from streamcoin.core.exceptions import InvalidTokenError, UnauthorizedError
from streamcoin.core.logging import get_logger

log = get_logger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass
class VerifiedIdentity:
    user_id: str
    email: str | None = None


def extract_bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Unauthorized: No token provided.")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise UnauthorizedError("Unauthorized: No token provided.")
    return token


class FirebaseIdentityVerifier:
    def __init__(self, app: firebase_admin.App | None = None):
        self._app = app

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirebaseIdentityVerifier":
        try:
            app = firebase_admin.get_app()
        except ValueError:
            if settings.google_application_credentials:
                cred = fb_credentials.Certificate(settings.google_application_credentials)
            else:
                cred = fb_credentials.ApplicationDefault()
            options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
            app = firebase_admin.initialize_app(cred, options)
        return cls(app)

    async def verify(self, token: str) -> VerifiedIdentity:
        """Decode an ID token; email is looked up on the account when the token lacks it."""
        try:
            claims = await asyncio.to_thread(fb_auth.verify_id_token, token, self._app)
        except Exception as e:
            raise InvalidTokenError("Unauthorized: Invalid token.") from e
        uid = claims["uid"]
        email = claims.get("email")
        if not email:
            try:
                record = await asyncio.to_thread(fb_auth.get_user, uid, self._app)
                email = record.email
            except Exception as e:
                log.warning("email_backfill_failed", user_id=uid, error=str(e))
        return VerifiedIdentity(user_id=uid, email=email)
