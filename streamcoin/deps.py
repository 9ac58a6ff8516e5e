"""Shared FastAPI dependencies."""

from functools import lru_cache

import redis.asyncio as aioredis
from fastapi import Depends, Request

from streamcoin.core.config import get_settings
from streamcoin.core.exceptions import NotFoundError
from streamcoin.core.logging import bind_user_id
from streamcoin.core.security import FirebaseIdentityVerifier, VerifiedIdentity, extract_bearer_token
from streamcoin.models.user import UserAccount
from streamcoin.services.gateway import PesapalClient
from streamcoin.services.media import LiveKitTokenIssuer


@lru_cache
def get_identity_verifier() -> FirebaseIdentityVerifier:
    return FirebaseIdentityVerifier.from_settings(get_settings())


@lru_cache
def get_gateway() -> PesapalClient:
    """Process-wide Pesapal client; its token cache is shared by every request."""
    return PesapalClient.from_settings(get_settings())


@lru_cache
def get_media_issuer() -> LiveKitTokenIssuer:
    return LiveKitTokenIssuer.from_settings(get_settings())


@lru_cache
def get_redis() -> aioredis.Redis:
    return aioredis.from_url(get_settings().redis_url, decode_responses=True)


async def get_identity(
    request: Request,
    verifier: FirebaseIdentityVerifier = Depends(get_identity_verifier),
) -> VerifiedIdentity:
    """Dependency: verify the Authorization bearer token."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    identity = await verifier.verify(token)
    bind_user_id(identity.user_id)
    return identity


async def get_current_user(identity: VerifiedIdentity = Depends(get_identity)) -> UserAccount:
    """Dependency: verified caller's profile; 404 until setupNewUser has run."""
    user = await UserAccount.get(identity.user_id)
    if not user:
        raise NotFoundError("User profile not found.")
    return user
