"""Paid calls: coin check before a media token is minted, per-minute charge afterwards."""

import math
from typing import Any

from streamcoin.core.audit import log_event
from streamcoin.core.exceptions import BadRequestError, ForbiddenError, InsufficientFundsError, NotFoundError
from streamcoin.core.logging import get_logger
from streamcoin.core.pricing import PricingConfig, get_pricing
from streamcoin.models.user import UserAccount
from streamcoin.services import ledger
from streamcoin.services.media import LiveKitTokenIssuer

log = get_logger(__name__)

# Longest call that can be billed in one charge (7 days)
MAX_CALL_SECONDS = 7 * 24 * 3600


async def request_session_token(
    user_id: str,
    room_name: str,
    participant_identity: str,
    issuer: LiveKitTokenIssuer,
    pricing: PricingConfig | None = None,
) -> str:
    if participant_identity != user_id:
        raise ForbiddenError("You can only request a call token for yourself.")
    if not room_name or not room_name.strip():
        raise BadRequestError("roomName is required")
    pricing = pricing or get_pricing()
    user = await UserAccount.get(user_id)
    if not user:
        raise NotFoundError("User profile not found.")
    if user.coins < pricing.call_cost_per_minute:
        raise InsufficientFundsError(
            "Insufficient coins to start a call.",
            details={"required": pricing.call_cost_per_minute, "available": user.coins},
        )
    token = issuer.mint(identity=participant_identity, room=room_name, name=user.username)
    log.info("call_token_issued", user_id=user_id, room=room_name)
    return token


def _parse_duration(duration_seconds: Any) -> float:
    if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, (int, float)):
        raise BadRequestError("durationInSeconds must be a number")
    if math.isnan(duration_seconds) or math.isinf(duration_seconds) or duration_seconds < 0:
        raise BadRequestError("durationInSeconds must be a non-negative number")
    if duration_seconds > MAX_CALL_SECONDS:
        raise BadRequestError(
            "durationInSeconds is too large", details={"max": MAX_CALL_SECONDS}
        )
    return float(duration_seconds)


def call_cost(duration_seconds: float, cost_per_minute: int) -> tuple[int, int]:
    """(minutes billed, coins) for a call; every started minute is billed."""
    minutes = math.ceil(duration_seconds / 60)
    return minutes, minutes * cost_per_minute


async def charge_duration(
    user_id: str,
    duration_seconds: Any,
    pricing: PricingConfig | None = None,
) -> dict:
    """Debit a finished call. Over-debits follow the ledger policy (clamp to 0 by default)."""
    duration = _parse_duration(duration_seconds)
    pricing = pricing or get_pricing()
    if duration == 0:
        return {"durationInSeconds": 0, "minutesBilled": 0, "coinsCharged": 0, "coinsRequested": 0}

    minutes, cost = call_cost(duration, pricing.call_cost_per_minute)
    charged, balance = await ledger.debit(user_id, cost)
    log.info("call_charged", user_id=user_id, duration=duration, minutes=minutes, requested=cost, charged=charged)
    await log_event(
        user_id, "call_charged", "user", user_id,
        {"duration_seconds": duration, "minutes": minutes, "requested": cost, "charged": charged},
    )
    return {
        "durationInSeconds": duration,
        "minutesBilled": minutes,
        "coinsRequested": cost,
        "coinsCharged": charged,
        "balance": balance,
    }
