from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from streamcoin.core.logging import get_logger
from streamcoin.core.pricing import get_pricing
from streamcoin.core.security import VerifiedIdentity
from streamcoin.deps import get_gateway, get_identity
from streamcoin.services import recharge as recharge_service
from streamcoin.services import webhooks as webhooks_service
from streamcoin.services.gateway import PesapalClient

router = APIRouter()
log = get_logger(__name__)


class InitiateRechargeRequest(BaseModel):
    packageId: str
    phoneNumber: str | None = None


@router.get("/packages")
async def list_packages():
    """Coin packages currently on sale."""
    pricing = get_pricing()
    return {
        "version": pricing.version,
        "currency": pricing.currency,
        "packages": [
            {"packageId": pid, "coins": p.coins, "price": p.price}
            for pid, p in pricing.packages.items()
        ],
    }


@router.post("/initiate")
async def initiate_recharge(
    body: InitiateRechargeRequest,
    identity: VerifiedIdentity = Depends(get_identity),
    gateway: PesapalClient = Depends(get_gateway),
):
    """Start a Pesapal payment for a coin package; the client opens redirectUrl."""
    return await recharge_service.initiate(
        identity.user_id,
        identity.email or "",
        body.packageId,
        gateway,
        phone_number=body.phoneNumber,
    )


@router.get("/webhook")
async def pesapal_ipn_registration():
    """Pesapal calls this when the IPN URL is registered."""
    log.info("ipn_url_check")
    return webhooks_service.registration_ack()


@router.post("/webhook")
async def pesapal_ipn(request: Request, gateway: PesapalClient = Depends(get_gateway)):
    """Pesapal IPN. Any failure answers 500 so Pesapal delivers the notification again."""
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        log.warning("ipn_malformed_body")
        payload = {}
    try:
        outcome = await webhooks_service.handle_notification(payload, gateway)
    except Exception as e:
        log.exception("ipn_processing_failed", reference=payload.get("OrderMerchantReference"), error=str(e))
        return ORJSONResponse(status_code=500, content=webhooks_service.notification_ack(payload, 500))
    return {**webhooks_service.notification_ack(payload, 200), "outcome": outcome}
