"""Coin recharge: pending transaction, Pesapal order, checkout redirect."""

import uuid

from streamcoin.core.audit import log_event
from streamcoin.core.config import get_settings
from streamcoin.core.exceptions import AppError, RechargeInitiationError
from streamcoin.core.logging import get_logger
from streamcoin.core.pricing import PricingConfig, get_pricing
from streamcoin.services import transactions as transactions_service
from streamcoin.services.gateway import PesapalClient

log = get_logger(__name__)


def new_merchant_reference() -> str:
    return str(uuid.uuid4())


def build_order(
    reference: str,
    package_id: str,
    coins: int,
    price: float,
    currency: str,
    email: str,
    phone_number: str | None,
    ipn_id: str,
) -> dict:
    settings = get_settings()
    billing = {"email_address": email, "country_code": settings.pesapal_country_code}
    if phone_number:
        billing["phone_number"] = phone_number
    return {
        "id": reference,
        "currency": currency,
        "amount": price,
        "description": f"{coins} coins ({package_id})",
        "callback_url": settings.webhook_url,
        "notification_id": ipn_id,
        "billing_address": billing,
    }


async def initiate(
    user_id: str,
    email: str,
    package_id: str,
    gateway: PesapalClient,
    phone_number: str | None = None,
    pricing: PricingConfig | None = None,
) -> dict:
    """Create a PENDING transaction and a Pesapal order; return the checkout URL."""
    pricing = pricing or get_pricing()
    package = pricing.package(package_id)
    reference = new_merchant_reference()
    await transactions_service.create(
        reference,
        user_id=user_id,
        package_id=package_id,
        amount=package.price,
        currency=pricing.currency,
        coins=package.coins,
    )
    try:
        ipn_id = await gateway.ensure_ipn_id(get_settings().webhook_url)
        order = build_order(
            reference, package_id, package.coins, package.price, pricing.currency,
            email, phone_number, ipn_id,
        )
        response = await gateway.submit_order(order)
    except Exception as e:
        reason = e.message if isinstance(e, AppError) else str(e)
        log.error("recharge_initiation_failed", reference=reference, package_id=package_id, error=reason)
        await transactions_service.mark_failed_best_effort(reference, reason)
        raise RechargeInitiationError() from e

    tracking_id = response["order_tracking_id"]
    await transactions_service.set_tracking_id(reference, tracking_id)
    log.info("recharge_initiated", reference=reference, package_id=package_id, order_tracking_id=tracking_id)
    await log_event(
        user_id, "recharge_initiated", "recharge_transaction", reference,
        {"package_id": package_id, "amount": package.price, "coins": package.coins},
    )
    return {
        "redirectUrl": response["redirect_url"],
        "orderTrackingId": tracking_id,
        "merchantReference": reference,
    }
