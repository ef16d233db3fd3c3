"""Razorpay checkout: gateway order creation and payment-proof verification."""

from typing import Any

from fastapi.concurrency import run_in_threadpool

from storefront.core.config import get_settings
from storefront.core.exceptions import BadRequestError
from storefront.core.logging import get_logger
from storefront.core.security import verify_payment_signature

log = get_logger(__name__)


def _client():
    import razorpay
    settings = get_settings()
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        raise BadRequestError("Payments not configured")
    return razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))


async def create_gateway_order(amount_paise: int, receipt: str, notes: dict[str, Any] | None = None) -> dict:
    """Create a Razorpay order for amount_paise; returns the gateway's order entity."""
    client = _client()
    settings = get_settings()
    order = await run_in_threadpool(
        client.order.create,
        {
            "amount": amount_paise,
            "currency": settings.currency,
            "receipt": receipt,
            "notes": notes or {},
        },
    )
    log.info("gateway_order_created", gateway_order_id=order.get("id"), amount=amount_paise)
    return order


async def fetch_gateway_order(gateway_order_id: str) -> dict | None:
    """Razorpay order entity by id, or None if the gateway does not know it."""
    from razorpay.errors import BadRequestError as GatewayBadRequestError
    client = _client()
    try:
        return await run_in_threadpool(client.order.fetch, gateway_order_id)
    except GatewayBadRequestError:
        log.warning("gateway_order_unknown", gateway_order_id=gateway_order_id)
        return None


def verify_payment(gateway_order_id: str | None, payment_id: str | None, signature: str | None) -> bool:
    """Check a checkout payment proof against the configured key secret."""
    secret = get_settings().razorpay_key_secret
    ok = verify_payment_signature(gateway_order_id, payment_id, signature, secret)
    if not ok:
        log.warning("payment_signature_rejected", gateway_order_id=gateway_order_id, payment_id=payment_id)
    return ok


def get_public_key() -> dict:
    settings = get_settings()
    if not settings.razorpay_key_id:
        raise BadRequestError("Payments not configured")
    return {"key": settings.razorpay_key_id, "currency": settings.currency}
