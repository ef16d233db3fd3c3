import hashlib
import hmac


def payment_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "<gateway_order_id>|<payment_id>", as Razorpay signs checkout payments."""
    message = f"{gateway_order_id}|{payment_id}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_payment_signature(
    gateway_order_id: str | None,
    payment_id: str | None,
    signature: str | None,
    secret: str | None,
) -> bool:
    """True only if every field is present and the signature matches (constant-time)."""
    if not gateway_order_id or not payment_id or not signature or not secret:
        return False
    expected = payment_signature(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature)


def verify_admin_key(provided: str | None, expected: str) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
