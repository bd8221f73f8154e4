from __future__ import annotations

import hashlib
import hmac

from app.db import settings


class InvalidPaymentSignature(Exception):
    """The gateway signature does not match the order/payment pair."""


class PaymentVerificationError(Exception):
    """Signature could not be checked (misconfiguration)."""


def payment_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    message = f"{gateway_order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str,
    payment_id: str,
    signature: str,
    secret: str | None = None,
) -> None:
    secret = secret if secret is not None else settings.razorpay_key_secret
    if not secret:
        raise PaymentVerificationError("RAZORPAY_KEY_SECRET is not configured")
    expected = payment_signature(gateway_order_id, payment_id, secret)
    if not hmac.compare_digest(expected, signature or ""):
        raise InvalidPaymentSignature("Payment verification failed: Invalid signature.")
