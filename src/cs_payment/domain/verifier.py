"""Payment authenticity check.

The gateway signs `"{order_id}|{payment_id}"` with HMAC-SHA256 using the
shared secret; the hex digest arrives as the signature. Any other verifier
can be plugged in through PaymentVerifierProtocol.
"""

import hashlib
import hmac
from typing import Protocol

from src.cs_payment.domain.models import PaymentNotice


class PaymentVerifierProtocol(Protocol):
    def verify(self, notice: PaymentNotice) -> bool: ...


def sign(secret: str, external_order_id: str, external_payment_id: str) -> str:
    message = f"{external_order_id}|{external_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class HmacPaymentVerifier:
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("payment verifier secret must not be empty")
        self._secret = secret

    def verify(self, notice: PaymentNotice) -> bool:
        expected = sign(self._secret, notice.external_order_id, notice.external_payment_id)
        return hmac.compare_digest(expected, notice.signature or "")
