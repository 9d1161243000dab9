"""
Vérification cryptographique des confirmations de paiement.

- verify_payment_signature: HMAC-SHA256(key_secret, "<order_id>|<payment_id>") en hexadécimal.
- verify_webhook_signature: HMAC-SHA256(webhook_secret, corps brut de la requête).
Les comparaisons se font en temps constant (hmac.compare_digest). Aucune des deux fonctions
ne lève d'exception: toute entrée mal formée retourne False.
"""
import hashlib
import hmac
from typing import Optional

from backend import config


def compute_signature(message: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _matches(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def verify_payment_signature(order_id, payment_id, signature, secret: Optional[str] = None) -> bool:
    secret = secret if secret is not None else config.RAZORPAY_KEY_SECRET
    if not all(isinstance(v, str) and v for v in (order_id, payment_id, signature, secret)):
        return False
    try:
        expected = compute_signature(f"{order_id}|{payment_id}".encode("utf-8"), secret)
        return _matches(expected, signature)
    except (UnicodeError, TypeError, ValueError):
        return False


def verify_webhook_signature(body, signature, secret: Optional[str] = None) -> bool:
    secret = secret if secret is not None else config.RAZORPAY_WEBHOOK_SECRET
    if not isinstance(body, (bytes, bytearray)) or not isinstance(signature, str) or not signature or not secret:
        return False
    try:
        return _matches(compute_signature(bytes(body), secret), signature)
    except (UnicodeError, TypeError, ValueError):
        return False
