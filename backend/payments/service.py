"""
Cas d'usage 'payments': orchestre validation, passerelle, signature et repository.
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

from backend import config
from backend.errors import ValidationError, VerificationError
from . import razorpay_client
from . import repository
from . import signature
from .validation import validate_order_amount

logger = logging.getLogger(__name__)

PAID_EVENTS = {"payment.captured", "order.paid"}
FAILED_EVENTS = {"payment.failed"}


def create_payment_order(
    *,
    amount: Any,
    currency: Any,
    receipt: Any,
    notes: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Valide la demande puis crée la commande côté passerelle et l'enregistre ('created').
    - Champs requis: amount, currency, receipt
    - amount: entier positif en paise; currency: devise unique configurée
    """
    if amount in (None, "") or not currency or not receipt:
        raise ValidationError("Missing required fields: amount, currency, receipt")
    validate_order_amount(amount, currency, config.PAYMENT_CURRENCY)

    order = razorpay_client.create_order(amount=amount, currency=currency, receipt=str(receipt), notes=notes)
    repository.record_order_created(order)
    logger.info("payments.create_order id=%s amount=%s receipt=%s", order.get("id"), amount, receipt)
    return {
        "id": order.get("id"),
        "status": order.get("status", "created"),
        "amount": order.get("amount", amount),
        "currency": order.get("currency", currency),
        "receipt": order.get("receipt", receipt),
        "notes": order.get("notes") or notes or {},
    }


def verify_payment(*, payment_id: Any, order_id: Any, signature_value: Any) -> Dict[str, Any]:
    """
    Vérifie la signature renvoyée par le checkout puis enregistre le paiement comme payé.
    - Soulève ValidationError si un champ manque, VerificationError si la signature est invalide.
    """
    if not payment_id or not order_id or not signature_value:
        raise ValidationError("Missing required fields: paymentId, orderId, signature")
    if not signature.verify_payment_signature(order_id, payment_id, signature_value):
        logger.warning("payments.verify signature mismatch order_id=%s payment_id=%s", order_id, payment_id)
        raise VerificationError("Invalid payment signature")

    _, created = repository.record_payment(order_id=order_id, payment_id=payment_id, status="paid", source="verify")
    logger.info("payments.verify ok order_id=%s payment_id=%s created=%s", order_id, payment_id, created)
    return {"paymentId": payment_id, "orderId": order_id, "message": "Payment verified successfully"}


def get_payment_status(payment_id: str) -> Dict[str, Any]:
    payment = razorpay_client.fetch_payment(payment_id)
    return {
        "id": payment.get("id", payment_id),
        "status": payment.get("status"),
        "amount": payment.get("amount"),
        "currency": payment.get("currency"),
    }


def extract_payment_entity(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extrait l'entité paiement d'un événement webhook (event.payload.payment.entity).
    Tolérant: retourne {} si absente.
    """
    payload = (event or {}).get("payload") or {}
    return ((payload.get("payment") or {}).get("entity")) or {}


def apply_webhook_event(raw_body: bytes, signature_header: Optional[str]) -> Tuple[str, bool]:
    """
    Source de vérité secondaire (hors bande), idempotente.
    - Vérifie la signature sur le corps brut, parse l'événement
    - payment.captured / order.paid -> paiement 'paid'; payment.failed -> 'failed'
    Retour: (type d'événement, applied) où applied=False si déjà connu ou ignoré.
    """
    if not signature.verify_webhook_signature(raw_body, signature_header or ""):
        raise VerificationError("Invalid webhook signature")
    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ValidationError("Invalid webhook payload")

    event_type = str((event or {}).get("event") or "")
    if event_type not in PAID_EVENTS | FAILED_EVENTS:
        logger.info("payments.webhook ignored event=%s", event_type)
        return event_type, False

    entity = extract_payment_entity(event)
    payment_id, order_id = entity.get("id"), entity.get("order_id")
    if not payment_id or not order_id:
        raise ValidationError("Webhook event without payment entity")

    status = "paid" if event_type in PAID_EVENTS else "failed"
    _, created = repository.record_payment(
        order_id=order_id,
        payment_id=payment_id,
        status=status,
        source="webhook",
        amount=entity.get("amount"),
        currency=entity.get("currency"),
    )
    logger.info("payments.webhook event=%s payment_id=%s applied=%s", event_type, payment_id, created)
    return event_type, created


def is_payment_settled(payment_id: Optional[str]) -> bool:
    return bool(payment_id) and repository.find_paid(payment_id) is not None


def paid_document_count(payment_id: str) -> Optional[int]:
    """Nombre de documents déclaré dans les notes de la commande payée (None si absent)."""
    paid = repository.find_paid(payment_id)
    order = repository.get_order(paid["orderId"]) if paid else None
    documents = ((order or {}).get("notes") or {}).get("documents")
    if documents is None:
        return None
    try:
        return int(documents)
    except (TypeError, ValueError):
        logger.warning("payment %s: unreadable document count %r", payment_id, documents)
        return None


def checkout_config() -> Dict[str, Any]:
    return {
        "keyId": config.RAZORPAY_KEY_ID,
        "currency": config.PAYMENT_CURRENCY,
        "companyName": config.COMPANY_NAME,
        "theme": {"color": config.THEME_COLOR},
    }
