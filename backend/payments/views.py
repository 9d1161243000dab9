import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from backend.errors import IntakeError
from backend.utils.rate_limit import optional_rate_limit
from backend.payments import service as payments_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payment", tags=["Payments API"])


class CreateOrderRequest(BaseModel):
    amount: Any = None
    currency: Optional[str] = None
    receipt: Optional[str] = None
    notes: Dict[str, Any] = Field(default_factory=dict)


class VerifyPaymentRequest(BaseModel):
    paymentId: Optional[str] = None
    orderId: Optional[str] = None
    signature: Optional[str] = None


# module backend.payments.views
@router.post("/create-order", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_order(body: CreateOrderRequest):
    """
    Crée une commande passerelle pour le montant total d'une commande.
    - Entrée JSON: { "amount": <paise>, "currency": "INR", "receipt": "...", "notes": {...} }
    - Erreurs: 400 si montant/devise invalide, 502 si la passerelle échoue
    """
    try:
        order = payments_service.create_payment_order(
            amount=body.amount, currency=body.currency, receipt=body.receipt, notes=body.notes
        )
        return {"success": True, **order}
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur create_order")
        raise HTTPException(status_code=500, detail="Failed to create order")


@router.post("/verify", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
def verify_payment(body: VerifyPaymentRequest):
    """
    Vérifie la signature HMAC d'un paiement (orderId|paymentId) et l'enregistre comme payé.
    - Réponse 200 uniquement si la signature est valide
    """
    try:
        result = payments_service.verify_payment(
            payment_id=body.paymentId, order_id=body.orderId, signature_value=body.signature
        )
        return {"success": True, **result}
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur verify_payment")
        raise HTTPException(status_code=500, detail="Payment verification failed")


@router.get("/status/{payment_id}")
def payment_status(payment_id: str):
    try:
        return {"success": True, "payment": payments_service.get_payment_status(payment_id)}
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur payment_status")
        raise HTTPException(status_code=500, detail="Failed to fetch payment status")


@router.post("/webhook", include_in_schema=False)
async def webhook(request: Request, x_razorpay_signature: Optional[str] = Header(default=None)):
    """
    Webhook passerelle: vérifie la signature sur le corps brut puis applique l'événement.
    - payment.captured / order.paid / payment.failed traités de façon idempotente
    - Réponses: {"success": true, "status": "ok" | "ignored", "event": ..., "applied": bool}
    """
    raw = await request.body()
    try:
        event_type, applied = payments_service.apply_webhook_event(raw, x_razorpay_signature)
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur webhook")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    if event_type not in payments_service.PAID_EVENTS | payments_service.FAILED_EVENTS:
        return {"success": True, "status": "ignored", "event": event_type}
    return {"success": True, "status": "ok", "event": event_type, "applied": applied}


@router.get("/config")
def checkout_config():
    """Paramètres publics du checkout (clé publique, devise, marque)."""
    return {"success": True, "config": payments_service.checkout_config()}
