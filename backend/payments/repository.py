"""
Accès aux données pour la feature 'payments' (registre JSON append-only, clé: id de commande passerelle).
- Un enregistrement 'created' par commande passerelle créée.
- Un enregistrement 'paid' / 'failed' par paiement, idempotent sur (paymentId, status).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from backend import config
from backend.infra.record_store import JsonRecordStore, get_store

logger = logging.getLogger(__name__)

# module backend.payments.repository
def _store() -> JsonRecordStore:
    return get_store(config.RECORDS_DIR / "payment-records.json")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def record_order_created(order: Dict[str, Any]) -> Dict[str, Any]:
    record = {
        "orderId": order.get("id"),
        "status": "created",
        "amount": order.get("amount"),
        "currency": order.get("currency"),
        "receipt": order.get("receipt"),
        "notes": order.get("notes") or {},
        "recordedAt": _now(),
    }
    return _store().append(record)


def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    return _store().find(lambda r: r.get("orderId") == order_id and r.get("status") == "created")


def record_payment(
    *,
    order_id: str,
    payment_id: str,
    status: str,
    source: str,
    amount: Optional[int] = None,
    currency: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    Enregistre l'état d'un paiement. Idempotent: un second appel pour le même (paymentId, status)
    retourne l'enregistrement existant et created=False.
    """
    if amount is None:
        created_order = get_order(order_id) or {}
        amount = created_order.get("amount")
        currency = currency or created_order.get("currency")
    record = {
        "orderId": order_id,
        "paymentId": payment_id,
        "status": status,
        "amount": amount,
        "currency": currency,
        "source": source,
        "recordedAt": _now(),
    }
    return _store().append_if_absent(
        record,
        lambda r: r.get("paymentId") == payment_id and r.get("status") == status,
    )


def find_paid(payment_id: str) -> Optional[Dict[str, Any]]:
    return _store().find(lambda r: r.get("paymentId") == payment_id and r.get("status") == "paid")


def list_order_records(order_id: str) -> List[Dict[str, Any]]:
    return _store().filter(lambda r: r.get("orderId") == order_id)
