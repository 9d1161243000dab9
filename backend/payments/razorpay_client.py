"""
Adaptateur passerelle (API REST Razorpay): centralise les appels HTTP et la configuration.
"""
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from backend import config
from backend.errors import GatewayError

logger = logging.getLogger(__name__)

# module backend.payments.razorpay_client
def require_razorpay() -> Tuple[str, str]:
    """
    Retourne les identifiants (key_id, key_secret) prêts à l'emploi.
    - Lus dans backend.config à chaque appel (surchargeables en tests).
    - Soulève GatewayError si la passerelle n'est pas configurée.
    """
    key_id, key_secret = config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET
    if not key_id or not key_secret:
        raise GatewayError("Payment gateway is not configured")
    return key_id, key_secret


def _error_description(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = (body or {}).get("error") or {}
    return error.get("description") or f"HTTP {response.status_code}"


def _call(method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    auth = require_razorpay()
    url = f"{config.RAZORPAY_API_URL}{path}"
    try:
        response = requests.request(method, url, json=payload, auth=auth, timeout=config.GATEWAY_TIMEOUT)
    except requests.RequestException as e:
        logger.warning("razorpay %s %s unreachable: %s", method, path, e)
        raise GatewayError("Payment gateway unreachable, please try again") from e
    if response.status_code >= 400:
        description = _error_description(response)
        logger.warning("razorpay %s %s rejected status=%s: %s", method, path, response.status_code, description)
        raise GatewayError(f"Payment gateway rejected the request: {description}")
    return response.json()


def create_order(*, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Crée une commande passerelle.
    - amount: entier en unités mineures (paise)
    - notes: clés/valeurs converties en chaînes (contrainte de l'API)
    Retour: dict commande (ex: {"id": "order_...", "status": "created", "amount": 50000, ...})
    """
    payload = {
        "amount": amount,
        "currency": currency,
        "receipt": receipt,
        "notes": {str(k): str(v) for k, v in (notes or {}).items()},
    }
    return _call("POST", "/orders", payload)


def fetch_payment(payment_id: str) -> Dict[str, Any]:
    """Récupère un paiement par son identifiant (statut, montant, devise...)."""
    return _call("GET", f"/payments/{payment_id}")
