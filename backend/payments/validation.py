"""
Règles de validation d'une commande passerelle (partagées serveur/client).
"""
from typing import Any

from backend.errors import ValidationError

SUPPORTED_CURRENCY = "INR"


def validate_order_amount(amount: Any, currency: Any, supported_currency: str = SUPPORTED_CURRENCY) -> None:
    """
    - amount: entier strictement positif en unités mineures (paise); bool et float refusés
    - currency: unique devise supportée
    Soulève ValidationError avec un message affichable.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount should be a positive integer in paise")
    if currency != supported_currency:
        raise ValidationError(f"Only {supported_currency} currency is supported")
