"""
Module 'payments' (feature-first): point d'entrée public.
Réunit client passerelle, vérification de signature, repository JSON et services.
"""

from .razorpay_client import require_razorpay, create_order, fetch_payment
from .signature import compute_signature, verify_payment_signature, verify_webhook_signature
from .validation import SUPPORTED_CURRENCY, validate_order_amount
from .repository import record_order_created, get_order, record_payment, find_paid, list_order_records
from .service import (
    create_payment_order,
    verify_payment,
    get_payment_status,
    apply_webhook_event,
    is_payment_settled,
    checkout_config,
)

__all__ = [
    # passerelle
    "require_razorpay",
    "create_order",
    "fetch_payment",
    # signature
    "compute_signature",
    "verify_payment_signature",
    "verify_webhook_signature",
    # validation
    "SUPPORTED_CURRENCY",
    "validate_order_amount",
    # repository
    "record_order_created",
    "get_order",
    "record_payment",
    "find_paid",
    "list_order_records",
    # services
    "create_payment_order",
    "verify_payment",
    "get_payment_status",
    "apply_webhook_event",
    "is_payment_settled",
    "checkout_config",
]
