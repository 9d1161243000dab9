"""
Module 'pricing': catalogue statique + moteur de calcul pur.
Partagé par le serveur (endpoints /api/pricing) et le client de session (intake_client).
"""

from .catalog import PricingTier, DocumentType, DOCUMENT_TYPES, get_document_type, get_document_categories
from .engine import (
    PricingConfig,
    OrderLineItem,
    BreakdownRow,
    OrderCalculation,
    EMPTY_CALCULATION,
    calculate,
    estimate_processing_hours,
    estimate_processing_time,
    round_money,
    to_minor_units,
)

__all__ = [
    # catalog
    "PricingTier",
    "DocumentType",
    "DOCUMENT_TYPES",
    "get_document_type",
    "get_document_categories",
    # engine
    "PricingConfig",
    "OrderLineItem",
    "BreakdownRow",
    "OrderCalculation",
    "EMPTY_CALCULATION",
    "calculate",
    "estimate_processing_hours",
    "estimate_processing_time",
    "round_money",
    "to_minor_units",
]
