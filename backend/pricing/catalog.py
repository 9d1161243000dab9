"""
Catalogue statique: types de documents et niveaux de service (tiers).
Données de référence immuables, lues au runtime par le moteur de tarification.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


class PricingTier(str, Enum):
    STANDARD = "Standard"
    EXPRESS = "Express"
    PREMIUM = "Premium"

    @property
    def multiplier(self) -> Decimal:
        return _TIER_MULTIPLIERS[self]

    @property
    def speed_factor(self) -> Decimal:
        return _TIER_SPEED_FACTORS[self]

    @classmethod
    def parse(cls, value) -> Optional["PricingTier"]:
        """Retourne le tier correspondant (nom exact, insensible à la casse) ou None."""
        if isinstance(value, cls):
            return value
        name = str(value or "").strip().lower()
        return next((t for t in cls if t.value.lower() == name), None)


_TIER_MULTIPLIERS = {
    PricingTier.STANDARD: Decimal("1.0"),
    PricingTier.EXPRESS: Decimal("1.5"),
    PricingTier.PREMIUM: Decimal("2.0"),
}

_TIER_SPEED_FACTORS = {
    PricingTier.STANDARD: Decimal("1.0"),
    PricingTier.EXPRESS: Decimal("0.67"),
    PricingTier.PREMIUM: Decimal("0.5"),
}


@dataclass(frozen=True)
class DocumentType:
    id: str
    name: str
    base_price: Decimal
    category: str
    processing_hours: Tuple[int, int]
    udin_required: bool

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "basePrice": float(self.base_price),
            "category": self.category,
            "processingTime": f"{self.processing_hours[0]}-{self.processing_hours[1]}",
            "udinRequired": self.udin_required,
        }


DOCUMENT_TYPES: Tuple[DocumentType, ...] = (
    DocumentType("balance-sheet", "Balance Sheet Certification", Decimal("500"), "Financial Statements", (24, 48), True),
    DocumentType("profit-loss", "Profit & Loss Statement", Decimal("500"), "Financial Statements", (24, 48), True),
    DocumentType("cash-flow", "Cash Flow Statement", Decimal("600"), "Financial Statements", (24, 48), True),
    DocumentType("tax-audit-report", "Tax Audit Report (3CA/3CB)", Decimal("2500"), "Audit & Assurance", (72, 96), True),
    DocumentType("stock-audit", "Stock Audit Report", Decimal("1800"), "Audit & Assurance", (48, 72), True),
    DocumentType("net-worth", "Net Worth Certificate", Decimal("1000"), "Certificates", (24, 48), True),
    DocumentType("turnover", "Turnover Certificate", Decimal("800"), "Certificates", (24, 48), True),
    DocumentType("fund-utilisation", "Fund Utilisation Certificate", Decimal("1200"), "Certificates", (48, 72), True),
    DocumentType("gst-reconciliation", "GST Reconciliation Review", Decimal("1500"), "Tax Compliance", (48, 72), False),
    DocumentType("itr-review", "ITR Document Review", Decimal("300"), "Tax Compliance", (12, 24), False),
)

_BY_ID: Dict[str, DocumentType] = {d.id: d for d in DOCUMENT_TYPES}


def get_document_type(document_type_id: str) -> Optional[DocumentType]:
    return _BY_ID.get(str(document_type_id or "").strip())


def get_document_categories() -> List[str]:
    """Catégories dans l'ordre d'apparition du catalogue."""
    categories: List[str] = []
    for doc in DOCUMENT_TYPES:
        if doc.category not in categories:
            categories.append(doc.category)
    return categories
