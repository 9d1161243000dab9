"""
Moteur de tarification pur (pas de DB, pas de HTTP).

calculate(items) -> OrderCalculation
- prix unitaire = base_price x multiplicateur du tier, arrondi au centime (ROUND_HALF_UP)
- sous-total = somme(prix unitaire x quantité) sur les lignes valides
- remise volume si quantité totale >= seuil (taux configurable)
- GST appliquée au sous-total après remise
- total = sous-total - remise + GST
Les lignes invalides (type inconnu, tier inconnu, quantité <= 0) sont ignorées et signalées
dans OrderCalculation.warnings; le calcul ne lève jamais d'exception pour une ligne.
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .catalog import DocumentType, PricingTier, get_document_type

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Montant en roupies -> paise (entier), arrondi ROUND_HALF_UP."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_decimal(value: Any, default: str = "0") -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(default)


@dataclass(frozen=True)
class PricingConfig:
    bulk_discount_threshold: int = 5
    bulk_discount_rate: Decimal = Decimal("0.10")
    tax_rate: Decimal = Decimal("0.18")

    @classmethod
    def from_values(cls, threshold: Any, discount_rate: Any, tax_rate: Any) -> "PricingConfig":
        return cls(
            bulk_discount_threshold=int(threshold),
            bulk_discount_rate=_to_decimal(discount_rate, "0.10"),
            tax_rate=_to_decimal(tax_rate, "0.18"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bulkDiscountThreshold": self.bulk_discount_threshold,
            "bulkDiscountRate": float(self.bulk_discount_rate),
            "gstRate": float(self.tax_rate),
        }


@dataclass(frozen=True)
class OrderLineItem:
    document_type_id: str
    tier: str = PricingTier.STANDARD.value
    quantity: int = 1
    file_id: Optional[str] = None
    file_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderLineItem":
        try:
            quantity = int(data.get("quantity", 1))
        except (TypeError, ValueError):
            quantity = 0
        return cls(
            document_type_id=str(data.get("documentTypeId") or data.get("document_type_id") or ""),
            tier=str(data.get("tier") or PricingTier.STANDARD.value),
            quantity=quantity,
            file_id=data.get("fileId") or data.get("file_id"),
            file_name=data.get("fileName") or data.get("file_name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "documentTypeId": self.document_type_id,
            "tier": self.tier,
            "quantity": self.quantity,
        }
        if self.file_id:
            out["fileId"] = self.file_id
        if self.file_name:
            out["fileName"] = self.file_name
        return out


@dataclass(frozen=True)
class BreakdownRow:
    document_type: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class OrderCalculation:
    subtotal: Decimal = ZERO
    bulk_discount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    breakdown: Tuple[BreakdownRow, ...] = ()
    warnings: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def total_minor_units(self) -> int:
        return to_minor_units(self.total_amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": float(self.subtotal),
            "bulkDiscount": float(self.bulk_discount),
            "taxAmount": float(self.tax_amount),
            "totalAmount": float(self.total_amount),
            "breakdown": [
                {
                    "documentType": row.document_type,
                    "quantity": row.quantity,
                    "unitPrice": float(row.unit_price),
                    "totalPrice": float(row.total_price),
                }
                for row in self.breakdown
            ],
        }


EMPTY_CALCULATION = OrderCalculation()


def _resolve(item: Any, position: int, lookup) -> Tuple[Optional[DocumentType], Optional[PricingTier], Optional[str]]:
    if not isinstance(item, OrderLineItem):
        return None, None, f"Item {position}: not a line item"
    doc = lookup(item.document_type_id)
    if doc is None:
        return None, None, f"Item {position}: unknown document type '{item.document_type_id}'"
    tier = PricingTier.parse(item.tier)
    if tier is None:
        return None, None, f"Item {position}: unknown tier '{item.tier}'"
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
        return None, None, f"Item {position}: quantity must be positive"
    return doc, tier, None


def calculate(
    items: Iterable[OrderLineItem],
    config: Optional[PricingConfig] = None,
    catalog: Optional[Mapping[str, DocumentType]] = None,
) -> OrderCalculation:
    config = config or PricingConfig()
    lookup = catalog.get if catalog is not None else get_document_type

    subtotal = ZERO
    total_quantity = 0
    rows: List[BreakdownRow] = []
    warnings: List[str] = []

    for position, item in enumerate(items or [], start=1):
        doc, tier, warning = _resolve(item, position, lookup)
        if warning:
            warnings.append(warning)
            continue
        unit_price = round_money(doc.base_price * tier.multiplier)
        line_total = round_money(unit_price * item.quantity)
        subtotal += line_total
        total_quantity += item.quantity
        rows.append(BreakdownRow(doc.name, item.quantity, unit_price, line_total))

    if not rows:
        return OrderCalculation(warnings=tuple(warnings))

    bulk_discount = ZERO
    if total_quantity >= config.bulk_discount_threshold:
        bulk_discount = round_money(subtotal * config.bulk_discount_rate)
    taxable = subtotal - bulk_discount
    tax_amount = round_money(taxable * config.tax_rate)
    total_amount = round_money(taxable + tax_amount)

    return OrderCalculation(
        subtotal=round_money(subtotal),
        bulk_discount=bulk_discount,
        tax_amount=tax_amount,
        total_amount=total_amount,
        breakdown=tuple(rows),
        warnings=tuple(warnings),
    )


def estimate_processing_hours(items: Iterable[OrderLineItem]) -> int:
    """
    Borne haute de traitement (heures) d'une commande:
    - max des bornes hautes des types de documents présents
    - réduite par le tier le plus rapide présent (Premium puis Express), arrondi supérieur
    """
    items = [i for i in items or [] if isinstance(i, OrderLineItem)]
    max_hours = 0
    for item in items:
        doc = get_document_type(item.document_type_id)
        if doc and doc.processing_hours[1] > max_hours:
            max_hours = doc.processing_hours[1]

    tiers = {PricingTier.parse(i.tier) for i in items}
    for tier in (PricingTier.PREMIUM, PricingTier.EXPRESS):
        if tier in tiers:
            return math.ceil(Decimal(max_hours) * tier.speed_factor)
    return max_hours


def estimate_processing_time(items: Iterable[OrderLineItem]) -> str:
    items = [i for i in items or [] if isinstance(i, OrderLineItem)]
    if not items:
        return "N/A"
    hours = estimate_processing_hours(items)
    if hours <= 24:
        return f"{hours} hours"
    days = math.ceil(hours / 24)
    return f"{days} day{'s' if days > 1 else ''}"
