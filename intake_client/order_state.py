"""
OrderState: lignes de commande courantes + dernier calcul (remplacé en bloc, jamais muté).
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from backend.pricing import (
    EMPTY_CALCULATION,
    OrderCalculation,
    OrderLineItem,
    PricingConfig,
    PricingTier,
    calculate,
    estimate_processing_time,
    get_document_type,
)


@dataclass(frozen=True)
class OrderSummary:
    total_documents: int
    total_amount: Decimal
    has_valid_order: bool
    requires_udin: bool


class OrderState:
    def __init__(self, pricing_config: Optional[PricingConfig] = None):
        self.pricing_config = pricing_config or PricingConfig()
        self._items: Tuple[OrderLineItem, ...] = ()
        self._calculation: OrderCalculation = EMPTY_CALCULATION

    @property
    def items(self) -> Tuple[OrderLineItem, ...]:
        return self._items

    @property
    def calculation(self) -> OrderCalculation:
        return self._calculation

    def update(self, items: Iterable[OrderLineItem]) -> OrderCalculation:
        """Remplace les lignes et recalcule (idempotent pour des lignes inchangées)."""
        self._items = tuple(items)
        self._calculation = calculate(self._items, self.pricing_config)
        return self._calculation

    def reprice(self, pricing_config: PricingConfig) -> OrderCalculation:
        self.pricing_config = pricing_config
        return self.update(self._items)

    def clear(self) -> None:
        self._items = ()
        self._calculation = EMPTY_CALCULATION

    def _valid_items(self) -> List[OrderLineItem]:
        return [
            i for i in self._items
            if get_document_type(i.document_type_id) and PricingTier.parse(i.tier) and i.quantity > 0
        ]

    def summary(self) -> OrderSummary:
        valid = self._valid_items()
        return OrderSummary(
            total_documents=sum(i.quantity for i in valid),
            total_amount=self._calculation.total_amount,
            has_valid_order=bool(valid) and self._calculation.total_amount > 0,
            requires_udin=any(get_document_type(i.document_type_id).udin_required for i in valid),
        )

    def validate(self) -> List[str]:
        """Liste des erreurs de la commande (vide si elle est prête au paiement)."""
        if not self._items:
            return ["No documents in order"]
        errors = []
        if self._calculation.total_amount <= 0:
            errors.append("Invalid total amount")
        for position, item in enumerate(self._items, start=1):
            if not get_document_type(item.document_type_id):
                errors.append(f"Invalid document type for item {position}")
            if not PricingTier.parse(item.tier):
                errors.append(f"Invalid tier for item {position}")
            if item.quantity <= 0:
                errors.append(f"Invalid quantity for item {position}")
        return errors

    def estimate_processing_time(self) -> str:
        return estimate_processing_time(self._valid_items())

    def categories(self) -> List[str]:
        seen: List[str] = []
        for item in self._valid_items():
            category = get_document_type(item.document_type_id).category
            if category not in seen:
                seen.append(category)
        return seen

    def pricing_snapshot(self) -> Dict[str, Any]:
        """Instantané joint à l'UploadRecord (calcul + lignes + estimation)."""
        return {
            **self._calculation.to_dict(),
            "items": [i.to_dict() for i in self._items],
            "processingTime": self.estimate_processing_time(),
        }
