import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from backend import config
from backend.pricing import catalog, engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pricing", tags=["Pricing API"])


class CalculateRequest(BaseModel):
    items: List[Dict[str, Any]] = []


def current_pricing_config() -> engine.PricingConfig:
    """Paramètres de tarification issus de backend.config (lus à l'appel, surchargeables en tests)."""
    return engine.PricingConfig.from_values(
        config.BULK_DISCOUNT_THRESHOLD,
        config.BULK_DISCOUNT_RATE,
        config.GST_RATE,
    )


# module backend.pricing.views
@router.get("/catalog")
def get_catalog() -> Dict[str, Any]:
    """
    Catalogue pour hydrater les sélecteurs du front:
    - documentTypes: {id, name, basePrice, category, processingTime, udinRequired}
    - categories: dans l'ordre du catalogue
    - tiers: {name, multiplier, speedFactor}
    - config: seuil/taux de remise volume et taux GST
    """
    return {
        "success": True,
        "documentTypes": [d.to_dict() for d in catalog.DOCUMENT_TYPES],
        "categories": catalog.get_document_categories(),
        "tiers": [
            {"name": t.value, "multiplier": float(t.multiplier), "speedFactor": float(t.speed_factor)}
            for t in catalog.PricingTier
        ],
        "config": current_pricing_config().to_dict(),
    }


@router.post("/calculate")
def calculate_order(body: CalculateRequest) -> Dict[str, Any]:
    """
    Calcule le détail d'une commande: {items: [{documentTypeId, tier, quantity}]}.
    Les lignes invalides sont ignorées et listées dans 'warnings'.
    """
    try:
        items = [engine.OrderLineItem.from_dict(raw) for raw in body.items if isinstance(raw, dict)]
        calculation = engine.calculate(items, current_pricing_config())
        return {
            "success": True,
            "calculation": calculation.to_dict(),
            "warnings": list(calculation.warnings),
            "processingTime": engine.estimate_processing_time(items),
        }
    except Exception:
        logger.exception("Erreur calculate_order")
        raise HTTPException(status_code=500, detail="Failed to calculate pricing")
