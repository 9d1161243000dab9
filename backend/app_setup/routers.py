"""
Registre central des routers.
- API: pricing, payment, uploads
- Health: health_router
"""
from fastapi import FastAPI
from backend.pricing import views as pricing_views
from backend.payments import views as payments_views
from backend.uploads import views as uploads_views
from backend.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    """L'ordre n'a pas d'impact sauf conflits de chemins (évités par préfixes)."""
    app.include_router(pricing_views.router)
    app.include_router(payments_views.router)
    app.include_router(uploads_views.router)
    app.include_router(health_router)
