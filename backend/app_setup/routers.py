"""
Registre central des routers.
- API v1: panier (session), checkout (intent, commande, gratuité, webhook)
- Health
"""
from fastapi import FastAPI
from backend.cart import views as cart_views
from backend.checkout import views as checkout_views
from backend.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    app.include_router(cart_views.router)
    app.include_router(checkout_views.router)
    app.include_router(health_router)
