"""
Factory d’application pour les entrypoints (ex: backend.asgi).
Ordonne les étapes d’initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l’app FastAPI avec le lifespan et enregistre:
      - middlewares de base (session panier, CORS, hosts) et en-têtes de sécurité
      - gestionnaires d’exceptions (CheckoutError, validation de requête)
      - routers (panier, checkout, health)
    """
    app = FastAPI(title="Family Checkout", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
