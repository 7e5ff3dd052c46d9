"""
Gestionnaires d’exceptions utilisés par la factory.
- CheckoutError: {"error": <code>, "detail": <message court>} avec le statut de l’erreur
- RequestValidationError: panier/champ manquant => 400 invalid-argument (sans détail pydantic)
- HTTPException: réponse JSON standard {"detail": ...}
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.checkout.errors import CheckoutError, ValidationError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("checkout error path=%s code=%s cause=%r", request.url.path, exc.code, exc.__cause__)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        logger.info("invalid request path=%s errors=%s", request.url.path, len(exc.errors()))
        err = ValidationError("Requête invalide")
        return JSONResponse(status_code=err.status_code, content={"error": err.code, "detail": err.message})

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
