# module backend.checkout.views

"""Endpoints du tunnel de paiement.
- /payment-intent: recalcule le prix et crée un PaymentIntent Stripe (authentifié, rate-limité).
- /orders: valide la commande après confirmation de la carte (re-vérifie le paiement chez Stripe).
- /free-enrollments: inscription directe aux offres gratuites (même coordinateur, sans paiement).
- /orders/{payment_intent_id}: relit la commande d'un paiement (reprise après réponse perdue).
- /webhook: reçoit les événements Stripe signés (body brut, sans authentification).
Les CheckoutError sont rendues par le gestionnaire d'exceptions de l'application.
"""
from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from backend.utils.security import require_user
from backend.utils.rate_limit import optional_rate_limit
from backend.checkout import service as checkout_service
from backend.checkout import webhook as checkout_webhook
from backend.checkout.errors import ConsistencyError
from backend.checkout.models import (
    FreeEnrollmentRequest,
    FulfillmentRequest,
    PaymentIntentRequest,
    Verified,
    Waived,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])


@router.post("/payment-intent", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment_intent(body: PaymentIntentRequest, user: Dict[str, Any] = Depends(require_user)):
    """Crée un PaymentIntent pour le panier.
    - Entrée: { "amount", "currency", "cartItems": [...] }
    - Le montant client est comparé au recalcul serveur (tolérance 0.01)
    - Retour: { "clientSecret", "paymentIntentId" }
    - Erreurs: 401 unauthenticated, 400 invalid-argument, 5xx internal
    """
    return checkout_service.create_payment_intent(
        user_id=user.get("id", ""),
        amount=body.amount,
        currency=body.currency,
        cart_items=body.cart_items,
    )


@router.post("/orders", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_order(body: FulfillmentRequest, user: Dict[str, Any] = Depends(require_user)):
    """Valide la commande d'un paiement confirmé.
    - Entrée: { "paymentIntentId", "cartItems", "familyId", "subtotal", "total" }
    - Ré-appel avec le même paymentIntentId: renvoie la commande existante
    - Retour: { "orderId", "success", "message" }
    - Erreurs: 401, 409 failed-precondition, 403 permission-denied, 5xx internal
    """
    result = checkout_service.fulfill(
        Verified(body.payment_intent_id),
        body.cart_items,
        family_id=body.family_id,
        caller_uid=user.get("id", ""),
        subtotal=body.subtotal,
        total=body.total,
    )
    return result.to_response()


@router.post("/free-enrollments", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_free_enrollment(body: FreeEnrollmentRequest, user: Dict[str, Any] = Depends(require_user)):
    """Inscription à des offres gratuites: re-tarifées côté serveur, refus si une ligne est payante."""
    result = checkout_service.fulfill(
        Waived(),
        body.cart_items,
        family_id=body.family_id,
        caller_uid=user.get("id", ""),
    )
    return result.to_response()


@router.get("/orders/{payment_intent_id}")
def get_order(payment_intent_id: str, user: Dict[str, Any] = Depends(require_user)):
    return checkout_service.get_order_for_payment(payment_intent_id, caller_uid=user.get("id", ""))


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request):
    """
    Webhook Stripe.
    - Signature: vérifiée sur le body brut + en-tête Stripe-Signature (avant tout parsing)
    - Réponses: 200 {"received": true} ou 400 générique
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        return checkout_webhook.handle(payload, sig_header)
    except ConsistencyError as e:
        return JSONResponse(status_code=400, content={"error": e.code, "detail": e.message})
