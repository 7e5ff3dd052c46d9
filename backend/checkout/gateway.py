"""
Adaptateur Stripe (PaymentGatewayClient): centralise les appels PaymentIntent et webhooks.
Le serveur ne voit jamais de données de carte: le client_secret est remis au navigateur
qui confirme la carte directement auprès de Stripe.
"""
import logging
from typing import Any, Dict, Optional

import stripe

from backend.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, DEFAULT_CURRENCY
from .errors import ConsistencyError, GatewayError
from .models import PaymentIntentRef

logger = logging.getLogger(__name__)

# module backend.checkout.gateway
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l’emploi.
    - stripe.api_key depuis STRIPE_SECRET_KEY (GatewayError si absente)
    - pas de retry réseau automatique: un retry peut dupliquer un PaymentIntent
    """
    if not STRIPE_SECRET_KEY:
        raise GatewayError()
    stripe.api_key = STRIPE_SECRET_KEY
    stripe.max_network_retries = 0
    return stripe

def read_field(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)

def to_intent_ref(intent: Any) -> PaymentIntentRef:
    """Normalise un objet PaymentIntent Stripe (ou dict) en PaymentIntentRef."""
    metadata = read_field(intent, "metadata") or {}
    return PaymentIntentRef(
        id=str(read_field(intent, "id") or ""),
        client_secret=read_field(intent, "client_secret"),
        amount_cents=int(read_field(intent, "amount") or 0),
        currency=str(read_field(intent, "currency") or DEFAULT_CURRENCY),
        status=str(read_field(intent, "status") or ""),
        metadata=dict(metadata),
    )

def create_intent(amount_cents: int, currency: str, metadata: Dict[str, str]) -> PaymentIntentRef:
    """
    Crée un PaymentIntent.
    - metadata: au minimum {"userId": ..., "cartItemsCount": ...} pour l'audit
    Erreurs: GatewayError (surfacée en 'internal')
    """
    require_stripe()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=currency,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
    except Exception as e:
        logger.exception("gateway.create_intent failed amount_cents=%s", amount_cents)
        raise GatewayError() from e
    return to_intent_ref(intent)

def retrieve_intent(payment_intent_id: str) -> PaymentIntentRef:
    """Relit le PaymentIntent côté serveur: le statut client n'est jamais cru sur parole."""
    require_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except Exception as e:
        logger.exception("gateway.retrieve_intent failed payment_intent_id=%s", payment_intent_id)
        raise GatewayError() from e
    return to_intent_ref(intent)

def construct_event(payload: bytes, sig_header: Optional[str]) -> Any:
    """
    Valide la signature d'un événement webhook sur le body brut (comparaison à temps constant côté SDK).
    - Sans secret configuré: refus (aucun événement non signé n'est accepté)
    Erreurs: ConsistencyError, sans détail de vérification
    """
    if not STRIPE_WEBHOOK_SECRET or not sig_header:
        raise ConsistencyError()
    try:
        return stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
    except Exception as e:
        logger.warning("gateway.construct_event rejected: %s", type(e).__name__)
        raise ConsistencyError() from e
