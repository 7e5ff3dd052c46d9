"""
Module 'checkout' (feature-first): point d'entrée public du tunnel de paiement.
Réunit recalcul de prix, client Stripe, webhook, repository BD et coordinateur de commande.
"""

from .models import (
    CartItem,
    ItemType,
    PaymentIntentRef,
    Verified,
    Waived,
    FulfillmentResult,
    make_line_id,
)
from .pricing import compute_authoritative_price, validate_declared_amount
from .gateway import create_intent, retrieve_intent, construct_event
from .webhook import handle as handle_webhook
from .service import create_payment_intent, fulfill

__all__ = [
    # models
    "CartItem",
    "ItemType",
    "PaymentIntentRef",
    "Verified",
    "Waived",
    "FulfillmentResult",
    "make_line_id",
    # pricing
    "compute_authoritative_price",
    "validate_declared_amount",
    # stripe
    "create_intent",
    "retrieve_intent",
    "construct_event",
    # webhook
    "handle_webhook",
    # services
    "create_payment_intent",
    "fulfill",
]
