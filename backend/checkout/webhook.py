"""
Webhook Stripe (WebhookVerifier): authentifie puis dispatche par type d'événement.
La création de commande n'a pas lieu ici: elle est déclenchée par le client puis re-vérifiée
auprès de Stripe (voir service.fulfill). Le webhook journalise et applique les transitions
de payment_status des commandes existantes.
"""
import logging
from typing import Any, Callable, Dict, Optional

from . import gateway
from . import repository
from .gateway import read_field

logger = logging.getLogger(__name__)

# module backend.checkout.webhook
def _on_payment_succeeded(obj: Any) -> None:
    metadata = read_field(obj, "metadata") or {}
    logger.info(
        "webhook.payment_succeeded payment_intent_id=%s amount=%s user_id=%s",
        read_field(obj, "id"), read_field(obj, "amount"), read_field(metadata, "userId"),
    )

def _on_payment_failed(obj: Any) -> None:
    error = read_field(obj, "last_payment_error") or {}
    logger.warning(
        "webhook.payment_failed payment_intent_id=%s code=%s",
        read_field(obj, "id"), read_field(error, "code"),
    )

def _on_charge_refunded(obj: Any) -> None:
    payment_intent_id = read_field(obj, "payment_intent")
    if not payment_intent_id:
        return
    updated = repository.update_order_payment_status(str(payment_intent_id), "refunded")
    logger.info("webhook.charge_refunded payment_intent_id=%s orders_updated=%s", payment_intent_id, updated)

HANDLERS: Dict[str, Callable[[Any], None]] = {
    "payment_intent.succeeded": _on_payment_succeeded,
    "payment_intent.payment_failed": _on_payment_failed,
    "charge.refunded": _on_charge_refunded,
}

def dispatch(event: Any) -> None:
    event_type = read_field(event, "type") or ""
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("webhook.unhandled type=%s", event_type)
        return
    data = read_field(event, "data") or {}
    handler(read_field(data, "object") or {})

def handle(raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
    """
    Point d'entrée: vérifie la signature sur le body brut puis dispatche.
    - Signature invalide: ConsistencyError (400 générique), aucun traitement
    Retour: {"received": True}
    """
    event = gateway.construct_event(raw_body, signature_header)
    dispatch(event)
    return {"received": True}
