"""
Recalcul serveur du prix d'un panier (PriceValidator).
Le montant déclaré par le client n'est qu'indicatif: seul ce calcul fait foi.
"""
from typing import Any, Dict, Iterable
import logging

from backend.config import PROCESSING_FEE_RATE, AMOUNT_TOLERANCE
from . import repository
from . import memberships
from .errors import NotFoundError, ValidationError
from .models import CATALOG_COLLECTIONS, CartItem, ItemType

logger = logging.getLogger(__name__)

# module backend.checkout.pricing
def catalog_collection(item_type: ItemType) -> str:
    try:
        return CATALOG_COLLECTIONS[item_type]
    except KeyError:
        raise ValidationError(f"Type d'article inconnu: {item_type}")

def price_from_record(record: Dict[str, Any]) -> float:
    """Prix catalogue (champ 'pricing'); 0.0 si absent ou illisible."""
    try:
        return float(record.get("pricing") or 0)
    except (TypeError, ValueError):
        return 0.0

def _membership_line_price(item: CartItem) -> float:
    tier = memberships.get_tier(item.item_id)
    if tier and abs(float(tier["price"]) - item.price) > AMOUNT_TOLERANCE:
        logger.warning("pricing.membership price mismatch tier=%s declared=%s", item.item_id, item.price)
        raise ValidationError("Prix d'adhésion invalide")
    return item.price

def compute_subtotal(cart_items: Iterable[CartItem]) -> float:
    """
    Somme des lignes:
    - adhésion: prix client (grille statique) x quantité
    - sinon: pricing de l'enregistrement catalogue x quantité; NotFoundError si absent
    """
    subtotal = 0.0
    for item in cart_items:
        qty = item.quantity or 1
        if item.item_type == ItemType.MEMBERSHIP:
            subtotal += _membership_line_price(item) * qty
            continue
        record = repository.get_catalog_item(catalog_collection(item.item_type), item.item_id)
        if not record:
            raise NotFoundError(f"Article {item.item_id} introuvable")
        subtotal += price_from_record(record) * qty
    return subtotal

def compute_authoritative_price(cart_items: Iterable[CartItem]) -> float:
    """Total facturable: sous-total + frais de traitement (3%)."""
    return compute_subtotal(cart_items) * (1 + PROCESSING_FEE_RATE)

def validate_declared_amount(declared: float, cart_items: Iterable[CartItem]) -> float:
    """
    Compare le montant client au montant recalculé.
    - Écart > AMOUNT_TOLERANCE (0.01): ValidationError (falsification probable)
    Retour: le montant serveur, seul utilisé pour créer le PaymentIntent.
    """
    authoritative = compute_authoritative_price(cart_items)
    if abs(authoritative - float(declared)) > AMOUNT_TOLERANCE:
        logger.warning("pricing.amount mismatch expected=%.2f declared=%.2f", authoritative, float(declared))
        raise ValidationError("Le montant ne correspond pas au panier")
    return authoritative

def to_cents(amount: float) -> int:
    return int(round(amount * 100))
