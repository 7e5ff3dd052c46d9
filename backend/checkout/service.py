"""
Cas d'usage 'checkout': orchestre pricing, gateway Stripe et repository.

- create_payment_intent: recalcul serveur du prix puis création du PaymentIntent
- fulfill (OrderFulfillmentCoordinator): transforme un paiement confirmé (ou une gratuité)
  en commande + inscriptions + compteurs de capacité + adhésion, en un seul commit atomique
  indexé par payment_intent_id (ré-appel idempotent: même commande renvoyée)
"""
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4
import logging
import time

from backend.config import DEFAULT_CURRENCY, ORGANIZATION_ID
from backend.utils.dates import add_months, parse_timestamp, utcnow
from . import gateway
from . import memberships
from . import pricing
from . import repository
from .errors import (
    AuthError,
    CapacityExceededError,
    FailedPreconditionError,
    InternalError,
    NotFoundError,
    PartialFailureError,
    PermissionDeniedError,
    ValidationError,
)
from .models import (
    CAPACITY_FIELDS,
    CATALOG_COLLECTIONS,
    CartItem,
    FulfillmentResult,
    ItemType,
    PaymentIntentRef,
    PaymentProof,
    Verified,
    Waived,
)

logger = logging.getLogger(__name__)

# module backend.checkout.service
def create_payment_intent(
    *,
    user_id: str,
    amount: float,
    currency: str,
    cart_items: Sequence[CartItem],
) -> Dict[str, Any]:
    """
    Endpoint prix/intent:
    1) recalcule le montant (pricing.validate_declared_amount), rejet si écart > tolérance
    2) crée le PaymentIntent sur le montant serveur (centimes arrondis)
    Retour: {"clientSecret", "paymentIntentId"}
    """
    if not user_id:
        raise AuthError()
    if not cart_items:
        raise ValidationError("Panier vide")
    currency = _require_currency(currency)
    try:
        authoritative = pricing.validate_declared_amount(amount, cart_items)
    except NotFoundError as e:
        raise InternalError(e.message) from e
    metadata = {
        "userId": str(user_id),
        "cartItemsCount": str(len(cart_items)),
    }
    intent = gateway.create_intent(pricing.to_cents(authoritative), currency, metadata)
    logger.info("checkout.intent created payment_intent_id=%s user_id=%s lines=%s", intent.id, user_id, len(cart_items))
    return {"clientSecret": intent.client_secret, "paymentIntentId": intent.id}

def _require_currency(currency: Optional[str]) -> str:
    """Les montants sont recalculés dans la devise configurée: toute autre devise est refusée."""
    normalized = (currency or DEFAULT_CURRENCY).strip().lower()
    if normalized != DEFAULT_CURRENCY:
        raise ValidationError("Devise non prise en charge")
    return normalized

def _require_cart_matches_intent(intent: PaymentIntentRef, cart_items: Sequence[CartItem]) -> None:
    """
    Le panier soumis doit être celui qui a été payé:
    - même devise que la devise configurée
    - même nombre de lignes que metadata.cartItemsCount
    - montant recalculé (centimes) égal au montant encaissé
    Sinon ValidationError, avant toute écriture.
    """
    if str(intent.currency or "").lower() != DEFAULT_CURRENCY:
        logger.warning("checkout.fulfill currency mismatch payment_intent_id=%s currency=%s", intent.id, intent.currency)
        raise ValidationError("Devise non prise en charge")
    if str(intent.metadata.get("cartItemsCount")) != str(len(cart_items)):
        logger.warning(
            "checkout.fulfill line count mismatch payment_intent_id=%s expected=%s got=%s",
            intent.id, intent.metadata.get("cartItemsCount"), len(cart_items),
        )
        raise ValidationError("Le panier ne correspond pas au paiement")
    try:
        expected_cents = pricing.to_cents(pricing.compute_authoritative_price(cart_items))
    except NotFoundError as e:
        raise ValidationError(e.message) from e
    if expected_cents != intent.amount_cents:
        logger.warning(
            "checkout.fulfill amount mismatch payment_intent_id=%s charged_cents=%s cart_cents=%s",
            intent.id, intent.amount_cents, expected_cents,
        )
        raise ValidationError("Le panier ne correspond pas au paiement")

def _require_family_owner(caller_uid: str, family_id: str) -> Dict[str, Any]:
    """Le profil de l'appelant doit porter family_id; sinon PermissionDeniedError, sans écriture."""
    profile = repository.get_user_profile(caller_uid)
    if not profile or str(profile.get("family_id") or "") != str(family_id):
        raise PermissionDeniedError()
    family = repository.get_family(family_id)
    if not family:
        raise PermissionDeniedError()
    return family

def _verify_payment(proof: Verified, caller_uid: str) -> PaymentIntentRef:
    intent = gateway.retrieve_intent(proof.payment_intent_id)
    if not intent.succeeded:
        raise FailedPreconditionError("Paiement non confirmé")
    owner = intent.metadata.get("userId")
    if owner and str(owner) != str(caller_uid):
        raise PermissionDeniedError("Paiement appartenant à un autre utilisateur")
    return intent

def _order_id_of(row: Dict[str, Any]) -> str:
    return str(row.get("id") or "")

def build_order(
    *,
    intent: PaymentIntentRef,
    cart_items: Sequence[CartItem],
    family_id: str,
    subtotal: float,
    total: float,
) -> Dict[str, Any]:
    """Document 'orders' (colonnes BD) pour un paiement vérifié."""
    return {
        "family_id": family_id,
        "items": [item.to_order_item() for item in cart_items],
        "subtotal": subtotal,
        "discount": 0,
        "total": total,
        "payment_method": "stripe",
        "payment_status": "completed",
        "payment_intent_id": intent.id,
        "organization_id": ORGANIZATION_ID,
    }

def build_enrollments(cart_items: Sequence[CartItem], family_id: str) -> List[Dict[str, Any]]:
    """Une inscription par ligne non-adhésion; order_id est posé par fulfill_order()."""
    return [
        {
            "family_id": family_id,
            "item_id": item.item_id,
            "item_type": item.item_type.value,
            "member_ids": list(item.member_ids),
            "status": "active",
            "organization_id": ORGANIZATION_ID,
        }
        for item in cart_items
        if item.item_type != ItemType.MEMBERSHIP
    ]

def build_capacity_increments(cart_items: Sequence[CartItem]) -> List[Dict[str, Any]]:
    """
    Incréments de compteur agrégés par (table, id): deux lignes sur la même offre
    sont vérifiées ensemble contre la capacité.
    """
    totals: "OrderedDict[Tuple[str, str, str], int]" = OrderedDict()
    for item in cart_items:
        if item.item_type == ItemType.MEMBERSHIP:
            continue
        key = (CATALOG_COLLECTIONS[item.item_type], item.item_id, CAPACITY_FIELDS[item.item_type])
        totals[key] = totals.get(key, 0) + (item.quantity or 1)
    return [
        {"table": table, "id": item_id, "column": column, "amount": amount}
        for (table, item_id, column), amount in totals.items()
    ]

def build_membership_update(
    cart_items: Sequence[CartItem],
    family: Dict[str, Any],
    now=None,
) -> Optional[Dict[str, Any]]:
    """
    Mise à jour d'adhésion si le panier contient une ligne 'membership'.
    L'échéance se prolonge depuis max(maintenant, échéance active) de durée x quantité mois,
    de sorte qu'un renouvellement anticipé se cumule.
    """
    lines = [item for item in cart_items if item.item_type == ItemType.MEMBERSHIP]
    if not lines:
        return None
    now = now or utcnow()
    start = now
    current_expiry = parse_timestamp(family.get("membership_expiry"))
    if family.get("membership_status") == "active" and current_expiry and current_expiry > now:
        start = current_expiry
    months = sum(memberships.duration_months(item.metadata, item.item_id) * (item.quantity or 1) for item in lines)
    return {
        "family_id": family.get("id"),
        "membership_status": "active",
        "membership_expiry": add_months(start, months).isoformat(),
    }

def _free_order_id() -> str:
    return f"FREE-{int(time.time() * 1000)}-{uuid4()}"

def _check_free_cart(cart_items: Sequence[CartItem], family_id: str) -> None:
    """Chemin gratuit: aucune adhésion, prix catalogue nul, pas d'inscription en double."""
    if any(item.item_type == ItemType.MEMBERSHIP for item in cart_items):
        raise ValidationError("Une adhésion ne peut pas être gratuite")
    try:
        subtotal = pricing.compute_subtotal(cart_items)
    except NotFoundError as e:
        raise ValidationError(e.message) from e
    if subtotal > 0:
        raise ValidationError("Ces articles ne sont pas gratuits")
    for item in cart_items:
        if repository.has_active_enrollment(family_id, item.item_id, item.item_type.value):
            raise ValidationError("Déjà inscrit")

def _commit(
    *,
    order: Optional[Dict[str, Any]],
    enrollments: List[Dict[str, Any]],
    capacity: List[Dict[str, Any]],
    membership: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    result = repository.commit_fulfillment(
        order=order,
        enrollments=enrollments,
        capacity=capacity,
        membership=membership,
    )
    if result.get("success"):
        return result
    if result.get("error") == "capacity_exceeded":
        raise CapacityExceededError(item_id=result.get("item_id"))
    if result.get("error") == "not_found":
        raise NotFoundError(f"Article {result.get('item_id')} introuvable")
    raise InternalError(str(result.get("message") or result.get("error") or "commit failed"))

def _log_partial_failure(
    intent: PaymentIntentRef,
    family_id: str,
    cart_items: Sequence[CartItem],
    error: Exception,
) -> None:
    logger.error(
        "checkout.fulfill PARTIAL FAILURE payment_intent_id=%s family_id=%s amount_cents=%s error=%s cart=%s",
        intent.id,
        family_id,
        intent.amount_cents,
        error,
        [item.to_order_item() for item in cart_items],
    )

def fulfill(
    proof: PaymentProof,
    cart_items: Sequence[CartItem],
    family_id: str,
    caller_uid: str,
    subtotal: float = 0.0,
    total: float = 0.0,
) -> FulfillmentResult:
    """
    OrderFulfillmentCoordinator: point d'entrée unique, payé (Verified) ou gratuit (Waived).

    Étapes (chacune est une précondition bloquante, aucune écriture partielle):
    1) Verified: relit le PaymentIntent, exige status == 'succeeded' (FailedPreconditionError)
    2) le profil de l'appelant doit appartenir à family_id (PermissionDeniedError)
    3) Verified: si une commande existe déjà pour ce PaymentIntent, la renvoyer (idempotence)
    3b) Verified: le panier doit correspondre au paiement (devise, lignes, montant), ValidationError sinon
    4) construit commande + inscriptions + incréments + adhésion
    5) commit atomique unique (fulfill_order); capacité vérifiée dans la même transaction

    Un échec après encaissement est journalisé avec tout le contexte (PartialFailureError).
    """
    if not caller_uid:
        raise AuthError()
    if not cart_items:
        raise ValidationError("Panier vide")

    if isinstance(proof, Waived):
        family = _require_family_owner(caller_uid, family_id)
        _check_free_cart(cart_items, family_id)
        order_id = _free_order_id()
        enrollments = build_enrollments(cart_items, family_id)
        for enrollment in enrollments:
            enrollment["order_id"] = order_id
        try:
            _commit(
                order=None,
                enrollments=enrollments,
                capacity=build_capacity_increments(cart_items),
                membership=build_membership_update(cart_items, family),
            )
        except NotFoundError as e:
            raise ValidationError(e.message) from e
        logger.info("checkout.fulfill free order_id=%s family_id=%s lines=%s", order_id, family_id, len(cart_items))
        return FulfillmentResult(order_id=order_id, created=True)

    intent = _verify_payment(proof, caller_uid)
    family = _require_family_owner(caller_uid, family_id)

    existing = repository.find_order_by_payment_intent(intent.id)
    if existing:
        if str(existing.get("family_id") or "") != str(family_id):
            raise PermissionDeniedError()
        logger.info("checkout.fulfill replay payment_intent_id=%s order_id=%s", intent.id, _order_id_of(existing))
        return FulfillmentResult(order_id=_order_id_of(existing), created=False)

    _require_cart_matches_intent(intent, cart_items)

    # Le total enregistré est celui réellement encaissé par Stripe
    charged_total = intent.amount_cents / 100 if intent.amount_cents else total
    order = build_order(
        intent=intent,
        cart_items=cart_items,
        family_id=family_id,
        subtotal=subtotal,
        total=charged_total,
    )
    try:
        result = _commit(
            order=order,
            enrollments=build_enrollments(cart_items, family_id),
            capacity=build_capacity_increments(cart_items),
            membership=build_membership_update(cart_items, family),
        )
    except CapacityExceededError as e:
        _log_partial_failure(intent, family_id, cart_items, e)
        raise
    except Exception as e:
        _log_partial_failure(intent, family_id, cart_items, e)
        raise PartialFailureError() from e

    order_id = str(result.get("order_id") or "")
    created = bool(result.get("created", True))
    logger.info("checkout.fulfill paid order_id=%s payment_intent_id=%s created=%s", order_id, intent.id, created)
    return FulfillmentResult(order_id=order_id, created=created)

def get_order_for_payment(payment_intent_id: str, caller_uid: str) -> Dict[str, Any]:
    """Lecture seule de la commande d'un PaymentIntent, réservée à la famille propriétaire."""
    if not caller_uid:
        raise AuthError()
    order = repository.find_order_by_payment_intent(payment_intent_id)
    if not order:
        raise NotFoundError("Commande introuvable")
    profile = repository.get_user_profile(caller_uid)
    if not profile or str(profile.get("family_id") or "") != str(order.get("family_id") or ""):
        raise PermissionDeniedError()
    return to_api_order(order)

def to_api_order(row: Dict[str, Any]) -> Dict[str, Any]:
    """Colonnes BD (snake_case) -> forme API (camelCase)."""
    return {
        "id": _order_id_of(row),
        "familyId": row.get("family_id"),
        "items": row.get("items") or [],
        "subtotal": row.get("subtotal"),
        "discount": row.get("discount"),
        "total": row.get("total"),
        "paymentMethod": row.get("payment_method"),
        "paymentStatus": row.get("payment_status"),
        "paymentIntentId": row.get("payment_intent_id"),
        "organizationId": row.get("organization_id"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }
