"""
Accès aux données pour la feature 'checkout'.
- Lectures: catalogue (classes/sports/events), profil utilisateur, famille, commande par PaymentIntent.
- Écriture: commit atomique via la fonction Postgres fulfill_order() (une seule transaction).
Les erreurs d'infrastructure sont loggées puis propagées: un catalogue injoignable
ne doit pas être confondu avec un article absent.
"""
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError

import backend.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module backend.checkout.repository
def _first(res) -> Optional[dict]:
    rows = getattr(res, "data", None) or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None

def get_catalog_item(collection: str, item_id: str) -> Optional[dict]:
    """Enregistrement catalogue (pricing, capacity, enrolled/registered) ou None."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(collection)
            .select("*")
            .eq("id", item_id)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.get_catalog_item failed collection=%s item_id=%s", collection, item_id)
        raise

def get_user_profile(user_id: str) -> Optional[dict]:
    """Profil applicatif (table 'users'), porte family_id."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("users")
            .select("id, family_id")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.get_user_profile failed user_id=%s", user_id)
        raise

def get_family(family_id: str) -> Optional[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("families")
            .select("id, membership_status, membership_expiry")
            .eq("id", family_id)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.get_family failed family_id=%s", family_id)
        raise

def find_order_by_payment_intent(payment_intent_id: str) -> Optional[dict]:
    """Commande déjà créée pour ce PaymentIntent (clé d'idempotence), sinon None."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("payment_intent_id", payment_intent_id)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("checkout.repository.find_order_by_payment_intent failed payment_intent_id=%s", payment_intent_id)
        raise

def has_active_enrollment(family_id: str, item_id: str, item_type: str) -> bool:
    """Vrai si la famille a déjà une inscription active/waitlist sur l'offre."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("enrollments")
            .select("id")
            .eq("family_id", family_id)
            .eq("item_id", item_id)
            .eq("item_type", item_type)
            .in_("status", ["active", "waitlist"])
            .limit(1)
            .execute()
        )
        return bool(getattr(res, "data", None))
    except Exception:
        logger.exception("checkout.repository.has_active_enrollment failed family_id=%s item_id=%s", family_id, item_id)
        raise

def update_order_payment_status(payment_intent_id: str, payment_status: str) -> int:
    """Transition de payment_status pilotée par webhook; retourne le nombre de lignes touchées."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"payment_status": payment_status})
            .eq("payment_intent_id", payment_intent_id)
            .execute()
        )
        return len(getattr(res, "data", None) or [])
    except Exception:
        logger.exception("checkout.repository.update_order_payment_status failed payment_intent_id=%s", payment_intent_id)
        raise

def commit_fulfillment(
    *,
    order: Optional[Dict[str, Any]],
    enrollments: List[Dict[str, Any]],
    capacity: List[Dict[str, Any]],
    membership: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Appelle fulfill_order() (supabase/migrations) qui, dans une seule transaction:
    - insère la commande (unique sur payment_intent_id; si elle existe: created=false)
    - insère les inscriptions
    - incrémente chaque compteur seulement si enrolled + n <= capacity
    - met à jour l'adhésion de la famille
    Retour: {"success": bool, "order_id": str|None, "created": bool, "error": str|None, ...}
    """
    params = {
        "p_order": order,
        "p_enrollments": enrollments,
        "p_capacity": capacity,
        "p_membership": membership,
    }
    try:
        res = supabase_client.get_service_supabase().rpc("fulfill_order", params).execute()
        return getattr(res, "data", None) or {}
    except APIError as e:
        # supabase-py peut lever APIError alors que la fonction a renvoyé du JSON
        try:
            error_data = e.json() if callable(getattr(e, "json", None)) else {}
        except Exception:
            error_data = {}
        if isinstance(error_data, dict) and "success" in error_data:
            return error_data
        logger.exception("checkout.repository.commit_fulfillment rpc failed")
        raise
