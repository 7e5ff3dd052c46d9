"""
Panier (CartStore): collection persistée de lignes candidates à l'achat.

- Règles de quantité appliquées avant tout envoi au serveur:
  class/sport/event => quantité 1 (ajout en double ignoré), membership => quantité cumulée
- Persistance dans un mapping quelconque (session signée côté web) à chaque mutation,
  jamais pendant la relecture initiale (load)
- Machine à états explicite:
  empty -> populated -> checking_out -> {fulfilled | failed}; failed -> checking_out | populated
"""
from enum import Enum
from typing import Any, Dict, List, MutableMapping, Optional
import logging

from backend.checkout.models import SINGLETON_TYPES, ItemType, make_line_id

logger = logging.getLogger(__name__)


class CartError(ValueError):
    """Règle panier violée (transition interdite, ligne invalide)."""


class CartState(str, Enum):
    EMPTY = "empty"
    POPULATED = "populated"
    CHECKING_OUT = "checking_out"
    FULFILLED = "fulfilled"
    FAILED = "failed"


_EDITABLE_STATES = {CartState.EMPTY, CartState.POPULATED, CartState.FULFILLED, CartState.FAILED}


def _is_singleton(item_type: str) -> bool:
    return ItemType(item_type) in SINGLETON_TYPES


class CartStore:
    STORAGE_KEY = "cart"

    def __init__(self, storage: MutableMapping[str, Any], key: str = STORAGE_KEY):
        self._storage = storage
        self._key = key
        self._items: List[Dict[str, Any]] = []
        self._state = CartState.EMPTY
        self._payment_intent_id: Optional[str] = None
        self._order_id: Optional[str] = None
        self._failure: Optional[str] = None
        self._loaded = False

    # --- persistance ---

    def load(self) -> "CartStore":
        """Relit l'état persisté. Aucune écriture ici: un état vide ne doit pas écraser la sauvegarde."""
        raw = self._storage.get(self._key) or {}
        try:
            items = [dict(i) for i in raw.get("items") or []]
            state = CartState(raw.get("state") or (CartState.POPULATED if items else CartState.EMPTY))
        except (AttributeError, TypeError, ValueError):
            logger.warning("cart.load ignored unreadable cart state")
            items, state = [], CartState.EMPTY
            raw = {}
        self._items = items
        self._state = state
        self._payment_intent_id = raw.get("paymentIntentId")
        self._order_id = raw.get("orderId")
        self._failure = raw.get("failure")
        self._loaded = True
        return self

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _persist(self) -> None:
        if not self._loaded:
            return
        self._storage[self._key] = {
            "items": [dict(i) for i in self._items],
            "state": self._state.value,
            "paymentIntentId": self._payment_intent_id,
            "orderId": self._order_id,
            "failure": self._failure,
        }

    # --- lecture ---

    @property
    def items(self) -> List[Dict[str, Any]]:
        self._ensure_loaded()
        return [dict(i) for i in self._items]

    @property
    def state(self) -> CartState:
        self._ensure_loaded()
        return self._state

    @property
    def total(self) -> float:
        return sum(float(i["price"]) * int(i["quantity"]) for i in self.items)

    @property
    def count(self) -> int:
        return sum(int(i["quantity"]) for i in self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "total": self.total,
            "count": self.count,
            "state": self.state.value,
            "paymentIntentId": self._payment_intent_id,
            "orderId": self._order_id,
            "failure": self._failure,
        }

    # --- mutations ---

    def _require_editable(self) -> None:
        self._ensure_loaded()
        if self._state not in _EDITABLE_STATES:
            raise CartError("Panier verrouillé pendant le paiement")

    def _settle_after_edit(self) -> None:
        self._state = CartState.POPULATED if self._items else CartState.EMPTY
        self._payment_intent_id = None
        self._failure = None
        self._persist()

    def _find(self, line_id: str) -> Optional[Dict[str, Any]]:
        return next((i for i in self._items if i["id"] == line_id), None)

    def add(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ajoute une ligne (dict camelCase: itemId, itemType, title, price, quantity, memberIds, metadata).
        - singleton déjà présent: no-op (double-clic)
        - adhésion déjà présente: quantité incrémentée
        Retour: la ligne telle que stockée.
        """
        self._require_editable()
        item_id = str(item.get("itemId") or "").strip()
        if not item_id:
            raise CartError("itemId manquant")
        try:
            singleton = _is_singleton(item.get("itemType"))
        except ValueError:
            raise CartError(f"Type d'article inconnu: {item.get('itemType')}")
        member_ids = [str(m) for m in item.get("memberIds") or []]
        quantity = 1 if singleton else max(int(item.get("quantity") or 1), 1)
        line_id = make_line_id(item_id, member_ids)

        if self._state == CartState.FULFILLED:
            self._order_id = None

        existing = self._find(line_id)
        if existing:
            if singleton:
                return dict(existing)
            existing["quantity"] = int(existing["quantity"]) + quantity
            self._settle_after_edit()
            return dict(existing)

        line = {
            "id": line_id,
            "itemId": item_id,
            "itemType": ItemType(item.get("itemType")).value,
            "title": item.get("title") or "",
            "price": float(item.get("price") or 0),
            "quantity": quantity,
            "memberIds": member_ids,
        }
        if item.get("metadata") is not None:
            line["metadata"] = item.get("metadata")
        self._items.append(line)
        self._settle_after_edit()
        return dict(line)

    def remove(self, line_id: str) -> None:
        self._require_editable()
        self._items = [i for i in self._items if i["id"] != line_id]
        self._settle_after_edit()

    def set_quantity(self, line_id: str, quantity: int) -> None:
        """quantity <= 0 équivaut à remove; un singleton reste à 1."""
        if quantity <= 0:
            self.remove(line_id)
            return
        self._require_editable()
        line = self._find(line_id)
        if line is None:
            raise CartError("Ligne introuvable")
        if not _is_singleton(line["itemType"]):
            line["quantity"] = int(quantity)
        self._settle_after_edit()

    def clear(self) -> None:
        """Vide le panier depuis n'importe quel état (abandon de paiement compris)."""
        self._ensure_loaded()
        self._items = []
        self._state = CartState.EMPTY
        self._payment_intent_id = None
        self._order_id = None
        self._failure = None
        self._persist()

    # --- transitions de paiement ---

    def begin_checkout(self, payment_intent_id: Optional[str] = None) -> None:
        """populated|failed -> checking_out."""
        self._ensure_loaded()
        if self._state not in (CartState.POPULATED, CartState.FAILED) or not self._items:
            raise CartError(f"Paiement impossible depuis l'état {self._state.value}")
        self._state = CartState.CHECKING_OUT
        self._payment_intent_id = payment_intent_id or self._payment_intent_id
        self._failure = None
        self._persist()

    def mark_fulfilled(self, order_id: str) -> None:
        """checking_out -> fulfilled: les lignes sont détruites, l'orderId conservé."""
        self._ensure_loaded()
        if self._state != CartState.CHECKING_OUT:
            raise CartError(f"Aucun paiement en cours (état {self._state.value})")
        self._items = []
        self._state = CartState.FULFILLED
        self._order_id = order_id
        self._persist()

    def mark_failed(self, reason: str = "") -> None:
        """checking_out -> failed (réessayable: lignes et paymentIntentId conservés)."""
        self._ensure_loaded()
        if self._state != CartState.CHECKING_OUT:
            raise CartError(f"Aucun paiement en cours (état {self._state.value})")
        self._state = CartState.FAILED
        self._failure = reason or "payment_failed"
        self._persist()
