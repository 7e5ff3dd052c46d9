"""
Types partagés du tunnel: lignes de panier, références PaymentIntent,
preuves de paiement et corps de requêtes API.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.config import DEFAULT_CURRENCY


class ItemType(str, Enum):
    CLASS = "class"
    SPORT = "sport"
    EVENT = "event"
    MEMBERSHIP = "membership"


# Une seule inscription par famille et par offre: quantité toujours 1
SINGLETON_TYPES = frozenset({ItemType.CLASS, ItemType.SPORT, ItemType.EVENT})

CATALOG_COLLECTIONS: Dict[ItemType, str] = {
    ItemType.CLASS: "classes",
    ItemType.SPORT: "sports",
    ItemType.EVENT: "events",
}

# Compteur incrémenté à la validation: 'registered' pour les événements
CAPACITY_FIELDS: Dict[ItemType, str] = {
    ItemType.CLASS: "enrolled",
    ItemType.SPORT: "enrolled",
    ItemType.EVENT: "registered",
}


def make_line_id(item_id: str, member_ids: List[str]) -> str:
    """Identifiant déterministe d'une ligne: itemId + memberIds triés."""
    return "_".join([str(item_id), *sorted(str(m) for m in member_ids or [])])


class CartItem(BaseModel):
    """Ligne de panier telle qu'envoyée par le client (prix indicatif)."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: Optional[str] = None
    item_id: str = Field(alias="itemId", min_length=1)
    item_type: ItemType = Field(alias="itemType")
    title: str = ""
    price: float = Field(default=0, ge=0)
    quantity: int = Field(default=1, ge=1)
    member_ids: List[str] = Field(default_factory=list, alias="memberIds")
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, v):
        # quantity absente ou 0 => 1 (comportement historique "quantity || 1")
        return v or 1

    @model_validator(mode="after")
    def _singleton_quantity(self) -> "CartItem":
        # Une inscription par offre et par famille: class/sport/event toujours à 1
        if self.item_type in SINGLETON_TYPES:
            self.quantity = 1
        return self

    @property
    def line_id(self) -> str:
        return self.id or make_line_id(self.item_id, self.member_ids)

    def to_order_item(self) -> Dict[str, Any]:
        """Instantané figé de la ligne au moment de la commande."""
        return {
            "itemId": self.item_id,
            "itemType": self.item_type.value,
            "title": self.title,
            "price": self.price,
            "quantity": self.quantity,
            "memberIds": list(self.member_ids),
        }


@dataclass(frozen=True)
class PaymentIntentRef:
    id: str
    client_secret: Optional[str]
    amount_cents: int
    currency: str
    status: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class Verified:
    """Paiement à re-vérifier auprès de Stripe avant toute écriture."""
    payment_intent_id: str


@dataclass(frozen=True)
class Waived:
    """Aucun paiement (articles gratuits): chemin rapide du même coordinateur."""


PaymentProof = Union[Verified, Waived]


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: str
    created: bool = True

    def to_response(self) -> Dict[str, Any]:
        message = "Order created successfully" if self.created else "Order already exists"
        return {"orderId": self.order_id, "success": True, "message": message}


# --- Corps de requêtes API ---

class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: float = Field(ge=0)
    currency: str = DEFAULT_CURRENCY
    cart_items: List[CartItem] = Field(alias="cartItems", min_length=1)


class FulfillmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_intent_id: str = Field(alias="paymentIntentId", min_length=1)
    cart_items: List[CartItem] = Field(alias="cartItems", min_length=1)
    family_id: str = Field(alias="familyId", min_length=1)
    subtotal: float = Field(default=0, ge=0)
    total: float = Field(default=0, ge=0)


class FreeEnrollmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cart_items: List[CartItem] = Field(alias="cartItems", min_length=1)
    family_id: str = Field(alias="familyId", min_length=1)
