# module backend.cart.views

"""Endpoints du panier, persisté dans la session signée (cookie) du navigateur.
- GET    /api/v1/cart                  : lignes, total, count, état
- POST   /api/v1/cart/items            : ajout (no-op si singleton déjà présent)
- PATCH  /api/v1/cart/items/{line_id}  : quantité (<= 0 => suppression)
- DELETE /api/v1/cart/items/{line_id}  : suppression
- DELETE /api/v1/cart                  : vidage
- POST   /api/v1/cart/checkout         : populated|failed -> checking_out
- POST   /api/v1/cart/checkout/complete: checking_out -> fulfilled
- POST   /api/v1/cart/checkout/fail    : checking_out -> failed
"""
from typing import Optional
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from backend.checkout.models import CartItem
from .store import CartError, CartStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class QuantityUpdate(BaseModel):
    quantity: int


class CheckoutStart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    payment_intent_id: Optional[str] = Field(default=None, alias="paymentIntentId")


class CheckoutComplete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    order_id: str = Field(alias="orderId", min_length=1)


class CheckoutFailure(BaseModel):
    reason: str = ""


def _store(request: Request) -> CartStore:
    return CartStore(request.session).load()


def _apply(request: Request, action):
    store = _store(request)
    try:
        action(store)
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return store.to_dict()


@router.get("")
def get_cart(request: Request):
    return _store(request).to_dict()


@router.post("/items")
def add_item(item: CartItem, request: Request):
    payload = item.model_dump(by_alias=True, mode="json", exclude={"id"})
    return _apply(request, lambda store: store.add(payload))


@router.patch("/items/{line_id}")
def update_quantity(line_id: str, body: QuantityUpdate, request: Request):
    return _apply(request, lambda store: store.set_quantity(line_id, body.quantity))


@router.delete("/items/{line_id}")
def remove_item(line_id: str, request: Request):
    return _apply(request, lambda store: store.remove(line_id))


@router.delete("")
def clear_cart(request: Request):
    return _apply(request, lambda store: store.clear())


@router.post("/checkout")
def begin_checkout(request: Request, body: Optional[CheckoutStart] = None):
    intent_id = body.payment_intent_id if body else None
    return _apply(request, lambda store: store.begin_checkout(intent_id))


@router.post("/checkout/complete")
def complete_checkout(body: CheckoutComplete, request: Request):
    return _apply(request, lambda store: store.mark_fulfilled(body.order_id))


@router.post("/checkout/fail")
def fail_checkout(body: CheckoutFailure, request: Request):
    return _apply(request, lambda store: store.mark_failed(body.reason))
