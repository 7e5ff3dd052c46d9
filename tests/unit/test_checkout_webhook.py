import hashlib
import hmac
import json
import time

import pytest

from backend.checkout import gateway, webhook
from backend.checkout.errors import ConsistencyError

SECRET = "whsec_test_secret"


def _signed(event: dict, secret: str = SECRET):
    payload = json.dumps(event).encode("utf-8")
    ts = int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + payload, hashlib.sha256).hexdigest()
    return payload, f"t={ts},v1={sig}"

def _event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}}


@pytest.fixture(autouse=True)
def _webhook_secret(monkeypatch):
    monkeypatch.setattr(gateway, "STRIPE_WEBHOOK_SECRET", SECRET)


def test_valid_signature_is_acknowledged(store):
    payload, header = _signed(_event("payment_intent.succeeded", {"id": "pi_1", "amount": 5150, "metadata": {"userId": "user-1"}}))
    assert webhook.handle(payload, header) == {"received": True}

def test_tampered_body_rejected(store):
    payload, header = _signed(_event("payment_intent.succeeded", {"id": "pi_1"}))
    with pytest.raises(ConsistencyError):
        webhook.handle(payload.replace(b"pi_1", b"pi_2"), header)

def test_wrong_secret_rejected(store):
    payload, header = _signed(_event("payment_intent.succeeded", {"id": "pi_1"}), secret="whsec_other")
    with pytest.raises(ConsistencyError):
        webhook.handle(payload, header)

def test_charge_refunded_updates_order(store):
    store.orders["pi_9"] = {"id": "order-1", "family_id": "fam-1", "payment_intent_id": "pi_9", "payment_status": "completed"}
    payload, header = _signed(_event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_9"}))
    webhook.handle(payload, header)
    assert store.orders["pi_9"]["payment_status"] == "refunded"

def test_payment_failed_writes_nothing(store):
    payload, header = _signed(_event("payment_intent.payment_failed", {"id": "pi_3", "last_payment_error": {"code": "card_declined"}}))
    webhook.handle(payload, header)
    assert store.orders == {}
    assert store.commit_calls == 0

def test_unhandled_event_type_is_ignored(store):
    payload, header = _signed(_event("customer.created", {"id": "cus_1"}))
    assert webhook.handle(payload, header) == {"received": True}

def test_dispatch_accepts_plain_dicts(store):
    store.orders["pi_4"] = {"id": "order-4", "payment_intent_id": "pi_4", "payment_status": "completed"}
    webhook.dispatch(_event("charge.refunded", {"payment_intent": "pi_4"}))
    assert store.orders["pi_4"]["payment_status"] == "refunded"
