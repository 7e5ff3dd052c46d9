import hashlib
import hmac
import json
import time

import pytest

SECRET = "whsec_test_secret"


def _signed(event: dict):
    payload = json.dumps(event).encode("utf-8")
    ts = int(time.time())
    sig = hmac.new(SECRET.encode("utf-8"), f"{ts}.".encode("utf-8") + payload, hashlib.sha256).hexdigest()
    return payload, f"t={ts},v1={sig}"


@pytest.fixture(autouse=True)
def _webhook_secret(monkeypatch):
    monkeypatch.setattr("backend.checkout.gateway.STRIPE_WEBHOOK_SECRET", SECRET)


def test_webhook_valid_signature(client, store):
    payload, header = _signed({"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}})
    res = client.post("/api/v1/checkout/webhook", content=payload, headers={"Stripe-Signature": header, "Content-Type": "application/json"})
    assert res.status_code == 200
    assert res.json() == {"received": True}

def test_webhook_bad_signature_is_generic_400(client, store):
    payload, _ = _signed({"id": "evt_1", "type": "charge.refunded", "data": {"object": {"payment_intent": "pi_1"}}})
    res = client.post("/api/v1/checkout/webhook", content=payload, headers={"Stripe-Signature": "t=1,v1=bad"})
    assert res.status_code == 400
    assert res.json() == {"error": "invalid-argument", "detail": "Webhook invalide"}

def test_webhook_missing_header(client, store):
    res = client.post("/api/v1/checkout/webhook", content=b"{}")
    assert res.status_code == 400

def test_webhook_does_not_require_user(app, client, store):
    from backend.utils.security import require_user
    app.dependency_overrides.pop(require_user, None)
    payload, header = _signed({"id": "evt_2", "type": "customer.created", "data": {"object": {}}})
    res = client.post("/api/v1/checkout/webhook", content=payload, headers={"Stripe-Signature": header})
    assert res.status_code == 200
