import os

# Doit précéder l'import de l'app: lifespan sans Redis, clés Stripe factices
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")

import copy
import itertools
import pytest
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from backend.app import app as fastapi_app
from backend.checkout.models import PaymentIntentRef
from backend.utils.security import require_user

TEST_USER_ID = "user-1"
TEST_FAMILY_ID = "fam-1"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)


class FakeStore:
    """
    Base en mémoire qui remplace backend.checkout.repository.
    commit_fulfillment reproduit fulfill_order(): vérifie toutes les capacités avant
    la moindre écriture, et une commande existante pour le PaymentIntent renvoie created=False.
    """

    def __init__(self):
        self.catalog: Dict[str, Dict[str, dict]] = {"classes": {}, "sports": {}, "events": {}}
        self.users: Dict[str, dict] = {}
        self.families: Dict[str, dict] = {}
        self.orders: Dict[str, dict] = {}
        self.enrollments: List[dict] = []
        self.commit_calls = 0
        self.fail_commit: Optional[Exception] = None
        self._ids = itertools.count(1)

    # --- jeux de données ---

    def add_catalog(self, table: str, item_id: str, pricing: float, capacity: Optional[int] = None, taken: int = 0):
        column = "registered" if table == "events" else "enrolled"
        self.catalog[table][item_id] = {"id": item_id, "title": item_id, "pricing": pricing, "capacity": capacity, column: taken}

    def add_family(self, family_id: str, user_id: str, **fields):
        self.families[family_id] = {"id": family_id, "membership_status": "none", "membership_expiry": None, **fields}
        self.users[user_id] = {"id": user_id, "family_id": family_id}

    def counter(self, table: str, item_id: str) -> int:
        column = "registered" if table == "events" else "enrolled"
        return self.catalog[table][item_id][column]

    # --- API du repository ---

    def get_catalog_item(self, collection, item_id):
        row = self.catalog.get(collection, {}).get(item_id)
        return copy.deepcopy(row) if row else None

    def get_user_profile(self, user_id):
        return copy.deepcopy(self.users.get(user_id))

    def get_family(self, family_id):
        return copy.deepcopy(self.families.get(family_id))

    def find_order_by_payment_intent(self, payment_intent_id):
        return copy.deepcopy(self.orders.get(payment_intent_id))

    def has_active_enrollment(self, family_id, item_id, item_type):
        return any(
            e["family_id"] == family_id and e["item_id"] == item_id and e["item_type"] == item_type
            and e["status"] in ("active", "waitlist")
            for e in self.enrollments
        )

    def update_order_payment_status(self, payment_intent_id, payment_status):
        order = self.orders.get(payment_intent_id)
        if not order:
            return 0
        order["payment_status"] = payment_status
        return 1

    def commit_fulfillment(self, *, order, enrollments, capacity, membership):
        self.commit_calls += 1
        if self.fail_commit is not None:
            raise self.fail_commit
        if order is not None and order["payment_intent_id"] in self.orders:
            existing = self.orders[order["payment_intent_id"]]
            return {"success": True, "order_id": existing["id"], "created": False}
        for inc in capacity:
            row = self.catalog[inc["table"]].get(inc["id"])
            if row is None:
                return {"success": False, "error": "not_found", "item_id": inc["id"], "message": "Article introuvable"}
            if (row.get("capacity") is not None and row[inc["column"]] + inc["amount"] > row["capacity"]):
                return {"success": False, "error": "capacity_exceeded", "item_id": inc["id"], "message": "Plus de places disponibles"}

        order_id = None
        if order is not None:
            order_id = f"order-{next(self._ids)}"
            self.orders[order["payment_intent_id"]] = {"id": order_id, **copy.deepcopy(order)}
        for enrollment in enrollments:
            self.enrollments.append({"order_id": order_id, **copy.deepcopy(enrollment)})
        for inc in capacity:
            self.catalog[inc["table"]][inc["id"]][inc["column"]] += inc["amount"]
        if membership is not None:
            family = self.families[membership["family_id"]]
            family["membership_status"] = membership["membership_status"]
            family["membership_expiry"] = membership["membership_expiry"]
        return {"success": True, "order_id": order_id or (enrollments[0]["order_id"] if enrollments else None), "created": True}


class FakeGateway:
    """PaymentIntents Stripe simulés; retrieve renvoie l'état courant (status modifiable)."""

    def __init__(self):
        self.intents: Dict[str, PaymentIntentRef] = {}
        self.created: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    def create_intent(self, amount_cents, currency, metadata):
        intent_id = f"pi_test_{next(self._ids)}"
        intent = PaymentIntentRef(
            id=intent_id,
            client_secret=f"{intent_id}_secret_abc",
            amount_cents=amount_cents,
            currency=currency,
            status="requires_payment_method",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        self.created.append({"amount_cents": amount_cents, "currency": currency, "metadata": dict(metadata)})
        return intent

    def retrieve_intent(self, payment_intent_id):
        return self.intents[payment_intent_id]

    def set_status(self, payment_intent_id, status):
        current = self.intents[payment_intent_id]
        self.intents[payment_intent_id] = PaymentIntentRef(
            id=current.id,
            client_secret=current.client_secret,
            amount_cents=current.amount_cents,
            currency=current.currency,
            status=status,
            metadata=current.metadata,
        )

    def add_intent(self, amount_cents, status="succeeded", user_id=TEST_USER_ID, lines=1, currency="usd"):
        intent = self.create_intent(amount_cents, currency, {"userId": user_id, "cartItemsCount": str(lines)})
        self.set_status(intent.id, status)
        return intent.id


@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    fake_user: Dict[str, Any] = {"id": TEST_USER_ID, "email": "parent@example.com"}
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

@pytest.fixture(autouse=True)
def mock_db_dependency(monkeypatch):
    """Aucun test ne doit atteindre Supabase."""
    monkeypatch.setattr("backend.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("backend.infra.supabase_client.get_service_supabase", lambda: MagicMock())

@pytest.fixture()
def store(monkeypatch) -> FakeStore:
    fake = FakeStore()
    fake.add_family(TEST_FAMILY_ID, TEST_USER_ID)
    for name in (
        "get_catalog_item",
        "get_user_profile",
        "get_family",
        "find_order_by_payment_intent",
        "has_active_enrollment",
        "update_order_payment_status",
        "commit_fulfillment",
    ):
        monkeypatch.setattr(f"backend.checkout.repository.{name}", getattr(fake, name))
    return fake

@pytest.fixture()
def stripe_gateway(monkeypatch) -> FakeGateway:
    fake = FakeGateway()
    monkeypatch.setattr("backend.checkout.gateway.create_intent", fake.create_intent)
    monkeypatch.setattr("backend.checkout.gateway.retrieve_intent", fake.retrieve_intent)
    return fake
