CLASS_LINE = {"itemId": "c1", "itemType": "class", "title": "Cours", "price": 50, "memberIds": ["m2", "m1"]}
MEMBERSHIP_LINE = {"itemId": "annual", "itemType": "membership", "title": "Annual Membership", "price": 299, "metadata": {"duration": 12}}


def test_cart_starts_empty(client):
    res = client.get("/api/v1/cart")
    assert res.status_code == 200
    assert res.json()["state"] == "empty"
    assert res.json()["count"] == 0

def test_cart_persists_in_session(client):
    client.post("/api/v1/cart/items", json=CLASS_LINE)
    client.post("/api/v1/cart/items", json=CLASS_LINE)
    client.post("/api/v1/cart/items", json=MEMBERSHIP_LINE)
    client.post("/api/v1/cart/items", json=MEMBERSHIP_LINE)

    cart = client.get("/api/v1/cart").json()
    assert [i["id"] for i in cart["items"]] == ["c1_m1_m2", "annual"]
    assert cart["count"] == 3
    assert cart["total"] == 648
    assert cart["state"] == "populated"

def test_update_and_remove_lines(client):
    client.post("/api/v1/cart/items", json=MEMBERSHIP_LINE)
    res = client.patch("/api/v1/cart/items/annual", json={"quantity": 3})
    assert res.json()["count"] == 3
    res = client.patch("/api/v1/cart/items/annual", json={"quantity": 0})
    assert res.json()["state"] == "empty"

    client.post("/api/v1/cart/items", json=CLASS_LINE)
    res = client.delete("/api/v1/cart/items/c1_m1_m2")
    assert res.json()["items"] == []

def test_checkout_transitions(client):
    client.post("/api/v1/cart/items", json=CLASS_LINE)
    res = client.post("/api/v1/cart/checkout", json={"paymentIntentId": "pi_1"})
    assert res.json()["state"] == "checking_out"

    locked = client.post("/api/v1/cart/items", json=MEMBERSHIP_LINE)
    assert locked.status_code == 400

    failed = client.post("/api/v1/cart/checkout/fail", json={"reason": "card_declined"})
    assert failed.json()["state"] == "failed"
    assert failed.json()["count"] == 1

    client.post("/api/v1/cart/checkout")
    done = client.post("/api/v1/cart/checkout/complete", json={"orderId": "order-1"})
    assert done.json()["state"] == "fulfilled"
    assert done.json()["items"] == []
    assert done.json()["orderId"] == "order-1"

def test_checkout_from_empty_is_400(client):
    res = client.post("/api/v1/cart/checkout")
    assert res.status_code == 400

def test_invalid_item_type_is_400(client):
    res = client.post("/api/v1/cart/items", json={"itemId": "x", "itemType": "bundle"})
    assert res.status_code == 400

def test_clear(client):
    client.post("/api/v1/cart/items", json=CLASS_LINE)
    res = client.delete("/api/v1/cart")
    assert res.json()["state"] == "empty"
