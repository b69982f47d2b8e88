import pytest

import config
from routers.order import shipping_fee_for


@pytest.fixture
def shirt(make_product):
    return make_product(name="Shirt", price=300.0, stocks={"md": 5})


@pytest.fixture
def address(make_address, user):
    return make_address(user)


def _place(client, address, *items, from_cart=False):
    payload = {
        "address_id": str(address["_id"]),
        "items": [{"product_id": str(p["_id"]), "size": size, "quantity": qty} for p, size, qty in items],
        "from_cart": from_cart,
    }
    return client.post("/api/order", json=payload)


def test_order_lifecycle_moves_stock_once(user_client, admin_client, address, shirt, stock_of, db):
    res = _place(user_client, address, (shirt, "md", 2))
    assert res.status_code == 201
    order = res.json()["order"]
    assert order["status"] == "REVIEWING"
    assert stock_of(shirt, "md") == 5

    res = admin_client.patch(f"/api/order/{order['id']}/accept")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "SHIPPING"
    assert stock_of(shirt, "md") == 3

    assert admin_client.patch(f"/api/order/{order['id']}/received").status_code == 200
    res = user_client.patch(f"/api/order/{order['id']}/complete")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "COMPLETED"

    stored = db["order"].find_one({"_id": db["order"].find_one()["_id"]})
    assert stored["timestamps"]["shipped_at"] is not None
    assert stored["timestamps"]["received_at"] is not None
    assert stored["timestamps"]["completed_at"] is not None
    assert stock_of(shirt, "md") == 3


def test_insufficient_stock_writes_nothing(user_client, address, shirt, make_product, db):
    cap = make_product(name="Cap", stocks={"md": 1})
    res = _place(user_client, address, (shirt, "md", 2), (cap, "md", 2))
    assert res.status_code == 400
    assert res.json()["message"] == "Not enough stocks for Cap (md)"
    assert db["order"].count_documents({}) == 0
    assert db["order_product"].count_documents({}) == 0


def test_accepting_twice_is_rejected(user_client, admin_client, address, shirt, stock_of):
    order = _place(user_client, address, (shirt, "md", 2)).json()["order"]
    assert admin_client.patch(f"/api/order/{order['id']}/accept").status_code == 200
    res = admin_client.patch(f"/api/order/{order['id']}/accept")
    assert res.status_code == 400
    assert stock_of(shirt, "md") == 3


def test_accept_fails_when_stock_ran_out(user_client, admin_client, address, shirt, db, stock_of):
    order = _place(user_client, address, (shirt, "md", 4)).json()["order"]
    db["stocks"].update_one({"product_id": shirt["_id"]}, {"$set": {"md": 1}})
    res = admin_client.patch(f"/api/order/{order['id']}/accept")
    assert res.status_code == 400
    assert db["order"].find_one()["status"] == "REVIEWING"
    assert stock_of(shirt, "md") == 1


def test_return_puts_stock_back(user_client, admin_client, address, shirt, stock_of):
    order = _place(user_client, address, (shirt, "md", 2)).json()["order"]
    admin_client.patch(f"/api/order/{order['id']}/accept")
    admin_client.patch(f"/api/order/{order['id']}/received")
    res = admin_client.patch(f"/api/order/{order['id']}/return")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "RETURN"
    assert stock_of(shirt, "md") == 5


def test_cancel_while_shipping_puts_stock_back(user_client, admin_client, address, shirt, stock_of, sent_emails):
    order = _place(user_client, address, (shirt, "md", 2)).json()["order"]
    admin_client.patch(f"/api/order/{order['id']}/accept")
    res = user_client.patch(f"/api/order/{order['id']}/cancel")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "CANCELLED"
    assert stock_of(shirt, "md") == 5
    assert any("cancelled" in mail["subject"] for mail in sent_emails)


def test_cancel_while_reviewing_leaves_stock(user_client, address, shirt, stock_of):
    order = _place(user_client, address, (shirt, "md", 2)).json()["order"]
    assert user_client.patch(f"/api/order/{order['id']}/cancel").status_code == 200
    assert stock_of(shirt, "md") == 5


def test_cannot_cancel_received_order(user_client, admin_client, address, shirt):
    order = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    admin_client.patch(f"/api/order/{order['id']}/accept")
    admin_client.patch(f"/api/order/{order['id']}/received")
    assert user_client.patch(f"/api/order/{order['id']}/cancel").status_code == 400


def test_reject_only_from_reviewing(user_client, admin_client, address, shirt):
    order = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    res = admin_client.patch(f"/api/order/{order['id']}/reject")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "CANCELLED"
    assert admin_client.patch(f"/api/order/{order['id']}/reject").status_code == 400


def test_only_owner_completes(user_client, admin_client, address, shirt):
    order = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    admin_client.patch(f"/api/order/{order['id']}/accept")
    admin_client.patch(f"/api/order/{order['id']}/received")
    assert admin_client.patch(f"/api/order/{order['id']}/complete").status_code == 401


def test_lines_keep_price_at_order_time(user_client, address, shirt, db):
    order = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    db["product"].update_one({"_id": shirt["_id"]}, {"$set": {"price": 999.0, "name": "Renamed"}})
    res = user_client.get(f"/api/order/{order['id']}")
    (line,) = res.json()["order"]["order_products"]
    assert line["price"] == 300.0
    assert line["name"] == "Shirt"


def test_order_from_cart_clears_ordered_lines(user_client, address, shirt, make_product, db, user):
    cap = make_product(name="Cap", stocks={"sm": 2})
    user_client.post(f"/api/cart/{shirt['_id']}", json={"size": "md", "quantity": 2})
    user_client.post(f"/api/cart/{cap['_id']}", json={"size": "sm", "quantity": 1})

    res = _place(user_client, address, from_cart=True)
    assert res.status_code == 201
    assert len(res.json()["order"]["order_products"]) == 2
    assert db["cart_product"].count_documents({"user_id": user["_id"]}) == 0


def test_empty_order_is_rejected(user_client, address):
    res = _place(user_client, address)
    assert res.status_code == 400
    assert res.json()["message"] == "No products to order"


def test_cannot_use_someone_elses_address(user_client, make_user, make_address, shirt):
    foreign = make_address(make_user())
    assert _place(user_client, foreign, (shirt, "md", 1)).status_code == 401


def test_other_users_cannot_see_order(user_client, client_for, make_user, address, shirt):
    order = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    assert client_for(make_user()).get(f"/api/order/{order['id']}").status_code == 401


def test_admin_lists_orders_by_status(user_client, admin_client, address, shirt):
    first = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    _place(user_client, address, (shirt, "md", 1))
    admin_client.patch(f"/api/order/{first['id']}/accept")

    res = admin_client.get("/api/order/all", params={"status": "SHIPPING"})
    assert res.status_code == 200
    assert [o["id"] for o in res.json()["orders"]] == [first["id"]]
    assert user_client.get("/api/order/all").status_code == 401


def test_placing_order_emails_admin(user_client, address, shirt, sent_emails, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAIL", "admin@example.com")
    _place(user_client, address, (shirt, "md", 1))
    assert sent_emails[-1]["to"] == "admin@example.com"
    assert "Shirt" in sent_emails[-1]["body"]


def test_shipping_fee_by_province(user_client, make_address, user, shirt):
    metro = make_address(user, province="Metro Manila")
    order = _place(user_client, metro, (shirt, "md", 1)).json()["order"]
    assert order["shipping_fee"] == config.DISCOUNTED_SHIPPING_FEE
    assert shipping_fee_for("Cebu") == config.SHIPPING_FEE
    assert shipping_fee_for(" metro manila ") == config.DISCOUNTED_SHIPPING_FEE


def test_return_after_product_deleted(user_client, admin_client, address, shirt, db):
    order = _place(user_client, address, (shirt, "md", 2)).json()["order"]
    admin_client.patch(f"/api/order/{order['id']}/accept")
    admin_client.patch(f"/api/order/{order['id']}/received")
    assert admin_client.delete(f"/api/product/{shirt['_id']}").status_code == 200

    res = admin_client.patch(f"/api/order/{order['id']}/return")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "RETURN"
    assert db["stocks"].count_documents({"product_id": shirt["_id"]}) == 0


def test_cancel_shipping_after_product_deleted(user_client, admin_client, address, shirt):
    order = _place(user_client, address, (shirt, "md", 1)).json()["order"]
    admin_client.patch(f"/api/order/{order['id']}/accept")
    admin_client.delete(f"/api/product/{shirt['_id']}")

    res = user_client.patch(f"/api/order/{order['id']}/cancel")
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "CANCELLED"


def test_failed_accept_moves_no_stock(user_client, admin_client, address, shirt, make_product, db, stock_of):
    cap = make_product(name="Cap", stocks={"md": 5})
    order = _place(user_client, address, (shirt, "md", 2), (cap, "md", 4)).json()["order"]
    db["stocks"].update_one({"product_id": cap["_id"]}, {"$set": {"md": 1}})

    res = admin_client.patch(f"/api/order/{order['id']}/accept")
    assert res.status_code == 400
    assert stock_of(shirt, "md") == 5
    assert stock_of(cap, "md") == 1
    assert db["order"].find_one()["status"] == "REVIEWING"
