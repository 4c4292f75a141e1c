from datetime import datetime, timedelta, timezone

import jwt

from order_service import config
from order_service.models import Order


def auth_headers(user_id):
    token = jwt.encode({"id": user_id}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return {"token": token}


CART = {
    "items": [
        {"_id": "12", "name": "Chicken Kottu", "price": 100, "quantity": 2},
        {"_id": "31", "name": "Egg Hoppers", "price": 50, "quantity": 1},
    ],
    "address": {"street": "12 Temple Rd", "city": "Kandy"},
}


def test_place_stripe_order_returns_session_url(client, gateway, user):
    response = client.post("/order/place", json=CART, headers=auth_headers(user.id))
    assert response.status_code == 200
    assert response.json() == {"success": True, "session_url": gateway.url}


def test_place_cod_order_returns_order(client, gateway, user):
    response = client.post("/order/place", json={**CART, "paymentMethod": "cod"}, headers=auth_headers(user.id))
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["order"]["status"] == "pending"
    assert body["order"]["userId"] == user.id
    assert gateway.calls == []


def test_place_accepts_body_user_id_fallback(client, user):
    response = client.post("/order/place", json={**CART, "userId": user.id, "paymentMethod": "none"})
    assert response.status_code == 201


def test_place_without_user_is_unauthorized(client):
    response = client.post("/order/place", json=CART)
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_place_with_bad_token_is_unauthorized(client):
    response = client.post("/order/place", json=CART, headers={"token": "garbage"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid token"}


def test_bearer_token_accepted(client, user):
    token = jwt.encode({"userId": user.id}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    response = client.post(
        "/order/place",
        json={**CART, "paymentMethod": "cod"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201


def test_place_invalid_price_is_bad_request(client, user, session_factory):
    cart = {"items": [{"name": "Roti", "price": -5, "quantity": 1}]}
    response = client.post("/order/place", json=cart, headers=auth_headers(user.id))
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid price for item Roti"}
    db = session_factory()
    assert db.query(Order).count() == 0
    db.close()


def test_gateway_error_is_server_error(client, gateway, user):
    gateway.url = None
    response = client.post("/order/place", json=CART, headers=auth_headers(user.id))
    assert response.status_code == 500
    assert response.json()["success"] is False


def test_verify_and_mark_paid(client, user):
    client.post("/order/place", json=CART, headers=auth_headers(user.id))

    for path in ("/order/verify", "/order/mark-paid"):
        response = client.post(path, json={"orderId": 1, "success": "true"})
        assert response.json() == {"success": True, "message": "Paid"}


def test_verify_not_paid(client, user):
    client.post("/order/place", json=CART, headers=auth_headers(user.id))
    response = client.post("/order/verify", json={"orderId": 1, "success": "false"})
    assert response.json() == {"success": False, "message": "Not Paid"}


def test_verify_requires_order_id(client):
    response = client.post("/order/verify", json={"success": "true"})
    assert response.status_code == 400


def test_user_orders(client, user):
    client.post("/order/place", json={**CART, "paymentMethod": "cod"}, headers=auth_headers(user.id))
    client.post("/order/place", json={**CART, "paymentMethod": "cod"}, headers=auth_headers(user.id + 1))

    response = client.post("/order/userorders", headers=auth_headers(user.id))
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data) == 1
    assert data[0]["userId"] == user.id


def test_user_orders_without_user(client):
    assert client.post("/order/userorders").status_code == 401


def test_list_orders_newest_first(client, session_factory):
    db = session_factory()
    now = datetime.now(timezone.utc)
    for minutes in (30, 10, 20):
        db.add(Order(
            userId=1, items=[], amount=0, address={}, payment=False,
            paymentMethod="cod", status="pending", createdAt=now - timedelta(minutes=minutes),
        ))
    db.commit()
    db.close()

    data = client.get("/order/list").json()["data"]
    stamps = [row["createdAt"] for row in data]
    assert stamps == sorted(stamps, reverse=True)
    assert len(set(stamps)) == 3


def test_update_status(client, user):
    client.post("/order/place", json={**CART, "paymentMethod": "cod"}, headers=auth_headers(user.id))

    response = client.post("/order/status", json={"orderId": 1, "status": "processing"})
    assert response.json() == {"success": True, "message": "Status Updated"}

    response = client.post("/order/status", json={"orderId": 1, "status": "pending"})
    assert response.status_code == 409


def test_update_status_missing_fields(client):
    response = client.post("/order/status", json={"orderId": 1})
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "orderId and status required"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_place_with_items_not_a_list_is_bad_request(client, user):
    response = client.post("/order/place", json={"items": "abc"}, headers=auth_headers(user.id))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"].startswith("Invalid items")


def test_place_with_address_not_an_object_is_bad_request(client, user):
    response = client.post("/order/place", json={**CART, "address": "Kandy"}, headers=auth_headers(user.id))
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_status_with_non_integer_order_id_is_bad_request(client):
    response = client.post("/order/status", json={"orderId": "abc", "status": "processing"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"].startswith("Invalid orderId")


def test_verify_with_non_integer_order_id_is_bad_request(client):
    response = client.post("/order/verify", json={"orderId": "abc", "success": "true"})
    assert response.status_code == 400
    assert response.json()["success"] is False
