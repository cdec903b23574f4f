"""Order service HTTP and WebSocket surface."""

import httpx
import pytest
from fastapi.testclient import TestClient

from marketplace.services.orders import main
from marketplace.services.orders.products import ProductClient


PRODUCT = {
    "id": "p1",
    "ownerId": "seller-1",
    "name": "Lamp",
    "description": "Brass desk lamp",
    "price": 49.99,
    "stockCount": 4,
}


def _product_service(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/products/p1":
        return httpx.Response(200, json=PRODUCT)
    if request.url.path == "/products/broken":
        return httpx.Response(500, json={"status": "error"})
    return httpx.Response(404)


@pytest.fixture
def client(session_factory, monkeypatch, recording_transport):
    transport = recording_transport(_product_service)
    monkeypatch.setattr(main, "products", ProductClient("http://products.test", transport=transport))
    with TestClient(main.app) as test_client:
        test_client.product_transport = transport
        yield test_client


def _order_body(**overrides) -> dict:
    body = {
        "buyerId": "buyer-1",
        "sellerId": "seller-1",
        "products": [{"productId": "p1", "name": "Lamp", "description": "", "price": 49.99, "quantity": 1}],
        "totalPrice": 49.99,
        "status": "CREATED",
    }
    body.update(overrides)
    return body


def test_create_and_fetch_order(client):
    created = client.post("/orders", json=_order_body())
    assert created.status_code == 201
    order = created.json()
    assert order["status"] == "CREATED"
    assert order["chatHistory"] == []

    fetched = client.get(f"/orders/{order['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["products"][0]["productId"] == "p1"


def test_create_validation_errors_are_itemized(client):
    resp = client.post("/orders", json=_order_body(products=[], totalPrice=-1))

    assert resp.status_code == 400
    body = resp.json()
    assert body["status"] == "validation_error"
    assert {"products", "totalPrice"} <= {item["field"] for item in body["errors"]}



def test_inquiry_with_several_lines_is_rejected(client):
    line = {"productId": "p1", "name": "Lamp", "description": "", "price": 49.99, "quantity": 1}
    resp = client.post("/orders", json=_order_body(status="INQUIRY", products=[line, {**line, "productId": "p2"}]))

    assert resp.status_code == 400
    assert "exactly one product line" in resp.json()["errors"][0]["message"]
    assert client.get("/orders").json() == []


def test_missing_order_is_404(client):
    assert client.get("/orders/unknown").status_code == 404
    assert client.put("/orders/unknown", json={"status": "CANCELLED"}).status_code == 404
    assert client.delete("/orders/unknown").status_code == 404


def test_update_is_partial_and_rejects_bad_status(client):
    order = client.post("/orders", json=_order_body()).json()

    resp = client.put(f"/orders/{order['id']}", json={"status": "CONFIRMED"})
    assert resp.status_code == 202
    assert resp.json()["status"] == "CONFIRMED"
    assert resp.json()["totalPrice"] == 49.99

    assert client.put(f"/orders/{order['id']}", json={"status": "SHIPPED"}).status_code == 400
    assert client.put(f"/orders/{order['id']}", json={"owner": "x"}).status_code == 400


def test_delete_then_second_delete_is_404(client):
    order = client.post("/orders", json=_order_body()).json()

    assert client.delete(f"/orders/{order['id']}").status_code == 204
    assert client.delete(f"/orders/{order['id']}").status_code == 404


def test_list_by_user_and_seller(client):
    client.post("/orders", json=_order_body())
    client.post("/orders", json=_order_body(buyerId="buyer-2", sellerId="seller-2"))

    assert len(client.get("/orders").json()) == 2
    assert [o["buyerId"] for o in client.get("/orders/user/buyer-2").json()] == ["buyer-2"]
    assert [o["sellerId"] for o in client.get("/orders/seller/seller-1").json()] == ["seller-1"]


def test_initiate_inquiry_is_idempotent(client):
    headers = {"x-user-id": "buyer-1", "authorization": "Bearer t"}

    first = client.post("/orders/conversations/initiate/p1", headers=headers)
    second = client.post("/orders/conversations/initiate/p1", headers=headers)

    assert first.status_code == 200
    assert first.json()["status"] == "INQUIRY"
    assert first.json()["sellerId"] == "seller-1"
    assert first.json()["id"] == second.json()["id"]
    assert len(client.get("/orders").json()) == 1
    forwarded = client.product_transport.requests[0]
    assert forwarded.headers["authorization"] == "Bearer t"


def test_initiate_inquiry_requires_user(client):
    resp = client.post("/orders/conversations/initiate/p1")

    assert resp.status_code == 401
    assert client.product_transport.requests == []


def test_initiate_inquiry_product_errors(client):
    headers = {"x-user-id": "buyer-1"}

    missing = client.post("/orders/conversations/initiate/nope", headers=headers)
    broken = client.post("/orders/conversations/initiate/broken", headers=headers)

    assert missing.status_code == 404
    assert missing.json()["message"] == "Product not found"
    assert broken.status_code == 502
    assert client.get("/orders").json() == []


def test_unexpected_error_is_generic_500(session_factory, monkeypatch):
    def explode():
        raise RuntimeError("boom")

    monkeypatch.setattr(main.service, "list_all", explode)
    with TestClient(main.app, raise_server_exceptions=False) as test_client:
        resp = test_client.get("/orders")

    assert resp.status_code == 500
    assert resp.json()["status"] == "internal_error"
    assert "boom" not in resp.json()["message"]


def _message(text: str, sender: str = "buyer-1", role: str = "buyer") -> dict:
    return {"text": text, "senderId": sender, "role": role, "timestamp": "2026-01-01T12:00:00Z"}


def test_chat_roundtrip_over_websocket(client):
    """Both room members, sender included, see M1 then M2; history matches."""

    order = client.post("/orders", json=_order_body()).json()
    with client.websocket_connect("/ws/chat") as buyer, client.websocket_connect("/ws/chat") as seller:
        for ws in (buyer, seller):
            ws.send_json({"event": "subscribeToOrder", "orderId": order["id"]})
            assert ws.receive_json() == {"event": "subscribed", "orderId": order["id"]}

        buyer.send_json({"event": "sendMessage", "orderId": order["id"], "message": _message("M1")})
        first_buyer = buyer.receive_json()
        first_seller = seller.receive_json()
        seller.send_json(
            {"event": "sendMessage", "orderId": order["id"], "message": _message("M2", "seller-1", "seller")}
        )
        second_buyer = buyer.receive_json()
        second_seller = seller.receive_json()

    assert [f["message"]["text"] for f in (first_buyer, second_buyer)] == ["M1", "M2"]
    assert [f["message"]["text"] for f in (first_seller, second_seller)] == ["M1", "M2"]
    history = client.get(f"/orders/{order['id']}").json()["chatHistory"]
    assert [m["text"] for m in history] == ["M1", "M2"]
    assert history[0]["senderId"] == "buyer-1"


def test_failed_publish_reaches_sender_only(client):
    order = client.post("/orders", json=_order_body()).json()
    with client.websocket_connect("/ws/chat") as sender, client.websocket_connect("/ws/chat") as listener:
        for order_id in ("missing", order["id"]):
            listener.send_json({"event": "subscribeToOrder", "orderId": order_id})
            listener.receive_json()

        sender.send_json({"event": "sendMessage", "orderId": "missing", "message": _message("lost")})
        error = sender.receive_json()
        sender.send_json({"event": "sendMessage", "orderId": order["id"], "message": _message("kept")})
        delivered = listener.receive_json()

    assert error["event"] == "error"
    assert error["orderId"] == "missing"
    assert delivered["orderId"] == order["id"]
    assert delivered["message"]["text"] == "kept"


def test_malformed_frames_get_error_replies(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["detail"] == "invalid JSON"
        ws.send_json({"event": "dance"})
        assert ws.receive_json()["event"] == "error"
        ws.send_json({"event": "sendMessage", "orderId": "x", "message": {"text": ""}})
        reply = ws.receive_json()

    assert reply["event"] == "error"
    assert {"text", "senderId", "role"} <= {item["field"] for item in reply["errors"]}
