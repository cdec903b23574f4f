"""Payment HTTP surface."""

import httpx
import pytest
from fastapi.testclient import TestClient

from marketplace.services.payments import main
from marketplace.services.payments.clients import NotificationClient, OrderClient, StockClient
from marketplace.services.payments.orchestrator import PaymentOrchestrator


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def client(session_factory, monkeypatch, recording_transport):
    transport = recording_transport(_unreachable)
    orchestrator = PaymentOrchestrator(
        main.service,
        OrderClient("http://orders.test", transport=transport),
        StockClient("http://products.test", transport=transport),
        NotificationClient("http://notify.test", transport=transport),
    )
    monkeypatch.setattr(main, "orchestrator", orchestrator)
    with TestClient(main.app) as test_client:
        test_client.collaborators = transport
        yield test_client


def _create(client, order_id="order-1", **overrides):
    body = {"orderId": order_id, "amount": 120.5, "productId": "p1", "productQuantity": 2}
    body.update(overrides)
    return client.post("/payments", json=body)


def test_create_defaults_to_pending_czk(client):
    resp = _create(client)

    assert resp.status_code == 201
    payment = resp.json()
    assert payment["status"] == "PENDING"
    assert payment["currency"] == "CZK"
    assert payment["orderId"] == "order-1"


def test_create_rejects_non_positive_amount(client):
    resp = _create(client, amount=0)

    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "amount"


def test_get_by_order_id(client):
    _create(client, currency="eur")

    found = client.get("/payments/order-1")
    assert found.status_code == 200
    assert found.json()["currency"] == "EUR"
    assert client.get("/payments/order-2").status_code == 404


def test_succeeded_with_collaborators_down_still_commits(client):
    _create(client)
    headers = {"authorization": "Bearer t", "x-user-id": "buyer-1", "x-user-email": "buyer@example.com"}

    resp = client.put("/payments/order-1/update", json={"status": "SUCCEEDED"}, headers=headers)

    assert resp.status_code == 202
    assert resp.json()["status"] == "SUCCEEDED"
    assert client.get("/payments/order-1").json()["status"] == "SUCCEEDED"
    # the saga ran after the response and reached the order service before failing
    assert client.collaborators.matching("GET", "/orders/order-1")


def test_status_update_without_credential_skips_saga(client):
    _create(client)

    resp = client.put("/payments/order-1/update", json={"status": "SUCCEEDED"})

    assert resp.status_code == 202
    assert client.collaborators.requests == []


def test_invalid_status_is_rejected(client):
    _create(client)

    resp = client.put("/payments/order-1/update", json={"status": "REFUNDED"})

    assert resp.status_code == 400
    assert client.get("/payments/order-1").json()["status"] == "PENDING"


def test_update_unknown_order_is_404(client):
    assert client.put("/payments/nope/update", json={"status": "FAILED"}).status_code == 404


def test_list_filters_by_status(client):
    _create(client, "order-1")
    _create(client, "order-2")
    client.put("/payments/order-2/update", json={"status": "FAILED"})

    assert len(client.get("/payments").json()) == 2
    failed = client.get("/payments", params={"status": "FAILED"}).json()
    assert [p["orderId"] for p in failed] == ["order-2"]


def test_delete_is_single_shot(client):
    payment = _create(client).json()

    assert client.delete(f"/payments/{payment['id']}").status_code == 204
    assert client.delete(f"/payments/{payment['id']}").status_code == 404
