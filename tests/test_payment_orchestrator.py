"""Payment status writes and the fulfillment saga that follows SUCCEEDED."""

import asyncio
import json
from dataclasses import replace

import httpx
import pytest

from marketplace.common.errors import NotFound
from marketplace.common.identity import Caller
from marketplace.services.payments.clients import NotificationClient, OrderClient, StockClient
from marketplace.services.payments.orchestrator import PaymentOrchestrator, confirmation_email
from marketplace.services.payments.schemas import PaymentCreateRequest, PaymentStatus
from marketplace.services.payments.service import PaymentService

ORDER_ID = "5f1c0a9e7d3b4c2a8e6f001a2b3c4d"
PAYER = Caller(user_id="buyer-1", email="buyer@example.com", authorization="Bearer token")


def _collaborators(order_lines=None, stock_status=None, order_status=200):
    lines = order_lines if order_lines is not None else [{"productId": "p1", "quantity": 1}]
    stock_status = stock_status or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == f"/orders/{ORDER_ID}":
            if order_status != 200:
                return httpx.Response(order_status)
            return httpx.Response(200, json={"id": ORDER_ID, "products": lines})
        if path.endswith("/decrease-stock"):
            product_id = path.split("/")[2]
            status = stock_status.get(product_id, 200)
            if status == "down":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(status, json={"message": "Stock updated successfully"})
        if path == "/notify/email":
            return httpx.Response(200, json={"message": "Email sent successfully", "messageId": "<m@x>"})
        return httpx.Response(404)

    return handler


@pytest.fixture
def payments(session_factory):
    return PaymentService(session_factory)


@pytest.fixture
def make_orchestrator(payments, recording_transport):
    def build(**kwargs):
        transport = recording_transport(_collaborators(**kwargs))
        orchestrator = PaymentOrchestrator(
            payments,
            OrderClient("http://orders.test", transport=transport),
            StockClient("http://products.test", transport=transport),
            NotificationClient("http://notify.test", transport=transport),
        )
        return orchestrator, transport

    return build


def _pay(payments: PaymentService, quantity: int = 1):
    return payments.create(
        PaymentCreateRequest(orderId=ORDER_ID, amount=49.99, productId="p1", productQuantity=quantity)
    )


def test_succeeded_runs_stock_then_email(payments, make_orchestrator):
    _pay(payments)
    orchestrator, transport = make_orchestrator()

    transition = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER)
    report = asyncio.run(orchestrator.fulfill(transition.job))

    assert transition.payment.status == "SUCCEEDED"
    assert transition.previous_status == "PENDING"
    assert report.steps == {"stock": "ok", "notification": "ok"}
    stock_calls = transport.matching("PUT", "/products/p1/decrease-stock")
    assert len(stock_calls) == 1
    assert json.loads(stock_calls[0].content) == {"quantity": 1}
    assert stock_calls[0].headers["authorization"] == "Bearer token"
    emails = transport.matching("POST", "/notify/email")
    assert len(emails) == 1
    body = json.loads(emails[0].content)
    assert body["to"] == "buyer@example.com"
    assert ORDER_ID[-6:] in body["subject"]
    paths = [r.url.path for r in transport.requests]
    assert paths.index("/products/p1/decrease-stock") < paths.index("/notify/email")


def test_confirmation_email_mentions_amount_and_short_order_id(payments, make_orchestrator):
    _pay(payments)
    orchestrator, _ = make_orchestrator()
    job = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER).job

    subject, text = confirmation_email(job)

    assert subject == f"Payment Successful - Order #{ORDER_ID[-6:]}"
    assert "49.99 CZK" in text


def test_repeated_succeeded_does_not_refulfill(payments, make_orchestrator):
    _pay(payments)
    orchestrator, _ = make_orchestrator()

    first = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER)
    second = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER)

    assert first.job is not None
    assert second.job is None
    assert second.previous_status == "SUCCEEDED"


def test_succeeded_again_after_failed_does_not_refulfill(payments, make_orchestrator):
    _pay(payments)
    orchestrator, _ = make_orchestrator()

    assert orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER).job is not None
    failed = orchestrator.transition_status(ORDER_ID, PaymentStatus.FAILED, PAYER)
    again = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER)

    assert failed.payment.status == "FAILED"
    assert again.payment.status == "SUCCEEDED"
    assert again.job is None


def test_no_credential_skips_saga_until_a_credentialed_write(payments, make_orchestrator):
    _pay(payments)
    orchestrator, transport = make_orchestrator()

    anonymous = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, Caller(user_id="buyer-1"))
    credentialed = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER)

    assert anonymous.payment.status == "SUCCEEDED"
    assert anonymous.job is None
    assert credentialed.job is not None
    assert transport.requests == []


def test_fulfill_without_credential_contacts_nobody(payments, make_orchestrator):
    _pay(payments)
    orchestrator, transport = make_orchestrator()
    job = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER).job
    stripped = replace(job, caller=Caller(email="buyer@example.com"))

    report = asyncio.run(orchestrator.fulfill(stripped))

    assert report.steps == {"stock": "skipped", "notification": "skipped"}
    assert transport.requests == []


def test_pending_and_failed_never_start_saga(payments, make_orchestrator):
    _pay(payments)
    orchestrator, _ = make_orchestrator()

    assert orchestrator.transition_status(ORDER_ID, PaymentStatus.FAILED, PAYER).job is None
    assert orchestrator.transition_status(ORDER_ID, PaymentStatus.PENDING, PAYER).job is None


def test_stock_outage_still_sends_email(payments, make_orchestrator):
    _pay(payments)
    orchestrator, transport = make_orchestrator(stock_status={"p1": "down"})

    job = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER).job
    report = asyncio.run(orchestrator.fulfill(job))

    assert report.steps == {"stock": "failed", "notification": "ok"}
    assert len(transport.matching("POST", "/notify/email")) == 1
    assert payments.get_by_order_id(ORDER_ID).status == "SUCCEEDED"


def test_one_rejected_line_does_not_skip_the_rest(payments, make_orchestrator):
    _pay(payments, quantity=2)
    lines = [{"productId": "p1", "quantity": 2}, {"productId": "p2", "quantity": 2}]
    orchestrator, transport = make_orchestrator(order_lines=lines, stock_status={"p1": 409})

    job = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER).job
    report = asyncio.run(orchestrator.fulfill(job))

    assert report.steps["stock"] == "failed"
    assert len(transport.matching("PUT", "/products/p2/decrease-stock")) == 1
    assert json.loads(transport.matching("PUT", "/products/p2/decrease-stock")[0].content) == {"quantity": 2}


def test_order_fetch_failure_fails_stock_step_only(payments, make_orchestrator):
    _pay(payments)
    orchestrator, transport = make_orchestrator(order_status=503)

    job = orchestrator.transition_status(ORDER_ID, PaymentStatus.SUCCEEDED, PAYER).job
    report = asyncio.run(orchestrator.fulfill(job))

    assert report.steps == {"stock": "failed", "notification": "ok"}
    assert not any(r.url.path.endswith("/decrease-stock") for r in transport.requests)


def test_missing_email_skips_notification(payments, make_orchestrator):
    _pay(payments)
    orchestrator, transport = make_orchestrator()

    job = orchestrator.transition_status(
        ORDER_ID, PaymentStatus.SUCCEEDED, Caller(user_id="buyer-1", authorization="Bearer token")
    ).job
    report = asyncio.run(orchestrator.fulfill(job))

    assert report.steps == {"stock": "ok", "notification": "skipped"}
    assert transport.matching("POST", "/notify/email") == []


def test_unknown_order_payment_is_not_found(payments, make_orchestrator):
    orchestrator, _ = make_orchestrator()

    with pytest.raises(NotFound):
        orchestrator.transition_status("nope", PaymentStatus.SUCCEEDED, PAYER)
