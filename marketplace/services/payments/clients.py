"""Clients for the services touched by payment fulfillment."""

from marketplace.common.collaborators import CollaboratorClient
from marketplace.common.identity import Caller


class OrderClient(CollaboratorClient):
    name = "order-service"

    async def get_order(self, order_id: str, caller: Caller) -> dict:
        resp = await self.request("GET", f"/orders/{order_id}", caller)
        return resp.json()


class StockClient(CollaboratorClient):
    name = "product-service"

    async def decrease_stock(self, product_id: str, quantity: int, caller: Caller) -> None:
        await self.request("PUT", f"/products/{product_id}/decrease-stock", caller, json={"quantity": quantity})


class NotificationClient(CollaboratorClient):
    name = "notification-service"

    async def send_email(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        payload = {"to": to, "subject": subject, "text": text}
        if html is not None:
            payload["html"] = html
        await self.request("POST", "/notify/email", json=payload)
