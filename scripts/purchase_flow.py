"""Drive one inquiry-to-payment flow against running services.

Creates a product, opens an inquiry as a buyer, places an order, pays it and
then reports the product's remaining stock once fulfillment has had a moment
to run.
"""

import argparse
import asyncio
from uuid import uuid4

import httpx


async def run(order_url: str, product_url: str, payment_url: str, buyer_email: str, quantity: int) -> None:
    """Execute the flow step by step, printing each intermediate result."""

    seller = {"x-user-id": f"seller-{uuid4().hex[:8]}", "authorization": "Bearer smoke-seller"}
    buyer = {
        "x-user-id": f"buyer-{uuid4().hex[:8]}",
        "x-user-email": buyer_email,
        "authorization": "Bearer smoke-buyer",
    }
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.post(
            f"{product_url}/products",
            json={"name": "Smoke Lamp", "description": "test item", "price": 19.99, "stockCount": 10},
            headers=seller,
        )
        resp.raise_for_status()
        product = resp.json()
        print(f"product id={product['id']} stock={product['stockCount']}")

        resp = await client.post(f"{order_url}/orders/conversations/initiate/{product['id']}", headers=buyer)
        resp.raise_for_status()
        inquiry = resp.json()
        print(f"inquiry id={inquiry['id']} status={inquiry['status']}")

        resp = await client.post(
            f"{order_url}/orders",
            json={
                "buyerId": buyer["x-user-id"],
                "sellerId": product["ownerId"],
                "products": [
                    {
                        "productId": product["id"],
                        "name": product["name"],
                        "description": product["description"],
                        "price": product["price"],
                        "quantity": quantity,
                    }
                ],
                "totalPrice": round(product["price"] * quantity, 2),
                "status": "CREATED",
            },
        )
        resp.raise_for_status()
        order = resp.json()
        print(f"order id={order['id']} total={order['totalPrice']}")

        resp = await client.post(
            f"{payment_url}/payments",
            json={
                "orderId": order["id"],
                "amount": order["totalPrice"],
                "currency": "CZK",
                "productId": product["id"],
                "productQuantity": quantity,
            },
            headers=buyer,
        )
        resp.raise_for_status()
        print(f"payment status={resp.json()['status']}")

        resp = await client.put(
            f"{payment_url}/payments/{order['id']}/update", json={"status": "SUCCEEDED"}, headers=buyer
        )
        print(f"status update http={resp.status_code} status={resp.json().get('status')}")

        await asyncio.sleep(1.0)
        resp = await client.get(f"{product_url}/products/{product['id']}")
        print(f"stock after payment={resp.json()['stockCount']}")


def main() -> None:
    """Parse CLI args and run the flow."""

    parser = argparse.ArgumentParser(description="Run one purchase flow end to end.")
    parser.add_argument("--order-url", default="http://localhost:5003")
    parser.add_argument("--product-url", default="http://localhost:5002")
    parser.add_argument("--payment-url", default="http://localhost:3100")
    parser.add_argument("--buyer-email", default="buyer@example.com")
    parser.add_argument("--quantity", type=int, default=1)
    args = parser.parse_args()
    asyncio.run(run(args.order_url, args.product_url, args.payment_url, args.buyer_email, args.quantity))


if __name__ == "__main__":
    main()
