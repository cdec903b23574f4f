"""Fire concurrent inquiry requests for one buyer/product pair.

The inquiry lookup is find-then-insert without a unique index, so a burst of
first requests can create more than one INQUIRY order. This reports how many
distinct inquiries came back.
"""

import argparse
import asyncio
from collections import Counter

import httpx


async def run(order_url: str, product_id: str, buyer_id: str, concurrency: int) -> None:
    """Send `concurrency` simultaneous initiations and summarize the outcome."""

    headers = {"x-user-id": buyer_id, "authorization": "Bearer race"}
    async with httpx.AsyncClient(timeout=10.0) as client:

        async def initiate():
            resp = await client.post(f"{order_url}/orders/conversations/initiate/{product_id}", headers=headers)
            return resp.status_code, resp.json()

        results = await asyncio.gather(*(initiate() for _ in range(concurrency)))

    codes = Counter(code for code, _ in results)
    ids = {body["id"] for code, body in results if code == 200}
    statuses = {body["status"] for code, body in results if code == 200}
    print(f"http_codes={dict(codes)}")
    print(f"distinct_inquiries={len(ids)} statuses={sorted(statuses)}")


def main() -> None:
    """Parse CLI args and run the burst."""

    parser = argparse.ArgumentParser(description="Probe the inquiry find-then-insert race.")
    parser.add_argument("--order-url", default="http://localhost:5003")
    parser.add_argument("--product-id", required=True)
    parser.add_argument("--buyer-id", default="race-buyer")
    parser.add_argument("--concurrency", type=int, default=20)
    args = parser.parse_args()
    asyncio.run(run(args.order_url, args.product_id, args.buyer_id, args.concurrency))


if __name__ == "__main__":
    main()
