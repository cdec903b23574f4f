"""HTTP and WebSocket surface for orders, inquiries and order chat."""

import json
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Response, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from marketplace.common.config import settings
from marketplace.common.db import SessionLocal
from marketplace.common.errors import MarketplaceError, NotFound, install_error_handlers
from marketplace.common.identity import Caller, caller_identity, require_user
from marketplace.common.logging import configure_logging, logger
from marketplace.common.metrics import install_http_metrics, metrics_response
from marketplace.common.startup import log_startup_config
from marketplace.common.tracing import instrument_app, setup_tracing
from marketplace.services.orders.chat import ChatChannel, RoomRegistry
from marketplace.services.orders.products import ProductClient
from marketplace.services.orders.schemas import OrderCreateRequest, OrderPatch, OrderResponse
from marketplace.services.orders.service import OrderService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "PRODUCT_SERVICE_URL", "CORS_ORIGINS"],
)
service = OrderService(SessionLocal)
products = ProductClient(settings.product_service_url)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the chat room registry for the lifetime of the process."""

    registry = RoomRegistry()
    app.state.chat = ChatChannel(service, registry)
    yield
    await registry.close()


app = FastAPI(title="Marketplace Order Service", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=settings.cors_origin_list, allow_methods=["*"], allow_headers=["*"])
install_http_metrics(app)
install_error_handlers(app)
instrument_app(app)


@app.get("/orders", response_model=list[OrderResponse])
def list_orders():
    return service.list_all()


@app.get("/orders/user/{buyer_id}", response_model=list[OrderResponse])
def list_buyer_orders(buyer_id: str):
    return service.list_by_buyer(buyer_id)


@app.get("/orders/seller/{seller_id}", response_model=list[OrderResponse])
def list_seller_orders(seller_id: str):
    return service.list_by_seller(seller_id)


@app.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str):
    return service.get(order_id)


@app.post("/orders", response_model=OrderResponse, status_code=201)
def create_order(req: OrderCreateRequest):
    order = service.create(req)
    logger.info("order_created order_id=%s status=%s", order.id, order.status)
    return order


@app.put("/orders/{order_id}", response_model=OrderResponse, status_code=202)
def update_order(order_id: str, patch: OrderPatch):
    return service.update(order_id, patch)


@app.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: str):
    if not service.delete(order_id):
        raise NotFound(f"order {order_id} not found")
    return Response(status_code=204)


@app.post("/orders/conversations/initiate/{product_id}", response_model=OrderResponse)
async def initiate_inquiry(product_id: str, caller: Caller = Depends(caller_identity)):
    """Open (or reopen) the inquiry chat between the caller and the product's seller."""

    buyer_id = require_user(caller)
    product = await products.get_product(product_id, caller)
    return service.get_or_create_inquiry(product, buyer_id, 1)


async def _send_error(websocket: WebSocket, detail: str, order_id: str | None = None, errors=None) -> None:
    frame = {"event": "error", "detail": detail}
    if order_id:
        frame["orderId"] = order_id
    if errors:
        frame["errors"] = errors
    await websocket.send_json(frame)


async def _handle_frame(channel: ChatChannel, websocket: WebSocket, frame: dict) -> None:
    event = frame.get("event")
    order_id = frame.get("orderId")
    if event not in ("subscribeToOrder", "sendMessage"):
        await _send_error(websocket, f"unknown event: {event}")
        return
    if not isinstance(order_id, str) or not order_id:
        await _send_error(websocket, "orderId is required")
        return

    if event == "subscribeToOrder":
        await channel.subscribe(order_id, websocket)
        await websocket.send_json({"event": "subscribed", "orderId": order_id})
        return

    try:
        await channel.publish(order_id, frame.get("message"))
    except MarketplaceError as exc:
        await _send_error(websocket, exc.message, order_id, exc.errors)
    except Exception as exc:
        logger.exception("chat_publish_error order_id=%s error=%s", order_id, exc)
        await _send_error(websocket, "Failed to save message", order_id)


@app.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    """Chat connection: subscribe to order rooms and publish messages into them."""

    channel: ChatChannel = websocket.app.state.chat
    await websocket.accept()
    logger.info("chat_connected client=%s", websocket.client)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await _send_error(websocket, "invalid JSON")
                continue
            if not isinstance(frame, dict):
                await _send_error(websocket, "frame must be a JSON object")
                continue
            await _handle_frame(channel, websocket, frame)
    except WebSocketDisconnect:
        pass
    finally:
        await channel.disconnect(websocket)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
