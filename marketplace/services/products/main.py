"""HTTP surface of the product service used by inquiries and payment fulfillment."""

from fastapi import Depends, FastAPI

from marketplace.common.config import settings
from marketplace.common.db import SessionLocal
from marketplace.common.errors import install_error_handlers
from marketplace.common.identity import Caller, caller_identity, require_user
from marketplace.common.logging import configure_logging
from marketplace.common.metrics import install_http_metrics, metrics_response
from marketplace.common.startup import log_startup_config
from marketplace.common.tracing import instrument_app, setup_tracing
from marketplace.services.products.schemas import DecreaseStockRequest, ProductCreateRequest, ProductResponse
from marketplace.services.products.service import ProductService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings.service_name, ["SERVICE_NAME", "DATABASE_URL"])
service = ProductService(SessionLocal)

app = FastAPI(title="Marketplace Product Service")
install_http_metrics(app)
install_error_handlers(app)
instrument_app(app)


@app.post("/products", response_model=ProductResponse, status_code=201)
def create_product(req: ProductCreateRequest, caller: Caller = Depends(caller_identity)):
    return service.create(req, require_user(caller))


@app.get("/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: str):
    return service.get(product_id)


@app.put("/products/{product_id}/decrease-stock")
def decrease_stock(product_id: str, req: DecreaseStockRequest | None = None):
    """Decrement stock; 409 when fewer than `quantity` units are on hand."""

    quantity = req.quantity if req is not None else 1
    product = service.decrease_stock(product_id, quantity)
    return {"message": "Stock updated successfully", "stockCount": product.stock_count}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
