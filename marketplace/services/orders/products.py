"""Product service client used to resolve products before opening an inquiry."""

from marketplace.common.collaborators import CollaboratorClient
from marketplace.common.errors import NotFound
from marketplace.common.identity import Caller
from marketplace.services.orders.schemas import ProductSnapshot


class ProductClient(CollaboratorClient):
    name = "product-service"

    async def get_product(self, product_id: str, caller: Caller | None = None) -> ProductSnapshot:
        try:
            resp = await self.request("GET", f"/products/{product_id}", caller)
        except NotFound as exc:
            raise NotFound("Product not found") from exc
        return ProductSnapshot.model_validate(resp.json())
