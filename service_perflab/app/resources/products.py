"""
Product operations.
"""

from typing import Any, Dict, Optional

from shared.errors import NotFoundError

from ..caching import CacheResult, resource_prefix
from ..caching.keys import product_key, products_list_key
from .base import ResourceHandler
from .models import ProductCreate


class ProductHandler(ResourceHandler):
    """Read/write operations on products."""

    resource = "products"

    async def list_products(
        self,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        page: int = 1,
        limit: int = 20,
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> CacheResult:
        skip = (page - 1) * limit

        def matches(doc):
            if category is not None and doc.get("category") != category:
                return False
            if min_price is not None and doc["price"] < min_price:
                return False
            if max_price is not None and doc["price"] > max_price:
                return False
            return True

        async def compute():
            with self._query("find"):
                return await self.db.find("products", matches, skip=skip, limit=limit)

        return await self._cached_read(
            "list",
            products_list_key(category, min_price, max_price, page, limit),
            self.config.products_list_ttl,
            compute,
            scenario,
            scenario_param,
        )

    async def create_product(self, payload: ProductCreate) -> Dict[str, Any]:
        async def mutate():
            document = payload.model_dump(exclude={"scenario", "scenario_param"})
            with self._query("insert"):
                return await self.db.insert("products", document)

        return await self._write(
            "create",
            mutate,
            prefixes=[resource_prefix("products")],
            scenario=payload.scenario,
            scenario_param=payload.scenario_param,
        )

    async def get_product(
        self,
        product_id: str,
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> CacheResult:
        async def compute():
            with self._query("findById"):
                product = await self.db.find_by_id("products", product_id)
            if product is None:
                raise NotFoundError("products", product_id)
            return product

        return await self._cached_read(
            "get",
            product_key(product_id),
            self.config.product_detail_ttl,
            compute,
            scenario,
            scenario_param,
        )
