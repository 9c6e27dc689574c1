"""
Order operations.

Order listings look up the owning user once per order, and order creation
looks up each item's product separately. With ``n_plus_one_queries`` off both
become a single batched lookup so runs can be compared.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shared.errors import NotFoundError

from ..caching import CacheResult, resource_prefix
from ..caching.keys import order_key, orders_list_key
from .base import ResourceHandler
from .models import OrderCreate, OrderStatus


def user_details(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"_id": user["_id"], "username": user.get("username"), "email": user.get("email")}


class OrderHandler(ResourceHandler):
    """Read/write operations on orders."""

    resource = "orders"

    async def list_orders(
        self,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> CacheResult:
        skip = (page - 1) * limit

        def matches(doc):
            if status is not None and doc.get("status") != status:
                return False
            if user_id is not None and doc.get("user_id") != user_id:
                return False
            return True

        async def compute():
            with self._query("find"):
                orders = await self.db.find("orders", matches, skip=skip, limit=limit)
            await self._attach_user_details(orders)
            return orders

        return await self._cached_read(
            "list",
            orders_list_key(status, user_id, page, limit),
            self.config.orders_list_ttl,
            compute,
            scenario,
            scenario_param,
        )

    async def create_order(self, payload: OrderCreate) -> Dict[str, Any]:
        async def mutate():
            items = [item.model_dump() for item in payload.items]
            total = await self._price_items(items)
            now = datetime.now(timezone.utc).isoformat()
            document = {
                "order_id": str(uuid.uuid4()),
                "user_id": payload.user_id,
                "items": items,
                "total_amount": total,
                "status": OrderStatus.PENDING.value,
                "shipping_address": payload.shipping_address.model_dump() if payload.shipping_address else None,
                "created_at": now,
                "updated_at": now,
            }
            with self._query("insert"):
                return await self.db.insert("orders", document)

        return await self._write(
            "create",
            mutate,
            prefixes=[resource_prefix("orders")],
            scenario=payload.scenario,
            scenario_param=payload.scenario_param,
        )

    async def get_order(
        self,
        order_id: str,
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> CacheResult:
        async def compute():
            with self._query("findById"):
                order = await self.db.find_by_id("orders", order_id)
            if order is None:
                raise NotFoundError("orders", order_id)
            with self._query("findById", "users"):
                order["user_details"] = user_details(await self.db.find_by_id("users", order["user_id"]))
            return order

        return await self._cached_read(
            "get",
            order_key(order_id),
            self.config.order_detail_ttl,
            compute,
            scenario,
            scenario_param,
        )

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Dict[str, Any]:
        async def mutate():
            changes = {"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()}
            with self._query("update"):
                order = await self.db.update("orders", order_id, changes)
            if order is None:
                raise NotFoundError("orders", order_id)
            return order

        return await self._write(
            "update",
            mutate,
            prefixes=[resource_prefix("orders")],
            keys=[order_key(order_id)],
        )

    async def _attach_user_details(self, orders: List[Dict[str, Any]]) -> None:
        if self.config.n_plus_one_queries:
            for order in orders:
                with self._query("findById", "users"):
                    order["user_details"] = user_details(await self.db.find_by_id("users", order["user_id"]))
            return

        with self._query("findById", "users"):
            users = await self.db.find_by_ids("users", [order["user_id"] for order in orders])
        for order in orders:
            order["user_details"] = user_details(users.get(order["user_id"]))

    async def _price_items(self, items: List[Dict[str, Any]]) -> float:
        """Fill in unit prices and return the order total; unknown products are skipped."""
        total = 0.0
        if self.config.n_plus_one_queries:
            for item in items:
                with self._query("findById", "products"):
                    product = await self.db.find_by_id("products", item["product_id"])
                if product:
                    item["price"] = product["price"]
                    total += product["price"] * item["quantity"]
            return total

        with self._query("findById", "products"):
            products = await self.db.find_by_ids("products", [item["product_id"] for item in items])
        for item in items:
            product = products.get(item["product_id"])
            if product:
                item["price"] = product["price"]
                total += product["price"] * item["quantity"]
        return total
