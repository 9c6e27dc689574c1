"""
PerfLab service: users, products and orders behind a cache-aside layer, with
per-request bottleneck injection and Prometheus instrumentation.
"""

from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis
from fastapi import Query, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.metrics import MetricsCollector

from .bottlenecks import BottleneckInjector
from .caching import CacheAsideStore, CacheResult
from .instrumentation import ROUTE_TEMPLATES, perflab_metric_definitions
from .persistence import InMemoryDatabase
from .resources import OrderHandler, ProductHandler, UserHandler
from .resources.models import OrderCreate, OrderStatusUpdate, ProductCreate, UserCreate


SERVICE_NAME = "perflab"
SERVICE_PORT = 3000


def _cached_response(response: Response, result: CacheResult) -> Any:
    response.headers["X-Cache"] = result.outcome.value
    return result.value


class PerfLabService(BaseService):
    """PerfLab service implementation."""

    def __init__(
        self,
        *,
        config: Optional[ServiceConfig] = None,
        redis_client: Optional[redis.Redis] = None,
        metrics: Optional[MetricsCollector] = None,
        leak_factory: Optional[Callable] = None,
    ):
        super().__init__(
            SERVICE_NAME,
            SERVICE_PORT,
            config=config,
            metrics=metrics,
            routes=ROUTE_TEMPLATES,
            metric_definitions=perflab_metric_definitions(),
        )

        self.redis = redis_client or redis.from_url(
            self.config.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        self.cache = CacheAsideStore(self.redis, self.metrics)
        self.injector = BottleneckInjector(
            self.metrics,
            leak_target_url=self.config.leak_target_url or self.config.redis_url,
            leak_factory=leak_factory,
            max_duration_ms=self.config.bottleneck_max_duration_ms,
            max_memory_mb=self.config.bottleneck_max_memory_mb,
        )
        self.db = InMemoryDatabase(latency_ms=self.config.db_latency_ms)

        handler_args = (self.db, self.cache, self.injector, self.metrics, self.config)
        self.users = UserHandler(*handler_args)
        self.products = ProductHandler(*handler_args)
        self.orders = OrderHandler(*handler_args)

        self._setup_resource_routes()

    def _setup_resource_routes(self):
        """Set up resource and bottleneck routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "PerfLab Access Layer",
                "version": "1.0.0",
                "capabilities": ["cache-aside", "bottlenecks", "metrics"]
            }

        # Users

        @self.app.get("/api/users")
        async def list_users(
            response: Response,
            page: int = Query(1, ge=1),
            limit: int = Query(10, ge=1, le=100),
            scenario: Optional[str] = None,
            scenario_param: Optional[float] = Query(None, alias="scenarioParam"),
        ):
            """List users with pagination."""
            result = await self.users.list_users(page, limit, scenario, scenario_param)
            return _cached_response(response, result)

        @self.app.post("/api/users", status_code=201)
        async def create_user(payload: UserCreate):
            """Create a user; may run a bottleneck first."""
            return await self.users.create_user(payload)

        @self.app.get("/api/users/search")
        async def search_users(q: str = Query(..., min_length=1)):
            """Search users by regex."""
            return await self.users.search_users(q)

        # Products

        @self.app.get("/api/products")
        async def list_products(
            response: Response,
            category: Optional[str] = None,
            min_price: Optional[float] = Query(None, alias="minPrice"),
            max_price: Optional[float] = Query(None, alias="maxPrice"),
            page: int = Query(1, ge=1),
            limit: int = Query(20, ge=1, le=100),
            scenario: Optional[str] = None,
            scenario_param: Optional[float] = Query(None, alias="scenarioParam"),
        ):
            """List products with filtering."""
            result = await self.products.list_products(
                category, min_price, max_price, page, limit, scenario, scenario_param
            )
            return _cached_response(response, result)

        @self.app.post("/api/products", status_code=201)
        async def create_product(payload: ProductCreate):
            """Create a product."""
            return await self.products.create_product(payload)

        @self.app.get("/api/products/{product_id}")
        async def get_product(
            product_id: str,
            response: Response,
            scenario: Optional[str] = None,
            scenario_param: Optional[float] = Query(None, alias="scenarioParam"),
        ):
            """Get a product by id."""
            result = await self.products.get_product(product_id, scenario, scenario_param)
            return _cached_response(response, result)

        # Orders

        @self.app.get("/api/orders")
        async def list_orders(
            response: Response,
            status: Optional[str] = None,
            user_id: Optional[str] = Query(None, alias="userId"),
            page: int = Query(1, ge=1),
            limit: int = Query(10, ge=1, le=100),
            scenario: Optional[str] = None,
            scenario_param: Optional[float] = Query(None, alias="scenarioParam"),
        ):
            """List orders with pagination and filtering."""
            result = await self.orders.list_orders(status, user_id, page, limit, scenario, scenario_param)
            return _cached_response(response, result)

        @self.app.post("/api/orders", status_code=201)
        async def create_order(payload: OrderCreate):
            """Create an order; may run a bottleneck first."""
            return await self.orders.create_order(payload)

        @self.app.get("/api/orders/{order_id}")
        async def get_order(
            order_id: str,
            response: Response,
            scenario: Optional[str] = None,
            scenario_param: Optional[float] = Query(None, alias="scenarioParam"),
        ):
            """Get an order by id."""
            result = await self.orders.get_order(order_id, scenario, scenario_param)
            return _cached_response(response, result)

        @self.app.put("/api/orders/{order_id}/status")
        async def update_order_status(order_id: str, payload: OrderStatusUpdate):
            """Update order status."""
            return await self.orders.update_order_status(order_id, payload.status)

        # Bottlenecks

        @self.app.post("/api/bottlenecks/{scenario}")
        async def run_bottleneck(scenario: str, param: Optional[float] = None):
            """Run a bottleneck scenario directly."""
            report = await self.injector.run(scenario, param)
            if report is None:
                return {"scenario": scenario, "executed": False}
            return {"executed": True, **report.to_dict()}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check PerfLab service dependencies."""
        return {"redis": "ok" if await self.cache.health_check() else "error"}

    def _health_details(self) -> Dict[str, Any]:
        return {
            "leaked_handles": self.injector.leaked_handles,
            "retained_bytes": self.users.retained_bytes,
            "db_queries": self.db.query_count,
        }

    async def start(self):
        """Start PerfLab service components."""
        self.logger.info("PerfLab service started", redis_url=self.config.redis_url)

    async def stop(self):
        """Stop PerfLab service components."""
        await self.injector.drain()
        await self.redis.aclose()
        self.logger.info("PerfLab service stopped")


def create_app():
    """Create PerfLab service application."""
    service = PerfLabService()
    return service.app


def main():
    """Run the PerfLab service."""
    PerfLabService().run()


if __name__ == "__main__":
    main()
