"""
Base service class for PerfLab services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Dict, Any, Iterable, Optional, Sequence
import os
import time

import psutil

from shared.config import ServiceConfig, get_config
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import (
    UNMATCHED_ROUTE,
    MetricDefinition,
    MetricsCollector,
    RequestTiming,
    get_metrics_collector,
    http_metric_definitions,
)
from shared.errors import PerfLabException


class BaseService:
    """Base service class with common functionality."""

    def __init__(
        self,
        service_name: str,
        port: int,
        *,
        config: Optional[ServiceConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        routes: Sequence[str] = (),
        metric_definitions: Iterable[MetricDefinition] = (),
    ):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        # Configure logging
        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.service")

        self.metrics = metrics or get_metrics_collector(
            http_metric_definitions(tuple(routes) + ("/health", "/metrics"))
            + list(metric_definitions),
            strict=self.config.metrics_strict,
        )
        self._start_time = time.time()

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"PerfLab Access Layer - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Response compression
        self.app.add_middleware(GZipMiddleware, minimum_size=1000)

        # Request timing middleware
        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            request_id = set_request_id(request.headers.get("x-request-id"))
            timing = RequestTiming(operation=request.method, resource=request.url.path)
            status_code = 500
            self.metrics.inc_gauge("active_connections")

            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                duration = timing.elapsed()
                self.metrics.dec_gauge("active_connections")

                labels = {
                    "method": request.method,
                    "route": self._route_template(request),
                    "status": str(status_code),
                }
                self.metrics.record_counter("http_requests_total", labels)
                self.metrics.observe_duration("http_request_duration_seconds", labels, duration)

                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                clear_context()

            response.headers["X-Request-ID"] = request_id
            return response

    @staticmethod
    def _route_template(request: Request) -> str:
        """Route path template, never the raw path, to keep label values bounded."""
        route = request.scope.get("route")
        return getattr(route, "path", None) or UNMATCHED_ROUTE

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()
                self.metrics.record_counter("health_check_total", {"status": "ok"})

                return {
                    "service": self.service_name,
                    "status": "ok",
                    "uptime_seconds": self._get_uptime(),
                    "pid": os.getpid(),
                    "rss_bytes": psutil.Process().memory_info().rss,
                    "dependencies": dependencies,
                    **self._health_details(),
                    "version": "1.0.0",
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_counter("health_check_total", {"status": "error"})
                return JSONResponse(
                    status_code=503,
                    content={
                        "service": self.service_name,
                        "status": "error",
                        "error": str(e)
                    }
                )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.snapshot(),
                media_type=self.metrics.content_type
            )

        # Error handlers
        @self.app.exception_handler(PerfLabException)
        async def perflab_exception_handler(request: Request, exc: PerfLabException):
            """Handle PerfLabException."""
            self.logger.error(
                "PerfLab error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _health_details(self) -> Dict[str, Any]:
        """Extra service-specific health fields. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    async def start(self):
        """Start service components. Override in subclasses."""

    async def stop(self):
        """Stop service components. Override in subclasses."""

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
