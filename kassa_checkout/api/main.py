"""
FastAPI application factory.

Checkout payment API with:
- Request ID tracking
- Structured logging
- Prometheus metrics
- Collaborators built once and shared through ``app.state``
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from kassa_checkout import __version__
from kassa_checkout.config import Settings, get_settings
from kassa_checkout.core.interfaces import GatewayClient, OrderStore
from kassa_checkout.core.notifications import NotificationVerifier
from kassa_checkout.core.payments import PaymentService
from kassa_checkout.core.reconciler import TransactionReconciler
from kassa_checkout.database import Database, SqlOrderStore
from kassa_checkout.integrations import HttpGatewayClient
from kassa_checkout.monitoring.logging import setup_logging

from .routes import monitoring_router, notification_router, payment_router

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[GatewayClient] = None,
    order_store: Optional[OrderStore] = None,
) -> FastAPI:
    """
    Build the application and its collaborators.

    Args:
        settings: Application settings, defaults to the environment
        gateway: Gateway client, an HTTP client is created if omitted
        order_store: Order store, the SQL store is created if omitted

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    database: Optional[Database] = None
    if order_store is None:
        database = Database(settings)
        order_store = SqlOrderStore(database)

    owned_gateway: Optional[HttpGatewayClient] = None
    if gateway is None:
        owned_gateway = HttpGatewayClient(settings)
        gateway = owned_gateway

    reconciler = TransactionReconciler(
        payments=PaymentService(settings, gateway),
        order_store=order_store,
        verifier=NotificationVerifier(settings.wallet_password),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
            integration_mode=settings.integration_mode.value,
            test_mode=settings.test_mode,
        )

        if database is not None:
            try:
                await database.init_db()
                logger.info("database_initialized")
            except Exception as e:
                logger.error("database_initialization_failed", error=str(e))
                raise

        yield

        logger.info("application_shutdown")
        if owned_gateway is not None:
            await owned_gateway.aclose()
        if database is not None:
            await database.close()
            logger.info("database_connections_closed")

    app = FastAPI(
        title="Kassa Checkout",
        description=(
            "Checkout integration with a payment gateway: authorize-only payment "
            "creation, capture on return or webhook, signed wallet callbacks."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.gateway = gateway
    app.state.order_store = order_store
    app.state.reconciler = reconciler

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Bind a request id into the log context and echo it in the response."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Never leak internals to the shop or the gateway."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(payment_router)
    app.include_router(notification_router)
    app.include_router(monitoring_router)

    return app


def main() -> None:
    """Run the API under uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "kassa_checkout.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
