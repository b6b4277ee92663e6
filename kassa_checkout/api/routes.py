"""
API routes for checkout payments and gateway notifications.
"""
from typing import Any, Dict
from urllib.parse import parse_qsl

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kassa_checkout import __version__
from kassa_checkout.config import IntegrationMode, Settings
from kassa_checkout.core.errors import MethodParamsError
from kassa_checkout.core.methods import decode_method_params
from kassa_checkout.core.models import Order
from kassa_checkout.core.quickpay import build_direct_transfer_form, build_wallet_form
from kassa_checkout.core.reconciler import TransactionReconciler

from .schemas import (
    HealthCheckResponse,
    LegacyNotificationResponse,
    QuickpayFormSchema,
    ReturnCheckResponse,
    StartPaymentRequest,
    StartPaymentResponse,
)

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/payments", tags=["payments"])
notification_router = APIRouter(prefix="/notifications", tags=["notifications"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_reconciler(request: Request) -> TransactionReconciler:
    return request.app.state.reconciler


@payment_router.post(
    "",
    response_model=StartPaymentResponse,
    summary="Start a payment",
    description="Create an authorize-only payment, or a quickpay form in wallet modes",
)
async def start_payment(
    body: StartPaymentRequest,
    settings: Settings = Depends(get_settings_dep),
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> Dict[str, Any]:
    """Start paying an order in the configured integration mode."""
    mode = settings.integration_mode
    logger.info("api_start_payment_request", order_id=body.order_id, mode=mode.value)

    if mode is IntegrationMode.OFF:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Payment integration is disabled"
        )

    order_fields: Dict[str, Any] = dict(
        order_id=body.order_id,
        order_number=body.order_number,
        total=body.total,
        currency=body.currency,
        email=body.email,
        shipping=body.to_shipping(),
        client_ip=body.client_ip,
        comment=body.comment,
    )

    if mode is IntegrationMode.WALLET:
        order = Order(**order_fields)
        title = body.title or f"Order {order.display_number}"
        form = build_wallet_form(settings, order, body.return_url, title, body.payment_type)
        return {
            "created": True,
            "order_id": order.order_id,
            "form": QuickpayFormSchema(action=form.action, fields=form.fields),
        }

    if mode is IntegrationMode.DIRECT_TRANSFER:
        order = Order(**order_fields)
        form = build_direct_transfer_form(settings, order, body.fio)
        return {
            "created": True,
            "order_id": order.order_id,
            "form": QuickpayFormSchema(action=form.action, fields=form.fields),
        }

    try:
        method = decode_method_params(body.method, settings.allow_method_choice_on_gateway)
    except MethodParamsError as e:
        logger.warning("api_start_payment_invalid_method", order_id=body.order_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    order = Order(method=method, **order_fields)
    outcome = await reconciler.start_payment(order, body.to_cart(), body.return_url)
    return {
        "created": outcome.created,
        "order_id": outcome.order_id,
        "payment_id": outcome.payment.id if outcome.payment else None,
        "status": outcome.payment.status if outcome.payment else None,
        "confirmation_url": outcome.confirmation_url,
        "message": outcome.message,
    }


@payment_router.get(
    "/return",
    response_model=ReturnCheckResponse,
    summary="Check payment on buyer return",
    description="Converge the order with the gateway when the buyer comes back",
)
async def check_return(
    order_id: str = Query(..., min_length=1),
    settings: Settings = Depends(get_settings_dep),
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> Dict[str, Any]:
    if settings.integration_mode is not IntegrationMode.GATEWAY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Return check is only available in gateway mode",
        )

    outcome = await reconciler.check_return(order_id)
    return {
        "order_id": outcome.order_id,
        "outcome": outcome.status.value,
        "redirect": outcome.redirect,
        "payment_id": outcome.payment_id,
        "payment_status": outcome.payment.status if outcome.payment else None,
    }


@notification_router.post(
    "/kassa",
    summary="Gateway webhook",
    description="Capture a payment reported as waiting for capture",
)
async def kassa_notification(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> JSONResponse:
    """
    Handle the gateway ``payment.waiting_for_capture`` webhook.

    Answers 400 outside gateway mode or on an empty or invalid body, 404
    when the payment cannot be captured, 401 when it did not succeed and
    200 once it is saved.
    """
    if settings.integration_mode is not IntegrationMode.GATEWAY:
        logger.warning(
            "api_kassa_notification_rejected", mode=settings.integration_mode.value
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Gateway integration is disabled"},
        )

    body = await request.body()
    outcome = await reconciler.handle_webhook(body)
    logger.info("api_kassa_notification_handled", status_code=outcome.status_code)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@notification_router.post(
    "/wallet",
    response_model=LegacyNotificationResponse,
    summary="Wallet callback",
    description="Signed form callback of the wallet and direct transfer modes",
)
async def wallet_notification(
    request: Request,
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> JSONResponse:
    body = await request.body()
    fields = dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    outcome = await reconciler.handle_legacy_notification(fields)
    if not outcome.accepted:
        return JSONResponse(status_code=outcome.status_code, content={"success": False})
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "order_id": outcome.order_id,
            "operation_id": outcome.operation_id,
        },
    )


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
)
async def health(settings: Settings = Depends(get_settings_dep)) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "integration_mode": settings.integration_mode.value,
        "version": __version__,
    }


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
