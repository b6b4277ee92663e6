"""
Gateway payment operations: create, capture and fetch.

Creation and capture run through the idempotent retry executor, each with
its own key. Fetching is a single attempt; a stale or missing read is
corrected by the next poll.
"""
from typing import Optional

import structlog

from kassa_checkout.config import Settings
from kassa_checkout.core.capture import CaptureDecision, CapturePolicy
from kassa_checkout.core.errors import (
    KassaCheckoutError,
    RequestValidationError,
    StateConflict,
)
from kassa_checkout.core.interfaces import GatewayClient
from kassa_checkout.core.models import Cart, Order, Payment
from kassa_checkout.core.request_builder import RequestBuilder
from kassa_checkout.core.retry import (
    IdempotentRetryExecutor,
    RetryPolicy,
    new_idempotency_key,
)
from kassa_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class PaymentService:
    """
    Drives a payment through authorize and capture on the gateway.

    Features:
    - Authorize-only creation with a fresh idempotency key
    - Capture guarded by the payment's current gateway status
    - No capture reaches the gateway for a payment already succeeded or canceled
    """

    def __init__(
        self,
        settings: Settings,
        gateway: GatewayClient,
        executor: Optional[IdempotentRetryExecutor] = None,
        builder: Optional[RequestBuilder] = None,
    ):
        """
        Initialize payment service.

        Args:
            settings: Application settings
            gateway: Gateway API client
            executor: Retry executor, built from settings if omitted
            builder: Request builder, built from settings if omitted
        """
        self.settings = settings
        self.gateway = gateway
        self.executor = executor or IdempotentRetryExecutor(RetryPolicy.from_settings(settings))
        self.builder = builder or RequestBuilder(settings)

    async def create_payment(
        self, order: Order, cart: Optional[Cart], return_url: str
    ) -> Optional[Payment]:
        """
        Create an authorize-only payment for the order.

        Args:
            order: Order being paid
            cart: Cart contents for the receipt
            return_url: Buyer return URL

        Returns:
            Optional[Payment]: Created payment, or None if it was not created
        """
        try:
            request = self.builder.build_create_request(order, cart, return_url)
        except RequestValidationError as e:
            logger.error("create_request_invalid", order_id=order.order_id, error=str(e))
            return None

        key = new_idempotency_key()
        logger.info(
            "creating_payment",
            order_id=order.order_id,
            amount=str(request.amount.value),
            currency=request.amount.currency,
            idempotency_key=key,
        )
        payment = await self.executor.execute(
            "create",
            lambda k: self.gateway.create_payment(request, k),
            idempotency_key=key,
        )
        if payment is None:
            logger.error("payment_not_created", order_id=order.order_id, idempotency_key=key)
            return None

        logger.info(
            "payment_created",
            order_id=order.order_id,
            payment_id=payment.id,
            status=payment.status,
        )
        return payment

    async def capture_payment(self, payment: Payment, refetch: bool = True) -> Optional[Payment]:
        """
        Capture the full amount of an authorized payment.

        With ``refetch`` set, the status is first re-read from the gateway
        and every decision is made on that answer; the status carried by
        ``payment`` is not trusted. Without it, ``payment`` must come from the
        gateway already: a ``succeeded`` one is returned unchanged and a
        ``canceled`` one yields None, both without any gateway call. A
        capture is issued only for ``waiting_for_capture``.

        Args:
            payment: Payment from a notification or a previous gateway read
            refetch: Re-read the payment before deciding

        Returns:
            Optional[Payment]: Succeeded payment, or None if not captured
        """
        current = payment
        if refetch:
            fetched = await self.fetch_payment(payment.id)
            if fetched is None:
                metrics.record_capture("failed")
                logger.info("capture_payment_not_found", payment_id=payment.id)
                return None
            current = fetched

        decision = CapturePolicy.decide(current)
        if decision is CaptureDecision.ALREADY_CAPTURED:
            metrics.record_capture("already_captured")
            logger.info("capture_skipped_succeeded", payment_id=current.id)
            return current
        if decision is not CaptureDecision.CAPTURE:
            metrics.record_capture("not_capturable")
            logger.info("capture_not_possible", payment_id=current.id, status=current.status)
            return None

        try:
            request = self.builder.build_capture_request(current)
        except StateConflict as e:
            metrics.record_capture("not_capturable")
            logger.debug("capture_state_conflict", payment_id=e.payment_id, status=e.status)
            return None
        except RequestValidationError as e:
            metrics.record_capture("failed")
            logger.error("capture_request_invalid", payment_id=current.id, error=str(e))
            return None

        key = new_idempotency_key()
        logger.info(
            "capturing_payment",
            payment_id=current.id,
            amount=str(current.amount.value),
            idempotency_key=key,
        )
        captured = await self.executor.execute(
            "capture",
            lambda k: self.gateway.capture_payment(request, current.id, k),
            idempotency_key=key,
        )
        if captured is None:
            metrics.record_capture("failed")
            logger.error("payment_not_captured", payment_id=current.id, idempotency_key=key)
            return None

        metrics.record_capture("captured")
        logger.info("payment_captured", payment_id=captured.id, status=captured.status)
        return captured

    async def fetch_payment(self, payment_id: str) -> Optional[Payment]:
        """Read the payment once; errors are logged and reported as None."""
        try:
            return await self.gateway.get_payment_info(payment_id)
        except KassaCheckoutError as e:
            logger.error("payment_fetch_failed", payment_id=payment_id, error=str(e))
            return None
