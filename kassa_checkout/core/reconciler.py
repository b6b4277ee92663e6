"""
Reconciliation of local order state with the gateway.

Two independent triggers converge on the same capture-and-save step:

1. Poll path: the buyer comes back from the gateway page
2. Webhook path: the gateway reports a payment waiting for capture

There is no lock between them. The capture guard makes the slower path see
a ``succeeded`` payment and skip the capture; ``save_payment`` is an
idempotent upsert, so both paths saving the same final payment is harmless.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import structlog

from kassa_checkout.core.errors import NotificationValidationError
from kassa_checkout.core.interfaces import OrderStore
from kassa_checkout.core.methods import ConfirmationType
from kassa_checkout.core.models import Cart, Order, Payment, PaymentStatus
from kassa_checkout.core.notifications import (
    LegacyNotification,
    NotificationVerifier,
    WaitingForCaptureNotification,
)
from kassa_checkout.core.payments import PaymentService
from kassa_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

PAYMENT_NOT_CREATED = "Payment was not created, please choose another payment method"


class ReturnOutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    AWAITING = "awaiting"
    FAILED = "failed"
    SELECT_METHOD = "select_method"


@dataclass(frozen=True)
class ReturnOutcome:
    """Result of a return-URL check."""

    status: ReturnOutcomeStatus
    order_id: str
    payment_id: Optional[str] = None
    payment: Optional[Payment] = None

    @property
    def redirect(self) -> bool:
        """Everything except success sends the buyer elsewhere."""
        return self.status is not ReturnOutcomeStatus.SUCCEEDED


@dataclass(frozen=True)
class WebhookOutcome:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StartOutcome:
    """Result of starting a payment; ``confirmation_url`` is None for external confirmation."""

    created: bool
    order_id: str
    payment: Optional[Payment] = None
    confirmation_url: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class LegacyOutcome:
    status_code: int
    order_id: Optional[str] = None
    operation_id: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status_code == 200


class TransactionReconciler:
    """
    Top-level payment orchestrator.

    Features:
    - Payment start with persistence of the pending payment
    - Return-URL poll mapping gateway state to a buyer outcome
    - Webhook capture answering with the gateway's expected status codes
    - Legacy signed wallet callback acceptance
    """

    def __init__(
        self,
        payments: PaymentService,
        order_store: OrderStore,
        verifier: NotificationVerifier,
    ):
        """
        Initialize reconciler.

        Args:
            payments: Gateway payment operations
            order_store: Order persistence
            verifier: Inbound notification verifier
        """
        self.payments = payments
        self.order_store = order_store
        self.verifier = verifier

    async def start_payment(
        self, order: Order, cart: Optional[Cart], return_url: str
    ) -> StartOutcome:
        """
        Create the payment and remember it for the order.

        Args:
            order: Order being paid
            cart: Cart contents
            return_url: Buyer return URL

        Returns:
            StartOutcome: Created payment and where to send the buyer
        """
        payment = await self.payments.create_payment(order, cart, return_url)
        if payment is None:
            return StartOutcome(created=False, order_id=order.order_id, message=PAYMENT_NOT_CREATED)

        await self.order_store.save_payment(order.order_id, payment)

        confirmation_url: Optional[str] = None
        if order.method.confirmation_type is ConfirmationType.REDIRECT:
            confirmation_url = payment.confirmation_url

        logger.info(
            "payment_started",
            order_id=order.order_id,
            payment_id=payment.id,
            confirmation_url=confirmation_url,
        )
        return StartOutcome(
            created=True,
            order_id=order.order_id,
            payment=payment,
            confirmation_url=confirmation_url,
        )

    async def check_return(self, order_id: str) -> ReturnOutcome:
        """
        Converge the order with the gateway when the buyer returns.

        Args:
            order_id: Order id carried by the return URL

        Returns:
            ReturnOutcome: What the checkout should do next
        """
        outcome = await self._check_return(order_id)
        metrics.record_return_check(outcome.status.value)
        return outcome

    async def _check_return(self, order_id: str) -> ReturnOutcome:
        logger.debug("checking_return", order_id=order_id)

        payment_id = await self.order_store.get_payment_id_for_order(order_id)
        if not payment_id:
            logger.debug("return_without_payment", order_id=order_id)
            return ReturnOutcome(ReturnOutcomeStatus.SELECT_METHOD, order_id)

        payment = await self.payments.fetch_payment(payment_id)
        if payment is None:
            logger.debug("return_payment_missing", order_id=order_id, payment_id=payment_id)
            return ReturnOutcome(ReturnOutcomeStatus.SELECT_METHOD, order_id, payment_id)

        if not payment.paid:
            logger.debug(
                "return_payment_not_paid",
                order_id=order_id,
                payment_id=payment_id,
                status=payment.status,
            )
            return ReturnOutcome(ReturnOutcomeStatus.SELECT_METHOD, order_id, payment_id, payment)

        if payment.has_status(PaymentStatus.CANCELED):
            logger.info("return_payment_canceled", order_id=order_id, payment_id=payment_id)
            return ReturnOutcome(ReturnOutcomeStatus.FAILED, order_id, payment_id, payment)

        if payment.has_status(PaymentStatus.PENDING):
            return ReturnOutcome(ReturnOutcomeStatus.AWAITING, order_id, payment_id, payment)

        if payment.has_status(PaymentStatus.WAITING_FOR_CAPTURE):
            captured = await self.payments.capture_payment(payment, refetch=False)
            if captured is not None and captured.has_status(PaymentStatus.SUCCEEDED):
                await self.order_store.save_payment(order_id, captured)
                logger.info("return_payment_captured", order_id=order_id, payment_id=payment_id)
                payment = captured

        if payment.has_status(PaymentStatus.SUCCEEDED):
            logger.info("return_payment_succeeded", order_id=order_id, payment_id=payment_id)
            return ReturnOutcome(ReturnOutcomeStatus.SUCCEEDED, order_id, payment_id, payment)

        logger.debug(
            "return_payment_in_progress",
            order_id=order_id,
            payment_id=payment_id,
            status=payment.status,
        )
        return ReturnOutcome(ReturnOutcomeStatus.AWAITING, order_id, payment_id, payment)

    async def handle_webhook(self, body: Optional[bytes]) -> WebhookOutcome:
        """
        Process a gateway ``waiting_for_capture`` webhook.

        Args:
            body: Raw request body

        Returns:
            WebhookOutcome: Status code and body to answer with
        """
        try:
            notification = self.verifier.parse_webhook(body)
        except NotificationValidationError as e:
            metrics.record_notification("kassa", "rejected")
            return WebhookOutcome(e.status_code, {"success": False, "error": str(e)})

        outcome = await self.reconcile_notification(notification)
        metrics.record_notification("kassa", str(outcome.status_code))
        return outcome

    async def reconcile_notification(
        self, notification: WaitingForCaptureNotification
    ) -> WebhookOutcome:
        """Capture the notified payment and save it once it has succeeded."""
        order_id = notification.order_id
        payment = await self.payments.capture_payment(notification.payment)
        if payment is None:
            logger.info(
                "webhook_payment_not_found",
                order_id=order_id,
                payment_id=notification.payment.id,
            )
            return WebhookOutcome(404, {"success": False, "error": "Payment not exists"})

        if not payment.has_status(PaymentStatus.SUCCEEDED):
            logger.info(
                "webhook_payment_not_succeeded",
                order_id=order_id,
                payment_id=payment.id,
                status=payment.status,
            )
            return WebhookOutcome(401, {"success": False, "error": "Payment not succeeded"})

        await self.order_store.save_payment(order_id, payment)
        logger.info("webhook_payment_saved", order_id=order_id, payment_id=payment.id)
        return WebhookOutcome(200, {"success": True, "payment_status": payment.status})

    async def handle_legacy_notification(self, fields: Mapping[str, Any]) -> LegacyOutcome:
        """
        Accept a signed wallet callback.

        Args:
            fields: Form-decoded callback body

        Returns:
            LegacyOutcome: 401 on a bad signature, 200 otherwise
        """
        try:
            notification: LegacyNotification = self.verifier.verify_legacy(fields)
        except NotificationValidationError as e:
            metrics.record_notification("wallet", "rejected")
            return LegacyOutcome(e.status_code)

        metrics.record_notification("wallet", "accepted")
        logger.info(
            "legacy_notification_accepted",
            order_id=notification.order_id,
            operation_id=notification.operation_id,
            amount=notification.amount,
        )
        return LegacyOutcome(200, notification.order_id, notification.operation_id)
