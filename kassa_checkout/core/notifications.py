"""
Inbound payment notification verification.

Two protocols reach the shop:

- the legacy wallet callback, a form POST signed with SHA-1 over the
  notification fields and a shared secret;
- the gateway webhook, a JSON ``notification`` object whose ``object`` is a
  payment waiting for capture.

Nothing here touches storage. A notification is authenticated, parsed and
handed over as a typed value, or rejected with the HTTP status to answer.
"""
import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog
from pydantic import ValidationError

from kassa_checkout.core.errors import NotificationValidationError
from kassa_checkout.core.models import Payment, PaymentStatus

logger = structlog.get_logger(__name__)

NOTIFICATION_TYPE = "notification"
WAITING_FOR_CAPTURE_EVENT = "payment.waiting_for_capture"

# signed in this order, the secret goes between codepro and label
LEGACY_SIGNED_FIELDS = (
    "notification_type",
    "operation_id",
    "amount",
    "currency",
    "datetime",
    "sender",
    "codepro",
)
LEGACY_LABEL_FIELD = "label"
LEGACY_HASH_FIELD = "sha1_hash"


@dataclass(frozen=True)
class LegacyNotification:
    """Authenticated wallet callback. ``label`` carries the order id."""

    notification_type: str
    operation_id: str
    amount: str
    currency: str
    datetime: str
    sender: str
    codepro: str
    label: str

    @property
    def order_id(self) -> Optional[str]:
        return self.label or None


@dataclass(frozen=True)
class WaitingForCaptureNotification:
    payment: Payment
    order_id: str


class NotificationVerifier:
    """
    Authenticates and parses inbound notifications.

    Features:
    - SHA-1 signature check for the legacy wallet callback
    - Structural validation of the gateway JSON webhook
    - Rejections carry the HTTP status the endpoint must answer with
    """

    def __init__(self, wallet_secret: str = ""):
        """
        Initialize verifier.

        Args:
            wallet_secret: Shared secret of the legacy wallet callback
        """
        self.wallet_secret = wallet_secret

    @staticmethod
    def legacy_signature(fields: Mapping[str, Any], secret: str) -> str:
        """
        Compute the SHA-1 signature of a legacy callback.

        Args:
            fields: Callback form fields
            secret: Shared secret

        Returns:
            str: Lowercase hex digest
        """
        parts = [str(fields.get(name, "")) for name in LEGACY_SIGNED_FIELDS]
        parts.append(secret)
        parts.append(str(fields.get(LEGACY_LABEL_FIELD, "")))
        return hashlib.sha1("&".join(parts).encode("utf-8")).hexdigest()

    def verify_legacy(self, fields: Mapping[str, Any]) -> LegacyNotification:
        """
        Check the signature of a legacy wallet callback.

        Args:
            fields: Form-decoded callback body

        Returns:
            LegacyNotification: Authenticated notification

        Raises:
            NotificationValidationError: 401 if the signature is missing or wrong
        """
        supplied = str(fields.get(LEGACY_HASH_FIELD) or "")
        if not supplied:
            logger.warning("legacy_notification_unsigned", operation_id=fields.get("operation_id"))
            raise NotificationValidationError("Signature is missing", status_code=401)

        expected = self.legacy_signature(fields, self.wallet_secret)
        if not hmac.compare_digest(expected, supplied):
            logger.warning(
                "legacy_notification_signature_mismatch",
                operation_id=fields.get("operation_id"),
                label=fields.get(LEGACY_LABEL_FIELD),
            )
            raise NotificationValidationError("Signature mismatch", status_code=401)

        values = {name: str(fields.get(name, "")) for name in LEGACY_SIGNED_FIELDS}
        notification = LegacyNotification(label=str(fields.get(LEGACY_LABEL_FIELD, "")), **values)
        logger.debug(
            "legacy_notification_verified",
            operation_id=notification.operation_id,
            order_id=notification.order_id,
        )
        return notification

    def parse_webhook(self, body: Optional[bytes]) -> WaitingForCaptureNotification:
        """
        Parse a gateway ``payment.waiting_for_capture`` webhook.

        Args:
            body: Raw request body

        Returns:
            WaitingForCaptureNotification: Payment and the order it belongs to

        Raises:
            NotificationValidationError: 400 on empty, malformed or incomplete body
        """
        if not body or not body.strip():
            logger.debug("webhook_rejected", reason="empty_body")
            raise NotificationValidationError("Body is empty", status_code=400)

        try:
            data = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            logger.debug("webhook_rejected", reason="invalid_json", error=str(e))
            raise NotificationValidationError("Invalid body", status_code=400) from e

        if not data or not isinstance(data, dict):
            logger.debug("webhook_rejected", reason="not_an_object")
            raise NotificationValidationError("Invalid body", status_code=400)

        if data.get("type") != NOTIFICATION_TYPE or data.get("event") != WAITING_FOR_CAPTURE_EVENT:
            logger.debug(
                "webhook_rejected",
                reason="unexpected_event",
                type=data.get("type"),
                notification_event=data.get("event"),
            )
            raise NotificationValidationError("Invalid body", status_code=400)

        payload: Dict[str, Any] = data.get("object") or {}
        if not isinstance(payload, dict):
            raise NotificationValidationError("Invalid body", status_code=400)

        try:
            payment = Payment.from_api(payload)
        except ValidationError as e:
            logger.debug("webhook_rejected", reason="invalid_payment", error=str(e))
            raise NotificationValidationError("Invalid body", status_code=400) from e

        if not payment.has_status(PaymentStatus.WAITING_FOR_CAPTURE):
            logger.warning(
                "webhook_rejected",
                reason="unexpected_status",
                payment_id=payment.id,
                status=payment.status,
            )
            raise NotificationValidationError("Invalid body", status_code=400)

        order_id = payment.order_id
        if order_id is None:
            logger.debug("webhook_rejected", reason="missing_order_id", payment_id=payment.id)
            raise NotificationValidationError("Invalid body", status_code=400)

        logger.debug("webhook_parsed", payment_id=payment.id, order_id=order_id)
        return WaitingForCaptureNotification(payment=payment, order_id=order_id)
