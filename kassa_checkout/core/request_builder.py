"""
Construction of gateway payment-creation and capture requests.

Every payment is created authorize-only (``capture`` is always false); the
charge is finalized later by an explicit capture call.
"""
from typing import Any, Dict, Literal, Optional

import structlog
from pydantic import BaseModel, ValidationError

from kassa_checkout.config import Settings
from kassa_checkout.core.capture import CapturePolicy
from kassa_checkout.core.errors import RequestValidationError
from kassa_checkout.core.methods import ConfirmationType
from kassa_checkout.core.models import Amount, Cart, Order, Payment
from kassa_checkout.core.receipt import Receipt, ReceiptItem, TaxRateMap

logger = structlog.get_logger(__name__)

DESCRIPTION_MAX_LENGTH = 128


class CreatePaymentRequest(BaseModel):
    """Body of ``POST /payments``."""

    amount: Amount
    capture: Literal[False] = False
    confirmation: Dict[str, Any]
    payment_method_data: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any]
    receipt: Optional[Receipt] = None
    client_ip: Optional[str] = None

    model_config = {"frozen": True}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "amount": self.amount.to_payload(),
            "capture": self.capture,
            "confirmation": dict(self.confirmation),
            "metadata": dict(self.metadata),
        }
        if self.payment_method_data is not None:
            payload["payment_method_data"] = dict(self.payment_method_data)
        if self.receipt is not None:
            payload["receipt"] = self.receipt.to_payload(self.amount.currency)
        if self.client_ip:
            payload["client_ip"] = self.client_ip
        return payload


class CaptureRequest(BaseModel):
    """Body of ``POST /payments/{id}/capture``. Always the full amount."""

    amount: Amount

    model_config = {"frozen": True}

    def to_payload(self) -> Dict[str, Any]:
        return {"amount": self.amount.to_payload()}


class RequestBuilder:
    """
    Builds gateway requests from shop orders.

    Features:
    - Authorize-only creation with order correlation metadata
    - Redirect or external confirmation depending on the payment method
    - Optional fiscal receipt, normalized against the payment amount
    """

    def __init__(self, settings: Settings, tax_rates: Optional[TaxRateMap] = None):
        """
        Initialize request builder.

        Args:
            settings: Application settings
            tax_rates: Local tax category map, built from settings if omitted
        """
        self.settings = settings
        self.tax_rates = tax_rates or TaxRateMap.from_settings(settings)

    def build_create_request(
        self, order: Order, cart: Optional[Cart], return_url: str
    ) -> CreatePaymentRequest:
        """
        Assemble a payment creation request.

        Args:
            order: Order being paid
            cart: Cart contents, used for the receipt
            return_url: Where the gateway sends the buyer back

        Returns:
            CreatePaymentRequest: Validated request

        Raises:
            RequestValidationError: If no valid request can be formed
        """
        if not order.order_id:
            raise RequestValidationError("Order id is required")

        try:
            amount = Amount(value=order.total, currency=order.currency)
        except ValidationError as e:
            raise RequestValidationError(f"Invalid order amount: {e}") from e
        if amount.value <= 0:
            raise RequestValidationError("Order amount must be positive")

        method = order.method
        if method.confirmation_type is ConfirmationType.EXTERNAL:
            confirmation: Dict[str, Any] = {"type": ConfirmationType.EXTERNAL.value}
        else:
            if not return_url:
                raise RequestValidationError("Return URL is required for redirect confirmation")
            confirmation = {"type": ConfirmationType.REDIRECT.value, "return_url": return_url}

        receipt: Optional[Receipt] = None
        if self.settings.send_receipt and cart is not None and not cart.is_empty:
            receipt = self.build_receipt(order, cart).normalize(amount.value)

        request = CreatePaymentRequest(
            amount=amount,
            confirmation=confirmation,
            payment_method_data=method.payment_method_data(),
            metadata={
                "order_id": order.order_id,
                "cms_name": self.settings.cms_name,
                "module_version": self.settings.module_version,
            },
            receipt=receipt,
            client_ip=order.client_ip,
        )

        logger.debug(
            "create_request_built",
            order_id=order.order_id,
            amount=str(amount.value),
            method=getattr(method, "type", None),
            confirmation=confirmation["type"],
            with_receipt=receipt is not None,
        )
        return request

    def build_receipt(self, order: Order, cart: Cart) -> Receipt:
        """
        Map cart lines and shipping into receipt items.

        Raises:
            RequestValidationError: If the buyer email is missing or a line is invalid
        """
        if not order.email:
            raise RequestValidationError("Buyer email is required for the receipt")

        try:
            items = [
                ReceiptItem(
                    description=item.name[:DESCRIPTION_MAX_LENGTH],
                    price=item.price,
                    quantity=item.quantity,
                    vat_code=self.tax_rates.resolve(item.tax_id),
                )
                for item in cart.items
            ]
            # free shipping carries no fiscal line
            if order.shipping is not None and order.shipping.price > 0:
                items.append(
                    ReceiptItem(
                        description=order.shipping.name[:DESCRIPTION_MAX_LENGTH],
                        price=order.shipping.price,
                        vat_code=self.tax_rates.resolve(order.shipping.tax_id),
                        is_shipping=True,
                    )
                )
        except ValidationError as e:
            raise RequestValidationError(f"Invalid receipt item: {e}") from e

        return Receipt(
            items=items,
            email=order.email,
            tax_system_code=self.tax_rates.default_rate_id,
        )

    def build_capture_request(self, payment: Payment) -> CaptureRequest:
        """
        Capture the full authorized amount; partial capture is not supported.

        Raises:
            StateConflict: If the payment is not waiting for capture
            RequestValidationError: If the amount is not positive
        """
        CapturePolicy.ensure_capturable(payment)
        if payment.amount.value <= 0:
            raise RequestValidationError("Captured amount must be positive")
        return CaptureRequest(amount=payment.amount)
