"""Collaborators the reconciliation core depends on."""
from typing import Optional, Protocol, runtime_checkable

from kassa_checkout.core.models import Payment
from kassa_checkout.core.request_builder import CaptureRequest, CreatePaymentRequest


@runtime_checkable
class GatewayClient(Protocol):
    """
    Payment gateway API.

    Each method returns ``None`` when the gateway has no answer yet and may
    raise ``TransportError`` or ``GatewayProtocolError``.
    """

    async def create_payment(
        self, request: CreatePaymentRequest, idempotency_key: str
    ) -> Optional[Payment]: ...

    async def capture_payment(
        self, request: CaptureRequest, payment_id: str, idempotency_key: str
    ) -> Optional[Payment]: ...

    async def get_payment_info(self, payment_id: str) -> Optional[Payment]: ...


@runtime_checkable
class OrderStore(Protocol):
    """Order persistence. ``save_payment`` must be an idempotent upsert."""

    async def get_payment_id_for_order(self, order_id: str) -> Optional[str]: ...

    async def save_payment(self, order_id: str, payment: Payment) -> None: ...
