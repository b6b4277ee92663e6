"""
Payment gateway REST client.

Implements:
- Basic auth with the shop id and secret key
- ``Idempotence-Key`` header on create and capture
- Error classification: transport failures and 5xx are retryable,
  other 4xx and unparseable answers are not
"""
import time
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError

from kassa_checkout.config import Settings
from kassa_checkout.core.errors import GatewayProtocolError, TransportError
from kassa_checkout.core.models import Payment
from kassa_checkout.core.request_builder import CaptureRequest, CreatePaymentRequest
from kassa_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

IDEMPOTENCE_HEADER = "Idempotence-Key"


class HttpGatewayClient:
    """
    Async gateway client over httpx.

    The underlying ``httpx.AsyncClient`` is created once and shared by all
    concurrent operations; it holds only read-only credentials.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize gateway client.

        Args:
            settings: Application settings with gateway credentials
            http_client: Preconfigured client, used as is
            transport: Transport for the client created here
        """
        self.settings = settings
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=settings.gateway_base_url,
            auth=(settings.shop_id, settings.shop_password),
            timeout=settings.gateway_timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

        logger.info(
            "gateway_client_initialized",
            base_url=settings.gateway_base_url,
            shop_id=settings.shop_id,
        )

    async def create_payment(
        self, request: CreatePaymentRequest, idempotency_key: str
    ) -> Optional[Payment]:
        """
        Create a payment.

        Args:
            request: Payment creation request
            idempotency_key: Key shared by all attempts of this creation

        Returns:
            Optional[Payment]: Created payment, None if the gateway is still processing

        Raises:
            TransportError: On network failure or 5xx
            GatewayProtocolError: On rejection or malformed answer
        """
        return await self._request(
            "create",
            "POST",
            "/payments",
            json=request.to_payload(),
            headers={IDEMPOTENCE_HEADER: idempotency_key},
        )

    async def capture_payment(
        self, request: CaptureRequest, payment_id: str, idempotency_key: str
    ) -> Optional[Payment]:
        """Capture an authorized payment. Same contract as ``create_payment``."""
        return await self._request(
            "capture",
            "POST",
            f"/payments/{payment_id}/capture",
            json=request.to_payload(),
            headers={IDEMPOTENCE_HEADER: idempotency_key},
        )

    async def get_payment_info(self, payment_id: str) -> Optional[Payment]:
        """Read a payment; an unknown payment id yields None."""
        return await self._request("get", "GET", f"/payments/{payment_id}", not_found_is_none=True)

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        not_found_is_none: bool = False,
    ) -> Optional[Payment]:
        started = time.monotonic()
        try:
            response = await self.http_client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            self._record(operation, "transport_error", started)
            logger.warning("gateway_timeout", operation=operation, path=path, error=str(e))
            raise TransportError(f"Gateway timeout: {e}") from e
        except httpx.TransportError as e:
            self._record(operation, "transport_error", started)
            logger.warning("gateway_unreachable", operation=operation, path=path, error=str(e))
            raise TransportError(f"Gateway unreachable: {e}") from e

        status = response.status_code
        if status == 202:
            # accepted, result not ready: caller retries with the same key
            self._record(operation, "empty", started)
            logger.info("gateway_processing", operation=operation, path=path)
            return None
        if status == 404 and not_found_is_none:
            self._record(operation, "empty", started)
            logger.info("gateway_payment_not_found", operation=operation, path=path)
            return None
        if status >= 500:
            self._record(operation, "transport_error", started)
            logger.warning("gateway_server_error", operation=operation, status_code=status)
            raise TransportError(f"Gateway error {status}", status_code=status)
        if status >= 400:
            self._record(operation, "protocol_error", started)
            logger.error(
                "gateway_request_rejected",
                operation=operation,
                status_code=status,
                body=response.text[:500],
            )
            raise GatewayProtocolError(f"Gateway rejected request: {status}", status_code=status)

        try:
            payment = Payment.from_api(response.json())
        except (ValueError, TypeError, ValidationError) as e:
            self._record(operation, "protocol_error", started)
            logger.error("gateway_response_invalid", operation=operation, error=str(e))
            raise GatewayProtocolError(f"Invalid gateway response: {e}", status_code=status) from e

        self._record(operation, "ok", started)
        logger.debug(
            "gateway_response",
            operation=operation,
            payment_id=payment.id,
            status=payment.status,
            paid=payment.paid,
        )
        return payment

    @staticmethod
    def _record(operation: str, result: str, started: float) -> None:
        metrics.record_gateway_call(operation, result, time.monotonic() - started)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()
