"""
Error taxonomy for the payment reconciliation core.

None of these reach the buyer: components catch them at their boundary and
turn them into "no result" or an explicit HTTP status code.
"""
from typing import Optional


class KassaCheckoutError(Exception):
    """Base exception for checkout integration errors."""

    pass


class RequestValidationError(KassaCheckoutError):
    """Order, cart or receipt data cannot form a valid gateway request."""

    pass


class MethodParamsError(RequestValidationError):
    """Payment method parameters chosen at checkout are invalid."""

    pass


class TransportError(KassaCheckoutError):
    """Network failure, timeout or 5xx answer from the gateway. Retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayProtocolError(KassaCheckoutError):
    """Gateway rejected the request or answered with something unparseable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotificationValidationError(KassaCheckoutError):
    """
    Inbound notification rejected.

    Carries the HTTP status the endpoint must answer with: 400 for empty,
    malformed or incomplete bodies, 401 for a signature mismatch.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class StateConflict(KassaCheckoutError):
    """Capture requested for a payment that is not waiting for capture."""

    def __init__(self, payment_id: str, status: str):
        super().__init__(f"Payment {payment_id} is {status}, not waiting_for_capture")
        self.payment_id = payment_id
        self.status = status
