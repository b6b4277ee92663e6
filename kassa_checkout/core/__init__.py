"""Core payment reconciliation logic."""
from .capture import CaptureDecision, CapturePolicy
from .errors import (
    GatewayProtocolError,
    KassaCheckoutError,
    MethodParamsError,
    NotificationValidationError,
    RequestValidationError,
    StateConflict,
    TransportError,
)
from .interfaces import GatewayClient, OrderStore
from .methods import (
    AlfabankMethod,
    GenericMethod,
    MethodParams,
    QiwiMethod,
    WalletMethod,
    decode_method_params,
)
from .models import Amount, Cart, CartItem, Order, Payment, PaymentStatus, ShippingLine
from .notifications import NotificationVerifier
from .payments import PaymentService
from .receipt import Receipt, ReceiptItem, TaxRateMap
from .reconciler import ReturnOutcome, ReturnOutcomeStatus, TransactionReconciler, WebhookOutcome
from .request_builder import CaptureRequest, CreatePaymentRequest, RequestBuilder
from .retry import IdempotentRetryExecutor, RetryPolicy, new_idempotency_key

__all__ = [
    "Amount",
    "AlfabankMethod",
    "CaptureDecision",
    "CapturePolicy",
    "CaptureRequest",
    "Cart",
    "CartItem",
    "CreatePaymentRequest",
    "GatewayClient",
    "GatewayProtocolError",
    "GenericMethod",
    "IdempotentRetryExecutor",
    "KassaCheckoutError",
    "MethodParams",
    "MethodParamsError",
    "NotificationValidationError",
    "NotificationVerifier",
    "Order",
    "OrderStore",
    "Payment",
    "PaymentService",
    "PaymentStatus",
    "QiwiMethod",
    "Receipt",
    "ReceiptItem",
    "RequestBuilder",
    "RequestValidationError",
    "RetryPolicy",
    "ReturnOutcome",
    "ReturnOutcomeStatus",
    "ShippingLine",
    "StateConflict",
    "TaxRateMap",
    "TransactionReconciler",
    "TransportError",
    "WalletMethod",
    "WebhookOutcome",
    "decode_method_params",
    "new_idempotency_key",
]
