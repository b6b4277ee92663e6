"""
Pytest configuration and fixtures.
"""
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from kassa_checkout.config import IntegrationMode, Settings
from kassa_checkout.core.models import Payment, PaymentStatus
from kassa_checkout.core.notifications import NotificationVerifier
from kassa_checkout.core.payments import PaymentService
from kassa_checkout.core.reconciler import TransactionReconciler
from kassa_checkout.core.request_builder import CaptureRequest, CreatePaymentRequest
from kassa_checkout.core.retry import IdempotentRetryExecutor, RetryPolicy

WALLET_SECRET = "wallet_secret"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")
    config.addinivalue_line("markers", "race: concurrent trigger tests")


def build_payment(
    payment_id: str = "pay_1",
    status: PaymentStatus | str = PaymentStatus.WAITING_FOR_CAPTURE,
    paid: bool = True,
    amount: str = "1500.00",
    currency: str = "RUB",
    order_id: Optional[str] = "1042",
    confirmation_url: Optional[str] = "https://gateway.test/confirm/pay_1",
) -> Payment:
    data: Dict[str, Any] = {
        "id": payment_id,
        "status": status.value if isinstance(status, PaymentStatus) else status,
        "paid": paid,
        "amount": {"value": amount, "currency": currency},
        "metadata": {"order_id": order_id} if order_id is not None else {},
    }
    if confirmation_url:
        data["confirmation"] = {"type": "redirect", "confirmation_url": confirmation_url}
    return Payment.from_api(data)


class FakeGateway:
    """In-memory gateway: capture moves a waiting payment to succeeded."""

    def __init__(self) -> None:
        self.payments: Dict[str, Payment] = {}
        self.create_calls: List[Tuple[CreatePaymentRequest, str]] = []
        self.capture_calls: List[Tuple[CaptureRequest, str, str]] = []
        self.get_calls: List[str] = []
        self.capture_status: str = PaymentStatus.SUCCEEDED.value

    def put(self, payment: Payment) -> Payment:
        self.payments[payment.id] = payment
        return payment

    async def create_payment(
        self, request: CreatePaymentRequest, idempotency_key: str
    ) -> Optional[Payment]:
        self.create_calls.append((request, idempotency_key))
        payment_id = f"pay_{len(self.payments) + 1}"
        payment = build_payment(
            payment_id=payment_id,
            status=PaymentStatus.PENDING,
            paid=False,
            amount=f"{request.amount.value:.2f}",
            currency=request.amount.currency,
            order_id=request.metadata.get("order_id"),
            confirmation_url=f"https://gateway.test/confirm/{payment_id}",
        )
        return self.put(payment)

    async def capture_payment(
        self, request: CaptureRequest, payment_id: str, idempotency_key: str
    ) -> Optional[Payment]:
        self.capture_calls.append((request, payment_id, idempotency_key))
        payment = self.payments.get(payment_id)
        if payment is None:
            return None
        captured = payment.model_copy(update={"status": self.capture_status, "paid": True})
        return self.put(captured)

    async def get_payment_info(self, payment_id: str) -> Optional[Payment]:
        self.get_calls.append(payment_id)
        return self.payments.get(payment_id)


class InMemoryOrderStore:
    def __init__(self) -> None:
        self.payments: Dict[str, Payment] = {}
        self.saves: List[Tuple[str, Payment]] = []

    async def get_payment_id_for_order(self, order_id: str) -> Optional[str]:
        payment = self.payments.get(order_id)
        return payment.id if payment else None

    async def save_payment(self, order_id: str, payment: Payment) -> None:
        self.saves.append((order_id, payment))
        self.payments[order_id] = payment


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def test_settings() -> Settings:
    """Gateway-mode settings isolated from the environment."""
    return Settings(
        _env_file=None,
        integration_mode=IntegrationMode.GATEWAY,
        shop_id="100500",
        shop_password="test_secret_key",
        wallet_account="41001000000000",
        wallet_password=WALLET_SECRET,
        gateway_base_url="https://gateway.test/api/v3",
        tax_rates={"1": 2, "2": 3},
        default_tax_rate_id=1,
        database_url="sqlite+aiosqlite:///:memory:",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def receipt_settings(test_settings: Settings) -> Settings:
    return test_settings.model_copy(update={"send_receipt": True})


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def executor(sleep: RecordingSleep) -> IdempotentRetryExecutor:
    return IdempotentRetryExecutor(RetryPolicy(max_attempts=4, delay_seconds=2.0), sleep=sleep)


@pytest.fixture
def payment_service(
    test_settings: Settings, gateway: FakeGateway, executor: IdempotentRetryExecutor
) -> PaymentService:
    return PaymentService(test_settings, gateway, executor=executor)


@pytest.fixture
def reconciler(
    payment_service: PaymentService, order_store: InMemoryOrderStore
) -> TransactionReconciler:
    return TransactionReconciler(
        payments=payment_service,
        order_store=order_store,
        verifier=NotificationVerifier(WALLET_SECRET),
    )


@pytest.fixture
def payment_factory() -> Callable[..., Payment]:
    return build_payment


@pytest.fixture
def webhook_body() -> Callable[..., bytes]:
    """Serialize a payment into a ``payment.waiting_for_capture`` notification."""

    def make(payment: Payment, event: str = "payment.waiting_for_capture") -> bytes:
        return json.dumps(
            {"type": "notification", "event": event, "object": payment.to_api()}
        ).encode("utf-8")

    return make
