"""
Integration tests for the HTTP API.
"""
import hashlib
from typing import AsyncIterator
from urllib.parse import urlencode

import httpx
import pytest
import pytest_asyncio

from kassa_checkout.api import create_app
from kassa_checkout.config import IntegrationMode

START_BODY = {
    "order_id": "1042",
    "total": "1500.00",
    "currency": "RUB",
    "email": "buyer@example.com",
    "method": {"payment_type": "bank_card"},
    "return_url": "https://shop.test/checkout/return?order_id=1042",
}


@pytest_asyncio.fixture
async def client(test_settings, gateway, order_store) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(test_settings, gateway=gateway, order_store=order_store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def client_for(settings, gateway, order_store) -> httpx.AsyncClient:
    app = create_app(settings, gateway=gateway, order_store=order_store)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestMonitoringEndpoints:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "integration_mode": "gateway",
            "version": "1.4.0",
        }
        assert "X-Request-ID" in response.headers

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-1"})
        assert response.headers["X-Request-ID"] == "req-1"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics(self, client) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "captures_total" in response.text


class TestPaymentEndpoints:
    """Test suite for payment start and return check."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_gateway_payment(self, client, gateway, order_store) -> None:
        response = await client.post("/payments", json=START_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["created"] is True
        assert data["payment_id"] == "pay_1"
        assert data["status"] == "pending"
        assert data["confirmation_url"] == "https://gateway.test/confirm/pay_1"
        assert order_store.payments["1042"].id == "pay_1"
        request, _ = gateway.create_calls[0]
        assert request.payment_method_data == {"type": "bank_card"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_with_unknown_method(self, client, gateway) -> None:
        body = dict(START_BODY, method={"payment_type": "barter"})

        response = await client.post("/payments", json=body)

        assert response.status_code == 400
        assert gateway.create_calls == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_with_invalid_qiwi_phone(self, client) -> None:
        body = dict(START_BODY, method={"payment_type": "qiwi", "qiwiPhone": "12"})

        response = await client.post("/payments", json=body)

        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_rejects_invalid_body(self, client) -> None:
        response = await client.post("/payments", json=dict(START_BODY, total="-5"))
        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_when_disabled(self, test_settings, gateway, order_store) -> None:
        settings = test_settings.model_copy(update={"integration_mode": IntegrationMode.OFF})

        async with client_for(settings, gateway, order_store) as client:
            response = await client.post("/payments", json=START_BODY)

        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_start_in_wallet_mode_returns_form(
        self, test_settings, gateway, order_store
    ) -> None:
        settings = test_settings.model_copy(update={"integration_mode": IntegrationMode.WALLET})

        async with client_for(settings, gateway, order_store) as client:
            response = await client.post("/payments", json=START_BODY)

        assert response.status_code == 200
        form = response.json()["form"]
        assert form["fields"]["receiver"] == "41001000000000"
        assert form["fields"]["label"] == "1042"
        assert form["fields"]["sum"] == "1500.00"
        assert gateway.create_calls == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_return_check_captures(
        self, client, gateway, order_store, payment_factory
    ) -> None:
        payment = gateway.put(payment_factory())
        await order_store.save_payment("1042", payment)

        response = await client.get("/payments/return", params={"order_id": "1042"})

        assert response.status_code == 200
        assert response.json() == {
            "order_id": "1042",
            "outcome": "succeeded",
            "redirect": False,
            "payment_id": "pay_1",
            "payment_status": "succeeded",
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_return_check_without_payment(self, client) -> None:
        response = await client.get("/payments/return", params={"order_id": "1042"})

        assert response.status_code == 200
        assert response.json()["outcome"] == "select_method"
        assert response.json()["redirect"] is True


class TestNotificationEndpoints:
    """Test suite for gateway webhooks and wallet callbacks."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_kassa_empty_body(self, client) -> None:
        response = await client.post("/notifications/kassa", content=b"")
        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mode", [IntegrationMode.OFF, IntegrationMode.WALLET, IntegrationMode.DIRECT_TRANSFER]
    )
    async def test_kassa_outside_gateway_mode(
        self, test_settings, gateway, order_store, payment_factory, webhook_body, mode
    ) -> None:
        settings = test_settings.model_copy(update={"integration_mode": mode})
        payment = gateway.put(payment_factory())

        async with client_for(settings, gateway, order_store) as client:
            response = await client.post("/notifications/kassa", content=webhook_body(payment))

        assert response.status_code == 400
        assert gateway.get_calls == []
        assert gateway.capture_calls == []
        assert order_store.saves == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_kassa_claimed_succeeded_not_trusted(
        self, client, gateway, order_store, payment_factory, webhook_body
    ) -> None:
        forged = payment_factory(payment_id="forged", status="succeeded", order_id="1042")

        response = await client.post("/notifications/kassa", content=webhook_body(forged))

        assert response.status_code == 400
        assert order_store.saves == []
        assert gateway.get_calls == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_kassa_unknown_payment(self, client, payment_factory, webhook_body) -> None:
        response = await client.post(
            "/notifications/kassa", content=webhook_body(payment_factory(payment_id="gone"))
        )
        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_kassa_captured(
        self, client, gateway, order_store, payment_factory, webhook_body
    ) -> None:
        payment = gateway.put(payment_factory())

        response = await client.post("/notifications/kassa", content=webhook_body(payment))

        assert response.status_code == 200
        assert response.json() == {"success": True, "payment_status": "succeeded"}
        assert order_store.payments["1042"].status == "succeeded"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_kassa_store_failure_is_500(
        self, test_settings, gateway, payment_factory, webhook_body
    ) -> None:
        class BrokenStore:
            async def get_payment_id_for_order(self, order_id):
                return None

            async def save_payment(self, order_id, payment):
                raise RuntimeError("database is down")

        payment = gateway.put(payment_factory())
        app = create_app(test_settings, gateway=gateway, order_store=BrokenStore())
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/notifications/kassa", content=webhook_body(payment))

        assert response.status_code == 500
        assert "database is down" not in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_wallet_signed(self, client) -> None:
        fields = {
            "notification_type": "p2p-incoming",
            "operation_id": "op-1",
            "amount": "1500.00",
            "currency": "643",
            "datetime": "2024-01-01T00:00:00Z",
            "sender": "41001",
            "codepro": "false",
            "label": "1042",
        }
        signed = "&".join(list(fields.values())[:7] + ["wallet_secret", "1042"])
        fields["sha1_hash"] = hashlib.sha1(signed.encode()).hexdigest()

        response = await client.post(
            "/notifications/wallet",
            content=urlencode(fields),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "order_id": "1042", "operation_id": "op-1"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_wallet_bad_signature(self, client) -> None:
        response = await client.post(
            "/notifications/wallet",
            content=urlencode({"label": "1042", "operation_id": "1", "sha1_hash": "deadbeef"}),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 401
        assert response.json() == {"success": False}
