"""
Unit tests for gateway request construction.
"""
from decimal import Decimal

import pytest

from kassa_checkout.core.errors import RequestValidationError, StateConflict
from kassa_checkout.core.methods import AlfabankMethod, GenericMethod, QiwiMethod
from kassa_checkout.core.models import Cart, CartItem, Order, PaymentStatus, ShippingLine
from kassa_checkout.core.request_builder import RequestBuilder

RETURN_URL = "https://shop.test/checkout/return?order_id=1042"


def make_order(**overrides) -> Order:
    fields = dict(
        order_id="1042",
        total=Decimal("1500.00"),
        currency="RUB",
        email="buyer@example.com",
        method=GenericMethod(type="bank_card"),
        client_ip="203.0.113.7",
    )
    fields.update(overrides)
    return Order(**fields)


@pytest.fixture
def cart() -> Cart:
    return Cart(
        items=[
            CartItem(name="Teapot", price=Decimal("1000.00"), quantity=Decimal("1"), tax_id="1"),
            CartItem(name="Cups", price=Decimal("250.00"), quantity=Decimal("2"), tax_id="9"),
        ]
    )


class TestCreateRequest:
    """Test suite for RequestBuilder.build_create_request."""

    @pytest.mark.unit
    def test_authorize_only_with_metadata(self, test_settings) -> None:
        request = RequestBuilder(test_settings).build_create_request(make_order(), None, RETURN_URL)
        payload = request.to_payload()

        assert request.capture is False
        assert payload["capture"] is False
        assert payload["amount"] == {"value": "1500.00", "currency": "RUB"}
        assert payload["metadata"] == {
            "order_id": "1042",
            "cms_name": "ya_api_joomshopping",
            "module_version": test_settings.module_version,
        }
        assert payload["confirmation"] == {"type": "redirect", "return_url": RETURN_URL}
        assert payload["payment_method_data"] == {"type": "bank_card"}
        assert payload["client_ip"] == "203.0.113.7"
        assert "receipt" not in payload

    @pytest.mark.unit
    def test_no_method_leaves_choice_to_gateway(self, test_settings) -> None:
        request = RequestBuilder(test_settings).build_create_request(
            make_order(method=GenericMethod()), None, RETURN_URL
        )
        assert "payment_method_data" not in request.to_payload()

    @pytest.mark.unit
    def test_qiwi_phone(self, test_settings) -> None:
        order = make_order(method=QiwiMethod(phone="+7 912 345-67-89"))

        payload = RequestBuilder(test_settings).build_create_request(order, None, RETURN_URL).to_payload()

        assert payload["payment_method_data"] == {"type": "qiwi", "phone": "79123456789"}
        assert payload["confirmation"]["type"] == "redirect"

    @pytest.mark.unit
    def test_alfabank_external_confirmation(self, test_settings) -> None:
        order = make_order(method=AlfabankMethod(login=" buyer "))

        payload = RequestBuilder(test_settings).build_create_request(order, None, "").to_payload()

        assert payload["confirmation"] == {"type": "external"}
        assert payload["payment_method_data"] == {"type": "alfabank", "login": "buyer"}

    @pytest.mark.unit
    def test_redirect_requires_return_url(self, test_settings) -> None:
        with pytest.raises(RequestValidationError, match="Return URL"):
            RequestBuilder(test_settings).build_create_request(make_order(), None, "")

    @pytest.mark.unit
    def test_non_positive_amount_rejected(self, test_settings) -> None:
        with pytest.raises(RequestValidationError, match="positive"):
            RequestBuilder(test_settings).build_create_request(
                make_order(total=Decimal("0")), None, RETURN_URL
            )

    @pytest.mark.unit
    def test_invalid_currency_rejected(self, test_settings) -> None:
        with pytest.raises(RequestValidationError, match="amount"):
            RequestBuilder(test_settings).build_create_request(
                make_order(currency="RUBLE"), None, RETURN_URL
            )


class TestReceipt:
    """Test suite for receipt attachment."""

    @pytest.mark.unit
    def test_receipt_not_attached_when_disabled(self, test_settings, cart: Cart) -> None:
        request = RequestBuilder(test_settings).build_create_request(make_order(), cart, RETURN_URL)
        assert request.receipt is None

    @pytest.mark.unit
    def test_receipt_not_attached_for_empty_cart(self, receipt_settings) -> None:
        request = RequestBuilder(receipt_settings).build_create_request(
            make_order(), Cart(), RETURN_URL
        )
        assert request.receipt is None

    @pytest.mark.unit
    def test_receipt_items_mapped_through_tax_rates(self, receipt_settings, cart: Cart) -> None:
        request = RequestBuilder(receipt_settings).build_create_request(
            make_order(), cart, RETURN_URL
        )
        receipt = request.to_payload()["receipt"]

        assert receipt["email"] == "buyer@example.com"
        assert receipt["tax_system_code"] == 1
        assert [i["vat_code"] for i in receipt["items"]] == [2, 1]
        assert [i["amount"]["value"] for i in receipt["items"]] == ["1000.00", "250.00"]
        assert receipt["items"][1]["quantity"] == "2"

    @pytest.mark.unit
    def test_receipt_normalized_with_shipping(self, receipt_settings, cart: Cart) -> None:
        order = make_order(
            total=Decimal("1400.00"),
            shipping=ShippingLine(name="Courier", price=Decimal("200.00"), tax_id="2"),
        )

        request = RequestBuilder(receipt_settings).build_create_request(order, cart, RETURN_URL)

        assert request.receipt is not None
        assert request.receipt.total == Decimal("1400.00")
        shipping = request.receipt.items[-1]
        assert shipping.is_shipping
        assert shipping.price == Decimal("200.00")
        assert shipping.vat_code == 3

    @pytest.mark.unit
    def test_free_shipping_has_no_line(self, receipt_settings, cart: Cart) -> None:
        order = make_order(shipping=ShippingLine(name="Pickup", price=Decimal("0")))

        request = RequestBuilder(receipt_settings).build_create_request(order, cart, RETURN_URL)

        assert len(request.receipt.items) == 2

    @pytest.mark.unit
    def test_receipt_requires_email(self, receipt_settings, cart: Cart) -> None:
        with pytest.raises(RequestValidationError, match="email"):
            RequestBuilder(receipt_settings).build_create_request(
                make_order(email=None), cart, RETURN_URL
            )


class TestCaptureRequest:
    @pytest.mark.unit
    def test_full_amount(self, test_settings, payment_factory) -> None:
        payment = payment_factory(amount="1500.00")

        request = RequestBuilder(test_settings).build_capture_request(payment)

        assert request.to_payload() == {"amount": {"value": "1500.00", "currency": "RUB"}}

    @pytest.mark.unit
    def test_not_waiting_for_capture_conflicts(self, test_settings, payment_factory) -> None:
        payment = payment_factory(status=PaymentStatus.PENDING)

        with pytest.raises(StateConflict):
            RequestBuilder(test_settings).build_capture_request(payment)
