"""
Pydantic schemas for API request/response models.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from kassa_checkout.core.models import Cart, CartItem, ShippingLine


class CartItemSchema(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    price: Decimal = Field(..., gt=0, description="Unit price")
    quantity: Decimal = Field(default=Decimal("1"), gt=0, description="Quantity")
    tax_id: Optional[str] = Field(default=None, description="Local tax category id")


class ShippingSchema(BaseModel):
    name: str = Field(..., min_length=1, description="Shipping method name")
    price: Decimal = Field(..., ge=0, description="Shipping price")
    tax_id: Optional[str] = Field(default=None, description="Local tax category id")


class StartPaymentRequest(BaseModel):
    """Request schema for starting a payment for an order."""

    order_id: str = Field(..., min_length=1, description="Shop order id")
    order_number: Optional[str] = Field(default=None, description="Order number shown to the buyer")
    total: Decimal = Field(..., gt=0, description="Order total")
    currency: str = Field(default="RUB", min_length=3, max_length=3, description="Currency code")
    email: Optional[str] = Field(default=None, description="Buyer email for the receipt")
    client_ip: Optional[str] = Field(default=None, description="Buyer IP address")
    comment: Optional[str] = Field(default=None, description="Buyer comment")
    method: Dict[str, Any] = Field(
        default_factory=dict,
        description="Method parameters from checkout (payment_type, qiwiPhone, alfaLogin)",
    )
    items: List[CartItemSchema] = Field(default_factory=list, description="Cart contents")
    shipping: Optional[ShippingSchema] = Field(default=None, description="Selected shipping")
    return_url: str = Field(..., min_length=1, description="Buyer return URL")
    title: Optional[str] = Field(default=None, description="Purpose shown on the wallet form")
    payment_type: str = Field(default="PC", description="Wallet form source code")
    fio: str = Field(default="", description="Payer name for direct transfer")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        return v.upper()

    def to_cart(self) -> Cart:
        return Cart(
            items=[
                CartItem(name=i.name, price=i.price, quantity=i.quantity, tax_id=i.tax_id)
                for i in self.items
            ]
        )

    def to_shipping(self) -> Optional[ShippingLine]:
        if self.shipping is None:
            return None
        return ShippingLine(
            name=self.shipping.name, price=self.shipping.price, tax_id=self.shipping.tax_id
        )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "1042",
                    "total": "1500.00",
                    "currency": "RUB",
                    "email": "buyer@example.com",
                    "method": {"payment_type": "bank_card"},
                    "items": [{"name": "Teapot", "price": "1500.00", "quantity": "1"}],
                    "return_url": "https://shop.example.com/checkout/return?order_id=1042",
                }
            ]
        }
    }


class QuickpayFormSchema(BaseModel):
    action: str
    fields: Dict[str, str]


class StartPaymentResponse(BaseModel):
    """Response schema for payment start."""

    created: bool = Field(..., description="Whether a payment or form was produced")
    order_id: str = Field(..., description="Shop order id")
    payment_id: Optional[str] = Field(default=None, description="Gateway payment id")
    status: Optional[str] = Field(default=None, description="Gateway payment status")
    confirmation_url: Optional[str] = Field(
        default=None, description="Where to redirect the buyer, absent for external confirmation"
    )
    form: Optional[QuickpayFormSchema] = Field(
        default=None, description="Quickpay form for wallet and direct transfer modes"
    )
    message: Optional[str] = Field(default=None, description="Buyer-facing failure message")


class ReturnCheckResponse(BaseModel):
    """Response schema for the return-URL check."""

    order_id: str
    outcome: str = Field(..., description="succeeded, awaiting, failed or select_method")
    redirect: bool = Field(..., description="Send the buyer elsewhere instead of completing")
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None


class LegacyNotificationResponse(BaseModel):
    success: bool
    order_id: Optional[str] = None
    operation_id: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str
    integration_mode: str
    version: str
