"""
Domain models shared by the request builder, the gateway client and the reconciler.

The gateway owns ``Payment``: it is parsed from API answers and never
mutated locally. ``Order`` and ``Cart`` come from the shop and are read-only
once checkout reaches the payment step.
"""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from kassa_checkout.core.methods import GenericMethod, MethodParams

CENT = Decimal("0.01")


class PaymentStatus(str, Enum):
    PENDING = "pending"
    WAITING_FOR_CAPTURE = "waiting_for_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


class Amount(BaseModel):
    """Money amount as the gateway expresses it: a decimal value plus currency."""

    value: Decimal
    currency: str = "RUB"

    model_config = {"frozen": True}

    @field_validator("value")
    @classmethod
    def quantize_value(cls, v: Decimal) -> Decimal:
        return Decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        if len(v) != 3:
            raise ValueError("Currency must be 3-letter code")
        return v.upper()

    def to_payload(self) -> Dict[str, str]:
        return {"value": f"{self.value:.2f}", "currency": self.currency}


class Confirmation(BaseModel):
    type: str
    confirmation_url: Optional[str] = None
    return_url: Optional[str] = None

    model_config = {"frozen": True, "extra": "ignore"}


class Payment(BaseModel):
    """
    Gateway-side payment resource.

    ``status`` is kept as a plain string: the gateway may introduce statuses
    this module does not know, and those must be treated as "in progress"
    rather than fail parsing. Compare against ``PaymentStatus`` members.
    """

    id: str
    status: str
    amount: Amount
    paid: bool = False
    confirmation: Optional[Confirmation] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "Payment":
        """Parse a payment object as returned by the gateway API."""
        return cls.model_validate(dict(data))

    @property
    def order_id(self) -> Optional[str]:
        value = self.metadata.get("order_id") if self.metadata else None
        if value is None or value == "":
            return None
        return str(value)

    @property
    def confirmation_url(self) -> Optional[str]:
        if self.confirmation is None:
            return None
        return self.confirmation.confirmation_url

    def has_status(self, status: PaymentStatus) -> bool:
        return self.status == status.value

    def to_api(self) -> Dict[str, Any]:
        """Serialize back to the gateway's JSON shape."""
        return self.model_dump(mode="json", exclude_none=True)


class CartItem(BaseModel):
    name: str
    price: Decimal
    quantity: Decimal = Decimal("1")
    tax_id: Optional[str] = None

    model_config = {"frozen": True}


class ShippingLine(BaseModel):
    name: str
    price: Decimal
    tax_id: Optional[str] = None

    model_config = {"frozen": True}


class Cart(BaseModel):
    items: List[CartItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items


class Order(BaseModel):
    """Shop order as seen by the payment step."""

    order_id: str
    order_number: Optional[str] = None
    total: Decimal
    currency: str = "RUB"
    email: Optional[str] = None
    method: MethodParams = Field(default_factory=GenericMethod)
    shipping: Optional[ShippingLine] = None
    client_ip: Optional[str] = None
    comment: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def display_number(self) -> str:
        return self.order_number or self.order_id
