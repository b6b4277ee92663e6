"""
Fiscal receipt attached to a payment at creation.

Item prices come from the cart and may not add up to the order total
(discounts, coupons, rounding). ``Receipt.normalize`` redistributes the
difference so the receipt total equals the payment amount exactly, which the
gateway requires.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from kassa_checkout.core.errors import RequestValidationError

CENT = Decimal("0.01")


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class TaxRateMap:
    """Maps local tax category ids to gateway tax codes."""

    def __init__(self, rates: Optional[Mapping[str, int]] = None, default_rate_id: int = 1):
        self._rates: Dict[str, int] = {str(k): int(v) for k, v in (rates or {}).items()}
        self.default_rate_id = default_rate_id

    @classmethod
    def from_settings(cls, settings: Any) -> "TaxRateMap":
        return cls(settings.tax_rates, settings.default_tax_rate_id)

    def resolve(self, local_tax_id: Optional[str]) -> int:
        if local_tax_id is None:
            return self.default_rate_id
        return self._rates.get(str(local_tax_id), self.default_rate_id)

    def __contains__(self, local_tax_id: object) -> bool:
        return str(local_tax_id) in self._rates

    def __len__(self) -> int:
        return len(self._rates)


class ReceiptItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=128)
    price: Decimal
    quantity: Decimal = Decimal("1")
    vat_code: int
    is_shipping: bool = False

    model_config = {"frozen": True}

    @property
    def amount(self) -> Decimal:
        return _round(self.price * self.quantity)

    def to_payload(self, currency: str) -> Dict[str, Any]:
        return {
            "description": self.description,
            "quantity": f"{self.quantity:.3f}".rstrip("0").rstrip("."),
            "amount": {"value": f"{_round(self.price):.2f}", "currency": currency},
            "vat_code": self.vat_code,
        }


class Receipt(BaseModel):
    items: List[ReceiptItem] = Field(default_factory=list)
    email: Optional[str] = None
    tax_system_code: Optional[int] = None

    model_config = {"frozen": True}

    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0"))

    def normalize(self, order_amount: Decimal, with_shipping: bool = False) -> "Receipt":
        """
        Scale item prices so the receipt adds up to ``order_amount``.

        Shipping lines keep their price unless ``with_shipping`` is set; their
        sum is taken off the target first. Rounding leftovers go to the first
        single-unit item, or to one unit split off a multi-unit item.

        Args:
            order_amount: Payment amount the receipt must match
            with_shipping: Scale shipping lines as well

        Returns:
            Receipt: Normalized copy

        Raises:
            RequestValidationError: If the receipt cannot be made to match
        """
        items = list(self.items)
        if not items:
            raise RequestValidationError("Receipt has no items")

        adjustable = [i for i, item in enumerate(items) if with_shipping or not item.is_shipping]
        fixed_total = sum(
            (items[i].amount for i in range(len(items)) if i not in adjustable), Decimal("0")
        )
        target = _round(Decimal(order_amount)) - fixed_total
        if not adjustable or target <= 0:
            raise RequestValidationError("Receipt items cannot match the payment amount")

        real = sum((items[i].amount for i in adjustable), Decimal("0"))
        if real == target:
            return self
        if real <= 0:
            raise RequestValidationError("Receipt items have no positive total")

        coefficient = target / real
        for i in adjustable:
            items[i] = items[i].model_copy(update={"price": _round(items[i].price * coefficient)})

        diff = target - sum((items[i].amount for i in adjustable), Decimal("0"))
        if diff != 0:
            single = next((i for i in adjustable if items[i].quantity == 1), None)
            if single is not None:
                items[single] = items[single].model_copy(
                    update={"price": items[single].price + diff}
                )
            else:
                split = next((i for i in adjustable if items[i].quantity > 1), None)
                if split is None:
                    raise RequestValidationError("Cannot distribute receipt rounding difference")
                item = items[split]
                items[split] = item.model_copy(update={"quantity": item.quantity - 1})
                items.insert(
                    split + 1,
                    item.model_copy(update={"quantity": Decimal("1"), "price": item.price + diff}),
                )

        if any(item.price <= 0 for item in items):
            raise RequestValidationError("Receipt normalization produced a non-positive price")
        return self.model_copy(update={"items": items})

    def to_payload(self, currency: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"items": [item.to_payload(currency) for item in self.items]}
        if self.email:
            payload["email"] = self.email
        if self.tax_system_code is not None:
            payload["tax_system_code"] = self.tax_system_code
        return payload
