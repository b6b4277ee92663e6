"""
Quickpay form data for the wallet and direct-transfer modes.

These modes do not talk to the payment API. The buyer's browser posts a
prefilled form to the wallet service; the shop learns about the transfer
from the signed legacy callback.
"""
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping

from kassa_checkout.config import Settings
from kassa_checkout.core.models import Order

WALLET_FORM_URL = "https://money.yandex.ru/quickpay/confirm.xml"
WALLET_DEMO_FORM_URL = "https://demomoney.yandex.ru/quickpay/confirm.xml"
DIRECT_TRANSFER_FORM_URL = "https://money.yandex.ru/fastpay/confirm"

# currencies without minor units on the wallet form
INTEGER_CURRENCIES = frozenset({"HUF"})

_PLACEHOLDER = re.compile(r"%([A-Za-z0-9_]+)%")


@dataclass(frozen=True)
class QuickpayForm:
    action: str
    fields: Dict[str, str] = field(default_factory=dict)


def format_order_total(total: Decimal, currency: str) -> str:
    """Two decimals, or a whole number for currencies without minor units."""
    if currency.upper() in INTEGER_CURRENCIES:
        return str(Decimal(total).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return f"{Decimal(total).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}"


def render_narrative(template: str, values: Mapping[str, Any]) -> str:
    """
    Substitute ``%name%`` placeholders; unknown placeholders are left as is.

    >>> render_narrative("Order %order_number%", {"order_number": "17"})
    'Order 17'
    """

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in values and values[name] is not None:
            return str(values[name])
        return match.group(0)

    return _PLACEHOLDER.sub(replace, template or "")


def build_wallet_form(
    settings: Settings,
    order: Order,
    return_url: str,
    title: str,
    payment_type: str = "PC",
) -> QuickpayForm:
    """
    Build the quickpay form that transfers the order total to the shop wallet.

    Args:
        settings: Application settings
        order: Order being paid
        return_url: Success URL for the buyer
        title: Purpose shown to the buyer
        payment_type: Quickpay source code (PC wallet, AC card, MC mobile)

    Returns:
        QuickpayForm: Form action and hidden fields
    """
    action = WALLET_DEMO_FORM_URL if settings.test_mode else WALLET_FORM_URL
    return QuickpayForm(
        action=action,
        fields={
            "receiver": settings.wallet_account,
            "formcomment": title,
            "short-dest": title,
            "writable-targets": "false",
            "comment-needed": "true",
            "label": order.order_id,
            "quickpay-form": "shop",
            "paymentType": payment_type,
            "targets": title,
            "sum": format_order_total(order.total, order.currency),
            "comment": order.comment or "",
            "need-fio": "true",
            "need-email": "true",
            "need-phone": "false",
            "need-address": "false",
            "successURL": return_url,
        },
    )


def build_direct_transfer_form(settings: Settings, order: Order, fio: str = "") -> QuickpayForm:
    """Build the direct-transfer form; the narrative comes from the configured template."""
    values = order.model_dump(exclude={"method", "shipping"})
    return QuickpayForm(
        action=DIRECT_TRANSFER_FORM_URL,
        fields={
            "formId": settings.direct_transfer_form_id,
            "narrative": render_narrative(settings.direct_transfer_description, values),
            "fio": fio,
            "sum": format_order_total(order.total, order.currency),
            "quickPayVersion": "2",
            "cms_name": "joomla",
        },
    )
