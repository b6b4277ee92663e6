"""
Payment method parameters chosen by the buyer at checkout.

The checkout form posts a loose map (``payment_type``, ``qiwiPhone``,
``alfaLogin``). It is decoded once into one of the typed variants below and
travels through the pipeline as a typed value.
"""
import re
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator

from kassa_checkout.core.errors import MethodParamsError

_NON_DIGITS = re.compile(r"[^\d]+")


class PaymentMethodType(str, Enum):
    """Method types the gateway accepts in ``payment_method_data``."""

    YANDEX_MONEY = "yandex_money"
    BANK_CARD = "bank_card"
    SBERBANK = "sberbank"
    CASH = "cash"
    MOBILE_BALANCE = "mobile_balance"
    WEBMONEY = "webmoney"
    APPLE_PAY = "apple_pay"
    ANDROID_PAY = "android_pay"
    QIWI = "qiwi"
    ALFABANK = "alfabank"
    INSTALLMENTS = "installments"

    @classmethod
    def value_exists(cls, value: str) -> bool:
        return value in cls._value2member_map_


class ConfirmationType(str, Enum):
    REDIRECT = "redirect"
    EXTERNAL = "external"


class WalletMethod(BaseModel):
    """Payment from the buyer's wallet."""

    type: Literal["yandex_money"] = "yandex_money"

    model_config = {"frozen": True}

    @property
    def confirmation_type(self) -> ConfirmationType:
        return ConfirmationType.REDIRECT

    def payment_method_data(self) -> Optional[Dict[str, Any]]:
        return {"type": self.type}


class QiwiMethod(BaseModel):
    """QIWI wallet, identified by phone number."""

    type: Literal["qiwi"] = "qiwi"
    phone: str

    model_config = {"frozen": True}

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        """Keep digits only; a phone number has 4 to 16 of them."""
        digits = _NON_DIGITS.sub("", v or "")
        if len(digits) < 4 or len(digits) > 16:
            raise ValueError("Value is not a phone number")
        return digits

    @property
    def confirmation_type(self) -> ConfirmationType:
        return ConfirmationType.REDIRECT

    def payment_method_data(self) -> Optional[Dict[str, Any]]:
        return {"type": self.type, "phone": self.phone}


class AlfabankMethod(BaseModel):
    """Alfa-Click. The buyer confirms in the bank's own interface."""

    type: Literal["alfabank"] = "alfabank"
    login: str

    model_config = {"frozen": True}

    @field_validator("login")
    @classmethod
    def normalize_login(cls, v: str) -> str:
        login = (v or "").strip()
        if not login:
            raise ValueError("Alfa-Click login is required")
        return login

    @property
    def confirmation_type(self) -> ConfirmationType:
        return ConfirmationType.EXTERNAL

    def payment_method_data(self) -> Optional[Dict[str, Any]]:
        return {"type": self.type, "login": self.login}


class GenericMethod(BaseModel):
    """
    Any other gateway method, or none at all.

    ``type=None`` leaves the choice to the buyer on the gateway page.
    """

    type: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def confirmation_type(self) -> ConfirmationType:
        return ConfirmationType.REDIRECT

    def payment_method_data(self) -> Optional[Dict[str, Any]]:
        if self.type is None:
            return None
        return {"type": self.type}


MethodParams = Union[WalletMethod, QiwiMethod, AlfabankMethod, GenericMethod]


def decode_method_params(
    raw: Optional[Mapping[str, Any]], allow_choice_on_gateway: bool = False
) -> MethodParams:
    """
    Decode and validate the checkout form's method parameters.

    Args:
        raw: Parameters posted by the method selection page
        allow_choice_on_gateway: Accept an empty method type

    Returns:
        MethodParams: Typed method parameters

    Raises:
        MethodParamsError: If the parameters cannot be accepted
    """
    if raw is None or "payment_type" not in raw:
        raise MethodParamsError("Payment method is not selected")

    payment_type = str(raw.get("payment_type") or "").strip()
    if not payment_type:
        if allow_choice_on_gateway:
            return GenericMethod()
        raise MethodParamsError("Payment method is not selected")

    if not PaymentMethodType.value_exists(payment_type):
        raise MethodParamsError(f"Unknown payment method: {payment_type}")

    try:
        if payment_type == PaymentMethodType.QIWI.value:
            return QiwiMethod(phone=str(raw.get("qiwiPhone") or ""))
        if payment_type == PaymentMethodType.ALFABANK.value:
            return AlfabankMethod(login=str(raw.get("alfaLogin") or ""))
    except ValidationError as e:
        message = e.errors()[0]["msg"] if e.errors() else str(e)
        raise MethodParamsError(message) from e

    if payment_type == PaymentMethodType.YANDEX_MONEY.value:
        return WalletMethod()
    return GenericMethod(type=payment_type)
