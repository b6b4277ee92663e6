"""Authorize/capture state machine."""
from enum import Enum

from kassa_checkout.core.errors import StateConflict
from kassa_checkout.core.models import Payment, PaymentStatus


class CaptureDecision(str, Enum):
    CAPTURE = "capture"  # waiting_for_capture: issue the capture call
    ALREADY_CAPTURED = "already_captured"  # succeeded: return as is
    NOT_CAPTURABLE = "not_capturable"  # canceled: terminal failure
    IN_PROGRESS = "in_progress"  # pending or unknown: nothing to do yet


class CapturePolicy:
    """
    Decides what a capture request means for a payment in a given status.

    Only ``waiting_for_capture`` leads to a network call. ``succeeded`` and
    ``canceled`` are terminal; every other status, including ones the
    gateway may add later, is treated as still in progress.
    """

    @staticmethod
    def decide(payment: Payment) -> CaptureDecision:
        if payment.has_status(PaymentStatus.WAITING_FOR_CAPTURE):
            return CaptureDecision.CAPTURE
        if payment.has_status(PaymentStatus.SUCCEEDED):
            return CaptureDecision.ALREADY_CAPTURED
        if payment.has_status(PaymentStatus.CANCELED):
            return CaptureDecision.NOT_CAPTURABLE
        return CaptureDecision.IN_PROGRESS

    @classmethod
    def ensure_capturable(cls, payment: Payment) -> None:
        """
        Raises:
            StateConflict: If the payment is not waiting for capture
        """
        if cls.decide(payment) is not CaptureDecision.CAPTURE:
            raise StateConflict(payment.id, payment.status)
