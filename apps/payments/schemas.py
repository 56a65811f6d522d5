"""
Payment checkout schemas for API.
"""

from typing import Any
from ninja import Schema


class ResolveIn(Schema):
    status: dict[str, Any] | None = None
    booking: dict[str, Any] | None = None
    payment: dict[str, Any] | None = None
    payment_url: str | None = None


class ResolvedPaymentOut(Schema):
    amount: float | None
    currency: str
    payment_url: str | None
    qr_image: str | None
    status: str
    status_label: str
    is_direct_image_payment: bool


class CheckoutOut(Schema):
    booking_id: str
    view: ResolvedPaymentOut
    booking_available: bool
    status_available: bool


class PaymentStatusOut(Schema):
    booking_id: str
    status: str
    status_label: str
    terminal: bool


class CreateIntentIn(Schema):
    method: str = "sepay"


class PaymentIntentOut(Schema):
    booking_id: str
    payment_url: str | None
    qr_image: str | None
    message: str | None = None
