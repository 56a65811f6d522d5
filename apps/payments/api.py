"""
Payment checkout API endpoints - the server side of the SePay checkout page.
"""

import asyncio
import logging
from typing import Any, Optional

from django.conf import settings
from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from .checkout import view_from_settings
from .client import BookingApiClient
from .poller import TRANSPORT_ERRORS
from .qr import resolve_qr
from .resolver import as_mapping, resolve_intent_url, resolve_status
from .schemas import (
    CheckoutOut,
    CreateIntentIn,
    PaymentIntentOut,
    PaymentStatusOut,
    ResolvedPaymentOut,
    ResolveIn,
)
from .types import STATUS_LABELS

logger = logging.getLogger(__name__)

router = Router()


def get_bearer_token(request: HttpRequest) -> Optional[str]:
    """Caller's bearer token, forwarded to the booking API."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def get_client(request: HttpRequest) -> BookingApiClient:
    return BookingApiClient(token=get_bearer_token(request))


def _upstream_result(result: Any, what: str, booking_id: str) -> Any:
    """Unpack one asyncio.gather result; transport failures degrade to None."""
    if isinstance(result, TRANSPORT_ERRORS):
        logger.warning(f"[Checkout] {what} unavailable for booking {booking_id}: {result}")
        return None
    if isinstance(result, BaseException):
        raise result
    return result


@router.post("/resolve", response=ResolvedPaymentOut)
def resolve_view(request: HttpRequest, data: ResolveIn):
    """Resolve a canonical payment view from raw status/booking/payment records."""
    status_payload = data.status
    if status_payload is None and data.payment is not None:
        status_payload = {"payment": data.payment}

    view = view_from_settings(status_payload, data.booking, payment_url=data.payment_url)
    return ResolvedPaymentOut(**view.to_dict())


@router.get("/bookings/{booking_id}/checkout", response=CheckoutOut)
async def get_checkout(request: HttpRequest, booking_id: str, payment_url: Optional[str] = None):
    """Fetch booking detail and payment status, then resolve the checkout view."""
    client = get_client(request)

    booking_result, status_result = await asyncio.gather(
        client.fetch_booking_detail(booking_id),
        client.fetch_payment_status(booking_id),
        return_exceptions=True,
    )
    booking = _upstream_result(booking_result, "Booking detail", booking_id)
    status_payload = _upstream_result(status_result, "Payment status", booking_id)

    if booking is None and status_payload is None:
        raise HttpError(502, "Booking service unavailable")

    view = view_from_settings(status_payload, booking, payment_url=payment_url)
    return CheckoutOut(
        booking_id=booking_id,
        view=ResolvedPaymentOut(**view.to_dict()),
        booking_available=booking is not None,
        status_available=status_payload is not None,
    )


@router.get("/bookings/{booking_id}/status", response=PaymentStatusOut)
async def get_payment_status(request: HttpRequest, booking_id: str):
    """Normalized payment status of a booking."""
    client = get_client(request)
    try:
        payload = await client.fetch_payment_status(booking_id)
    except TRANSPORT_ERRORS as e:
        raise HttpError(502, str(e))

    status = resolve_status(payload)
    return PaymentStatusOut(
        booking_id=booking_id,
        status=status.value,
        status_label=STATUS_LABELS[status],
        terminal=status.is_terminal,
    )


@router.post("/bookings/{booking_id}/intent", response=PaymentIntentOut)
async def create_intent(request: HttpRequest, booking_id: str, data: CreateIntentIn):
    """Create a payment intent and resolve where the customer should pay."""
    client = get_client(request)
    try:
        intent = await client.create_payment_intent(booking_id, method=data.method)
    except TRANSPORT_ERRORS as e:
        raise HttpError(502, str(e))

    payment_url = resolve_intent_url(intent)
    qr_image = resolve_qr(
        intent,
        payment_url,
        booking=as_mapping(intent.get("booking")),
        endpoint=settings.QR_RENDER_ENDPOINT,
        size=settings.QR_RENDER_SIZE,
    )

    message = intent.get("message")
    return PaymentIntentOut(
        booking_id=booking_id,
        payment_url=payment_url,
        qr_image=qr_image,
        message=message if isinstance(message, str) else None,
    )
