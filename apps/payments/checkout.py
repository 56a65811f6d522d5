"""
Checkout view composition.

Combines the latest payment-status response and the booking detail into the
ResolvedPaymentView shown on the SePay checkout page, and ties a confirmation
poller to the "open payment page" action.
"""

import logging
import webbrowser
from typing import Any, Callable, Optional, Protocol

from django.conf import settings

from .poller import AsyncioScheduler, ConfirmationPoller, PollerSnapshot, PollerState, Scheduler
from .qr import QR_RENDER_ENDPOINT, QR_RENDER_SIZE, resolve_qr
from .resolver import (
    as_http_url,
    as_mapping,
    has_status,
    resolve_amount,
    resolve_booking_amount,
    resolve_booking_payment_url,
    resolve_booking_status,
    resolve_currency,
    resolve_payment_url,
    resolve_status,
)
from .types import DEFAULT_CURRENCY, ResolvedPaymentView

logger = logging.getLogger(__name__)


class ExternalOpener(Protocol):
    """Port for handing a URL to something outside the process (a browser, a client app)."""

    def open_external(self, url: str) -> None: ...


class WebBrowserOpener:
    """Opens URLs in a new tab of the default browser."""

    def open_external(self, url: str) -> None:
        webbrowser.open_new_tab(url)


def build_checkout_view(
    status_payload: Any = None,
    booking: Any = None,
    payment_url: Optional[str] = None,
    qr_render_endpoint: str = QR_RENDER_ENDPOINT,
    qr_render_size: str = QR_RENDER_SIZE,
    default_currency: str = DEFAULT_CURRENCY,
) -> ResolvedPaymentView:
    """
    Canonical view for one status/booking snapshot.

    Args:
        status_payload: Response of GET /bookings/{id}/payment-status (may be None)
        booking: Booking detail record (may be None)
        payment_url: URL passed explicitly by the caller; wins when it is http(s)
        qr_render_endpoint: Public QR rendering service for the last-resort image
        qr_render_size: Size parameter for the rendering service
        default_currency: Currency when neither record carries one

    Returns:
        ResolvedPaymentView - never raises on malformed input
    """
    status_record = as_mapping(status_payload)
    payment = as_mapping(status_record.get("payment")) if status_record else None

    url = (
        as_http_url(payment_url)
        or resolve_payment_url(payment)
        or resolve_booking_payment_url(booking)
    )

    qr_image = resolve_qr(
        payment, url, booking=booking, endpoint=qr_render_endpoint, size=qr_render_size
    )

    amount = resolve_booking_amount(booking)
    if amount is None:
        amount = resolve_amount(payment)

    if has_status(status_payload):
        status = resolve_status(status_payload)
    else:
        status = resolve_booking_status(booking)

    return ResolvedPaymentView(
        amount=amount,
        currency=resolve_currency(booking, payment, default=default_currency),
        payment_url=url,
        qr_image=qr_image,
        status=status,
    )


def view_from_settings(
    status_payload: Any = None,
    booking: Any = None,
    payment_url: Optional[str] = None,
) -> ResolvedPaymentView:
    """build_checkout_view with QR endpoint and currency taken from Django settings."""
    return build_checkout_view(
        status_payload,
        booking,
        payment_url=payment_url,
        qr_render_endpoint=settings.QR_RENDER_ENDPOINT,
        qr_render_size=settings.QR_RENDER_SIZE,
        default_currency=settings.PAYMENT_DEFAULT_CURRENCY,
    )


class CheckoutSession:
    """
    One open checkout page for one booking.

    Holds the booking detail, the poller confirming its payment, and the
    external opener used for the provider's hosted page.
    """

    def __init__(
        self,
        booking_id: str,
        fetch_status: Callable,
        opener: Optional[ExternalOpener] = None,
        scheduler: Optional[Scheduler] = None,
        booking: Any = None,
        payment_url: Optional[str] = None,
        **poller_kwargs,
    ):
        poller_kwargs.setdefault("interval", settings.PAYMENT_POLL_INTERVAL)
        poller_kwargs.setdefault("timeout", settings.PAYMENT_POLL_TIMEOUT)

        self.booking_id = str(booking_id)
        self.booking = booking
        self.payment_url = payment_url
        self.opener = opener or WebBrowserOpener()
        self.poller = ConfirmationPoller(
            self.booking_id,
            fetch_status,
            scheduler or AsyncioScheduler(),
            **poller_kwargs,
        )

    def view(self) -> ResolvedPaymentView:
        """Recomputed from the latest poll response on every call."""
        return view_from_settings(self.poller.last_payload, self.booking, self.payment_url)

    def start(self) -> None:
        self.poller.start()

    def subscribe(self, listener: Callable[[PollerSnapshot], None]) -> Callable[[], None]:
        return self.poller.subscribe(listener)

    def open_payment_page(self) -> bool:
        """
        Hand the payment URL to the opener.

        Safe to repeat; an already-started poller is restarted so the new visit
        gets a full confirmation window.
        """
        url = self.view().payment_url
        if not url:
            logger.info(f"[Checkout] No payment URL for booking {self.booking_id}")
            return False

        self.opener.open_external(url)
        if self.poller.state != PollerState.IDLE:
            self.poller.restart()
        return True

    def close(self) -> None:
        self.poller.cancel()
