"""
Watch a booking's SePay payment until it is confirmed, fails or times out.

    python manage.py watch_payment 1234 --open
"""

import asyncio

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.payments.checkout import CheckoutSession
from apps.payments.client import BookingApiClient
from apps.payments.poller import TRANSPORT_ERRORS, PollerSnapshot, PollerState


class Command(BaseCommand):
    help = "Poll a booking's payment status until it reaches a terminal state"

    def add_arguments(self, parser):
        parser.add_argument("booking_id")
        parser.add_argument("--open", action="store_true", help="Open the payment page in a browser")
        parser.add_argument("--token", default=None, help="Bearer token for the booking API")
        parser.add_argument("--interval", type=float, default=settings.PAYMENT_POLL_INTERVAL)
        parser.add_argument("--timeout", type=float, default=settings.PAYMENT_POLL_TIMEOUT)

    def handle(self, *args, **options):
        state = asyncio.run(self._watch(options))
        if state != PollerState.SUCCEEDED:
            raise CommandError(f"Payment not confirmed: {state.value}")

    async def _watch(self, options) -> PollerState:
        booking_id = options["booking_id"]
        client = BookingApiClient(token=options["token"])

        try:
            booking = await client.fetch_booking_detail(booking_id)
        except TRANSPORT_ERRORS as e:
            self.stderr.write(f"Booking detail unavailable: {e}")
            booking = None

        session = CheckoutSession(
            booking_id,
            client.fetch_payment_status,
            booking=booking,
            interval=options["interval"],
            timeout=options["timeout"],
        )
        done = asyncio.Event()

        def on_change(snapshot: PollerSnapshot) -> None:
            status = snapshot.last_status.value if snapshot.last_status else "-"
            self.stdout.write(
                f"[{snapshot.elapsed:6.1f}s] epoch={snapshot.epoch} attempt={snapshot.attempts} "
                f"state={snapshot.state.value} status={status}"
            )
            if snapshot.state.is_terminal:
                done.set()

        session.subscribe(on_change)

        view = session.view()
        self.stdout.write(f"Amount: {view.amount if view.amount is not None else '-'} {view.currency}")
        self.stdout.write(f"Payment URL: {view.payment_url or '-'}")
        self.stdout.write(f"QR image: {view.qr_image or '-'}")

        if options["open"] and not session.open_payment_page():
            self.stderr.write("No payment URL to open")
        session.start()

        try:
            await done.wait()
        finally:
            session.close()

        final = session.poller.state
        if final == PollerState.SUCCEEDED:
            self.stdout.write(self.style.SUCCESS(session.view().status_label))
        return final
