"""
Pytest configuration and fixtures.
"""

import json
import pytest
from django.test import Client


class APIClient:
    """Wrapper around Django test client for API testing."""

    def __init__(self):
        self.client = Client()

    def _make_request(self, method, path, data=None, headers=None):
        """Make HTTP request."""
        kwargs = {"content_type": "application/json"}

        if headers:
            kwargs.update(headers)

        if data is not None:
            kwargs["data"] = json.dumps(data)

        # Prepend /api if not present
        if not path.startswith("/api"):
            path = f"/api{path}"

        response = getattr(self.client, method.lower())(path, **kwargs)
        return APIResponse(response)

    def get(self, path, headers=None, **kwargs):
        return self._make_request("GET", path, headers=headers)

    def post(self, path, json=None, headers=None, **kwargs):
        return self._make_request("POST", path, data=json, headers=headers)


class APIResponse:
    """Wrapper around Django response for easier testing."""

    def __init__(self, response):
        self._response = response
        self.status_code = response.status_code

    def json(self):
        return json.loads(self._response.content)


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTimer:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler that only fires timers when the test asks it to."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[ManualTimer] = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.clock.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    async def run_next(self) -> bool:
        """Advance the clock to the earliest pending timer and run it."""
        pending = self.pending
        if not pending:
            return False
        timer = min(pending, key=lambda t: t.due)
        if timer.due > self.clock.now:
            self.clock.now = timer.due
        timer.fired = True
        await timer.callback()
        return True


@pytest.fixture
def api_client():
    """API test client."""
    return APIClient()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def auth_headers():
    """Bearer token forwarded to the booking API."""
    return {"HTTP_AUTHORIZATION": "Bearer test-token"}


@pytest.fixture
def sepay_booking():
    """Booking as returned by GET /bookings/{id} for a SePay checkout."""
    return {
        "id": 42,
        "code": "BK-42",
        "currency": "vnd",
        "total_price": 1500000,
        "discount_total": 100000,
        "payment_method": "sepay",
        "payments": [
            {"id": 1, "status": "failed", "payment_url": "https://pay.sepay.vn/old"},
            {
                "id": 2,
                "status": "pending",
                "meta": json.dumps(
                    {
                        "data": {
                            "checkout_url": "https://pay.sepay.vn/checkout/abc",
                            "qr_code": "https://qr.sepay.vn/img?acc=0123456789&bank=MB&amount=1400000",
                        }
                    }
                ),
            },
        ],
    }
