"""
Booking API client - payment status, booking detail and payment intents.

The booking API wraps most bodies as {"data": ...}; callers always get the
unwrapped record.
"""

import logging
from typing import Any, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class BookingApiError(Exception):
    """Non-2xx response or undecodable body from the booking API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def unwrap(payload: Any) -> Any:
    """Strip the {"data": ...} envelope when present."""
    if isinstance(payload, dict) and payload.get("data") is not None:
        return payload["data"]
    return payload


class BookingApiClient:
    """
    Async client for the marketplace booking API.

    A fresh httpx.AsyncClient is opened per call unless one is injected.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.BOOKING_API_BASE_URL).rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else settings.BOOKING_API_TIMEOUT
        self._http = http

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"[BookingAPI] {method} {url}")

        if self._http is not None:
            response = await self._http.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method, url, headers=self._headers(), timeout=self.timeout, **kwargs
                )

        if response.status_code >= 400:
            logger.warning(f"[BookingAPI] {method} {path} -> {response.status_code}")
            raise BookingApiError(response.status_code, _error_message(response))

        try:
            return response.json()
        except (ValueError, RecursionError):
            raise BookingApiError(response.status_code, "Invalid JSON from booking API")

    async def fetch_payment_status(self, booking_id: str) -> dict[str, Any]:
        """GET /bookings/{id}/payment-status - returned as-is, it carries its own status."""
        payload = await self._request("GET", f"/bookings/{booking_id}/payment-status")
        return payload if isinstance(payload, dict) else {}

    async def fetch_booking_detail(self, booking_id: str) -> dict[str, Any]:
        """GET /bookings/{id}"""
        payload = unwrap(await self._request("GET", f"/bookings/{booking_id}"))
        return payload if isinstance(payload, dict) else {}

    async def create_payment_intent(self, booking_id: str, method: str = "sepay") -> dict[str, Any]:
        """POST /bookings/{id}/pay"""
        payload = unwrap(
            await self._request("POST", f"/bookings/{booking_id}/pay", json={"method": method})
        )
        return payload if isinstance(payload, dict) else {}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except (ValueError, RecursionError):
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    return f"HTTP {response.status_code}"
