"""
Payment field resolution.

SePay and the booking API return payment records whose shape drifts between
versions: amounts and links show up under many aliases, sometimes inside a
`meta` blob that is either a JSON string or an object, optionally nested once
more under `meta.data`. Everything here is a pure function that returns None
(or a default) instead of raising.
"""

import json
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from utils.graph import find_string

from .types import DEFAULT_CURRENCY, STATUS_SYNONYMS, PaymentStatus

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

PAYABLE_AMOUNT_KEYS = (
    "payable_amount",
    "payableAmount",
    "amount_due",
    "amountDue",
    "final_amount",
    "finalAmount",
    "final_total",
    "finalTotal",
    "net_amount",
    "netAmount",
    "total_amount",
    "totalAmount",
    "amount",
    "value",
)

ORIGINAL_AMOUNT_KEYS = (
    "original_amount",
    "originalAmount",
    "total_price",
    "totalPrice",
    "list_price",
    "listPrice",
    "subtotal",
    "sub_total",
    "subTotal",
    "grand_total",
    "grandTotal",
    "gross_amount",
    "grossAmount",
)

DISCOUNT_KEYS = (
    "discount_total",
    "discountTotal",
    "discount_amount",
    "discountAmount",
    "promotion_discount",
    "promotionDiscount",
    "discount",
)

PAYMENT_URL_KEYS = (
    "payment_url",
    "paymentUrl",
    "payment_link",
    "paymentLink",
    "pay_url",
    "payUrl",
    "checkout_url",
    "checkoutUrl",
    "redirect_url",
    "redirectUrl",
    "gateway_url",
    "gatewayUrl",
    "intent_url",
    "intentUrl",
    "url",
    "link",
)

INTENT_URL_KEYS = ("payment_url", "paymentUrl", "url")


# ============== Coercion helpers ==============


def as_mapping(value: Any) -> Optional[Mapping]:
    if isinstance(value, Mapping):
        return value
    return None


def coalesce_string(*values: Any) -> Optional[str]:
    """First non-blank string, trimmed."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def coerce_number(value: Any) -> Optional[float]:
    """Finite number from an int/float/numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def as_http_url(value: Any) -> Optional[str]:
    """Trimmed value if it is an absolute http(s) URL."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if trimmed and URL_PATTERN.match(trimmed):
        return trimmed
    return None


def parse_meta(meta: Any) -> Optional[Mapping]:
    """`meta` as a mapping; JSON strings are decoded, anything else is dropped."""
    if isinstance(meta, str):
        try:
            meta = json.loads(meta)
        except (ValueError, RecursionError):
            return None
    return as_mapping(meta)


def candidate_sources(record: Any) -> list[Mapping]:
    """The record, its parsed `meta`, then `meta.data` - in search order."""
    base = as_mapping(record)
    if base is None:
        return []
    sources = [base]
    meta = parse_meta(base.get("meta"))
    if meta is not None:
        sources.append(meta)
        nested = parse_meta(meta.get("data"))
        if nested is not None:
            sources.append(nested)
    return sources


def booking_payments(booking: Any) -> list[Mapping]:
    """Embedded payment records, newest first."""
    record = as_mapping(booking)
    if record is None:
        return []
    payments = record.get("payments")
    if not isinstance(payments, Sequence) or isinstance(payments, (str, bytes)):
        return []
    return [p for p in reversed(payments) if isinstance(p, Mapping)]


def _first_number(sources: list[Mapping], keys: Sequence[str]) -> Optional[float]:
    for source in sources:
        for key in keys:
            number = coerce_number(source.get(key))
            if number is not None:
                return number
    return None


def _first_url(sources: list[Mapping], keys: Sequence[str]) -> Optional[str]:
    for source in sources:
        for key in keys:
            url = as_http_url(source.get(key))
            if url:
                return url
    return None


# ============== Amount ==============


def amount_from_sources(sources: list[Mapping]) -> Optional[float]:
    """Apply the payable -> original-minus-discount precedence over `sources`."""
    payable = _first_number(sources, PAYABLE_AMOUNT_KEYS)
    if payable is not None:
        return max(0.0, payable)

    original = _first_number(sources, ORIGINAL_AMOUNT_KEYS)
    if original is None:
        return None

    discount = _first_number(sources, DISCOUNT_KEYS)
    if discount is not None and discount > 0:
        return max(0.0, original - discount)
    return max(0.0, original)


def resolve_amount(record: Any) -> Optional[float]:
    """Payable amount of a single payment record."""
    return amount_from_sources(candidate_sources(record))


def resolve_booking_amount(booking: Any) -> Optional[float]:
    """Payable amount of a booking, falling back to its payments newest first."""
    amount = resolve_amount(booking)
    if amount is not None:
        return amount
    for payment in booking_payments(booking):
        amount = resolve_amount(payment)
        if amount is not None:
            return amount
    return None


# ============== URL ==============


def resolve_payment_url(record: Any) -> Optional[str]:
    """Redirect URL of a payment record: known aliases first, then a deep scan."""
    sources = candidate_sources(record)
    if not sources:
        return None

    url = _first_url(sources, PAYMENT_URL_KEYS)
    if url:
        return url

    # Parsed meta is scanned before the record itself
    for source in sources[1:] + sources[:1]:
        url = find_string(source, as_http_url)
        if url:
            return url
    return None


def resolve_booking_payment_url(booking: Any) -> Optional[str]:
    sources = candidate_sources(booking)
    if not sources:
        return None

    url = _first_url(sources, PAYMENT_URL_KEYS)
    if url:
        return url

    for payment in booking_payments(booking):
        url = resolve_payment_url(payment)
        if url:
            return url
    return None


def resolve_intent_url(intent: Any, fallback_booking: Any = None) -> Optional[str]:
    """
    URL from a payment-intent response (POST /bookings/{id}/pay).

    The intent's own link wins, then the booking embedded in the intent, then
    the booking the caller already had.
    """
    record = as_mapping(intent)
    if record is None:
        return resolve_booking_payment_url(fallback_booking)

    url = _first_url([record], INTENT_URL_KEYS)
    if url:
        return url

    if as_mapping(record.get("booking")) is not None:
        return resolve_booking_payment_url(record["booking"])
    return resolve_booking_payment_url(fallback_booking)


# ============== Currency & status ==============


def resolve_currency(*records: Any, default: str = DEFAULT_CURRENCY) -> str:
    for record in records:
        for source in candidate_sources(record):
            currency = coalesce_string(source.get("currency"))
            if currency:
                return currency.upper()
    return default


def normalize_status(value: Any) -> PaymentStatus:
    if value is None:
        return PaymentStatus.UNKNOWN
    normalized = str(value).strip().lower()
    return STATUS_SYNONYMS.get(normalized, PaymentStatus.UNKNOWN)


def _raw_status(payload: Any) -> Optional[str]:
    record = as_mapping(payload)
    if record is None:
        return None
    payment = as_mapping(record.get("payment")) or {}
    candidates = (
        record.get("status"),
        payment.get("status"),
        record.get("payment_status"),
        record.get("booking_status"),
    )
    for candidate in candidates:
        if candidate is not None and str(candidate).strip():
            return str(candidate)
    return None


def resolve_status(payload: Any) -> PaymentStatus:
    """Status of a booking payment-status response."""
    return normalize_status(_raw_status(payload))


def has_status(payload: Any) -> bool:
    return _raw_status(payload) is not None


def resolve_booking_status(booking: Any) -> PaymentStatus:
    record = as_mapping(booking)
    if record is None:
        return PaymentStatus.UNKNOWN
    raw = coalesce_string(record.get("payment_status"))
    if raw is None:
        for payment in booking_payments(record):
            raw = coalesce_string(payment.get("status"))
            break
    return normalize_status(raw)
