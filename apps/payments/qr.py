"""
QR image derivation for SePay bank-transfer payments.

Tiers, first hit wins:
1. a QR image embedded anywhere in the payment record
2. a VietQR image built from account/bank metadata found in the record
3. a QR image carried by (or being) the payment URL
4. a generic "encode this URL" image from a public rendering service
"""

import math
import re
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit

from utils.graph import search_graph

from .resolver import (
    as_mapping,
    booking_payments,
    candidate_sources,
    coerce_number,
    resolve_booking_payment_url,
    resolve_payment_url,
)

QR_KEY_TOKENS = (
    "qr",
    "qrimage",
    "qrimg",
    "qrcode",
    "qrurl",
    "qrimageurl",
    "qrdata",
    "qrbase64",
)

PROVIDER_HOST = "sepay.vn"
PROVIDER_IMAGE_PATH = "/img"
PROVIDER_QR_ENDPOINT = "https://qr.sepay.vn/img"
DEFAULT_TRANSFER_DESCRIPTION = "Thanh toan don hang"

QR_RENDER_ENDPOINT = "https://api.qrserver.com/v1/create-qr-code/"
QR_RENDER_SIZE = "260x260"

DATA_URL_PATTERN = re.compile(r"^data:image/(png|jpeg|jpg|gif|webp);base64,", re.IGNORECASE)
IMAGE_EXTENSION_PATTERN = re.compile(r"\.(png|jpe?g|gif|webp|svg)(\?|#|$)", re.IGNORECASE)
HTTP_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/=]+$")
WHITESPACE_PATTERN = re.compile(r"\s+")

ACCOUNT_HINTS = (
    "acc",
    "accountno",
    "accountnumber",
    "account",
    "bankaccount",
    "beneficiaryaccount",
    "stk",
    "sotaikhoan",
)
BANK_HINTS = ("bank", "bankcode", "bankid", "bankshort", "shortname", "bankname", "providerbank")
AMOUNT_HINTS = ("amount", "totalamount", "paymentamount", "grandtotal", "totalprice", "price")
DESCRIPTION_HINTS = (
    "des",
    "description",
    "desc",
    "content",
    "paymentcontent",
    "paymentdescription",
    "ordercontent",
    "note",
    "message",
    "ordercode",
    "bookingcode",
    "orderid",
    "transactioncode",
)


def normalize_key(key: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key).lower())


def is_qr_key(key: Any) -> bool:
    normalized = normalize_key(key)
    return any(token in normalized for token in QR_KEY_TOKENS)


def is_provider_image_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False
    return PROVIDER_HOST in host and PROVIDER_IMAGE_PATH in parts.path.lower()


def is_http_image_url(value: str) -> bool:
    if not HTTP_PATTERN.match(value):
        return False
    if IMAGE_EXTENSION_PATTERN.search(value):
        return True
    return is_provider_image_url(value)


# ============== Provider metadata ==============


def _matches_hint(key: str, hints: tuple[str, ...]) -> bool:
    return any(key == hint or key.endswith(hint) for hint in hints)


def _trimmed(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = coerce_number(value)
        if number is None:
            return None
        return str(int(number)) if number.is_integer() else str(number)
    return None


def _account_number(value: Any) -> Optional[str]:
    text = _trimmed(value)
    if not text:
        return None
    compact = re.sub(r"[\s-]+", "", text)
    return compact if re.fullmatch(r"\d{4,}", compact) else None


def _loose_amount(value: Any) -> Optional[float]:
    """Amounts like "1400000 VND" are common in transfer metadata."""
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.-]", "", value)
        return coerce_number(cleaned) if cleaned else None
    return coerce_number(value)


def _nested_amount(value: Any) -> Optional[float]:
    def match(path: tuple, item: Any, parent: Any) -> Optional[float]:
        return _loose_amount(item)

    return search_graph(value, match)


def gather_provider_metadata(source: Any) -> dict[str, Any]:
    """Account, bank, amount and transfer description found anywhere in `source`."""
    found: dict[str, Any] = {}

    def match(path: tuple, value: Any, parent: Any) -> None:
        if not path:
            return None
        key = normalize_key(path[-1])

        if "account" not in found and _matches_hint(key, ACCOUNT_HINTS):
            account = _account_number(value)
            if account:
                found["account"] = account

        if "bank" not in found and _matches_hint(key, BANK_HINTS):
            bank = _trimmed(value)
            if bank:
                found["bank"] = bank

        if "amount" not in found and _matches_hint(key, AMOUNT_HINTS):
            amount = _loose_amount(value)
            if amount is None and isinstance(value, (Mapping, list)):
                amount = _nested_amount(value)
            if amount is not None:
                found["amount"] = amount

        if "description" not in found and _matches_hint(key, DESCRIPTION_HINTS):
            description = _trimmed(value)
            if description:
                found["description"] = description
        return None

    if isinstance(source, (Mapping, list)):
        search_graph(source, match)
    return found


def build_provider_qr(source: Any) -> Optional[str]:
    """VietQR image URL on SePay's QR host, from bank-transfer metadata."""
    metadata = gather_provider_metadata(source)
    if not metadata.get("account") or not metadata.get("bank"):
        return None

    params = {"acc": metadata["account"], "bank": metadata["bank"]}
    if "amount" in metadata:
        params["amount"] = str(math.floor(abs(metadata["amount"]) + 0.5))
    params["des"] = metadata.get("description") or DEFAULT_TRANSFER_DESCRIPTION
    return f"{PROVIDER_QR_ENDPOINT}?{urlencode(params)}"


# ============== Candidate acceptance ==============


def _is_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def normalize_qr_candidate(value: Any, context: Any = None) -> Optional[str]:
    """
    Displayable image for one candidate string, or None.

    Digit-only payloads are transaction numbers mislabeled as QR data; when the
    enclosing object is known, a provider QR is built from it instead.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or trimmed.lower() == "pending":
        return None

    if DATA_URL_PATTERN.match(trimmed):
        prefix, _, payload = trimmed.partition(",")
        payload = WHITESPACE_PATTERN.sub("", payload)
        if not payload or _is_digits(payload):
            return build_provider_qr(context) if payload and context is not None else None
        return f"{prefix},{payload}"

    if is_http_image_url(trimmed):
        return trimmed

    compact = WHITESPACE_PATTERN.sub("", trimmed)
    if BASE64_PATTERN.match(compact):
        if _is_digits(compact):
            return build_provider_qr(context) if context is not None else None
        return f"data:image/png;base64,{compact}"

    return None


# ============== Tiers ==============


def find_embedded_qr(source: Any) -> Optional[str]:
    """Tier 1: any accepted string reachable under a QR-named key."""

    def match(path: tuple, value: Any, parent: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        if not any(isinstance(key, str) and is_qr_key(key) for key in path):
            return None
        return normalize_qr_candidate(value, parent)

    if isinstance(source, str):
        return normalize_qr_candidate(source)
    for candidate in candidate_sources(source) or [source]:
        found = search_graph(candidate, match)
        if found:
            return found
    return None


def qr_from_payment_url(payment_url: Optional[str]) -> Optional[str]:
    """Tier 3: a QR-named query parameter, or the URL itself on the provider's QR host."""
    if not payment_url:
        return None
    try:
        parts = urlsplit(payment_url)
        params = parse_qsl(parts.query, keep_blank_values=False)
    except ValueError:
        return None

    for key, raw_value in params:
        if not raw_value or not is_qr_key(key):
            continue
        normalized = normalize_qr_candidate(raw_value)
        if normalized:
            return normalized

    if is_provider_image_url(payment_url):
        return payment_url
    return None


def render_qr_url(
    payment_url: str,
    endpoint: str = QR_RENDER_ENDPOINT,
    size: str = QR_RENDER_SIZE,
) -> str:
    """Tier 4: public QR rendering service encoding the payment URL."""
    return f"{endpoint}?size={size}&data={quote(payment_url, safe='')}"


def derive_payment_qr(payment: Any) -> Optional[str]:
    """QR for a payment record on its own (tiers 1-3), no synthesized fallback."""
    embedded = find_embedded_qr(payment)
    if embedded:
        return embedded

    inferred = build_provider_qr(payment)
    if inferred:
        return inferred

    record = as_mapping(payment)
    if record is not None:
        return qr_from_payment_url(resolve_payment_url(record))
    return None


def derive_booking_qr(booking: Any) -> Optional[str]:
    """QR for a booking: embedded in its payments, then its URL, then its metadata."""
    if as_mapping(booking) is None:
        return None

    for payment in booking_payments(booking):
        embedded = find_embedded_qr(payment)
        if embedded:
            return embedded

    from_url = qr_from_payment_url(resolve_booking_payment_url(booking))
    if from_url:
        return from_url

    return build_provider_qr(booking)


def resolve_qr(
    payment: Any,
    payment_url: Optional[str] = None,
    booking: Any = None,
    endpoint: str = QR_RENDER_ENDPOINT,
    size: str = QR_RENDER_SIZE,
) -> Optional[str]:
    """
    Displayable QR image for a payment.

    Args:
        payment: Payment record (may be None)
        payment_url: Already-resolved payment URL, if any
        booking: Booking record consulted when the payment carries no QR
        endpoint: Public QR rendering endpoint for the last-resort image
        size: Size parameter for the rendering endpoint

    Returns:
        Image URL or data URL, or None when nothing can be shown
    """
    native = derive_payment_qr(payment) or derive_booking_qr(booking)
    if native:
        return native

    from_url = qr_from_payment_url(payment_url)
    if from_url:
        return from_url

    if payment_url:
        return render_qr_url(payment_url, endpoint=endpoint, size=size)
    return None
