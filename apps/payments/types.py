"""
Canonical payment types shared by the resolver, QR engine and poller.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

DEFAULT_CURRENCY = "VND"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        """Whether automatic confirmation polling stops on this status."""
        return self in (PaymentStatus.SUCCESS, PaymentStatus.FAILED)


# Provider status vocabulary -> canonical status
STATUS_SYNONYMS: dict[str, PaymentStatus] = {
    "success": PaymentStatus.SUCCESS,
    "paid": PaymentStatus.SUCCESS,
    "completed": PaymentStatus.SUCCESS,
    "failed": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
    "pending": PaymentStatus.PENDING,
    "processing": PaymentStatus.PENDING,
    "waiting": PaymentStatus.PENDING,
    "unpaid": PaymentStatus.PENDING,
}

# Labels shown on the checkout page
STATUS_LABELS: dict[PaymentStatus, str] = {
    PaymentStatus.SUCCESS: "Thanh toán thành công",
    PaymentStatus.PENDING: "Đang chờ thanh toán",
    PaymentStatus.FAILED: "Thanh toán thất bại",
    PaymentStatus.REFUNDED: "Đã hoàn tiền",
    PaymentStatus.UNKNOWN: "Chờ cập nhật",
}


@dataclass(frozen=True)
class ResolvedPaymentView:
    """Normalized projection of a booking/payment snapshot."""

    amount: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    payment_url: Optional[str] = None
    qr_image: Optional[str] = None
    status: PaymentStatus = PaymentStatus.UNKNOWN

    @property
    def status_label(self) -> str:
        return STATUS_LABELS[self.status]

    @property
    def is_direct_image_payment(self) -> bool:
        """True when the payment URL itself is the QR image."""
        return bool(self.qr_image and self.payment_url and self.qr_image == self.payment_url)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["status_label"] = self.status_label
        data["is_direct_image_payment"] = self.is_direct_image_payment
        return data
