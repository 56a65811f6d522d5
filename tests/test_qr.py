"""
Tests for QR image derivation.
"""

import json
from urllib.parse import parse_qs, urlsplit

import pytest

from apps.payments.qr import (
    build_provider_qr,
    derive_booking_qr,
    derive_payment_qr,
    find_embedded_qr,
    normalize_qr_candidate,
    qr_from_payment_url,
    render_qr_url,
    resolve_qr,
)

PNG_BASE64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


class TestCandidateAcceptance:
    def test_data_url(self):
        value = f"data:image/png;base64,{PNG_BASE64[:20]}\n{PNG_BASE64[20:]}"
        assert normalize_qr_candidate(value) == f"data:image/png;base64,{PNG_BASE64}"

    def test_image_url_by_extension(self):
        url = "https://cdn.example.com/qr/123.PNG?v=2"
        assert normalize_qr_candidate(url) == url

    def test_provider_image_path(self):
        url = "https://qr.sepay.vn/img?acc=0123&bank=MB"
        assert normalize_qr_candidate(url) == url

    def test_plain_page_url_is_not_an_image(self):
        assert normalize_qr_candidate("https://pay.example.com/checkout") is None

    def test_bare_base64_is_wrapped(self):
        assert normalize_qr_candidate(PNG_BASE64) == f"data:image/png;base64,{PNG_BASE64}"

    @pytest.mark.parametrize("value", ["", "  ", "pending", "PENDING", "data:image/png;base64,", "not base64!"])
    def test_rejected(self, value):
        assert normalize_qr_candidate(value) is None

    def test_digit_payload_without_context(self):
        assert normalize_qr_candidate("123456789") is None
        assert normalize_qr_candidate("data:image/png;base64,12345") is None

    def test_digit_payload_uses_provider_metadata(self):
        context = {"qr_code": "987654", "account_number": "0123 456 789", "bank_code": "MB"}
        result = normalize_qr_candidate("987654", context)
        assert result.startswith("https://qr.sepay.vn/img?")
        params = parse_qs(urlsplit(result).query)
        assert params["acc"] == ["0123456789"]
        assert params["bank"] == ["MB"]


class TestEmbeddedQr:
    def test_nested_under_qr_key(self):
        record = {"provider": {"qrCode": {"image": PNG_BASE64}}}
        assert find_embedded_qr(record) == f"data:image/png;base64,{PNG_BASE64}"

    def test_ignores_strings_outside_qr_keys(self):
        record = {"status": "success", "reference": "ABCDEF123"}
        assert find_embedded_qr(record) is None

    def test_meta_json_string(self):
        record = {"meta": json.dumps({"data": {"qr_image_url": "https://cdn.example.com/q.png"}})}
        assert find_embedded_qr(record) == "https://cdn.example.com/q.png"

    def test_cycle_safe(self):
        record = {"qr": "pending"}
        record["self"] = record
        assert find_embedded_qr(record) is None


class TestProviderMetadata:
    def test_builds_vietqr_url(self):
        record = {
            "bank": {"short_name": "VCB"},
            "beneficiary_account": "0071-000-123456",
            "payment_amount": "1400000 đ",
            "order_code": "BK42",
        }
        url = build_provider_qr(record)
        params = parse_qs(urlsplit(url).query)
        assert params == {
            "acc": ["0071000123456"],
            "bank": ["VCB"],
            "amount": ["1400000"],
            "des": ["BK42"],
        }

    def test_default_description(self):
        url = build_provider_qr({"acc": "12345678", "bank_code": "TCB"})
        assert parse_qs(urlsplit(url).query)["des"] == ["Thanh toan don hang"]

    def test_requires_account_and_bank(self):
        assert build_provider_qr({"bank_code": "TCB"}) is None
        assert build_provider_qr({"account": "12", "bank": "TCB"}) is None
        assert build_provider_qr(None) is None


class TestPaymentUrlQr:
    def test_qr_query_parameter(self):
        url = "https://pay.example.com/x?order=1&qr_url=https%3A%2F%2Fcdn.example.com%2Fqr.png"
        assert qr_from_payment_url(url) == "https://cdn.example.com/qr.png"

    def test_provider_qr_endpoint_is_the_image(self):
        url = "https://qr.sepay.vn/img?acc=0123456&bank=MB&amount=1000"
        assert qr_from_payment_url(url) == url

    def test_unrelated_params_are_ignored(self):
        assert qr_from_payment_url("https://pay.example.com/x?orderId=ABC123") is None
        assert qr_from_payment_url(None) is None

    def test_render_url_encodes_payment_url(self):
        assert render_qr_url("https://pay.x/abc?a=1&b=2") == (
            "https://api.qrserver.com/v1/create-qr-code/?size=260x260"
            "&data=https%3A%2F%2Fpay.x%2Fabc%3Fa%3D1%26b%3D2"
        )


class TestResolveQr:
    def test_embedded_wins_over_payment_url(self):
        payment = {"qr_base64": PNG_BASE64, "payment_url": "https://pay.example.com/x"}
        result = resolve_qr(payment, payment_url="https://pay.example.com/x")
        assert result == f"data:image/png;base64,{PNG_BASE64}"

    def test_only_url_uses_synthesized_fallback(self):
        result = resolve_qr({"status": "pending"}, payment_url="https://pay.example.com/x")
        assert result == render_qr_url("https://pay.example.com/x")

    def test_nothing_available(self):
        assert resolve_qr({"status": "pending"}) is None
        assert resolve_qr(None) is None

    def test_custom_endpoint(self):
        result = resolve_qr(None, "https://pay.x/1", endpoint="https://qr.internal/render", size="300x300")
        assert result == "https://qr.internal/render?size=300x300&data=https%3A%2F%2Fpay.x%2F1"

    def test_payment_record_url_tier(self):
        payment = {"payment_url": "https://qr.sepay.vn/img?acc=0123456&bank=MB"}
        assert derive_payment_qr(payment) == payment["payment_url"]

    def test_deterministic(self, sepay_booking):
        assert resolve_qr(sepay_booking, "https://pay.x") == resolve_qr(sepay_booking, "https://pay.x")


class TestBookingQr:
    def test_from_newest_payment(self, sepay_booking):
        assert derive_booking_qr(sepay_booking) == (
            "https://qr.sepay.vn/img?acc=0123456789&bank=MB&amount=1400000"
        )

    def test_from_booking_url(self):
        booking = {"payment_url": "https://qr.sepay.vn/img?acc=0123456&bank=MB"}
        assert derive_booking_qr(booking) == booking["payment_url"]

    def test_from_booking_metadata(self):
        booking = {"payments": [], "bank_account": {"account_number": "99998888", "bank_code": "ACB"}}
        assert derive_booking_qr(booking).startswith("https://qr.sepay.vn/img?acc=99998888&bank=ACB")

    def test_none(self):
        assert derive_booking_qr({"payments": [{"status": "pending"}]}) is None
        assert derive_booking_qr(None) is None

    def test_booking_consulted_before_url(self):
        booking = {"payment_url": "https://qr.sepay.vn/img?acc=0123456&bank=MB"}
        result = resolve_qr({"status": "pending"}, "https://pay.example.com/x", booking=booking)
        assert result == booking["payment_url"]


class TestProviderAmountRounding:
    @pytest.mark.parametrize("amount,expected", [(2.5, "3"), (1400000.5, "1400001"), (99.4, "99"), (-2.5, "3")])
    def test_half_rounds_up(self, amount, expected):
        url = build_provider_qr({"acc": "12345678", "bank": "MB", "amount": amount})
        assert parse_qs(urlsplit(url).query)["amount"] == [expected]
