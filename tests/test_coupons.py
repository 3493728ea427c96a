"""Tests for coupon evaluation and discount arithmetic."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from storefront.services.coupons import (
    Coupon,
    CouponEvaluator,
    compute_discount,
)
from storefront.services.payment_gateway import PaymentProviderError


def _evaluator(coupon: dict | None = None, error: Exception | None = None):
    gateway = MagicMock()
    if error is not None:
        gateway.retrieve_coupon.side_effect = error
    else:
        gateway.retrieve_coupon.return_value = coupon
    return CouponEvaluator(gateway=gateway), gateway


class TestComputeDiscount:
    def test_ninety_nine_percent_of_120_aud(self):
        coupon = Coupon(id="SAVE99", percent_off=Decimal("99"))
        discount = compute_discount(coupon, 12000)
        assert discount == 11880
        assert 12000 - discount == 120

    @pytest.mark.parametrize(
        ("base", "percent", "expected"),
        [
            (12000, "10", 1200),
            (999, "50", 500),  # 499.5 rounds half up
            (1, "50", 1),
            (12000, "100", 12000),
            (12000, "150", 12000),
            (12000, "-5", 0),
            (0, "20", 0),
        ],
    )
    def test_percent_off(self, base, percent, expected):
        coupon = Coupon(id="P", percent_off=Decimal(percent))
        discount = compute_discount(coupon, base)
        assert discount == expected
        assert 0 <= base - discount <= base

    @pytest.mark.parametrize(
        ("base", "amount_off", "expected_final"),
        [(12000, 2000, 10000), (12000, 12000, 0), (12000, 50000, 0)],
    )
    def test_amount_off_never_goes_negative(self, base, amount_off, expected_final):
        coupon = Coupon(id="A", amount_off=amount_off, currency="AUD")
        assert base - compute_discount(coupon, base) == expected_final

    def test_coupon_without_discount_fields(self):
        assert compute_discount(Coupon(id="EMPTY"), 12000) == 0


class TestCouponEvaluator:
    def test_no_code_is_not_an_error(self):
        evaluator, gateway = _evaluator()
        result = evaluator.evaluate(None, 12000, "AUD")
        assert result.valid is False
        assert result.discount_amount == 0
        assert result.reason == "no_code"
        gateway.retrieve_coupon.assert_not_called()

    def test_blank_code_skips_lookup(self):
        evaluator, gateway = _evaluator()
        assert evaluator.evaluate("   ", 12000, "AUD").reason == "no_code"
        gateway.retrieve_coupon.assert_not_called()

    def test_percent_coupon_applied(self):
        evaluator, gateway = _evaluator(
            {"id": "SAVE99", "name": "99% off", "percent_off": 99.0, "valid": True}
        )
        result = evaluator.evaluate("SAVE99", 12000, "AUD")
        assert result.valid is True
        assert result.discount_amount == 11880
        assert result.final_amount(12000) == 120
        assert result.coupon.display_name == "99% off"
        gateway.retrieve_coupon.assert_called_once_with("SAVE99")

    def test_unknown_code_gives_full_price(self):
        evaluator, _ = _evaluator(None)
        result = evaluator.evaluate("NOPE", 12000, "AUD")
        assert result.valid is False
        assert result.discount_amount == 0
        assert result.final_amount(12000) == 12000
        assert result.reason == "not_found"

    def test_inactive_coupon_is_rejected(self):
        evaluator, _ = _evaluator({"id": "OLD", "percent_off": 20, "valid": False})
        result = evaluator.evaluate("OLD", 12000, "AUD")
        assert result.valid is False
        assert result.discount_amount == 0
        assert result.reason == "inactive"

    def test_amount_off_in_other_currency_is_rejected(self):
        evaluator, _ = _evaluator(
            {"id": "FIVER", "amount_off": 500, "currency": "usd", "valid": True}
        )
        result = evaluator.evaluate("FIVER", 12000, "AUD")
        assert result.valid is False
        assert result.reason == "currency_mismatch"

    def test_amount_off_in_same_currency(self):
        evaluator, _ = _evaluator(
            {"id": "FIVER", "amount_off": 500, "currency": "aud", "valid": True}
        )
        result = evaluator.evaluate("FIVER", 12000, "AUD")
        assert result.valid is True
        assert result.discount_amount == 500

    @pytest.mark.parametrize(
        "error",
        [PaymentProviderError("timeout"), RuntimeError("Stripe is not configured")],
    )
    def test_provider_failure_fails_open_on_price(self, error):
        evaluator, _ = _evaluator(error=error)
        result = evaluator.evaluate("SAVE99", 12000, "AUD")
        assert result.valid is False
        assert result.discount_amount == 0
        assert result.reason == "provider_unavailable"
        assert result.message == "Coupons are temporarily unavailable"
