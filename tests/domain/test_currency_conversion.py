"""
COP/USD conversion.

The rate is always COP per USD.  COP -> USD divides, USD -> COP multiplies,
and the converted amount is rounded once with ROUND_HALF_UP to 2 places.
"""

from decimal import Decimal

import pytest

from rumbo_kernel.domain.currency import convert_amount, needs_conversion, parse_exchange_rate
from rumbo_kernel.exceptions import (
    InvalidAmountError,
    InvalidCurrencyError,
    InvalidExchangeRateError,
)

RATE = Decimal("4100.50")


class TestConvertAmount:

    def test_same_currency_is_identity(self):
        assert convert_amount(Decimal("30.00"), "COP", "COP", None) == Decimal("30.00")

    def test_same_currency_ignores_rate(self):
        assert convert_amount(Decimal("12.34"), "USD", "USD", RATE) == Decimal("12.34")

    def test_cop_to_usd_divides(self):
        # 410050 / 4100.50 = 100
        assert convert_amount(Decimal("410050.00"), "COP", "USD", RATE) == Decimal("100.00")

    def test_usd_to_cop_multiplies(self):
        assert convert_amount(Decimal("100.00"), "USD", "COP", RATE) == Decimal("410050.00")

    def test_cop_to_usd_rounds_half_up(self):
        # 100 / 4000 = 0.025 exactly -> 0.03 (banker's would give 0.02)
        assert convert_amount(Decimal("100.00"), "COP", "USD", Decimal("4000")) == Decimal("0.03")

    def test_usd_to_cop_rounds_half_up(self):
        # 0.01 * 4100.5 = 41.005 -> 41.01
        assert convert_amount(Decimal("0.01"), "USD", "COP", RATE) == Decimal("41.01")

    def test_cop_to_usd_non_terminating(self):
        # 1,000,000 / 4100.50 = 243.872698...
        assert convert_amount(Decimal("1000000.00"), "COP", "USD", RATE) == Decimal("243.87")

    def test_missing_rate_for_cross_currency(self):
        with pytest.raises(InvalidExchangeRateError):
            convert_amount(Decimal("1"), "COP", "USD", None)

    def test_unsupported_currency(self):
        with pytest.raises(InvalidCurrencyError):
            convert_amount(Decimal("1"), "EUR", "COP", RATE)

    def test_result_past_column_range(self):
        with pytest.raises(InvalidAmountError):
            convert_amount(Decimal("9999999999999.99"), "USD", "COP", RATE)

    def test_needs_conversion(self):
        assert needs_conversion("COP", "usd")
        assert not needs_conversion("USD", "USD")


class TestParseExchangeRate:

    @pytest.mark.parametrize("raw", ["4100.50", "3925.123456", Decimal("1")])
    def test_valid(self, raw):
        assert parse_exchange_rate(raw) == Decimal(str(raw))

    @pytest.mark.parametrize(
        "raw", ["0", "-4100", "abc", "NaN", "Infinity", "1.1234567", "1e30", "1000000.000001"]
    )
    def test_invalid(self, raw):
        with pytest.raises(InvalidExchangeRateError):
            parse_exchange_rate(raw)
