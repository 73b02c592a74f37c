"""
Unit tests for money helpers.

Verifies:
- Strict string parsing
- ROUND_HALF_UP at two decimals
- Scale and column-range checks
- Currency validation (COP and USD only)
"""

import pytest
from decimal import Decimal

from rumbo_kernel.db.types import (
    MAX_MONEY,
    MONEY_DECIMAL_PLACES,
    SUPPORTED_CURRENCIES,
    fits_money_column,
    has_money_scale,
    money_from_str,
    round_money,
    validate_currency,
)
from rumbo_kernel.exceptions import InvalidCurrencyError


class TestMoneyFromStr:
    """Tests for money_from_str function."""

    def test_simple_decimal(self):
        assert money_from_str("100.50") == Decimal("100.50")

    def test_negative(self):
        assert money_from_str("-100.50") == Decimal("-100.50")

    def test_invalid_string_raises(self):
        with pytest.raises(ValueError):
            money_from_str("not a number")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_raises(self, value):
        with pytest.raises(ValueError):
            money_from_str(value)


class TestRoundMoney:
    """round_money is the only rounding helper: ROUND_HALF_UP, 2 places."""

    def test_default_places(self):
        assert MONEY_DECIMAL_PLACES == 2
        assert round_money(Decimal("1.234")) == Decimal("1.23")

    def test_half_rounds_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("2.355")) == Decimal("2.36")

    def test_half_rounds_away_from_zero_for_negatives(self):
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_not_bankers_rounding(self):
        # Banker's rounding would give 0.12
        assert round_money(Decimal("0.125")) == Decimal("0.13")

    def test_custom_places(self):
        assert round_money(Decimal("4100.1234565"), 6) == Decimal("4100.123457")


class TestHasMoneyScale:

    @pytest.mark.parametrize("value", ["1", "1.5", "1.50", "0.01", "-3.10"])
    def test_accepts_two_or_fewer_decimals(self, value):
        assert has_money_scale(Decimal(value))

    @pytest.mark.parametrize("value", ["0.001", "1.505", "-0.125"])
    def test_rejects_more_decimals(self, value):
        assert not has_money_scale(Decimal(value))

    def test_beyond_decimal_precision_is_false_not_an_error(self):
        assert not has_money_scale(Decimal("1e30"))


class TestFitsMoneyColumn:

    @pytest.mark.parametrize("value", ["0", "9999999999999.99", "-9999999999999.99"])
    def test_inside_range(self, value):
        assert fits_money_column(Decimal(value))

    @pytest.mark.parametrize("value", ["10000000000000", "-10000000000000.00", "1e30", "NaN"])
    def test_outside_range(self, value):
        assert not fits_money_column(Decimal(value))

    def test_bound_matches_numeric_15_2(self):
        assert MAX_MONEY == Decimal("9999999999999.99")


class TestValidateCurrency:

    def test_supported_set(self):
        assert SUPPORTED_CURRENCIES == frozenset({"COP", "USD"})

    @pytest.mark.parametrize("raw,expected", [("COP", "COP"), ("usd", "USD"), (" cop ", "COP")])
    def test_normalizes(self, raw, expected):
        assert validate_currency(raw) == expected

    @pytest.mark.parametrize("raw", ["EUR", "", "US", None])
    def test_rejects_unsupported(self, raw):
        with pytest.raises(InvalidCurrencyError):
            validate_currency(raw)

    def test_error_is_also_value_error(self):
        with pytest.raises(ValueError):
            validate_currency("GBP")
