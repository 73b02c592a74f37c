"""
Currency conversion between COP and USD.

The exchange rate is always quoted as COP per USD (the TRM).  Amounts are
expressed in the source currency; the converted amount is rounded once, at
the end, with ``round_money`` (ROUND_HALF_UP, 2 decimals).
"""

from decimal import Decimal, InvalidOperation

from rumbo_kernel.db.types import (
    RATE_DECIMAL_PLACES,
    fits_money_column,
    round_money,
    validate_currency,
)
from rumbo_kernel.exceptions import InvalidAmountError, InvalidExchangeRateError

BASE_CURRENCY = "COP"
QUOTE_CURRENCY = "USD"

# Far above any real COP/USD quote; keeps rate arithmetic inside Decimal precision
MAX_EXCHANGE_RATE = Decimal("1000000")


def parse_exchange_rate(value: Decimal | str) -> Decimal:
    """
    Parse a caller- or feed-supplied rate.

    Raises:
        InvalidExchangeRateError: If the value is not a positive finite decimal
            with at most RATE_DECIMAL_PLACES decimals, no larger than
            MAX_EXCHANGE_RATE.
    """
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidExchangeRateError(str(value), "not a decimal number") from exc
    if not rate.is_finite():
        raise InvalidExchangeRateError(str(value), "not a finite number")
    if rate <= 0:
        raise InvalidExchangeRateError(str(value), "must be positive")
    if rate > MAX_EXCHANGE_RATE:
        raise InvalidExchangeRateError(str(value), f"must not exceed {MAX_EXCHANGE_RATE}")
    if rate != round_money(rate, RATE_DECIMAL_PLACES):
        raise InvalidExchangeRateError(
            str(value), f"at most {RATE_DECIMAL_PLACES} decimal places"
        )
    return rate


def needs_conversion(from_currency: str, to_currency: str) -> bool:
    return validate_currency(from_currency) != validate_currency(to_currency)


def convert_amount(
    amount: Decimal,
    from_currency: str,
    to_currency: str,
    rate: Decimal | None,
) -> Decimal:
    """
    Convert ``amount`` from ``from_currency`` into ``to_currency``.

    Same currency: returns the amount unchanged (the rate is ignored and
    may be None).  COP -> USD divides by the rate; USD -> COP multiplies.

    Raises:
        InvalidCurrencyError: If either code is unsupported.
        InvalidExchangeRateError: If a conversion is needed and the rate is
            missing or not positive.
        InvalidAmountError: If the converted amount does not fit a money
            column.
    """
    source = validate_currency(from_currency)
    target = validate_currency(to_currency)

    if source == target:
        return amount

    if rate is None:
        raise InvalidExchangeRateError("None", "required for cross-currency conversion")
    rate = parse_exchange_rate(rate)

    if source == BASE_CURRENCY and target == QUOTE_CURRENCY:
        converted = amount / rate
    else:
        converted = amount * rate
    if not fits_money_column(converted):
        raise InvalidAmountError(str(amount), f"converts past the storable range at rate {rate}")
    return round_money(converted)
