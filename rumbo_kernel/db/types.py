"""
Module: rumbo_kernel.db.types
Responsibility: Money and currency primitives shared by models and
    services.  Centralizes precision, rounding, and currency validation so that
    every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Only COP and USD are accepted currency codes.
    - MONEY_DECIMAL_PLACES is the scale of every stored balance and amount.
      round_money() is the ONLY sanctioned rounding function for monetary
      values (ROUND_HALF_UP).
    - No floats anywhere.  All monetary amounts use Decimal.
    - Stored amounts and balances stay within +/- MAX_MONEY, the range of
      a Numeric(15, 2) column.

Failure modes:
    - InvalidCurrencyError on a code outside SUPPORTED_CURRENCIES.
    - ValueError on a malformed amount string passed to money_from_str().
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from rumbo_kernel.exceptions import InvalidCurrencyError

MONEY_DECIMAL_PLACES = 2
RATE_DECIMAL_PLACES = 6
DEFAULT_ROUNDING = ROUND_HALF_UP

SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"COP", "USD"})

# Largest magnitude a Numeric(15, 2) balance or amount column can hold
MAX_MONEY = Decimal("9999999999999.99")


def money_from_str(value: str) -> Decimal:
    """
    Create a Money value from string.

    Postconditions: Returns a finite Decimal (not rounded -- callers apply
        rounding via round_money() if needed).

    Raises:
        ValueError: If value is not a finite decimal number.
    """
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid decimal amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid decimal amount: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for monetary values.
    All other code MUST delegate rounding here.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def has_money_scale(value: Decimal) -> bool:
    """True when value carries no more than MONEY_DECIMAL_PLACES decimals."""
    try:
        return value == round_money(value)
    except InvalidOperation:
        # quantize() fails past the context precision (28 digits)
        return False


def fits_money_column(value: Decimal) -> bool:
    """True when value is finite and within +/- MAX_MONEY."""
    return value.is_finite() and abs(value) <= MAX_MONEY


def validate_currency(currency: str) -> str:
    """
    Validate a currency code.

    Postconditions: Returns the uppercase, trimmed code iff it is a member
        of SUPPORTED_CURRENCIES.

    Raises:
        InvalidCurrencyError: If the code is not supported.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if normalized not in SUPPORTED_CURRENCIES:
        raise InvalidCurrencyError(currency)

    return normalized
