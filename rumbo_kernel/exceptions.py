"""
Typed Exception Hierarchy for the Rumbo Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, scripts, tests) must be able to tell "the product
does not exist" from "the cash balance would go negative" from "the TRM feed
is down" without parsing messages.  Every error here:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured data as attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RumboError (base)
    |
    +-- ProductError
    |   +-- ProductNotFoundError
    |   +-- InsufficientBalanceError
    |
    +-- TransactionError
    |   +-- TransactionNotFoundError
    |   +-- InvalidAmountError
    |   +-- OpeningBalanceProtectedError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |   +-- InvalidExchangeRateError
    |
    +-- ExchangeRateError
    |   +-- ExchangeRateFetchError
    |   +-- ExchangeRateUnavailableError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Product         | PRODUCT_NOT_FOUND           | Missing, or owned by another user
                | INSUFFICIENT_BALANCE        | Restricted product would go negative
----------------|-----------------------------|-----------------------------------------
Transaction     | TRANSACTION_NOT_FOUND       | Missing, or owned by another user
                | INVALID_AMOUNT              | Non-positive or over-scaled amount
                | OPENING_BALANCE_PROTECTED   | Deleting the "Balance inicial" row
----------------|-----------------------------|-----------------------------------------
Currency        | INVALID_CURRENCY            | Not COP or USD
                | CURRENCY_MISMATCH           | Amount currency differs from product
                | INVALID_EXCHANGE_RATE       | Rate is zero/negative/invalid
----------------|-----------------------------|-----------------------------------------
Exchange Rate   | EXCHANGE_RATE_FETCH_FAILED  | Upstream feed failed (internal)
                | RATE_UNAVAILABLE            | No cached rate and upstream failed
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Product row changed under us

===============================================================================
HANDLING PATTERNS
===============================================================================

The TransferOrchestrator does NOT raise these for domain outcomes; it folds
them into a TransferResult.  The product and transaction services raise them
directly:

    try:
        ProductService(session, clock).create_product(...)
    except InsufficientBalanceError as e:
        return {"error": e.code, "product_type": e.product_type}

ExchangeRateFetchError never escapes the ExchangeRateCache: it is the signal
that drives the stale-value fallback.
"""


class RumboError(Exception):
    """
    Base exception for all kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RUMBO_ERROR"


# Product-related exceptions


class ProductError(RumboError):
    """Base exception for financial product errors."""

    code: str = "PRODUCT_ERROR"


class ProductNotFoundError(ProductError):
    """Product does not exist or is not owned by the caller."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Financial product not found: {product_id}")


class InsufficientBalanceError(ProductError):
    """A restricted-type product balance would become negative."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, product_type: str, proposed_balance: str):
        self.product_type = product_type
        self.proposed_balance = proposed_balance
        super().__init__(
            f"Insufficient balance: {product_type} products cannot have a "
            f"negative balance (proposed {proposed_balance})"
        )


# Transaction-related exceptions


class TransactionError(RumboError):
    """Base exception for transaction errors."""

    code: str = "TRANSACTION_ERROR"


class TransactionNotFoundError(TransactionError):
    """Transaction does not exist or is not owned by the caller."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class InvalidAmountError(TransactionError):
    """Amount is not a positive decimal with at most two decimal places."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class OpeningBalanceProtectedError(TransactionError):
    """The opening balance transaction of a product cannot be deleted."""

    code: str = "OPENING_BALANCE_PROTECTED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"Cannot delete initial balance transaction {transaction_id}"
        )


# Currency-related exceptions


class CurrencyError(RumboError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError, ValueError):
    """Currency code is not one of the supported codes."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Unsupported currency code: '{currency}'")


class CurrencyMismatchError(CurrencyError):
    """Amount currency differs from the currency of the product it targets."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency: str, product_currency: str):
        self.currency = currency
        self.product_currency = product_currency
        super().__init__(
            f"Currency {currency} does not match product currency {product_currency}"
        )


class InvalidExchangeRateError(CurrencyError):
    """Exchange rate is zero, negative, or not a number."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate: str, reason: str):
        self.rate = rate
        self.reason = reason
        super().__init__(f"Invalid exchange rate {rate}: {reason}")


# Exchange-rate-feed exceptions


class ExchangeRateError(RumboError):
    """Base exception for exchange rate feed errors."""

    code: str = "EXCHANGE_RATE_ERROR"


class ExchangeRateFetchError(ExchangeRateError):
    """
    A single upstream fetch failed.

    Covers transport errors, timeouts, non-2xx responses, and empty or
    malformed payloads.  Handled inside ExchangeRateCache.
    """

    code: str = "EXCHANGE_RATE_FETCH_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Exchange rate fetch failed: {reason}")


class ExchangeRateUnavailableError(ExchangeRateError):
    """No usable exchange rate: nothing cached and the upstream fetch failed."""

    code: str = "RATE_UNAVAILABLE"

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"TRM rate is currently unavailable (source: {source})")


# Concurrency-related exceptions


class ConcurrencyError(RumboError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
