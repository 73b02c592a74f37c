"""
Values -- enumerations and immutable value objects of the domain.

Responsibility:
    Defines the product and transaction type enumerations (including the
    non-negative-balance classification of product types) and the
    ExchangeRateSnapshot value produced by the TRM feed.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by models/, services/, and selectors/; imports nothing from them.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class ProductType(str, Enum):
    """Kinds of financial product a user can hold."""

    SAVINGS = "savings"
    CHECKING = "checking"
    CREDIT_CARD = "credit_card"
    LOAN_FREE_INVESTMENT = "loan_free_investment"
    LOAN_MORTGAGE = "loan_mortgage"
    INVESTMENT_CDT = "investment_cdt"
    INVESTMENT_FUND = "investment_fund"
    INVESTMENT_STOCK = "investment_stock"
    CASH = "cash"

    @property
    def requires_non_negative_balance(self) -> bool:
        """True for restricted types whose balance must never go below zero."""
        return self in NON_NEGATIVE_BALANCE_TYPES


# Restricted product types.  Adding a type here is the only change needed
# to extend the balance guard to it.
NON_NEGATIVE_BALANCE_TYPES: frozenset[ProductType] = frozenset({ProductType.CASH})


class TransactionType(str, Enum):
    """Direction of a transaction.  Amounts are always positive magnitudes."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"

    @property
    def sign(self) -> int:
        """+1 when the transaction increases the product balance, else -1."""
        return 1 if self is TransactionType.INCOME else -1


@dataclass(frozen=True)
class ExchangeRateSnapshot:
    """
    One successful read of the TRM feed.

    Contract:
        ``rate`` is COP per USD and always positive.  ``effective_date`` is
        the date the source reports the rate as valid from.  ``fetched_at``
        is when this process obtained it (timezone-aware).
    """

    rate: Decimal
    effective_date: date
    fetched_at: datetime

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {self.rate}")
