"""SQLAlchemy ORM models for the rumbo kernel."""

from rumbo_kernel.models.financial_product import FinancialProduct
from rumbo_kernel.models.transaction import OPENING_BALANCE_NAME, Transaction

__all__ = [
    "FinancialProduct",
    "OPENING_BALANCE_NAME",
    "Transaction",
]
