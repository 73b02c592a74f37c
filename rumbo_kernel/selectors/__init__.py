"""Read-only, owner-scoped query selectors."""

from rumbo_kernel.selectors.base import BaseSelector, owned_by
from rumbo_kernel.selectors.product_selector import ProductSelector
from rumbo_kernel.selectors.transaction_selector import TransactionSelector

__all__ = [
    "BaseSelector",
    "ProductSelector",
    "TransactionSelector",
    "owned_by",
]
