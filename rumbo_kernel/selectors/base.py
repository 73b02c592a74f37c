"""
Module: rumbo_kernel.selectors.base
Responsibility: Shared base for the read side.  Selectors answer owner-scoped
    questions about products and transactions and hand back DTOs.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - A row owned by another user is indistinguishable from a missing row:
      every query goes through ``owned_by``.
"""

from sqlalchemy import ColumnElement
from sqlalchemy.orm import Session

from rumbo_kernel.models.financial_product import FinancialProduct


def owned_by(owner_id: str) -> ColumnElement[bool]:
    """WHERE clause restricting a query to ``owner_id``'s products."""
    return FinancialProduct.owner_id == owner_id


class BaseSelector:
    """Holds the caller's session; the caller owns its transaction."""

    def __init__(self, session: Session):
        self.session = session
