"""
BaseService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service, plus the storage primitives they share: loading a
    product by (id, owner), rewriting its balance, and inserting a
    transaction row.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or roll back themselves.  The caller (a
      ``session_scope()`` block, the TransferOrchestrator, or a test) owns
      commit/rollback.
    - Lost-update protection: balance rewrites flush through the product's
      optimistic version column; a concurrent write surfaces as
      OptimisticLockError instead of being silently overwritten.

Failure modes:
    - OptimisticLockError when the product row changed since it was read.
    - InvalidAmountError when a balance would leave the money column range.
"""

from abc import ABC
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rumbo_kernel.db.types import MAX_MONEY, fits_money_column, has_money_scale
from rumbo_kernel.domain.clock import Clock, SystemClock
from rumbo_kernel.exceptions import InvalidAmountError, OptimisticLockError
from rumbo_kernel.models.financial_product import FinancialProduct
from rumbo_kernel.models.transaction import Transaction
from rumbo_kernel.selectors.base import owned_by


def require_storable_money(value: Decimal) -> Decimal:
    """
    Validate an amount or balance about to be written to a money column.

    Raises:
        InvalidAmountError: Unless ``value`` is a finite Decimal within
            +/- MAX_MONEY with at most two decimal places.
    """
    if not isinstance(value, Decimal) or not value.is_finite():
        raise InvalidAmountError(str(value), "must be a finite Decimal")
    if not fits_money_column(value):
        raise InvalidAmountError(str(value), f"must be within +/-{MAX_MONEY}")
    if not has_money_scale(value):
        raise InvalidAmountError(str(value), "at most 2 decimal places")
    return value


class BaseService(ABC):
    """
    Abstract base class for write-side services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide DTO read methods -- those belong in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _find_owned_product(
        self,
        owner_id: str,
        product_id: UUID,
        *,
        for_update: bool = False,
    ) -> FinancialProduct | None:
        """
        Load a product filtered by owner.

        With ``for_update`` the row is locked (SELECT ... FOR UPDATE on
        PostgreSQL) and re-read from the database even if the session
        already holds it.
        """
        stmt = select(FinancialProduct).where(
            FinancialProduct.id == product_id,
            owned_by(owner_id),
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _write_balance(self, product: FinancialProduct, new_balance: Decimal) -> None:
        """Set a product's balance and flush it under the version check."""
        product.balance = require_storable_money(new_balance)
        self._flush_product(product)

    def _insert_transaction(self, tx: Transaction) -> Transaction:
        self.session.add(tx)
        self.session.flush()
        return tx

    def _flush_product(self, product: FinancialProduct) -> None:
        # A failed flush leaves the session needing a rollback; attributes
        # cannot be read after that.
        product_id = str(product.id)
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("FinancialProduct", product_id) from exc
