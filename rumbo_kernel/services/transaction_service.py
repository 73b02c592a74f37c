"""
TransactionService -- ordinary transaction writes that carry the balance guard.

Responsibility:
    Records, edits and deletes transactions, keeping each product's stored
    balance equal to the sum of its transaction history.  Reads are
    delegated to TransactionSelector.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes within the caller's
    transaction; never commits.

Invariants enforced:
    - The balance row and the transaction rows change together: the product
      is locked, its new balance is guarded, and both writes are flushed
      before returning.
    - Every balance-changing write (create, update, delete, bulk delete)
      goes through the balance guard.
    - The opening balance row of a product is never deleted.

Failure modes:
    - ProductNotFoundError / TransactionNotFoundError for missing or
      foreign rows.
    - InvalidAmountError for a non-positive, over-scaled or out-of-range
      amount, or a balance that would leave the money column range.
    - CurrencyMismatchError when the amount's currency is not the product's.
    - InsufficientBalanceError from the balance guard.
    - OpeningBalanceProtectedError when deleting the opening row.
    - OptimisticLockError when a concurrent write hit the product row.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rumbo_kernel.db.types import validate_currency
from rumbo_kernel.domain.balance_guard import check_balance
from rumbo_kernel.domain.clock import Clock
from rumbo_kernel.domain.dtos import (
    BalancePoint,
    BulkDeleteFailure,
    BulkDeleteResult,
    TransactionPage,
    TransactionRecord,
)
from rumbo_kernel.domain.values import TransactionType
from rumbo_kernel.exceptions import (
    CurrencyMismatchError,
    InsufficientBalanceError,
    InvalidAmountError,
    OpeningBalanceProtectedError,
    ProductNotFoundError,
    TransactionNotFoundError,
)
from rumbo_kernel.logging_config import get_logger
from rumbo_kernel.models.financial_product import FinancialProduct
from rumbo_kernel.models.transaction import Transaction
from rumbo_kernel.selectors.base import owned_by
from rumbo_kernel.selectors.transaction_selector import (
    DEFAULT_PAGE_SIZE,
    TransactionSelector,
)
from rumbo_kernel.services.base import BaseService, require_storable_money

logger = get_logger("services.transaction")

_UPDATABLE_FIELDS = (
    "transaction_type",
    "name",
    "amount",
    "currency",
    "transaction_date",
    "category_id",
    "merchant",
    "excluded",
    "notes",
)


def require_positive_amount(amount: Decimal) -> Decimal:
    """
    Validate a transaction amount.

    Raises:
        InvalidAmountError: Unless ``amount`` is a finite Decimal greater
            than zero, no larger than MAX_MONEY, with at most two decimal
            places.
    """
    amount = require_storable_money(amount)
    if amount <= 0:
        raise InvalidAmountError(str(amount), "must be greater than zero")
    return amount


class TransactionService(BaseService):
    """Creates, updates and deletes transactions, rewriting the product balance."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = TransactionSelector(session)

    def create_transaction(
        self,
        owner_id: str,
        product_id: UUID,
        transaction_type: TransactionType | str,
        name: str,
        amount: Decimal,
        currency: str,
        transaction_date: date,
        *,
        category_id: UUID | None = None,
        merchant: str | None = None,
        excluded: bool = False,
        notes: str | None = None,
    ) -> TransactionRecord:
        """
        Record a transaction and apply its effect to the product balance.

        Income adds ``amount`` to the balance; expense and transfer subtract it.
        """
        transaction_type = TransactionType(transaction_type)
        amount = require_positive_amount(amount)
        currency = validate_currency(currency)

        product = self._find_owned_product(owner_id, product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        if product.currency != currency:
            raise CurrencyMismatchError(currency, product.currency)

        new_balance = require_storable_money(product.balance + amount * transaction_type.sign)
        check_balance(product.product_type, new_balance).require()

        tx = self._insert_transaction(
            Transaction(
                product_id=product.id,
                category_id=category_id,
                transaction_type=transaction_type,
                name=name,
                merchant=merchant,
                excluded=excluded,
                amount=amount,
                currency=currency,
                transaction_date=transaction_date,
                notes=notes,
            )
        )
        self._write_balance(product, new_balance)

        logger.info(
            "transaction_created",
            extra={
                "transaction_id": str(tx.id),
                "product_id": str(product.id),
                "transaction_type": transaction_type.value,
                "amount": str(amount),
                "currency": currency,
            },
        )
        return TransactionRecord.from_model(tx)

    def get_transaction(
        self, owner_id: str, transaction_id: UUID
    ) -> TransactionRecord | None:
        return self._selector.get(owner_id, transaction_id)

    def list_transactions(
        self,
        owner_id: str,
        product_id: UUID,
        *,
        search: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        types: Iterable[TransactionType | str] | None = None,
        category_ids: Iterable[UUID] | None = None,
        amount_min: Decimal | None = None,
        amount_max: Decimal | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
    ) -> TransactionPage | None:
        return self._selector.list_for_product(
            owner_id,
            product_id,
            search=search,
            start_date=start_date,
            end_date=end_date,
            types=types,
            category_ids=category_ids,
            amount_min=amount_min,
            amount_max=amount_max,
            limit=limit,
            cursor=cursor,
        )

    def list_all_transactions(
        self,
        owner_id: str,
        *,
        product_ids: Iterable[UUID] | None = None,
        search: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        types: Iterable[TransactionType | str] | None = None,
        category_ids: Iterable[UUID] | None = None,
        amount_min: Decimal | None = None,
        amount_max: Decimal | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
    ) -> TransactionPage:
        """Transactions across all of the owner's products, newest first."""
        return self._selector.list_for_owner(
            owner_id,
            product_ids=product_ids,
            search=search,
            start_date=start_date,
            end_date=end_date,
            types=types,
            category_ids=category_ids,
            amount_min=amount_min,
            amount_max=amount_max,
            limit=limit,
            cursor=cursor,
        )

    def get_balance_history(
        self,
        owner_id: str,
        currency: str,
        *,
        product_id: UUID | None = None,
    ) -> tuple[BalancePoint, ...]:
        return self._selector.balance_history(owner_id, currency, product_id=product_id)

    def update_transaction(
        self, owner_id: str, transaction_id: UUID, **changes: Any
    ) -> TransactionRecord:
        """
        Edit a transaction, moving the product balance by the difference.

        The product's new balance is ``balance - old effect + new effect``
        and goes through the balance guard, so turning an income on a cash
        product into an expense may be refused.

        Args:
            **changes: Any of transaction_type, name, amount, currency,
                transaction_date, category_id, merchant, excluded, notes.
                None values are ignored.

        Raises:
            ValueError: On an unknown field name.
            TransactionNotFoundError: Missing or not owned by ``owner_id``.
            CurrencyMismatchError: If the new currency is not the product's.
            InsufficientBalanceError: From the balance guard.
        """
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown transaction fields: {sorted(unknown)}")
        changes = {k: v for k, v in changes.items() if v is not None}

        tx = self._find_owned_transaction(owner_id, transaction_id)
        if tx is None:
            raise TransactionNotFoundError(str(transaction_id))

        if "transaction_type" in changes:
            changes["transaction_type"] = TransactionType(changes["transaction_type"])
        if "amount" in changes:
            changes["amount"] = require_positive_amount(changes["amount"])
        if "currency" in changes:
            changes["currency"] = validate_currency(changes["currency"])

        product = self._find_owned_product(owner_id, tx.product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(str(tx.product_id))
        currency = changes.get("currency", tx.currency)
        if currency != product.currency:
            raise CurrencyMismatchError(currency, product.currency)

        old_effect = tx.signed_amount
        new_effect = (
            changes.get("amount", tx.amount)
            * TransactionType(changes.get("transaction_type", tx.transaction_type)).sign
        )
        balance_changes = new_effect != old_effect
        if balance_changes:
            new_balance = require_storable_money(product.balance - old_effect + new_effect)
            check_balance(product.product_type, new_balance).require()

        for field_name, value in changes.items():
            setattr(tx, field_name, value)
        if balance_changes:
            self._write_balance(product, new_balance)
        else:
            self.session.flush()

        logger.info(
            "transaction_updated",
            extra={
                "transaction_id": str(tx.id),
                "product_id": str(product.id),
                "fields": sorted(changes),
                "balance_delta": str(new_effect - old_effect),
            },
        )
        return TransactionRecord.from_model(tx)

    def delete_transaction(self, owner_id: str, transaction_id: UUID) -> TransactionRecord:
        """
        Delete a transaction and reverse its effect on the product balance.

        The reversed balance goes through the balance guard: deleting an
        income row from a cash product may be refused.

        Returns:
            Record of the deleted transaction.
        """
        tx = self._find_owned_transaction(owner_id, transaction_id)
        if tx is None:
            raise TransactionNotFoundError(str(transaction_id))
        if tx.is_opening_balance:
            raise OpeningBalanceProtectedError(str(transaction_id))

        product = self._find_owned_product(owner_id, tx.product_id, for_update=True)
        if product is None:
            raise ProductNotFoundError(str(tx.product_id))

        new_balance = product.balance - tx.signed_amount
        check_balance(product.product_type, new_balance).require()

        record = TransactionRecord.from_model(tx)
        self.session.delete(tx)
        self._write_balance(product, new_balance)

        logger.info(
            "transaction_deleted",
            extra={
                "transaction_id": str(transaction_id),
                "product_id": str(product.id),
                "amount": str(record.amount),
                "currency": record.currency,
            },
        )
        return record

    def bulk_delete_transactions(
        self, owner_id: str, transaction_ids: Iterable[UUID]
    ) -> BulkDeleteResult:
        """
        Delete many transactions, product by product.

        Rows are grouped by product and each group is guarded as a whole:
        the product balance after reversing every row of the group must
        pass the balance guard, otherwise none of that group is deleted.
        Groups are independent; one refused group does not stop the others.

        Ids that are missing or foreign, opening balance rows, and rows of a
        refused group are reported in ``failed`` with the code of the error
        that single-row deletion would have raised.
        """
        requested = list(dict.fromkeys(transaction_ids))
        if not requested:
            return BulkDeleteResult()

        found = {
            tx.id: tx
            for tx in self.session.execute(
                select(Transaction)
                .join(FinancialProduct, Transaction.product_id == FinancialProduct.id)
                .where(
                    Transaction.id.in_(requested),
                    owned_by(owner_id),
                )
            ).scalars()
        }

        failed: list[BulkDeleteFailure] = []
        by_product: dict[UUID, list[Transaction]] = defaultdict(list)
        for transaction_id in requested:
            tx = found.get(transaction_id)
            if tx is None:
                failed.append(_failure(transaction_id, TransactionNotFoundError(str(transaction_id))))
            elif tx.is_opening_balance:
                failed.append(
                    _failure(transaction_id, OpeningBalanceProtectedError(str(transaction_id)))
                )
            else:
                by_product[tx.product_id].append(tx)

        deleted: list[UUID] = []
        # Lock products in a fixed order so two bulk deletes cannot deadlock
        for product_id in sorted(by_product, key=str):
            group = by_product[product_id]
            product = self._find_owned_product(owner_id, product_id, for_update=True)
            new_balance = product.balance - sum(
                (tx.signed_amount for tx in group), Decimal("0")
            )
            check = check_balance(product.product_type, new_balance)
            if not check.is_ok:
                error = InsufficientBalanceError(
                    check.product_type.value, str(check.proposed_balance)
                )
                failed.extend(_failure(tx.id, error) for tx in group)
                continue

            for tx in group:
                self.session.delete(tx)
                deleted.append(tx.id)
            self._write_balance(product, new_balance)

        logger.info(
            "transactions_bulk_deleted",
            extra={
                "requested": len(requested),
                "deleted": len(deleted),
                "failed": len(failed),
            },
        )
        return BulkDeleteResult(deleted=tuple(deleted), failed=tuple(failed))

    def _find_owned_transaction(
        self, owner_id: str, transaction_id: UUID
    ) -> Transaction | None:
        return self.session.execute(
            select(Transaction)
            .join(FinancialProduct, Transaction.product_id == FinancialProduct.id)
            .where(
                Transaction.id == transaction_id,
                owned_by(owner_id),
            )
        ).scalar_one_or_none()


def _failure(transaction_id: UUID, error: Exception) -> BulkDeleteFailure:
    return BulkDeleteFailure(
        transaction_id=transaction_id,
        code=error.code,
        message=str(error),
    )
