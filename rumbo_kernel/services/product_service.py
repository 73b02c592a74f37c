"""
ProductService -- financial product lifecycle.

Responsibility:
    Creates, updates and deletes a user's financial products.  Creation with
    a non-zero initial balance also writes the product's opening balance
    transaction so that the transaction history accounts for the balance.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes within the caller's
    transaction; never commits.

Invariants enforced:
    - Balance guard on a negative initial balance of a restricted type.
    - Balance guard on an explicit balance update, using the type of the
      EXISTING row (a simultaneous type change does not relax the check).
    - Ownership: a product owned by someone else behaves as missing.

Failure modes:
    - InsufficientBalanceError from the balance guard.
    - InvalidCurrencyError for a currency other than COP/USD.
    - InvalidAmountError for a balance with more than two decimals or
      outside the money column range.
    - CurrencyMismatchError when changing the currency of a product that
      already has transactions.
    - OptimisticLockError when a concurrent write hit the same row.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from rumbo_kernel.db.types import validate_currency
from rumbo_kernel.domain.balance_guard import check_balance
from rumbo_kernel.domain.clock import Clock
from rumbo_kernel.domain.dtos import ProductSummary
from rumbo_kernel.domain.values import ProductType, TransactionType
from rumbo_kernel.exceptions import CurrencyMismatchError
from rumbo_kernel.logging_config import get_logger
from rumbo_kernel.models.financial_product import FinancialProduct
from rumbo_kernel.models.transaction import OPENING_BALANCE_NAME, Transaction
from rumbo_kernel.selectors.product_selector import ProductSelector
from rumbo_kernel.services.base import BaseService, require_storable_money

logger = get_logger("services.product")

_UPDATABLE_FIELDS = ("name", "institution", "product_type", "currency", "metadata")


class ProductService(BaseService):
    """
    Service for the financial product lifecycle.

    Contract:
        All methods take the requesting ``owner_id`` and only ever touch
        that owner's rows.  Methods return ``ProductSummary`` DTOs.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = ProductSelector(session)

    def create_product(
        self,
        owner_id: str,
        product_type: ProductType | str,
        name: str,
        institution: str,
        balance: Decimal = Decimal("0"),
        currency: str = "COP",
        metadata: dict[str, Any] | None = None,
    ) -> ProductSummary:
        """
        Create a product, writing its opening balance transaction if needed.

        Postconditions:
            - If ``balance`` is non-zero, exactly one transaction named
              "Balance inicial" exists on the product: income for a positive
              balance, expense for a negative one, amount ``abs(balance)``.
        """
        product_type = ProductType(product_type)
        currency = validate_currency(currency)
        balance = require_storable_money(balance)

        check_balance(product_type, balance).require()

        product = FinancialProduct(
            owner_id=owner_id,
            product_type=product_type,
            name=name,
            institution=institution,
            balance=balance,
            currency=currency,
            product_metadata=dict(metadata or {}),
        )
        self.session.add(product)
        self.session.flush()

        if balance != 0:
            self._insert_transaction(
                Transaction(
                    product_id=product.id,
                    transaction_type=(
                        TransactionType.INCOME if balance > 0 else TransactionType.EXPENSE
                    ),
                    name=OPENING_BALANCE_NAME,
                    amount=abs(balance),
                    currency=currency,
                    transaction_date=self._clock.today(),
                    excluded=False,
                )
            )

        logger.info(
            "product_created",
            extra={
                "product_id": str(product.id),
                "product_type": product_type.value,
                "currency": currency,
                "opening_balance": str(balance),
            },
        )
        return ProductSummary.from_model(product)

    def get_product(self, owner_id: str, product_id: UUID) -> ProductSummary | None:
        return self._selector.get(owner_id, product_id)

    def list_products(self, owner_id: str) -> list[ProductSummary]:
        return self._selector.list_for_owner(owner_id)

    def update_product(
        self,
        owner_id: str,
        product_id: UUID,
        *,
        balance: Decimal | None = None,
        **changes: Any,
    ) -> ProductSummary | None:
        """
        Update a product's attributes and, optionally, its balance.

        Args:
            owner_id: Requesting user.
            product_id: Product to update.
            balance: Explicit new balance, guarded with the existing type.
            **changes: Any of name, institution, product_type, currency,
                metadata.  None values are ignored.  The currency can only
                change while the product has no transactions, since the
                existing rows and the balance are denominated in it.

        Returns:
            The updated summary, or None when the product is missing or not
            owned by ``owner_id``.

        Raises:
            ValueError: On an unknown field name.
            InsufficientBalanceError: If the new balance is negative for a
                restricted existing type.
            CurrencyMismatchError: On a currency change for a product with
                transactions.
        """
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)}")

        product = self._find_owned_product(
            owner_id, product_id, for_update=balance is not None
        )
        if product is None:
            return None

        if balance is not None:
            balance = require_storable_money(balance)
            check_balance(product.product_type, balance).require()
            product.balance = balance

        if changes.get("name") is not None:
            product.name = changes["name"]
        if changes.get("institution") is not None:
            product.institution = changes["institution"]
        if changes.get("product_type") is not None:
            product.product_type = ProductType(changes["product_type"])
        if changes.get("currency") is not None:
            currency = validate_currency(changes["currency"])
            if currency != product.currency and self._has_transactions(product.id):
                raise CurrencyMismatchError(currency, product.currency)
            product.currency = currency
        if changes.get("metadata") is not None:
            product.product_metadata = dict(changes["metadata"])

        self._flush_product(product)

        logger.info(
            "product_updated",
            extra={
                "product_id": str(product.id),
                "fields": sorted(k for k, v in changes.items() if v is not None)
                + (["balance"] if balance is not None else []),
            },
        )
        return ProductSummary.from_model(product)

    def delete_product(self, owner_id: str, product_id: UUID) -> ProductSummary | None:
        """
        Hard-delete a product together with its transactions.

        Returns:
            Summary of the deleted product, or None when missing/not owned.
        """
        product = self._find_owned_product(owner_id, product_id)
        if product is None:
            return None

        summary = ProductSummary.from_model(product)
        self.session.delete(product)
        self._flush_product(product)

        logger.info("product_deleted", extra={"product_id": str(product_id)})
        return summary

    def _has_transactions(self, product_id: UUID) -> bool:
        return bool(
            self.session.execute(
                select(exists().where(Transaction.product_id == product_id))
            ).scalar()
        )
