"""
DTOs -- immutable data handed back to callers.

Responsibility:
    Services and selectors return these frozen dataclasses, never ORM
    entities, so callers cannot mutate a session-bound row by accident and
    results stay valid after the session closes.

Architecture position:
    Kernel > Domain.  ``from_model()`` class methods are the boundary
    converters; they are only invoked from services and selectors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from rumbo_kernel.domain.values import ProductType, TransactionType

if TYPE_CHECKING:
    from rumbo_kernel.models.financial_product import FinancialProduct
    from rumbo_kernel.models.transaction import Transaction


@dataclass(frozen=True)
class ProductSummary:
    """Snapshot of a financial product."""

    id: UUID
    owner_id: str
    product_type: ProductType
    name: str
    institution: str
    balance: Decimal
    currency: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, product: FinancialProduct) -> ProductSummary:
        return cls(
            id=product.id,
            owner_id=product.owner_id,
            product_type=ProductType(product.product_type),
            name=product.name,
            institution=product.institution,
            balance=product.balance,
            currency=product.currency,
            metadata=MappingProxyType(dict(product.product_metadata or {})),
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """Snapshot of a transaction row."""

    id: UUID
    product_id: UUID
    transaction_type: TransactionType
    name: str
    amount: Decimal
    currency: str
    transaction_date: date
    excluded: bool = False
    category_id: UUID | None = None
    transfer_id: UUID | None = None
    merchant: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, tx: Transaction) -> TransactionRecord:
        return cls(
            id=tx.id,
            product_id=tx.product_id,
            transaction_type=TransactionType(tx.transaction_type),
            name=tx.name,
            amount=tx.amount,
            currency=tx.currency,
            transaction_date=tx.transaction_date,
            excluded=bool(tx.excluded),
            category_id=tx.category_id,
            transfer_id=tx.transfer_id,
            merchant=tx.merchant,
            notes=tx.notes,
            created_at=tx.created_at,
        )


@dataclass(frozen=True)
class TransactionPage:
    """One page of transactions, newest first."""

    transactions: tuple[TransactionRecord, ...]
    next_cursor: str | None = None


@dataclass(frozen=True)
class BulkDeleteFailure:
    """Why one id of a bulk delete was left in place; ``code`` is a RumboError code."""

    transaction_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class BulkDeleteResult:
    deleted: tuple[UUID, ...] = ()
    failed: tuple[BulkDeleteFailure, ...] = ()

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)


@dataclass(frozen=True)
class BalancePoint:
    """Running balance of one currency after ``transaction_id`` is applied."""

    transaction_id: UUID
    transaction_date: date
    balance: Decimal
