"""
Module: rumbo_kernel.models.transaction
Responsibility: ORM persistence for transactions recorded against a
    financial product.
Architecture position: Kernel > Models.  May import from db/ and domain/values.py.

Invariants enforced:
    - ``amount`` is always a non-negative magnitude; direction is carried by
      ``transaction_type`` (income adds to the product balance, expense and
      transfer subtract).
    - A transfer writes exactly two rows sharing one ``transfer_id``.  The
      column is a plain UUID, not a foreign key.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rumbo_kernel.db.base import TrackedBase, UUIDString, enum_column
from rumbo_kernel.domain.values import TransactionType

if TYPE_CHECKING:
    from rumbo_kernel.models.financial_product import FinancialProduct


# Name of the synthetic row written when a product is created with a
# non-zero balance.
OPENING_BALANCE_NAME = "Balance inicial"


class Transaction(TrackedBase):
    """A single income, expense or transfer leg on one product."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_product_date", "product_id", "date"),
        Index("idx_transaction_transfer", "transfer_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financial_products.id", ondelete="CASCADE"),
        nullable=False,
    )

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    transfer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        "type",
        enum_column(TransactionType, length=20),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    merchant: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Excluded rows are left out of reporting, never out of the balance
    excluded: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    transaction_date: Mapped[date] = mapped_column(
        "date",
        Date,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    product: Mapped["FinancialProduct"] = relationship(
        back_populates="transactions",
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.transaction_type} {self.amount} {self.currency} on {self.transaction_date}>"

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this row on its product's balance."""
        return self.amount * TransactionType(self.transaction_type).sign

    @property
    def is_opening_balance(self) -> bool:
        """True for the synthetic row written at product creation."""
        return self.name == OPENING_BALANCE_NAME and self.category_id is None
