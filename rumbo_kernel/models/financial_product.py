"""
Module: rumbo_kernel.models.financial_product
Responsibility: ORM persistence for financial products -- the user-owned
    balance buckets (cash, savings, credit cards, ...) that transactions
    and transfers move money in and out of.
Architecture position: Kernel > Models.  May import from db/ and domain/values.py.

Invariants enforced:
    - Ownership: every row carries owner_id; all reads and writes filter on it
      (enforced by selectors and services, not this model).
    - Non-negative balance for restricted types (enforced by the balance
      guard at every call site that rewrites ``balance``).
    - Optimistic versioning: ``version`` is the SQLAlchemy version_id_col.
      Every UPDATE carries ``WHERE version = <loaded version>`` so a
      concurrent balance write surfaces as StaleDataError instead of a
      silently lost update.

Failure modes:
    - sqlalchemy.orm.exc.StaleDataError on flush when the row changed since
      it was loaded (translated to OptimisticLockError by the services).
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rumbo_kernel.db.base import TrackedBase, enum_column
from rumbo_kernel.domain.values import ProductType

if TYPE_CHECKING:
    from rumbo_kernel.models.transaction import Transaction


class FinancialProduct(TrackedBase):
    """
    A user's account.

    Contract:
        ``balance`` is the authoritative current balance in ``currency``.
        It is only rewritten through ProductService, TransactionService or
        TransferOrchestrator, each of which applies the balance guard first.

    Non-goals:
        - No per-currency sub-balances; a product holds a single currency.
    """

    __tablename__ = "financial_products"

    __table_args__ = (
        Index("idx_product_owner", "owner_id"),
    )

    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    product_type: Mapped[ProductType] = mapped_column(
        "type",
        enum_column(ProductType, length=30),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    institution: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
        default=Decimal("0"),
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="COP",
    )

    # Free-form attributes (credit limit, cut-off day, ...); "metadata" is
    # reserved on declarative classes, hence the attribute name.
    product_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<FinancialProduct {self.name} ({self.product_type}) {self.balance} {self.currency}>"
