"""
Balance guard -- admissibility of a proposed product balance.

Responsibility:
    Decides whether a proposed resulting balance is allowed for a product
    type.  Restricted types (``ProductType.requires_non_negative_balance``)
    must never go below zero; every other type may.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O, no side effects.

Call sites:
    - ProductService.create_product: negative initial balance.
    - ProductService.update_product: explicit new balance, checked against
      the type of the EXISTING row (an incoming type change is ignored).
    - TransactionService: balance after creating, editing or deleting a
      row, and after each product group of a bulk delete.
    - TransferOrchestrator: the debit (source) side only.  The credit side
      can only increase and is never checked.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from rumbo_kernel.domain.values import ProductType
from rumbo_kernel.exceptions import InsufficientBalanceError


class BalanceCheckStatus(str, Enum):
    """Outcome of a balance check."""

    OK = "ok"
    INSUFFICIENT_BALANCE = "insufficient_balance"


@dataclass(frozen=True)
class BalanceCheck:
    """Result of ``check_balance``."""

    status: BalanceCheckStatus
    product_type: ProductType
    proposed_balance: Decimal

    @property
    def is_ok(self) -> bool:
        return self.status == BalanceCheckStatus.OK

    def require(self) -> None:
        """Raise InsufficientBalanceError unless the check passed."""
        if not self.is_ok:
            raise InsufficientBalanceError(
                product_type=self.product_type.value,
                proposed_balance=str(self.proposed_balance),
            )


def check_balance(product_type: ProductType | str, proposed_balance: Decimal) -> BalanceCheck:
    """
    Check a proposed balance against the product type's restriction.

    Args:
        product_type: Type of the product whose balance would change.
        proposed_balance: Balance the product would have afterwards.

    Returns:
        BalanceCheck with status INSUFFICIENT_BALANCE iff the type is
        restricted and ``proposed_balance < 0``; OK otherwise.
    """
    product_type = ProductType(product_type)
    if product_type.requires_non_negative_balance and proposed_balance < 0:
        status = BalanceCheckStatus.INSUFFICIENT_BALANCE
    else:
        status = BalanceCheckStatus.OK
    return BalanceCheck(
        status=status,
        product_type=product_type,
        proposed_balance=proposed_balance,
    )
