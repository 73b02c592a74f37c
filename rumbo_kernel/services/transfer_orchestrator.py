"""
TransferOrchestrator -- atomic movement of funds between two products.

Responsibility:
    Debits one product and credits another owned by the same user, writing
    one expense leg and one income leg that share a ``transfer_id``.
    Cross-currency transfers convert the amount with a caller-supplied rate
    or the current TRM from the ExchangeRateCache.

Architecture position:
    Kernel > Services -- imperative shell.  Unlike the other services it
    owns its transaction boundary: commit on success, rollback on any
    failure (when ``auto_commit=True``).

Pipeline:
    1. Validate the request (distinct ids, amount, currency, rate) before
       touching storage.
    2. Load both products filtered by owner.
    3. Resolve the exchange rate when the currencies differ.  This happens
       before any row is locked so a slow upstream never holds locks.
    4. Re-read both rows FOR UPDATE, in id order.
    5. Guard the source balance; the credit side is never guarded.
    6. Write both balances and both legs, then commit.

Invariants enforced:
    - All-or-nothing: no state where one side changed and the other did not.
    - No lost update: rows are locked on PostgreSQL, and every balance write
      goes through the product's version column.  A version conflict rolls
      back and replays the pipeline up to ``max_attempts`` times.
    - The request amount and currency are on the SOURCE side; the currency
      must be the source product's currency.
    - A product owned by someone else is reported exactly like a missing one.

Failure modes:
    Domain outcomes are returned, never raised: see ``TransferStatus``.
    Unexpected storage errors are logged with the product ids, amount and
    currency, then re-raised after rollback.  OptimisticLockError is
    re-raised once the attempts are exhausted (or immediately when the
    caller owns the transaction).
"""

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from rumbo_kernel.db.types import MAX_MONEY, fits_money_column, validate_currency
from rumbo_kernel.domain.balance_guard import check_balance
from rumbo_kernel.domain.clock import Clock
from rumbo_kernel.domain.currency import convert_amount, needs_conversion, parse_exchange_rate
from rumbo_kernel.domain.dtos import ProductSummary, TransactionRecord
from rumbo_kernel.domain.values import TransactionType
from rumbo_kernel.exceptions import (
    InvalidAmountError,
    InvalidCurrencyError,
    InvalidExchangeRateError,
    OptimisticLockError,
)
from rumbo_kernel.logging_config import LogContext, get_logger
from rumbo_kernel.models.transaction import Transaction
from rumbo_kernel.services.base import BaseService
from rumbo_kernel.services.exchange_rate_cache import ExchangeRateCache, RateLookupStatus
from rumbo_kernel.services.transaction_service import require_positive_amount

logger = get_logger("services.transfer")

DEFAULT_MAX_ATTEMPTS = 3


class TransferStatus(str, Enum):
    """Outcome of a transfer request."""

    TRANSFERRED = "transferred"
    NOT_FOUND = "not_found"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    RATE_UNAVAILABLE = "rate_unavailable"
    VALIDATION_FAILED = "validation_failed"

    @property
    def error_class(self) -> str | None:
        """Caller-facing failure class, None on success."""
        return _ERROR_CLASSES.get(self)


_ERROR_CLASSES = {
    TransferStatus.NOT_FOUND: "not_found",
    TransferStatus.INSUFFICIENT_BALANCE: "validation",
    TransferStatus.VALIDATION_FAILED: "validation",
    TransferStatus.RATE_UNAVAILABLE: "service_unavailable",
}


@dataclass(frozen=True)
class TransferResult:
    """Result of ``TransferOrchestrator.create_transfer``."""

    status: TransferStatus
    transfer_id: UUID | None = None
    source_product: ProductSummary | None = None
    destination_product: ProductSummary | None = None
    source_transaction: TransactionRecord | None = None
    destination_transaction: TransactionRecord | None = None
    exchange_rate: Decimal | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == TransferStatus.TRANSFERRED

    @classmethod
    def failure(cls, status: TransferStatus, message: str) -> "TransferResult":
        return cls(status=status, message=message)


class TransferOrchestrator(BaseService):
    """
    Executes transfers between two products of one owner.

    Contract:
        ``create_transfer`` always returns a TransferResult for domain
        outcomes.  With ``auto_commit=False`` the caller owns commit and
        rollback, and no optimistic retry is attempted.
    """

    def __init__(
        self,
        session: Session,
        rate_cache: ExchangeRateCache,
        clock: Clock | None = None,
        auto_commit: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        super().__init__(session, clock)
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._rate_cache = rate_cache
        self._auto_commit = auto_commit
        self._max_attempts = max_attempts

    def create_transfer(
        self,
        owner_id: str,
        source_product_id: UUID,
        destination_product_id: UUID,
        amount: Decimal,
        currency: str,
        transfer_date: date,
        exchange_rate: Decimal | str | None = None,
        notes: str | None = None,
    ) -> TransferResult:
        """
        Move ``amount`` (in ``currency``, the source side) between products.

        Preconditions:
            - ``amount`` is a Decimal (never float).

        Postconditions:
            - On TRANSFERRED, the source balance dropped by ``amount``, the
              destination balance grew by the converted amount, and both
              legs exist with the same ``transfer_id``.  The session is
              committed when ``auto_commit=True``.
            - On any other status nothing was written.

        Args:
            owner_id: Requesting user; both products must belong to them.
            source_product_id: Product to debit.
            destination_product_id: Product to credit.
            amount: Positive amount with at most 2 decimals.
            currency: Currency of ``amount``; must match the source product.
            transfer_date: Date recorded on both legs.
            exchange_rate: Optional COP-per-USD rate.  When given, the
                ExchangeRateCache is not consulted.
            notes: Optional notes copied onto both legs.
        """
        transfer_id = uuid4()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            owner_id=owner_id,
            transfer_id=str(transfer_id),
        ):
            log_fields = {
                "source_product_id": str(source_product_id),
                "destination_product_id": str(destination_product_id),
                "amount": str(amount),
                "currency": currency,
            }
            logger.info("transfer_started", extra=log_fields)
            t0 = time.monotonic()

            rejection, rate_override = self._validate_request(
                source_product_id, destination_product_id, amount, currency, exchange_rate
            )
            if rejection is not None:
                logger.info(
                    "transfer_rejected",
                    extra={"status": rejection.status.value, "reason": rejection.message},
                )
                return rejection

            attempt = 0
            while True:
                attempt += 1
                try:
                    result = self._do_transfer(
                        transfer_id=transfer_id,
                        owner_id=owner_id,
                        source_product_id=source_product_id,
                        destination_product_id=destination_product_id,
                        amount=amount,
                        currency=validate_currency(currency),
                        transfer_date=transfer_date,
                        rate_override=rate_override,
                        notes=notes,
                    )

                    if self._auto_commit:
                        if result.is_success:
                            self.session.commit()
                        else:
                            self.session.rollback()

                    duration_ms = round((time.monotonic() - t0) * 1000, 2)
                    logger.info(
                        "transfer_completed" if result.is_success else "transfer_rejected",
                        extra={
                            "status": result.status.value,
                            "attempt": attempt,
                            "duration_ms": duration_ms,
                            "exchange_rate": (
                                str(result.exchange_rate)
                                if result.exchange_rate is not None
                                else None
                            ),
                        },
                    )
                    return result

                except OptimisticLockError:
                    if self._auto_commit:
                        self.session.rollback()
                    if not self._auto_commit or attempt >= self._max_attempts:
                        logger.error(
                            "transfer_failed",
                            extra={**log_fields, "attempt": attempt},
                            exc_info=True,
                        )
                        raise
                    logger.warning(
                        "transfer_conflict_retrying",
                        extra={"attempt": attempt, "max_attempts": self._max_attempts},
                    )

                except Exception:
                    if self._auto_commit:
                        self.session.rollback()
                    logger.error(
                        "transfer_failed",
                        extra={
                            **log_fields,
                            "attempt": attempt,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                        exc_info=True,
                    )
                    raise

    def _validate_request(
        self,
        source_product_id: UUID,
        destination_product_id: UUID,
        amount: Decimal,
        currency: str,
        exchange_rate: Decimal | str | None,
    ) -> tuple[TransferResult | None, Decimal | None]:
        """Checks that need no storage access.  Returns (rejection, parsed rate)."""
        if source_product_id == destination_product_id:
            return (
                TransferResult.failure(
                    TransferStatus.VALIDATION_FAILED,
                    "Source and destination products must be different",
                ),
                None,
            )
        try:
            require_positive_amount(amount)
            validate_currency(currency)
            rate = parse_exchange_rate(exchange_rate) if exchange_rate is not None else None
        except (InvalidAmountError, InvalidCurrencyError, InvalidExchangeRateError) as exc:
            return TransferResult.failure(TransferStatus.VALIDATION_FAILED, str(exc)), None
        return None, rate

    def _do_transfer(
        self,
        transfer_id: UUID,
        owner_id: str,
        source_product_id: UUID,
        destination_product_id: UUID,
        amount: Decimal,
        currency: str,
        transfer_date: date,
        rate_override: Decimal | None,
        notes: str | None,
    ) -> TransferResult:
        """One pass of the pipeline, without transaction management."""
        source = self._find_owned_product(owner_id, source_product_id)
        destination = self._find_owned_product(owner_id, destination_product_id)
        if source is None or destination is None:
            return TransferResult.failure(TransferStatus.NOT_FOUND, "Product not found")

        if source.currency != currency:
            return TransferResult.failure(
                TransferStatus.VALIDATION_FAILED,
                f"Transfer currency {currency} does not match "
                f"source product currency {source.currency}",
            )

        rate: Decimal | None = None
        if needs_conversion(source.currency, destination.currency):
            if rate_override is not None:
                rate = rate_override
            else:
                lookup = self._rate_cache.get_current_rate()
                if not lookup.is_available:
                    return TransferResult.failure(
                        TransferStatus.RATE_UNAVAILABLE,
                        f"TRM rate is currently unavailable (source: {lookup.source})",
                    )
                if lookup.status is RateLookupStatus.STALE:
                    logger.warning(
                        "transfer_using_stale_rate",
                        extra={"exchange_rate": str(lookup.rate)},
                    )
                rate = lookup.rate

        try:
            credited = convert_amount(amount, source.currency, destination.currency, rate)
        except (InvalidAmountError, InvalidExchangeRateError) as exc:
            return TransferResult.failure(TransferStatus.VALIDATION_FAILED, str(exc))
        if credited <= 0:
            return TransferResult.failure(
                TransferStatus.VALIDATION_FAILED,
                f"Converted amount {credited} {destination.currency} is not positive",
            )

        # Lock in a fixed order so two opposite transfers cannot deadlock
        locked = {}
        for product_id in sorted((source.id, destination.id), key=str):
            locked[product_id] = self._find_owned_product(
                owner_id, product_id, for_update=True
            )
        source = locked[source.id]
        destination = locked[destination.id]
        if source is None or destination is None:
            return TransferResult.failure(TransferStatus.NOT_FOUND, "Product not found")

        new_source_balance = source.balance - amount
        if not check_balance(source.product_type, new_source_balance).is_ok:
            return TransferResult.failure(
                TransferStatus.INSUFFICIENT_BALANCE,
                f"Insufficient balance: {source.product_type.value} product "
                f"cannot go to {new_source_balance}",
            )

        new_destination_balance = destination.balance + credited
        if not (
            fits_money_column(new_source_balance)
            and fits_money_column(new_destination_balance)
        ):
            return TransferResult.failure(
                TransferStatus.VALIDATION_FAILED,
                f"Transfer would move a balance past +/-{MAX_MONEY}",
            )

        source.balance = new_source_balance
        destination.balance = new_destination_balance

        source_tx = Transaction(
            product_id=source.id,
            transfer_id=transfer_id,
            transaction_type=TransactionType.EXPENSE,
            name=f"Transferencia a {destination.name}",
            amount=amount,
            currency=source.currency,
            transaction_date=transfer_date,
            excluded=False,
            notes=notes,
        )
        destination_tx = Transaction(
            product_id=destination.id,
            transfer_id=transfer_id,
            transaction_type=TransactionType.INCOME,
            name=f"Transferencia de {source.name}",
            amount=credited,
            currency=destination.currency,
            transaction_date=transfer_date,
            excluded=False,
            notes=notes,
        )
        self.session.add_all([source_tx, destination_tx])
        self._flush_product(source)

        return TransferResult(
            status=TransferStatus.TRANSFERRED,
            transfer_id=transfer_id,
            source_product=ProductSummary.from_model(source),
            destination_product=ProductSummary.from_model(destination),
            source_transaction=TransactionRecord.from_model(source_tx),
            destination_transaction=TransactionRecord.from_model(destination_tx),
            exchange_rate=rate,
        )
