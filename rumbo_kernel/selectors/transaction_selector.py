"""
Owner-scoped reads of transactions.

Listing is keyset-paginated: rows are ordered newest first by
(date DESC, id DESC) and the opaque cursor encodes the (date, id) of the last
row of the previous page as base64url("<iso date>|<uuid>").  The same
filters apply to one product's list and to the list across all of an
owner's products.
"""

import base64
import binascii
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import ColumnElement, and_, or_, select

from rumbo_kernel.db.types import validate_currency
from rumbo_kernel.domain.dtos import BalancePoint, TransactionPage, TransactionRecord
from rumbo_kernel.domain.values import TransactionType
from rumbo_kernel.models.financial_product import FinancialProduct
from rumbo_kernel.models.transaction import Transaction
from rumbo_kernel.selectors.base import BaseSelector, owned_by

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def encode_cursor(tx_date: date, tx_id: UUID) -> str:
    raw = f"{tx_date.isoformat()}|{tx_id}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[date, UUID]:
    """
    Decode a cursor produced by ``encode_cursor``.

    Raises:
        ValueError: If the cursor is malformed.
    """
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode()).decode()
        date_part, id_part = decoded.split("|", 1)
        return date.fromisoformat(date_part), UUID(id_part)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ValueError(f"Invalid cursor: {cursor!r}") from exc


def _filters(
    *,
    search: str | None,
    start_date: date | None,
    end_date: date | None,
    types: Iterable[TransactionType | str] | None,
    category_ids: Iterable[UUID] | None,
    amount_min: Decimal | None,
    amount_max: Decimal | None,
    cursor: str | None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if search:
        conditions.append(
            or_(
                Transaction.name.icontains(search, autoescape=True),
                Transaction.merchant.icontains(search, autoescape=True),
                Transaction.notes.icontains(search, autoescape=True),
            )
        )
    if start_date is not None:
        conditions.append(Transaction.transaction_date >= start_date)
    if end_date is not None:
        conditions.append(Transaction.transaction_date <= end_date)
    if types:
        conditions.append(
            Transaction.transaction_type.in_([TransactionType(t) for t in types])
        )
    if category_ids:
        conditions.append(Transaction.category_id.in_(list(category_ids)))
    if amount_min is not None:
        conditions.append(Transaction.amount >= amount_min)
    if amount_max is not None:
        conditions.append(Transaction.amount <= amount_max)
    if cursor:
        cursor_date, cursor_id = decode_cursor(cursor)
        conditions.append(
            or_(
                Transaction.transaction_date < cursor_date,
                and_(
                    Transaction.transaction_date == cursor_date,
                    Transaction.id < cursor_id,
                ),
            )
        )
    return conditions


class TransactionSelector(BaseSelector):
    """Read access to transactions through their owning product."""

    def get(self, owner_id: str, transaction_id: UUID) -> TransactionRecord | None:
        tx = self.session.execute(
            select(Transaction)
            .join(FinancialProduct, Transaction.product_id == FinancialProduct.id)
            .where(
                Transaction.id == transaction_id,
                owned_by(owner_id),
            )
        ).scalar_one_or_none()
        return TransactionRecord.from_model(tx) if tx else None

    def list_for_product(
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
        """
        One page of a product's transactions.

        Returns:
            The page, or None when the product is missing or not owned by
            ``owner_id``.

        Raises:
            ValueError: On a malformed cursor or a limit outside 1..MAX_PAGE_SIZE.
        """
        _check_limit(limit)

        owned = self.session.execute(
            select(FinancialProduct.id).where(
                FinancialProduct.id == product_id,
                owned_by(owner_id),
            )
        ).scalar_one_or_none()
        if owned is None:
            return None

        conditions = [Transaction.product_id == product_id]
        conditions += _filters(
            search=search,
            start_date=start_date,
            end_date=end_date,
            types=types,
            category_ids=category_ids,
            amount_min=amount_min,
            amount_max=amount_max,
            cursor=cursor,
        )
        return self._page(select(Transaction).where(*conditions), limit)

    def list_for_owner(
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
        """
        One page of transactions across every product of ``owner_id``.

        ``product_ids`` narrows the list; ids of other owners' products
        simply match nothing.  ``category_ids`` matches exactly the ids
        given: a caller filtering by a parent category passes its children
        too.

        Raises:
            ValueError: On a malformed cursor or a limit outside 1..MAX_PAGE_SIZE.
        """
        _check_limit(limit)

        conditions = [owned_by(owner_id)]
        if product_ids:
            conditions.append(Transaction.product_id.in_(list(product_ids)))
        conditions += _filters(
            search=search,
            start_date=start_date,
            end_date=end_date,
            types=types,
            category_ids=category_ids,
            amount_min=amount_min,
            amount_max=amount_max,
            cursor=cursor,
        )
        stmt = (
            select(Transaction)
            .join(FinancialProduct, Transaction.product_id == FinancialProduct.id)
            .where(*conditions)
        )
        return self._page(stmt, limit)

    def balance_history(
        self,
        owner_id: str,
        currency: str,
        *,
        product_id: UUID | None = None,
    ) -> tuple[BalancePoint, ...]:
        """
        Running balance of ``owner_id``'s money in one currency.

        Rows are applied oldest first (date, then insertion time).  Excluded
        rows are left out, so the last point can differ from the sum of the
        product balances.
        """
        currency = validate_currency(currency)
        conditions = [
            owned_by(owner_id),
            Transaction.currency == currency,
            Transaction.excluded.is_(False),
        ]
        if product_id is not None:
            conditions.append(Transaction.product_id == product_id)

        rows = self.session.execute(
            select(Transaction)
            .join(FinancialProduct, Transaction.product_id == FinancialProduct.id)
            .where(*conditions)
            .order_by(
                Transaction.transaction_date,
                Transaction.created_at,
                Transaction.id,
            )
        ).scalars()

        running = Decimal("0.00")
        points = []
        for tx in rows:
            running += tx.signed_amount
            points.append(
                BalancePoint(
                    transaction_id=tx.id,
                    transaction_date=tx.transaction_date,
                    balance=running,
                )
            )
        return tuple(points)

    def _page(self, stmt, limit: int) -> TransactionPage:
        rows = list(
            self.session.execute(
                stmt.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
                .limit(limit + 1)
            ).scalars()
        )

        has_more = len(rows) > limit
        page = rows[:limit]
        next_cursor = None
        if has_more and page:
            last = page[-1]
            next_cursor = encode_cursor(last.transaction_date, last.id)

        return TransactionPage(
            transactions=tuple(TransactionRecord.from_model(tx) for tx in page),
            next_cursor=next_cursor,
        )


def _check_limit(limit: int) -> None:
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")
