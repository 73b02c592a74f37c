"""Engine lifecycle and the session_scope commit/rollback contract."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from rumbo_kernel.db import engine as engine_module
from rumbo_kernel.db.engine import get_session, reset_engine, session_scope
from rumbo_kernel.domain.values import ProductType
from rumbo_kernel.models.financial_product import FinancialProduct


def _product(owner_id: str) -> FinancialProduct:
    return FinancialProduct(
        owner_id=owner_id,
        product_type=ProductType.SAVINGS,
        name="Ahorros",
        institution="Bancolombia",
        balance=Decimal("10.00"),
        currency="COP",
    )


def _count(owner_id: str) -> int:
    session = get_session()
    try:
        return len(
            session.execute(
                select(FinancialProduct).where(FinancialProduct.owner_id == owner_id)
            ).scalars().all()
        )
    finally:
        session.close()


class TestSessionScope:

    def test_commits_on_success(self, engine, owner_id):
        with session_scope() as session:
            session.add(_product(owner_id))

        assert _count(owner_id) == 1

    def test_rolls_back_and_reraises(self, engine, owner_id):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(_product(owner_id))
                session.flush()
                raise RuntimeError("abort")

        assert _count(owner_id) == 0

    def test_new_row_starts_at_version_one(self, engine, owner_id):
        with session_scope() as session:
            product = _product(owner_id)
            session.add(product)
            session.flush()
            assert product.version == 1
            product.balance = Decimal("20.00")
            session.flush()
            assert product.version == 2


class TestEngineLifecycle:

    def test_accessors_fail_before_init(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_session()
        with pytest.raises(RuntimeError):
            engine_module.get_engine()

    def test_sqlite_options(self):
        options = engine_module._engine_options("sqlite", pool_size=5)
        assert "pool_size" not in options
        assert options["connect_args"]["check_same_thread"] is False

    def test_server_options(self):
        options = engine_module._engine_options("postgresql", pool_size=5, max_overflow=2)
        assert options["isolation_level"] == "READ COMMITTED"
        assert options["pool_size"] == 5
        assert options["max_overflow"] == 2
