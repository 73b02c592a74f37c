"""Owner-scoped reads of financial products."""

from uuid import UUID

from sqlalchemy import select

from rumbo_kernel.domain.dtos import ProductSummary
from rumbo_kernel.models.financial_product import FinancialProduct
from rumbo_kernel.selectors.base import BaseSelector, owned_by


class ProductSelector(BaseSelector):
    """Read access to a user's financial products."""

    def get(self, owner_id: str, product_id: UUID) -> ProductSummary | None:
        """The product, or None when it is missing or owned by someone else."""
        product = self.session.execute(
            select(FinancialProduct).where(
                FinancialProduct.id == product_id,
                owned_by(owner_id),
            )
        ).scalar_one_or_none()
        return ProductSummary.from_model(product) if product else None

    def list_for_owner(self, owner_id: str) -> list[ProductSummary]:
        """All products of ``owner_id``, oldest first."""
        products = self.session.execute(
            select(FinancialProduct)
            .where(owned_by(owner_id))
            .order_by(FinancialProduct.created_at, FinancialProduct.name)
        ).scalars()
        return [ProductSummary.from_model(p) for p in products]
