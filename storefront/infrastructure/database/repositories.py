"""Infrastructure layer - Repository implementations."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from ...domain.entities import Category as DomainCategory
from ...domain.entities import Product as DomainProduct
from ...domain.exceptions import ConflictError
from ...logging_utils import log_database_operation
from .models import CartItem as CartItemModel
from .models import Category as CategoryModel
from .models import Product as ProductModel


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise


class CategoryRepository:
    """Repository for Category persistence operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, domain_category: DomainCategory) -> DomainCategory:
        """Insert a new category; slugs are unique across deleted rows too."""
        existing = await self.session.execute(
            select(CategoryModel).where(CategoryModel.slug == domain_category.slug)
        )
        if existing.scalars().first():
            raise ConflictError(
                f"Category with slug '{domain_category.slug}' already exists"
            )

        category_model = CategoryModel.from_domain(domain_category)
        self.session.add(category_model)
        try:
            await _commit(self.session)
        except IntegrityError as e:
            raise ConflictError(
                f"Category with slug '{domain_category.slug}' already exists"
            ) from e

        log_database_operation(
            operation="create", table="categories", category_id=category_model.id
        )
        return category_model.to_domain()

    async def find_by_id(
        self, category_id: str, include_deleted: bool = False
    ) -> DomainCategory | None:
        statement = select(CategoryModel).where(CategoryModel.id == category_id)
        if not include_deleted:
            statement = statement.where(col(CategoryModel.deleted_at).is_(None))
        result = await self.session.execute(statement)
        category_model = result.scalars().first()
        return category_model.to_domain() if category_model else None

    async def find_by_ids(
        self, category_ids: Sequence[str], include_deleted: bool = False
    ) -> list[DomainCategory]:
        statement = select(CategoryModel).where(
            col(CategoryModel.id).in_(category_ids)
        )
        if not include_deleted:
            statement = statement.where(col(CategoryModel.deleted_at).is_(None))
        result = await self.session.execute(statement)
        return [category.to_domain() for category in result.scalars().all()]

    async def count_active_products(self, category_ids: Sequence[str]) -> int:
        """Count live, on-sale products in any of the given categories."""
        result = await self.session.execute(
            select(func.count())
            .select_from(ProductModel)
            .where(
                col(ProductModel.category_id).in_(category_ids),
                col(ProductModel.is_active).is_(True),
                col(ProductModel.deleted_at).is_(None),
            )
        )
        return int(result.scalar_one())

    async def count_products(self, category_id: str) -> int:
        """Count every product row in the category, deleted or not."""
        result = await self.session.execute(
            select(func.count())
            .select_from(ProductModel)
            .where(ProductModel.category_id == category_id)
        )
        return int(result.scalar_one())

    async def soft_delete_many(
        self, category_ids: Sequence[str], deleted_by: str
    ) -> int:
        """Mark live categories deleted. Returns the number of rows changed."""
        now = datetime.now(UTC)
        result = await self.session.execute(
            update(CategoryModel)
            .where(
                col(CategoryModel.id).in_(category_ids),
                col(CategoryModel.deleted_at).is_(None),
            )
            .values(deleted_at=now, deleted_by=deleted_by, updated_at=now)
        )
        await _commit(self.session)

        log_database_operation(
            operation="soft_delete",
            table="categories",
            rows=result.rowcount,
            deleted_by=deleted_by,
        )
        return result.rowcount

    async def restore_many(self, category_ids: Sequence[str]) -> list[DomainCategory]:
        """Clear the deletion columns and return the restored categories."""
        await self.session.execute(
            update(CategoryModel)
            .where(col(CategoryModel.id).in_(category_ids))
            .values(deleted_at=None, deleted_by=None, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session="fetch")
        )
        await _commit(self.session)

        log_database_operation(
            operation="restore", table="categories", rows=len(category_ids)
        )
        return await self.find_by_ids(category_ids)

    async def delete(self, category_id: str) -> bool:
        """Permanently delete a category row."""
        result = await self.session.execute(
            delete(CategoryModel).where(col(CategoryModel.id) == category_id)
        )
        await _commit(self.session)

        log_database_operation(
            operation="delete",
            table="categories",
            success=result.rowcount > 0,
            category_id=category_id,
        )
        return result.rowcount > 0


class ProductRepository:
    """Repository for Product persistence operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, domain_product: DomainProduct) -> DomainProduct:
        if domain_product.slug is not None:
            existing = await self.session.execute(
                select(ProductModel).where(ProductModel.slug == domain_product.slug)
            )
            if existing.scalars().first():
                raise ConflictError(
                    f"Product with slug '{domain_product.slug}' already exists"
                )

        product_model = ProductModel.from_domain(domain_product)
        self.session.add(product_model)
        await _commit(self.session)

        log_database_operation(
            operation="create", table="products", product_id=product_model.id
        )
        return product_model.to_domain()

    async def find_by_id(
        self, product_id: str, include_deleted: bool = False
    ) -> DomainProduct | None:
        statement = select(ProductModel).where(ProductModel.id == product_id)
        if not include_deleted:
            statement = statement.where(col(ProductModel.deleted_at).is_(None))
        result = await self.session.execute(statement)
        product_model = result.scalars().first()
        return product_model.to_domain() if product_model else None

    async def find_by_ids(
        self, product_ids: Sequence[str], include_deleted: bool = False
    ) -> list[DomainProduct]:
        statement = select(ProductModel).where(col(ProductModel.id).in_(product_ids))
        if not include_deleted:
            statement = statement.where(col(ProductModel.deleted_at).is_(None))
        result = await self.session.execute(statement)
        return [product.to_domain() for product in result.scalars().all()]

    async def soft_delete_many(
        self, product_ids: Sequence[str], deleted_by: str
    ) -> int:
        """Mark live products deleted and take them off sale."""
        now = datetime.now(UTC)
        result = await self.session.execute(
            update(ProductModel)
            .where(
                col(ProductModel.id).in_(product_ids),
                col(ProductModel.deleted_at).is_(None),
            )
            .values(
                deleted_at=now, deleted_by=deleted_by, is_active=False, updated_at=now
            )
        )
        await _commit(self.session)

        log_database_operation(
            operation="soft_delete",
            table="products",
            rows=result.rowcount,
            deleted_by=deleted_by,
        )
        return result.rowcount

    async def restore_many(self, product_ids: Sequence[str]) -> list[DomainProduct]:
        await self.session.execute(
            update(ProductModel)
            .where(col(ProductModel.id).in_(product_ids))
            .values(
                deleted_at=None,
                deleted_by=None,
                is_active=True,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session="fetch")
        )
        await _commit(self.session)

        log_database_operation(
            operation="restore", table="products", rows=len(product_ids)
        )
        return await self.find_by_ids(product_ids)

    async def delete(self, product_id: str) -> bool:
        """Permanently delete a product and the cart rows pointing at it."""
        await self.session.execute(
            delete(CartItemModel).where(col(CartItemModel.product_id) == product_id)
        )
        result = await self.session.execute(
            delete(ProductModel).where(col(ProductModel.id) == product_id)
        )
        await _commit(self.session)

        log_database_operation(
            operation="delete",
            table="products",
            success=result.rowcount > 0,
            product_id=product_id,
        )
        return result.rowcount > 0


@dataclass(frozen=True)
class CartItemSnapshot:
    """Enough of a removed cart row to put it back unchanged."""

    id: str
    user_id: str
    product_id: str
    quantity: int
    created_at: datetime


class CartItemRepository:
    """Repository for CartItem persistence operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, user_id: str, product_id: str, quantity: int = 1) -> str:
        cart_item = CartItemModel(
            user_id=user_id, product_id=product_id, quantity=quantity
        )
        self.session.add(cart_item)
        await _commit(self.session)
        return cart_item.id

    async def find_by_products(
        self, product_ids: Sequence[str]
    ) -> list[CartItemSnapshot]:
        result = await self.session.execute(
            select(CartItemModel).where(col(CartItemModel.product_id).in_(product_ids))
        )
        return [
            CartItemSnapshot(
                id=row.id,
                user_id=row.user_id,
                product_id=row.product_id,
                quantity=row.quantity,
                created_at=row.created_at,
            )
            for row in result.scalars().all()
        ]

    async def remove_for_products(
        self, product_ids: Sequence[str]
    ) -> list[CartItemSnapshot]:
        """Delete every cart row for the products, returning what was removed."""
        removed = await self.find_by_products(product_ids)
        if not removed:
            return removed

        await self.session.execute(
            delete(CartItemModel).where(
                col(CartItemModel.id).in_([item.id for item in removed])
            )
        )
        await _commit(self.session)

        log_database_operation(
            operation="delete", table="cart_items", rows=len(removed)
        )
        return removed

    async def reinsert(self, snapshots: Sequence[CartItemSnapshot]) -> int:
        """Put removed cart rows back, skipping any that already exist."""
        if not snapshots:
            return 0

        result = await self.session.execute(
            select(CartItemModel.id).where(
                col(CartItemModel.id).in_([item.id for item in snapshots])
            )
        )
        present = set(result.scalars().all())

        missing = [item for item in snapshots if item.id not in present]
        for item in missing:
            self.session.add(
                CartItemModel(
                    id=item.id,
                    user_id=item.user_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    created_at=item.created_at,
                )
            )
        await _commit(self.session)

        log_database_operation(
            operation="restore", table="cart_items", rows=len(missing)
        )
        return len(missing)
