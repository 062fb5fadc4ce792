"""Admin use cases for products.

Deleting a product also empties it out of every cart. The removed cart rows
are kept in the undo entry's rollback operations, so undoing the delete puts
them back exactly as they were.
"""

from collections.abc import Sequence
from typing import Final

from ..domain.entities import Product
from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.undo import (
    BulkEntityDeletion,
    SingleEntityDeletion,
    SoftDeleteOptions,
    SoftDeleteResult,
    UndoResult,
)
from ..infrastructure.database.database import SessionFactory
from ..infrastructure.database.repositories import (
    CartItemRepository,
    CartItemSnapshot,
    CategoryRepository,
    ProductRepository,
)
from ..logging_config import get_logger
from .soft_delete import SoftDeleteManager, require_entity_type

logger: Final = get_logger(__name__)

ENTITY_TYPE: Final = "product"


class ProductService:
    """Application service for product administration."""

    def __init__(
        self,
        session_factory: SessionFactory,
        manager: SoftDeleteManager,
        undo_timeout_ms: int | None = None,
    ):
        self.session_factory = session_factory
        self.manager = manager
        self.undo_timeout_ms = undo_timeout_ms

    async def create_product(
        self,
        name: str,
        category_id: str,
        price: int,
        description: str = "",
        slug: str | None = None,
        stock_quantity: int = 0,
        featured: bool = False,
    ) -> Product:
        product = Product(
            id=None,
            name=name.strip(),
            category_id=category_id,
            price=price,
            description=description,
            slug=slug,
            stock_quantity=stock_quantity,
            in_stock=stock_quantity > 0,
            featured=featured,
        )
        async with self.session_factory() as session:
            if await CategoryRepository(session).find_by_id(category_id) is None:
                raise NotFoundError("Category not found")
            created = await ProductRepository(session).add(product)

        logger.info("Product created", product_id=created.id, category_id=category_id)
        return created

    async def get_product(
        self, product_id: str, include_deleted: bool = False
    ) -> Product:
        async with self.session_factory() as session:
            product = await ProductRepository(session).find_by_id(
                product_id, include_deleted=include_deleted
            )
        if product is None:
            raise NotFoundError("Product not found")
        return product

    async def add_to_cart(
        self, user_id: str, product_id: str, quantity: int = 1
    ) -> str:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        async with self.session_factory() as session:
            if await ProductRepository(session).find_by_id(product_id) is None:
                raise NotFoundError("Product not found")
            return await CartItemRepository(session).add(user_id, product_id, quantity)

    async def count_cart_items(self, product_id: str) -> int:
        async with self.session_factory() as session:
            return len(await CartItemRepository(session).find_by_products([product_id]))

    async def soft_delete_product(
        self, product_id: str, deleted_by: str
    ) -> SoftDeleteResult:
        async with self.session_factory() as session:
            existing = await ProductRepository(session).find_by_id(
                product_id, include_deleted=True
            )
        if existing is None:
            raise NotFoundError("Product not found")
        if existing.is_deleted():
            raise ValidationError("Product is already deleted")

        marked: list[str] = []

        async def delete_product() -> Product | None:
            async with self.session_factory() as session:
                repo = ProductRepository(session)
                if not await repo.soft_delete_many([product_id], deleted_by):
                    raise ValidationError("Product is already deleted")
                marked.append(product_id)
                return await repo.find_by_id(product_id, include_deleted=True)

        return await self.manager.execute_soft_delete(
            ENTITY_TYPE,
            product_id,
            delete_product,
            self._cart_cleanup_options([product_id], marked),
        )

    async def undo_delete(self, undo_token: str) -> UndoResult:
        async def restore(metadata: SingleEntityDeletion) -> Product:
            require_entity_type(metadata, ENTITY_TYPE)
            async with self.session_factory() as session:
                restored = await ProductRepository(session).restore_many(
                    [metadata.entity_id]
                )
            if not restored:
                raise NotFoundError("Product not found")
            return restored[0]

        return await self.manager.execute_undo(undo_token, restore)

    async def bulk_soft_delete_products(
        self, product_ids: Sequence[str], deleted_by: str
    ) -> SoftDeleteResult:
        ids = list(dict.fromkeys(product_ids))
        if ids:
            async with self.session_factory() as session:
                found = await ProductRepository(session).find_by_ids(ids)
            missing = set(ids) - {product.id for product in found}
            if missing:
                raise NotFoundError(
                    f"Products not found or already deleted: {sorted(missing)}"
                )

        marked: list[str] = []

        async def delete_products(batch: list[str]) -> int:
            async with self.session_factory() as session:
                count = await ProductRepository(session).soft_delete_many(
                    batch, deleted_by
                )
            marked.extend(batch)
            return count

        return await self.manager.execute_bulk_soft_delete(
            ENTITY_TYPE,
            ids,
            delete_products,
            self._cart_cleanup_options(ids, marked),
        )

    async def undo_bulk_delete(self, undo_token: str) -> UndoResult:
        async def restore(metadata: BulkEntityDeletion) -> list[Product]:
            require_entity_type(metadata, ENTITY_TYPE)
            async with self.session_factory() as session:
                return await ProductRepository(session).restore_many(
                    metadata.entity_ids
                )

        return await self.manager.execute_bulk_undo(undo_token, restore)

    async def permanent_delete_product(self, product_id: str) -> None:
        async with self.session_factory() as session:
            if not await ProductRepository(session).delete(product_id):
                raise NotFoundError("Product not found")

        logger.info("Product permanently deleted", product_id=product_id)

    def _cart_cleanup_options(
        self, product_ids: list[str], marked: list[str]
    ) -> SoftDeleteOptions:
        """Remove the products from carts, and know how to put them back.

        ``marked`` is filled by the delete write. Reverting it is what unwinds
        the delete when the cart cleanup fails; on undo it repeats the restore
        and changes nothing.
        """
        removed: list[CartItemSnapshot] = []

        async def remove_from_carts() -> None:
            async with self.session_factory() as session:
                removed.extend(
                    await CartItemRepository(session).remove_for_products(product_ids)
                )

        async def revert_delete() -> None:
            if marked:
                async with self.session_factory() as session:
                    await ProductRepository(session).restore_many(marked)

        async def put_back_in_carts() -> None:
            async with self.session_factory() as session:
                await CartItemRepository(session).reinsert(removed)

        return SoftDeleteOptions(
            undo_timeout_ms=self.undo_timeout_ms,
            atomic_operations=[remove_from_carts],
            rollback_operations=[revert_delete, put_back_in_carts],
        )
