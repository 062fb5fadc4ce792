"""Admin use cases for categories."""

from collections.abc import Sequence
from typing import Final

from ..domain.entities import Category, slugify
from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.undo import (
    BulkEntityDeletion,
    SingleEntityDeletion,
    SoftDeleteOptions,
    SoftDeleteResult,
    UndoResult,
)
from ..infrastructure.database.database import SessionFactory
from ..infrastructure.database.repositories import CategoryRepository
from ..logging_config import get_logger
from .soft_delete import SoftDeleteManager, require_entity_type

logger: Final = get_logger(__name__)

ENTITY_TYPE: Final = "category"


class CategoryService:
    """Application service for category administration."""

    def __init__(
        self,
        session_factory: SessionFactory,
        manager: SoftDeleteManager,
        undo_timeout_ms: int | None = None,
    ):
        self.session_factory = session_factory
        self.manager = manager
        self.undo_timeout_ms = undo_timeout_ms

    async def create_category(
        self,
        name: str,
        slug: str | None = None,
        description: str | None = None,
        is_active: bool = True,
    ) -> Category:
        # Domain entity validates business rules
        category = Category(
            id=None,
            name=name.strip(),
            slug=slug or slugify(name),
            description=description,
            is_active=is_active,
        )
        async with self.session_factory() as session:
            created = await CategoryRepository(session).add(category)

        logger.info("Category created", category_id=created.id, slug=created.slug)
        return created

    async def get_category(
        self, category_id: str, include_deleted: bool = False
    ) -> Category:
        async with self.session_factory() as session:
            category = await CategoryRepository(session).find_by_id(
                category_id, include_deleted=include_deleted
            )
        if category is None:
            raise NotFoundError("Category not found")
        return category

    async def soft_delete_category(
        self, category_id: str, deleted_by: str
    ) -> SoftDeleteResult:
        """Soft delete a category that has no active products."""
        async with self.session_factory() as session:
            repo = CategoryRepository(session)
            existing = await repo.find_by_id(category_id, include_deleted=True)
            if existing is None:
                raise NotFoundError("Category not found")
            if existing.is_deleted():
                raise ValidationError("Category is already deleted")
            if await repo.count_active_products([category_id]):
                raise ValidationError("Cannot delete category with active products")

        async def delete_category() -> Category | None:
            async with self.session_factory() as session:
                repo = CategoryRepository(session)
                if not await repo.soft_delete_many([category_id], deleted_by):
                    raise ValidationError("Category is already deleted")
                return await repo.find_by_id(category_id, include_deleted=True)

        return await self.manager.execute_soft_delete(
            ENTITY_TYPE,
            category_id,
            delete_category,
            SoftDeleteOptions(undo_timeout_ms=self.undo_timeout_ms),
        )

    async def undo_delete(self, undo_token: str) -> UndoResult:
        async def restore(metadata: SingleEntityDeletion) -> Category:
            require_entity_type(metadata, ENTITY_TYPE)
            async with self.session_factory() as session:
                restored = await CategoryRepository(session).restore_many(
                    [metadata.entity_id]
                )
            if not restored:
                raise NotFoundError("Category not found")
            return restored[0]

        return await self.manager.execute_undo(undo_token, restore)

    async def bulk_soft_delete_categories(
        self, category_ids: Sequence[str], deleted_by: str
    ) -> SoftDeleteResult:
        """Soft delete several categories with one undo token."""
        ids = list(dict.fromkeys(category_ids))
        if ids:
            async with self.session_factory() as session:
                repo = CategoryRepository(session)
                found = await repo.find_by_ids(ids)
                missing = set(ids) - {category.id for category in found}
                if missing:
                    raise NotFoundError(
                        f"Categories not found or already deleted: {sorted(missing)}"
                    )
                if await repo.count_active_products(ids):
                    raise ValidationError(
                        "Cannot delete categories with active products"
                    )

        async def delete_categories(batch: list[str]) -> int:
            async with self.session_factory() as session:
                return await CategoryRepository(session).soft_delete_many(
                    batch, deleted_by
                )

        return await self.manager.execute_bulk_soft_delete(
            ENTITY_TYPE,
            ids,
            delete_categories,
            SoftDeleteOptions(undo_timeout_ms=self.undo_timeout_ms),
        )

    async def undo_bulk_delete(self, undo_token: str) -> UndoResult:
        async def restore(metadata: BulkEntityDeletion) -> list[Category]:
            require_entity_type(metadata, ENTITY_TYPE)
            async with self.session_factory() as session:
                return await CategoryRepository(session).restore_many(
                    metadata.entity_ids
                )

        return await self.manager.execute_bulk_undo(undo_token, restore)

    async def permanent_delete_category(self, category_id: str) -> None:
        """Hard delete a category that no product row references."""
        async with self.session_factory() as session:
            repo = CategoryRepository(session)
            if await repo.find_by_id(category_id, include_deleted=True) is None:
                raise NotFoundError("Category not found")
            if await repo.count_products(category_id):
                raise ValidationError(
                    "Cannot permanently delete category with products"
                )
            await repo.delete(category_id)

        logger.info("Category permanently deleted", category_id=category_id)
