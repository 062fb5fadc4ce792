import pytest

from storefront.domain.exceptions import (
    ConflictError,
    InvalidUndoTokenError,
    NotFoundError,
    UndoTokenKindError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_create_category_derives_slug(category_service):
    category = await category_service.create_category("Garden Tools")

    assert category.id is not None
    assert category.slug == "garden-tools"
    assert not category.is_deleted()


@pytest.mark.asyncio
async def test_duplicate_slug_conflicts(category_service):
    await category_service.create_category("Kitchen")

    with pytest.raises(ConflictError):
        await category_service.create_category("Kitchen")


@pytest.mark.asyncio
async def test_create_category_rejects_control_characters(category_service):
    with pytest.raises(ValidationError):
        await category_service.create_category("Bad\nName", slug="bad-name")


@pytest.mark.asyncio
async def test_soft_delete_and_undo(category_service):
    category = await category_service.create_category("Kitchen")

    result = await category_service.soft_delete_category(category.id, "admin-1")

    assert result.undo_token is not None
    with pytest.raises(NotFoundError):
        await category_service.get_category(category.id)
    deleted = await category_service.get_category(category.id, include_deleted=True)
    assert deleted.deleted_by == "admin-1"

    undo = await category_service.undo_delete(result.undo_token)

    assert undo.restored_item.id == category.id
    restored = await category_service.get_category(category.id)
    assert restored.deleted_at is None
    assert restored.deleted_by is None


@pytest.mark.asyncio
async def test_delete_unknown_category(category_service):
    with pytest.raises(NotFoundError):
        await category_service.soft_delete_category("missing", "admin-1")


@pytest.mark.asyncio
async def test_delete_twice_fails(category_service):
    category = await category_service.create_category("Kitchen")
    await category_service.soft_delete_category(category.id, "admin-1")

    with pytest.raises(ValidationError, match="already deleted"):
        await category_service.soft_delete_category(category.id, "admin-1")


@pytest.mark.asyncio
async def test_category_with_active_products_cannot_be_deleted(
    category_service, product_service
):
    category = await category_service.create_category("Kitchen")
    await product_service.create_product("Knife", category.id, price=1999)

    with pytest.raises(ValidationError, match="active products"):
        await category_service.soft_delete_category(category.id, "admin-1")


@pytest.mark.asyncio
async def test_product_token_rejected_for_category_undo(
    category_service, product_service
):
    category = await category_service.create_category("Kitchen")
    product = await product_service.create_product("Knife", category.id, price=1999)
    result = await product_service.soft_delete_product(product.id, "admin-1")

    with pytest.raises(UndoTokenKindError):
        await category_service.undo_delete(result.undo_token)

    # Still redeemable through the right service
    undo = await product_service.undo_delete(result.undo_token)
    assert undo.success is True


@pytest.mark.asyncio
async def test_bulk_delete_and_undo(category_service):
    ids = [
        (await category_service.create_category(name)).id
        for name in ("Kitchen", "Garden", "Toys")
    ]

    result = await category_service.bulk_soft_delete_categories(ids, "admin-1")

    assert result.message == "3 categorys deleted successfully"
    for category_id in ids:
        with pytest.raises(NotFoundError):
            await category_service.get_category(category_id)

    undo = await category_service.undo_bulk_delete(result.undo_token)

    assert {category.id for category in undo.restored_item} == set(ids)
    for category_id in ids:
        assert (await category_service.get_category(category_id)).deleted_at is None


@pytest.mark.asyncio
async def test_bulk_delete_deduplicates_ids(category_service):
    category = await category_service.create_category("Kitchen")

    result = await category_service.bulk_soft_delete_categories(
        [category.id, category.id], "admin-1"
    )

    assert result.metadata["count"] == 1


@pytest.mark.asyncio
async def test_bulk_delete_with_unknown_id_changes_nothing(category_service):
    category = await category_service.create_category("Kitchen")

    with pytest.raises(NotFoundError, match="missing"):
        await category_service.bulk_soft_delete_categories(
            [category.id, "missing"], "admin-1"
        )

    assert (await category_service.get_category(category.id)).deleted_at is None


@pytest.mark.asyncio
async def test_bulk_delete_empty_list(category_service):
    with pytest.raises(ValidationError, match="No entity IDs provided"):
        await category_service.bulk_soft_delete_categories([], "admin-1")


@pytest.mark.asyncio
async def test_single_token_rejected_for_bulk_undo(category_service):
    category = await category_service.create_category("Kitchen")
    result = await category_service.soft_delete_category(category.id, "admin-1")

    with pytest.raises(UndoTokenKindError):
        await category_service.undo_bulk_delete(result.undo_token)


@pytest.mark.asyncio
async def test_undo_twice_fails(category_service):
    category = await category_service.create_category("Kitchen")
    result = await category_service.soft_delete_category(category.id, "admin-1")
    await category_service.undo_delete(result.undo_token)

    with pytest.raises(InvalidUndoTokenError):
        await category_service.undo_delete(result.undo_token)


@pytest.mark.asyncio
async def test_permanent_delete(category_service):
    category = await category_service.create_category("Kitchen")

    await category_service.permanent_delete_category(category.id)

    with pytest.raises(NotFoundError):
        await category_service.get_category(category.id, include_deleted=True)


@pytest.mark.asyncio
async def test_permanent_delete_blocked_by_products(
    category_service, product_service
):
    category = await category_service.create_category("Kitchen")
    product = await product_service.create_product("Knife", category.id, price=1999)
    await product_service.soft_delete_product(product.id, "admin-1")

    with pytest.raises(ValidationError, match="with products"):
        await category_service.permanent_delete_category(category.id)
