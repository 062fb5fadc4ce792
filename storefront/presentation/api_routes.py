from dataclasses import asdict
from datetime import datetime
from typing import Annotated, Any, Final

from fastapi import APIRouter, Depends, Header, Path, Query, Request, status
from pydantic import BaseModel, Field

from ..application.category_service import CategoryService
from ..application.product_service import ProductService
from ..application.soft_delete import SoftDeleteManager
from ..constants import ADMIN_ID_HEADER, SYSTEM_ADMIN_ID
from ..domain.entities import Category, Product
from ..domain.undo import SoftDeleteResult, UndoResult
from ..infrastructure.database.database import SessionFactory, get_session_factory

api_router: Final = APIRouter(
    prefix="/api/v1/admin",
    responses={
        400: {"description": "Bad Request - Invalid input or undo token"},
        404: {"description": "Not Found - Resource does not exist"},
        409: {"description": "Conflict - Resource already exists"},
    },
)


# Dependencies
def get_soft_delete_manager(request: Request) -> SoftDeleteManager:
    """The manager composed at startup, shared by every request."""
    return request.app.state.soft_delete_manager


def get_category_service(
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
    manager: Annotated[SoftDeleteManager, Depends(get_soft_delete_manager)],
) -> CategoryService:
    return CategoryService(session_factory, manager)


def get_product_service(
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
    manager: Annotated[SoftDeleteManager, Depends(get_soft_delete_manager)],
) -> ProductService:
    return ProductService(session_factory, manager)


def get_admin_id(
    admin_id: Annotated[str | None, Header(alias=ADMIN_ID_HEADER)] = None,
) -> str:
    return admin_id or SYSTEM_ADMIN_ID


CategoryServiceDep = Annotated[CategoryService, Depends(get_category_service)]
ProductServiceDep = Annotated[ProductService, Depends(get_product_service)]
ManagerDep = Annotated[SoftDeleteManager, Depends(get_soft_delete_manager)]
AdminId = Annotated[str, Depends(get_admin_id)]


# Request Models
class CategoryCreate(BaseModel):
    """Request model for creating a category."""

    name: str = Field(
        ..., min_length=1, max_length=255, examples=["Kitchen", "Garden Tools"]
    )
    slug: str | None = Field(
        None,
        max_length=255,
        description="URL slug; derived from the name when omitted",
        examples=["kitchen"],
    )
    description: str | None = Field(None, description="Optional description")


class ProductCreate(BaseModel):
    """Request model for creating a product."""

    name: str = Field(..., min_length=1, max_length=255, examples=["Chef's Knife"])
    category_id: str = Field(..., description="Category the product belongs to")
    price: int = Field(..., gt=0, description="Price in minor currency units")
    description: str = Field("", description="Product description")
    slug: str | None = Field(None, max_length=255)
    stock_quantity: int = Field(0, ge=0)
    featured: bool = False


class UndoRequest(BaseModel):
    """Request model for redeeming an undo token."""

    undo_token: str = Field(..., min_length=1, description="Token from the delete")


class BulkDeleteRequest(BaseModel):
    """Request model for a bulk soft delete."""

    ids: list[str] = Field(..., description="IDs to soft delete in one batch")


# Response Models
class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None
    is_active: bool
    deleted_at: datetime | None
    deleted_by: str | None


class ProductResponse(BaseModel):
    id: str
    name: str
    category_id: str
    price: int
    description: str
    slug: str | None
    stock_quantity: int
    in_stock: bool
    featured: bool
    is_active: bool
    deleted_at: datetime | None
    deleted_by: str | None


class SoftDeleteResponse(BaseModel):
    """Response model for soft deletes."""

    success: bool = Field(description="Whether the delete succeeded")
    message: str = Field(description="Result message")
    undo_token: str | None = Field(description="Token that undoes this delete")
    undo_expires_at: datetime | None = Field(description="When the undo window ends")
    metadata: dict[str, Any] = Field(description="What was deleted")


class UndoResponse(BaseModel):
    """Response model for a successful undo."""

    success: bool
    message: str
    restored_count: int = Field(description="Number of entities restored")


class UndoStatsResponse(BaseModel):
    active_tokens: int = Field(description="Undo tokens still inside their window")


class UndoTokenStatusResponse(BaseModel):
    valid: bool = Field(description="Whether the token can still be redeemed")
    metadata: dict[str, Any] | None = Field(
        description="What the token would restore, if it is still stored"
    )


def _delete_response(result: SoftDeleteResult) -> SoftDeleteResponse:
    return SoftDeleteResponse(
        success=result.success,
        message=result.message,
        undo_token=result.undo_token,
        undo_expires_at=result.undo_expires_at,
        metadata=result.metadata,
    )


def _undo_response(result: UndoResult) -> UndoResponse:
    restored = result.restored_item
    count = len(restored) if isinstance(restored, list) else 1
    return UndoResponse(
        success=result.success, message=result.message, restored_count=count
    )


def _category_response(category: Category) -> CategoryResponse:
    return CategoryResponse(**asdict(category))


def _product_response(product: Product) -> ProductResponse:
    return ProductResponse(**asdict(product))


# Categories
@api_router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["categories"],
    summary="Create a category",
)
async def api_create_category(
    body: CategoryCreate, service: CategoryServiceDep
) -> CategoryResponse:
    category = await service.create_category(
        name=body.name, slug=body.slug, description=body.description
    )
    return _category_response(category)


@api_router.delete(
    "/categories/bulk-delete",
    response_model=SoftDeleteResponse,
    tags=["categories"],
    summary="Soft delete several categories",
    description="""
    Soft delete every listed category in one batch and return a single undo
    token that restores the whole batch.

    Fails with 404 if any id is unknown or already deleted, and with 400 if any
    category still has active products.
    """,
)
async def api_bulk_delete_categories(
    body: BulkDeleteRequest, service: CategoryServiceDep, admin_id: AdminId
) -> SoftDeleteResponse:
    result = await service.bulk_soft_delete_categories(body.ids, admin_id)
    return _delete_response(result)


@api_router.post(
    "/categories/bulk-undo-delete",
    response_model=UndoResponse,
    tags=["categories"],
    summary="Undo a bulk category delete",
)
async def api_bulk_undo_delete_categories(
    body: UndoRequest, service: CategoryServiceDep
) -> UndoResponse:
    return _undo_response(await service.undo_bulk_delete(body.undo_token))


@api_router.post(
    "/categories/undo-delete",
    response_model=UndoResponse,
    tags=["categories"],
    summary="Undo a category delete",
)
async def api_undo_delete_category(
    body: UndoRequest, service: CategoryServiceDep
) -> UndoResponse:
    return _undo_response(await service.undo_delete(body.undo_token))


@api_router.get(
    "/categories/{category_id}",
    response_model=CategoryResponse,
    tags=["categories"],
    summary="Get a category",
)
async def api_get_category(
    service: CategoryServiceDep,
    category_id: str = Path(description="Category ID"),
    include_deleted: bool = Query(False, description="Also return deleted rows"),
) -> CategoryResponse:
    category = await service.get_category(category_id, include_deleted)
    return _category_response(category)


@api_router.delete(
    "/categories/{category_id}",
    response_model=SoftDeleteResponse,
    tags=["categories"],
    summary="Soft delete a category",
    description="""
    Soft delete a category. The response carries an undo token that restores
    the category until `undo_expires_at`.

    A category with active products cannot be deleted.
    """,
)
async def api_delete_category(
    service: CategoryServiceDep,
    admin_id: AdminId,
    category_id: str = Path(description="Category ID"),
) -> SoftDeleteResponse:
    result = await service.soft_delete_category(category_id, admin_id)
    return _delete_response(result)


@api_router.delete(
    "/categories/{category_id}/permanent",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["categories"],
    summary="Permanently delete a category",
)
async def api_permanent_delete_category(
    service: CategoryServiceDep,
    category_id: str = Path(description="Category ID"),
) -> None:
    await service.permanent_delete_category(category_id)


# Products
@api_router.post(
    "/products",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["products"],
    summary="Create a product",
)
async def api_create_product(
    body: ProductCreate, service: ProductServiceDep
) -> ProductResponse:
    product = await service.create_product(
        name=body.name,
        category_id=body.category_id,
        price=body.price,
        description=body.description,
        slug=body.slug,
        stock_quantity=body.stock_quantity,
        featured=body.featured,
    )
    return _product_response(product)


@api_router.delete(
    "/products/bulk-delete",
    response_model=SoftDeleteResponse,
    tags=["products"],
    summary="Soft delete several products",
    description="""
    Soft delete every listed product in one batch, removing them from all
    carts. One undo token restores the products and their cart rows.
    """,
)
async def api_bulk_delete_products(
    body: BulkDeleteRequest, service: ProductServiceDep, admin_id: AdminId
) -> SoftDeleteResponse:
    result = await service.bulk_soft_delete_products(body.ids, admin_id)
    return _delete_response(result)


@api_router.post(
    "/products/bulk-undo-delete",
    response_model=UndoResponse,
    tags=["products"],
    summary="Undo a bulk product delete",
)
async def api_bulk_undo_delete_products(
    body: UndoRequest, service: ProductServiceDep
) -> UndoResponse:
    return _undo_response(await service.undo_bulk_delete(body.undo_token))


@api_router.post(
    "/products/undo-delete",
    response_model=UndoResponse,
    tags=["products"],
    summary="Undo a product delete",
)
async def api_undo_delete_product(
    body: UndoRequest, service: ProductServiceDep
) -> UndoResponse:
    return _undo_response(await service.undo_delete(body.undo_token))


@api_router.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    tags=["products"],
    summary="Get a product",
)
async def api_get_product(
    service: ProductServiceDep,
    product_id: str = Path(description="Product ID"),
    include_deleted: bool = Query(False, description="Also return deleted rows"),
) -> ProductResponse:
    product = await service.get_product(product_id, include_deleted)
    return _product_response(product)


@api_router.delete(
    "/products/{product_id}",
    response_model=SoftDeleteResponse,
    tags=["products"],
    summary="Soft delete a product",
    description="""
    Soft delete a product and remove it from every cart. Undoing the delete
    restores the product and puts the cart rows back.
    """,
)
async def api_delete_product(
    service: ProductServiceDep,
    admin_id: AdminId,
    product_id: str = Path(description="Product ID"),
) -> SoftDeleteResponse:
    result = await service.soft_delete_product(product_id, admin_id)
    return _delete_response(result)


@api_router.delete(
    "/products/{product_id}/permanent",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["products"],
    summary="Permanently delete a product",
)
async def api_permanent_delete_product(
    service: ProductServiceDep,
    product_id: str = Path(description="Product ID"),
) -> None:
    await service.permanent_delete_product(product_id)


# Undo tokens
@api_router.get(
    "/undo/stats",
    response_model=UndoStatsResponse,
    tags=["undo"],
    summary="Count pending undo tokens",
)
async def api_undo_stats(manager: ManagerDep) -> UndoStatsResponse:
    return UndoStatsResponse(active_tokens=manager.get_active_tokens_count())


@api_router.get(
    "/undo/{token}",
    response_model=UndoTokenStatusResponse,
    tags=["undo"],
    summary="Inspect an undo token",
)
async def api_undo_token_status(
    manager: ManagerDep, token: str = Path(description="Undo token")
) -> UndoTokenStatusResponse:
    metadata = manager.get_undo_token_metadata(token)
    return UndoTokenStatusResponse(
        valid=manager.is_valid_undo_token(token),
        metadata=_public_metadata(metadata.to_dict()) if metadata else None,
    )


def _public_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # The delete callback's return value is internal
    return {key: value for key, value in metadata.items() if key != "main_result"}
