from datetime import UTC, datetime
from uuid import uuid4

from sqlmodel import Field, Relationship, SQLModel

from ...domain.constants import MAX_NAME_LENGTH, MAX_SLUG_LENGTH
from ...domain.entities import Category as DomainCategory
from ...domain.entities import Product as DomainProduct


def _new_id() -> str:
    return str(uuid4())


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Category(SQLModel, table=True):  # type: ignore[call-arg]
    """A product category. Soft deleted rows keep their slug."""

    __tablename__: str = "categories"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(index=True, max_length=MAX_NAME_LENGTH)
    slug: str = Field(unique=True, max_length=MAX_SLUG_LENGTH)
    description: str | None = None
    is_active: bool = True

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    deleted_at: datetime | None = Field(default=None, index=True)
    deleted_by: str | None = None

    products: list["Product"] = Relationship(back_populates="category")

    @classmethod
    def from_domain(cls, domain_category: DomainCategory) -> "Category":
        """Convert domain entity to persistence model."""
        category = cls(
            name=domain_category.name,
            slug=domain_category.slug,
            description=domain_category.description,
            is_active=domain_category.is_active,
            deleted_at=domain_category.deleted_at,
            deleted_by=domain_category.deleted_by,
        )
        if domain_category.id is not None:
            category.id = domain_category.id
        return category

    def to_domain(self) -> DomainCategory:
        """Convert persistence model to domain entity."""
        return DomainCategory(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            is_active=self.is_active,
            deleted_at=self.deleted_at,
            deleted_by=self.deleted_by,
        )


class Product(SQLModel, table=True):  # type: ignore[call-arg]
    """A product. Prices are stored in minor currency units."""

    __tablename__: str = "products"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(index=True, max_length=MAX_NAME_LENGTH)
    slug: str | None = Field(default=None, unique=True, max_length=MAX_SLUG_LENGTH)
    description: str = ""
    price: int = Field(gt=0)
    stock_quantity: int = Field(default=0, ge=0)
    in_stock: bool = True
    featured: bool = False
    is_active: bool = True

    category_id: str = Field(foreign_key="categories.id", index=True)
    category: Category | None = Relationship(back_populates="products")

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    deleted_at: datetime | None = Field(default=None, index=True)
    deleted_by: str | None = None

    @classmethod
    def from_domain(cls, domain_product: DomainProduct) -> "Product":
        """Convert domain entity to persistence model."""
        product = cls(
            name=domain_product.name,
            slug=domain_product.slug,
            description=domain_product.description,
            price=domain_product.price,
            stock_quantity=domain_product.stock_quantity,
            in_stock=domain_product.in_stock,
            featured=domain_product.featured,
            is_active=domain_product.is_active,
            category_id=domain_product.category_id,
            deleted_at=domain_product.deleted_at,
            deleted_by=domain_product.deleted_by,
        )
        if domain_product.id is not None:
            product.id = domain_product.id
        return product

    def to_domain(self) -> DomainProduct:
        """Convert persistence model to domain entity."""
        return DomainProduct(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            price=self.price,
            stock_quantity=self.stock_quantity,
            in_stock=self.in_stock,
            featured=self.featured,
            is_active=self.is_active,
            category_id=self.category_id,
            deleted_at=self.deleted_at,
            deleted_by=self.deleted_by,
        )


class CartItem(SQLModel, table=True):  # type: ignore[call-arg]
    """A product in a user's cart."""

    __tablename__: str = "cart_items"  # type: ignore[assignment]

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    product_id: str = Field(foreign_key="products.id", index=True)
    quantity: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_utc_now)
