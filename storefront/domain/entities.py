"""Pure domain entities without infrastructure dependencies."""

import re
from dataclasses import dataclass
from datetime import datetime

from .constants import MAX_NAME_LENGTH, MAX_SLUG_LENGTH
from .exceptions import ValidationError

_SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def validate_entity_name(name: str, entity_type: str = "entity") -> None:
    """Validate entity name according to catalog rules.

    Raises:
        ValidationError: If name is empty, too long, or contains control characters
    """
    if not name or not name.strip():
        raise ValidationError(f"{entity_type.title()} name cannot be empty")

    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"{entity_type.title()} name cannot be longer than {MAX_NAME_LENGTH} "
            + "characters"
        )

    for char in name:
        if ord(char) < 32 or ord(char) == 127:
            raise ValidationError(
                f"{entity_type.title()} name cannot contain newlines, tabs, "
                + "or other control characters"
            )


def slugify(value: str) -> str:
    """Derive a URL slug from a display name."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH]


def validate_slug(slug: str) -> None:
    if not _SLUG_PATTERN.match(slug) or len(slug) > MAX_SLUG_LENGTH:
        raise ValidationError(f"Invalid slug '{slug}'")


@dataclass
class Category:
    """A product category."""

    id: str | None
    name: str
    slug: str
    description: str | None = None
    is_active: bool = True
    deleted_at: datetime | None = None
    deleted_by: str | None = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        validate_entity_name(self.name, "category")
        validate_slug(self.slug)

    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class Product:
    """A product that can be placed in carts."""

    id: str | None
    name: str
    category_id: str
    price: int
    description: str = ""
    slug: str | None = None
    stock_quantity: int = 0
    in_stock: bool = True
    featured: bool = False
    is_active: bool = True
    deleted_at: datetime | None = None
    deleted_by: str | None = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate product business rules."""
        validate_entity_name(self.name, "product")

        if self.price <= 0:
            raise ValidationError("Product price must be positive")

        if self.stock_quantity < 0:
            raise ValidationError("Product stock quantity cannot be negative")

        if self.slug is not None:
            validate_slug(self.slug)

    def is_deleted(self) -> bool:
        return self.deleted_at is not None
