"""
Catalog data models for the Catalog Service.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ValidationError

NAME_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
IMAGE_URL_MAX_LENGTH = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductCategory(str, Enum):
    """Craft type, used to organize the portfolio."""
    WOODWORKING = "Woodworking"
    ENGRAVING = "Engraving"
    CROCHET = "Crochet"


class ProductStatus(str, Enum):
    """Availability status of a product."""
    AVAILABLE = "Available"
    SOLD = "Sold"
    DISPLAY_ONLY = "DisplayOnly"


class ProductImage(BaseModel):
    """Image attached to a product."""
    id: Optional[int] = Field(None, description="Image ID, assigned by the store")
    product_id: Optional[int] = Field(None, description="Owning product ID")
    image_url: str = Field(..., min_length=1, max_length=IMAGE_URL_MAX_LENGTH, description="URL or path")
    is_primary: bool = Field(False, description="Featured image for galleries")


class Product(BaseModel):
    """Handcrafted catalog item."""
    id: Optional[int] = Field(None, description="Product ID, assigned by the store")
    name: str = Field(..., max_length=NAME_MAX_LENGTH, description="Product name")
    description: str = Field("", max_length=DESCRIPTION_MAX_LENGTH, description="Product description")
    category: ProductCategory = Field(..., description="Craft category")
    status: ProductStatus = Field(ProductStatus.AVAILABLE, description="Availability status")
    quantity: int = Field(0, ge=0, description="Units on hand")
    price: Optional[Decimal] = Field(None, ge=0, max_digits=18, decimal_places=2, description="Unset is not zero")
    is_public: bool = Field(False, description="Visible to anonymous visitors")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time (UTC)")
    images: List[ProductImage] = Field(default_factory=list, description="Attached images")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def single_primary_image(self) -> "Product":
        primaries = sum(1 for image in self.images if image.is_primary)
        if primaries > 1:
            raise ValueError(f"at most one primary image allowed, got {primaries}")
        return self

    @property
    def primary_image(self) -> Optional[ProductImage]:
        """Primary image, falling back to the first image."""
        for image in self.images:
            if image.is_primary:
                return image
        return self.images[0] if self.images else None


def validate_product(product: Product) -> Product:
    """
    Re-validate a product at the persistence boundary.

    Models are mutable after construction, so field constraints are checked
    again before anything is written. Returns a validated copy.
    """
    try:
        return Product.model_validate(product.model_dump())
    except PydanticValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"]) or "product",
                "message": error["msg"],
            }
            for error in e.errors()
        ]
        raise ValidationError("Invalid product", {"errors": errors}) from e
