"""
Catalog schemas: base products and per-shop listings.
"""

from pydantic import Field, model_validator
from typing import Optional
from enum import Enum

from models.base import BaseSchema


class ProductStatus(str, Enum):
    """Catalog approval status."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MERGED = "MERGED"


# Products the matcher is allowed to return
MATCHABLE_STATUSES = [ProductStatus.APPROVED.value, ProductStatus.PENDING.value]


class ListingStatus(str, Enum):
    """Shop listing status."""
    NEEDS_IMAGES = "NEEDS_IMAGES"
    NEEDS_SPECS = "NEEDS_SPECS"
    LIVE = "LIVE"
    BROKEN = "BROKEN"
    PAUSED = "PAUSED"
    PENDING_REVIEW = "PENDING_REVIEW"
    REJECTED = "REJECTED"


class BaseProductResponse(BaseSchema):
    """Catalog product as stored in products."""

    id: str
    name: str
    normalized_name: Optional[str] = None
    brand: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    status: ProductStatus = ProductStatus.PENDING
    is_verified: bool = False
    merged_into_id: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def merged_requires_target(self):
        if self.status == ProductStatus.MERGED and not self.merged_into_id:
            raise ValueError("Merged products must reference merged_into_id")
        return self


class ListingResponse(BaseSchema):
    """Shop listing as stored in shop_products."""

    id: str
    shop_id: str
    product_id: str
    sku: str
    base_price: float
    price: int
    stock_quantity: int = Field(default=0, ge=0)
    condition: str = "NEW"
    shop_description: Optional[str] = None
    specs: dict[str, str] = Field(default_factory=dict)
    images: list[str] = Field(default_factory=list)
    listing_status: ListingStatus = ListingStatus.NEEDS_IMAGES
    bulk_upload_id: Optional[str] = None
