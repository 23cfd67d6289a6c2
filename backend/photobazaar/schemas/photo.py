"""
Photo listing, detail and engagement payloads.

The private original's storage path is never part of any response model;
clients get at the original only through a download grant.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from photobazaar.schemas.category import CategoryResponse, CategorySummary
from photobazaar.schemas.common import CamelModel, Pagination
from photobazaar.schemas.user import UserSummary

SORT_OPTIONS = ("newest", "oldest", "popular", "price-low", "price-high", "views")


def clean_tags(raw) -> List[str]:
    """Accept a list or a comma-separated string; drop blanks and duplicates."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    tags: List[str] = []
    for item in items:
        tag = " ".join(str(item).split()).lower()
        if tag and tag not in tags:
            tags.append(tag[:50])
    return tags[:20]


class PhotoUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[Decimal] = Field(
        default=None, ge=Decimal("0.01"), le=Decimal("9999.99"), decimal_places=2
    )
    category_id: Optional[uuid.UUID] = None
    tags: Optional[List[str]] = None
    is_exclusive: Optional[bool] = None
    is_featured: Optional[bool] = Field(default=None, description="Admin only")

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        return None if v is None else clean_tags(v)


class PhotoFilters(CamelModel):
    """Marketplace query parameters after validation."""

    search: Optional[str] = Field(default=None, max_length=200)
    category: Optional[str] = Field(default=None, description="Category id, slug, or 'all'")
    price_min: Optional[Decimal] = Field(default=None, ge=0)
    price_max: Optional[Decimal] = Field(default=None, ge=0)
    photographer: Optional[uuid.UUID] = None
    featured: Optional[bool] = None
    sort_by: str = Field(default="newest")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1, le=100)


class PurchaseInfo(CamelModel):
    purchase_id: uuid.UUID
    status: str
    download_count: int
    max_downloads: int
    downloads_remaining: int
    download_expires_at: Optional[datetime] = None


class PhotoResponse(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    price: Decimal
    tags: List[str] = Field(default_factory=list)
    image_url: str
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None
    format: Optional[str] = None
    views: int
    downloads: int
    likes_count: int
    is_active: bool
    is_featured: bool
    is_exclusive: bool
    sold: bool
    created_at: datetime
    updated_at: datetime
    photographer: UserSummary
    category: Optional[CategorySummary] = None

    # Caller-relative annotations; false/null for anonymous callers
    is_liked: bool = False
    is_purchased: bool = False
    is_owner: bool = False
    purchase_info: Optional[PurchaseInfo] = None


class PhotoPage(CamelModel):
    photos: List[PhotoResponse]
    pagination: Pagination


class MyPhotosStats(CamelModel):
    total_photos: int
    total_views: int
    total_downloads: int
    total_likes: int


class MyPhotosPage(CamelModel):
    photos: List[PhotoResponse]
    pagination: Pagination
    stats: MyPhotosStats


class LikeResult(CamelModel):
    photo_id: uuid.UUID
    is_liked: bool
    likes_count: int


class PurchaseStatus(CamelModel):
    photo_id: uuid.UUID
    is_purchased: bool
    is_owner: bool
    can_download: bool
    purchase_info: Optional[PurchaseInfo] = None


class CategoryDetail(CamelModel):
    category: CategoryResponse
    photos: List[PhotoResponse]
    pagination: Pagination
