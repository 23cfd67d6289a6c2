import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from photobazaar.schemas.common import CamelModel

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class CategoryCreate(CamelModel):
    name: str = Field(min_length=2, max_length=50)
    slug: Optional[str] = Field(default=None, max_length=60, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=2000)


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    slug: Optional[str] = Field(default=None, max_length=60, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=2000)
    is_active: Optional[bool] = None


class CategorySummary(CamelModel):
    id: uuid.UUID
    name: str
    slug: str


class CategoryResponse(CamelModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    photo_count: Optional[int] = Field(
        default=None, description="Active photos in the category (only with includeCount)"
    )
