"""
Photo listings.

Table notes:
    - image_url / thumbnail_url point at public display copies.
    - full_image_path is relative to the private originals directory and is
      only reachable through a purchase download grant.
    - views, downloads and likes_count are denormalized counters. They are
      changed with `SET col = col + 1` style UPDATEs, never read-modify-write.
    - tags_text mirrors tags for substring search. It is kept in sync by a
      validator whenever tags is assigned.
    - Deleting a photo flips is_active; rows are never removed so purchases
      keep their foreign key.

Indexes:
    (is_active, created_at) serves the default marketplace listing.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from photobazaar.database import Base
from photobazaar.models.category import Category
from photobazaar.models.types import UTCDateTime
from photobazaar.models.user import User
from photobazaar.utils import utcnow

TAG_SEPARATOR = "\n"


def normalize_tag(tag) -> str:
    """Lowercase with inner whitespace collapsed, so no tag holds the separator."""
    return " ".join(str(tag).split()).lower()


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    photographer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("categories.id"), nullable=True, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    # Lowercased tags joined by newlines; tag search runs LIKE over this
    tags_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    full_image_path: Mapped[str] = mapped_column(String(500), nullable=False)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    format: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_exclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Eager so that async code never triggers an implicit lazy load
    photographer: Mapped[User] = relationship(lazy="selectin")
    category: Mapped[Optional[Category]] = relationship(lazy="selectin")

    __table_args__ = (
        CheckConstraint("price >= 0.01 AND price <= 9999.99", name="ck_photos_price_range"),
        CheckConstraint("views >= 0", name="ck_photos_views_nonnegative"),
        CheckConstraint("downloads >= 0", name="ck_photos_downloads_nonnegative"),
        CheckConstraint("likes_count >= 0", name="ck_photos_likes_nonnegative"),
        Index("idx_photos_active_created", "is_active", "created_at"),
    )

    @validates("tags")
    def _sync_tags_text(self, key, value):
        self.tags_text = TAG_SEPARATOR.join(normalize_tag(tag) for tag in value or [])
        return value

    def __repr__(self) -> str:
        return f"<Photo(id={self.id}, title='{self.title[:30]}')>"
