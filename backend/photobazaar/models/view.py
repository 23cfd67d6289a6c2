"""
Unique photo views.

A view is keyed by the signed-in user, or by client IP for anonymous
visitors. Two partial unique indexes make the insert itself the dedup check:

    uq_views_user_photo  (user_id, photo_id)     WHERE user_id IS NOT NULL
    uq_views_ip_photo    (ip_address, photo_id)  WHERE user_id IS NULL
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from photobazaar.database import Base
from photobazaar.models.types import UTCDateTime
from photobazaar.utils import utcnow


class View(Base):
    __tablename__ = "views"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    photo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("photos.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        Index(
            "uq_views_user_photo",
            "user_id",
            "photo_id",
            unique=True,
            postgresql_where=text("user_id IS NOT NULL"),
            sqlite_where=text("user_id IS NOT NULL"),
        ),
        Index(
            "uq_views_ip_photo",
            "ip_address",
            "photo_id",
            unique=True,
            postgresql_where=text("user_id IS NULL"),
            sqlite_where=text("user_id IS NULL"),
        ),
    )
