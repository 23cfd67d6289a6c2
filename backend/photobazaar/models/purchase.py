"""
Purchases: the record of a buyer's entitlement to one photo.

Lifecycle:
    pending ──► completed   (payment confirmed; downloads enabled)
        │
        └─────► failed      (payment declined, or an exclusive photo was
                             sold to someone else first)

    A failed purchase may be retried; the same row goes back to pending.
    `refunded` is reserved for manual operations.

Invariants enforced by the database:
    - one purchase per (buyer, photo)
    - download_count never exceeds max_downloads
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photobazaar.database import Base
from photobazaar.models.photo import Photo
from photobazaar.models.types import UTCDateTime
from photobazaar.models.user import User
from photobazaar.utils import utcnow

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_REFUNDED = "refunded"
STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED, STATUS_REFUNDED)

PAYMENT_METHODS = ("credit_card", "paypal", "stripe")


class Purchase(Base):
    __tablename__ = "purchases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    photo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("photos.id"), nullable=False, index=True
    )
    photographer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    photographer_earning: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_PENDING)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    download_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    download_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    purchased_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    photo: Mapped[Photo] = relationship(lazy="selectin")
    buyer: Mapped[User] = relationship(foreign_keys=[buyer_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("buyer_id", "photo_id", name="uq_purchases_buyer_photo"),
        CheckConstraint("download_count >= 0", name="ck_purchases_download_count_nonnegative"),
        CheckConstraint("download_count <= max_downloads", name="ck_purchases_download_cap"),
    )

    @property
    def downloads_remaining(self) -> int:
        return max(self.max_downloads - self.download_count, 0)

    def can_download(self, now: Optional[datetime] = None) -> bool:
        if self.status != STATUS_COMPLETED:
            return False
        if self.download_count >= self.max_downloads:
            return False
        expires = self.download_expires_at
        return expires is None or (now or utcnow()) < expires

    def __repr__(self) -> str:
        return f"<Purchase(id={self.id}, status='{self.status}')>"
