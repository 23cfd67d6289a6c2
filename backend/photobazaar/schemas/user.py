"""
Request and response models for accounts, authentication and dashboards.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from photobazaar.schemas.common import CamelModel


def _normalize_email(value: str) -> str:
    return value.strip().lower()


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(CamelModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=255)
    role: Literal["user", "photographer"] = Field(default="user")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        stripped = v.strip()
        if len(stripped) < 2:
            raise ValueError("must be at least 2 characters")
        return stripped

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class VerifyRegistrationRequest(CamelModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{4}$", description="4-digit code from the email")

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class ResendVerificationRequest(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserSummary(CamelModel):
    """Public card embedded in photo and purchase payloads."""

    id: uuid.UUID
    first_name: str
    last_name: str
    profile_image: Optional[str] = None


class UserResponse(CamelModel):
    """
    The caller's own account. Never includes the password hash.
    """

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    role: str
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    is_verified: bool
    total_earnings: Decimal
    total_sales: int
    last_login_at: Optional[datetime] = None
    created_at: datetime


class AuthPayload(CamelModel):
    user: UserResponse
    token: str


class VerificationSent(CamelModel):
    email: str
    expires_in_minutes: int


class PublicProfileStats(CamelModel):
    total_photos: int
    total_downloads: int
    total_views: int


class PublicProfile(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    role: str
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: datetime
    stats: PublicProfileStats


class FeaturedPhotographer(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    total_sales: int
    total_earnings: Decimal
    photo_count: int


class DashboardStats(CamelModel):
    total_photos: int
    total_views: int
    total_downloads: int
    total_likes: int
    total_sales: int
    total_earnings: Decimal
    total_purchases: int


class DashboardSale(CamelModel):
    id: uuid.UUID
    photo_id: uuid.UUID
    photo_title: str
    buyer: UserSummary
    amount: Decimal
    photographer_earning: Decimal
    completed_at: Optional[datetime] = None


class DashboardTopPhoto(CamelModel):
    id: uuid.UUID
    title: str
    thumbnail_url: Optional[str] = None
    views: int
    downloads: int
    likes_count: int


class DashboardResponse(CamelModel):
    stats: DashboardStats
    recent_sales: List[DashboardSale]
    top_photos: List[DashboardTopPhoto]
