import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field

from photobazaar.schemas.common import CamelModel, Pagination
from photobazaar.schemas.user import UserSummary

PaymentMethod = Literal["credit_card", "paypal", "stripe"]


class PhotoPurchaseRequest(CamelModel):
    """Body of POST /api/photos/{id}/purchase."""

    payment_method: PaymentMethod = Field(default="credit_card")


class PurchaseCreate(CamelModel):
    """Body of POST /api/purchases."""

    photo_id: uuid.UUID
    payment_method: PaymentMethod = Field(default="credit_card")


class PaymentCallback(CamelModel):
    """Payment provider notification. Signed with X-Payment-Signature."""

    status: Literal["completed", "failed"]
    transaction_id: str = Field(min_length=1, max_length=64)
    reason: Optional[str] = Field(default=None, max_length=500)


class PurchasedPhoto(CamelModel):
    id: uuid.UUID
    title: str
    thumbnail_url: Optional[str] = None
    image_url: str
    photographer: UserSummary


class PurchaseResponse(CamelModel):
    id: uuid.UUID
    photo_id: uuid.UUID
    buyer_id: uuid.UUID
    photographer_id: uuid.UUID
    amount: Decimal
    commission: Decimal
    photographer_earning: Decimal
    status: str
    payment_method: str
    transaction_id: str
    download_url: Optional[str] = None
    download_expires_at: Optional[datetime] = None
    download_count: int
    max_downloads: int
    downloads_remaining: int
    purchased_at: datetime
    completed_at: Optional[datetime] = None
    photo: Optional[PurchasedPhoto] = None
    buyer: Optional[UserSummary] = None


class PurchasePage(CamelModel):
    purchases: List[PurchaseResponse]
    pagination: Pagination


class SalesSummary(CamelModel):
    total_sales: int
    total_earnings: Decimal


class SalesPage(CamelModel):
    sales: List[PurchaseResponse]
    pagination: Pagination
    summary: SalesSummary


class DownloadGrant(CamelModel):
    """Returned after a download is counted; `download_url` is short-lived."""

    purchase_id: uuid.UUID
    photo_id: uuid.UUID
    download_url: str
    url_expires_at: datetime
    filename: str
    download_count: int
    max_downloads: int
    downloads_remaining: int
