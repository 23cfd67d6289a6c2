"""
PhotoBazaar Backend: Photo Routes
==================================

Marketplace browsing, photographer uploads, and the buyer actions on a
single photo.

    GET    /api/photos                      filtered marketplace listing
    GET    /api/photos/my-photos            caller's uploads with totals
    GET    /api/photos/liked                photos the caller liked
    GET    /api/photos/purchased            photos the caller bought
    GET    /api/photos/{id}                 detail; counts a unique view
    POST   /api/photos                      multipart upload (photographers)
    PUT    /api/photos/{id}                 owner edit
    DELETE /api/photos/{id}                 owner soft delete
    POST   /api/photos/{id}/like            toggle
    POST   /api/photos/{id}/purchase        buy
    POST   /api/photos/{id}/download        counted download grant
    GET    /api/photos/{id}/purchase-status

The fixed paths are declared before /{photo_id} so they are not parsed as ids.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.exceptions import ValidationError
from photobazaar.models.user import User
from photobazaar.schemas.common import ApiResponse, ErrorResponse
from photobazaar.schemas.photo import (
    LikeResult,
    MyPhotosPage,
    PhotoFilters,
    PhotoPage,
    PhotoResponse,
    PhotoUpdate,
    PurchaseStatus,
)
from photobazaar.schemas.purchase import DownloadGrant, PhotoPurchaseRequest, PurchaseResponse
from photobazaar.security.dependencies import get_current_user, get_optional_user
from photobazaar.services.category_service import parse_uuid
from photobazaar.services.engagement_service import engagement_service
from photobazaar.services.photo_query import photo_query
from photobazaar.services.photo_service import photo_service
from photobazaar.services.purchase_service import purchase_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/photos", tags=["Photos"])


# ── Collections ───────────────────────────────────────────────────────────


@router.get(
    "",
    response_model=ApiResponse[PhotoPage],
    responses={400: {"description": "Invalid filter", "model": ErrorResponse}},
    summary="Browse the marketplace",
    description=(
        "Active photos only. `search` matches title, description and tags "
        "case-insensitively. `category` accepts an id, a slug or 'all'. "
        "sortBy: newest | oldest | popular | price-low | price-high | views."
    ),
)
async def list_photos(
    search: Optional[str] = Query(default=None, max_length=200),
    category: Optional[str] = Query(default=None),
    price_min: Optional[Decimal] = Query(default=None, alias="priceMin", ge=0),
    price_max: Optional[Decimal] = Query(default=None, alias="priceMax", ge=0),
    photographer: Optional[UUID] = Query(default=None),
    featured: Optional[bool] = Query(default=None),
    sort_by: str = Query(default="newest", alias="sortBy"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoPage]:
    filters = PhotoFilters(
        search=search,
        category=category,
        price_min=price_min,
        price_max=price_max,
        photographer=photographer,
        featured=featured,
        sort_by=sort_by,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=await photo_query.list_photos(db, filters, viewer))


@router.get(
    "/my-photos",
    response_model=ApiResponse[MyPhotosPage],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="The caller's uploaded photos with totals",
)
async def my_photos(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MyPhotosPage]:
    return ApiResponse(data=await photo_service.list_my_photos(db, user, page, limit))


@router.get(
    "/liked",
    response_model=ApiResponse[PhotoPage],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="Photos the caller liked, most recent first",
)
async def liked_photos(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoPage]:
    return ApiResponse(data=await photo_service.list_liked(db, user, page, limit))


@router.get(
    "/purchased",
    response_model=ApiResponse[PhotoPage],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="Photos the caller bought",
)
async def purchased_photos(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoPage]:
    return ApiResponse(data=await photo_service.list_purchased(db, user, page, limit))


# ── Single Photo ──────────────────────────────────────────────────────────


@router.get(
    "/{photo_id}",
    response_model=ApiResponse[PhotoResponse],
    responses={404: {"description": "Photo not found", "model": ErrorResponse}},
    summary="Photo detail",
    description="Counts one view per user, or per IP for anonymous callers. Owners are not counted.",
)
async def get_photo(
    photo_id: UUID,
    request: Request,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoResponse]:
    photo = await photo_service.get_photo_detail(
        db,
        photo_id,
        viewer,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return ApiResponse(data=photo)


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[PhotoResponse],
    responses={
        400: {"description": "Invalid image or field", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        403: {"description": "Not a photographer", "model": ErrorResponse},
    },
    summary="Upload a photo for sale",
    description=(
        "Multipart form. `photo` is a JPEG, PNG or WEBP image. `tags` is a "
        "comma-separated list. The original is kept private; the listing "
        "shows a resized display copy and a thumbnail."
    ),
)
async def upload_photo(
    photo: UploadFile = File(..., description="JPEG, PNG or WEBP image"),
    title: str = Form(...),
    price: str = Form(...),
    description: Optional[str] = Form(default=None),
    category_id: Optional[str] = Form(default=None, alias="categoryId"),
    tags: Optional[str] = Form(default=None, description="Comma-separated"),
    is_exclusive: bool = Form(default=False, alias="isExclusive"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoResponse]:
    category_uuid = None
    if category_id:
        category_uuid = parse_uuid(category_id)
        if category_uuid is None:
            raise ValidationError(message="categoryId must be a UUID", field="categoryId")

    try:
        content = await photo.read()
        logger.info(
            "Received upload: filename=%s, size=%d bytes",
            photo.filename or "unknown",
            len(content),
        )
        created = await photo_service.upload_photo(
            db,
            user,
            filename=photo.filename,
            content=content,
            title=title,
            price=price,
            description=description,
            category_id=category_uuid,
            tags=tags,
            is_exclusive=is_exclusive,
            content_length=photo.size,
        )
    finally:
        await photo.close()
    return ApiResponse(message="Photo uploaded successfully", data=created)


@router.put(
    "/{photo_id}",
    response_model=ApiResponse[PhotoResponse],
    responses={
        403: {"description": "Not the owner", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
    },
    summary="Edit a photo",
)
async def update_photo(
    photo_id: UUID,
    body: PhotoUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoResponse]:
    photo = await photo_service.update_photo(db, user, photo_id, body)
    return ApiResponse(message="Photo updated successfully", data=photo)


@router.delete(
    "/{photo_id}",
    response_model=ApiResponse[None],
    responses={
        403: {"description": "Not the owner", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
    },
    summary="Remove a photo from the marketplace",
)
async def delete_photo(
    photo_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await photo_service.delete_photo(db, user, photo_id)
    return ApiResponse(message="Photo deleted successfully")


# ── Buyer Actions ─────────────────────────────────────────────────────────


@router.post(
    "/{photo_id}/like",
    response_model=ApiResponse[LikeResult],
    responses={
        400: {"description": "Own photo", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
    },
    summary="Like or unlike a photo",
)
async def toggle_like(
    photo_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[LikeResult]:
    result = await engagement_service.toggle_like(db, user, photo_id)
    return ApiResponse(message="Photo liked" if result.is_liked else "Photo unliked", data=result)


@router.post(
    "/{photo_id}/purchase",
    status_code=201,
    response_model=ApiResponse[PurchaseResponse],
    responses={
        400: {"description": "Own photo", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
        409: {"description": "Already purchased or sold out", "model": ErrorResponse},
    },
    summary="Buy a photo",
)
async def purchase_photo(
    photo_id: UUID,
    body: Optional[PhotoPurchaseRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PurchaseResponse]:
    payment_method = body.payment_method if body else "credit_card"
    purchase = await purchase_service.create_purchase(db, user, photo_id, payment_method)
    return ApiResponse(
        message=f"Purchase {purchase.status}",
        data=PurchaseResponse.model_validate(purchase),
    )


@router.post(
    "/{photo_id}/download",
    response_model=ApiResponse[DownloadGrant],
    responses={
        403: {"description": "Not purchased, limit reached or expired", "model": ErrorResponse},
    },
    summary="Count a download and get a short-lived file URL",
)
async def download_photo(
    photo_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[DownloadGrant]:
    grant = await purchase_service.grant_download(db, user, photo_id=photo_id)
    return ApiResponse(message="Download ready", data=grant)


@router.get(
    "/{photo_id}/purchase-status",
    response_model=ApiResponse[PurchaseStatus],
    responses={404: {"description": "Photo not found", "model": ErrorResponse}},
    summary="Whether the caller owns, bought or may download a photo",
)
async def purchase_status(
    photo_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PurchaseStatus]:
    return ApiResponse(data=await purchase_service.get_purchase_status(db, user, photo_id))
