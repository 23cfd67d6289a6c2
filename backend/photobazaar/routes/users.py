"""
PhotoBazaar Backend: User Routes
=================================

    GET /api/users/featured          top photographers by earnings
    GET /api/users/{id}              public profile with photo totals
    GET /api/users/{id}/photos       a photographer's active photos
    GET /api/users/{id}/dashboard    self or admin
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.models.user import User
from photobazaar.schemas.common import ApiResponse, ErrorResponse
from photobazaar.schemas.photo import PhotoPage
from photobazaar.schemas.user import DashboardResponse, FeaturedPhotographer, PublicProfile
from photobazaar.security.dependencies import get_current_user, get_optional_user
from photobazaar.services.photo_service import photo_service
from photobazaar.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get(
    "/featured",
    response_model=ApiResponse[List[FeaturedPhotographer]],
    summary="Featured photographers",
)
async def featured_photographers(
    limit: int = Query(default=8, ge=1, le=50),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[FeaturedPhotographer]]:
    return ApiResponse(data=await user_service.list_featured_photographers(db, limit))


@router.get(
    "/{user_id}",
    response_model=ApiResponse[PublicProfile],
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Public profile",
)
async def get_user_profile(
    user_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PublicProfile]:
    return ApiResponse(data=await user_service.get_public_profile(db, user_id))


@router.get(
    "/{user_id}/photos",
    response_model=ApiResponse[PhotoPage],
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="A photographer's portfolio",
)
async def get_user_photos(
    user_id: UUID,
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PhotoPage]:
    photos = await photo_service.list_user_photos(db, user_id, viewer, sort_by, page, limit)
    return ApiResponse(data=photos)


@router.get(
    "/{user_id}/dashboard",
    response_model=ApiResponse[DashboardResponse],
    responses={
        403: {"description": "Not your dashboard", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
    },
    summary="Sales and engagement dashboard",
)
async def get_dashboard(
    user_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[DashboardResponse]:
    return ApiResponse(data=await user_service.get_dashboard(db, user, user_id))
