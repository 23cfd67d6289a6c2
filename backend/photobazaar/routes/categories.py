"""
PhotoBazaar Backend: Category Routes
=====================================

    GET    /api/categories              list (?includeCount=true adds counts)
    GET    /api/categories/{idOrSlug}   category plus a page of its photos
    POST   /api/categories              admin
    PUT    /api/categories/{id}         admin
    DELETE /api/categories/{id}         admin; refused while photos remain
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.models.user import User
from photobazaar.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from photobazaar.schemas.common import ApiResponse, ErrorResponse
from photobazaar.schemas.photo import CategoryDetail
from photobazaar.security.dependencies import get_current_user, get_optional_user
from photobazaar.services.category_service import category_service
from photobazaar.services.photo_service import photo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.get(
    "",
    response_model=ApiResponse[List[CategoryResponse]],
    summary="List categories",
)
async def list_categories(
    include_count: bool = Query(default=False, alias="includeCount"),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[CategoryResponse]]:
    categories = await category_service.list_categories(
        db,
        include_count=include_count,
        include_inactive=bool(viewer and viewer.is_admin),
    )
    return ApiResponse(data=categories)


@router.get(
    "/{ref}",
    response_model=ApiResponse[CategoryDetail],
    responses={404: {"description": "Category not found", "model": ErrorResponse}},
    summary="Get a category by id or slug with a page of its photos",
)
async def get_category(
    ref: str,
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CategoryDetail]:
    detail = await photo_service.get_category_detail(db, ref, viewer, sort_by, page, limit)
    return ApiResponse(data=detail)


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[CategoryResponse],
    responses={
        403: {"description": "Admin only", "model": ErrorResponse},
        409: {"description": "Name or slug taken", "model": ErrorResponse},
    },
    summary="Create a category",
)
async def create_category(
    body: CategoryCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CategoryResponse]:
    category = await category_service.create_category(db, user, body)
    return ApiResponse(
        message="Category created successfully",
        data=CategoryResponse.model_validate(category),
    )


@router.put(
    "/{category_id}",
    response_model=ApiResponse[CategoryResponse],
    responses={
        403: {"description": "Admin only", "model": ErrorResponse},
        404: {"description": "Category not found", "model": ErrorResponse},
        409: {"description": "Name or slug taken", "model": ErrorResponse},
    },
    summary="Update a category",
)
async def update_category(
    category_id: UUID,
    body: CategoryUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CategoryResponse]:
    category = await category_service.update_category(db, user, category_id, body)
    return ApiResponse(
        message="Category updated successfully",
        data=CategoryResponse.model_validate(category),
    )


@router.delete(
    "/{category_id}",
    response_model=ApiResponse[None],
    responses={
        403: {"description": "Admin only", "model": ErrorResponse},
        404: {"description": "Category not found", "model": ErrorResponse},
        409: {"description": "Category still has photos", "model": ErrorResponse},
    },
    summary="Delete a category",
)
async def delete_category(
    category_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await category_service.delete_category(db, user, category_id)
    return ApiResponse(message="Category deleted successfully")
