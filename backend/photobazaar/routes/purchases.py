"""
PhotoBazaar Backend: Purchase Routes
=====================================

    POST /api/purchases                       buy (body: photoId, paymentMethod)
    GET  /api/purchases                       caller's purchases (?status=)
    GET  /api/purchases/sales/mine            photographer's completed sales
    GET  /api/purchases/{id}                  buyer, photographer or admin
    POST /api/purchases/{id}/download         counted download grant
    POST /api/purchases/{id}/payment-callback payment provider webhook

The payment callback is not authenticated with a user token. It carries an
HMAC-SHA256 of the raw body in X-Payment-Signature instead.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.models.user import User
from photobazaar.schemas.common import ApiResponse, ErrorResponse
from photobazaar.schemas.purchase import (
    DownloadGrant,
    PurchaseCreate,
    PurchasePage,
    PurchaseResponse,
    SalesPage,
)
from photobazaar.security.dependencies import get_current_user
from photobazaar.services.purchase_service import SIGNATURE_HEADER, purchase_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/purchases", tags=["Purchases"])


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[PurchaseResponse],
    responses={
        400: {"description": "Own photo", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
        409: {"description": "Already purchased or sold out", "model": ErrorResponse},
    },
    summary="Buy a photo",
)
async def create_purchase(
    body: PurchaseCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PurchaseResponse]:
    purchase = await purchase_service.create_purchase(db, user, body.photo_id, body.payment_method)
    return ApiResponse(
        message=f"Purchase {purchase.status}",
        data=PurchaseResponse.model_validate(purchase),
    )


@router.get(
    "",
    response_model=ApiResponse[PurchasePage],
    responses={400: {"description": "Unknown status", "model": ErrorResponse}},
    summary="The caller's purchase history",
)
async def list_purchases(
    status: Optional[str] = Query(default=None, description="pending | completed | failed | refunded"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PurchasePage]:
    return ApiResponse(data=await purchase_service.list_purchases(db, user, status, page, limit))


@router.get(
    "/sales/mine",
    response_model=ApiResponse[SalesPage],
    responses={403: {"description": "Not a photographer", "model": ErrorResponse}},
    summary="Completed sales of the caller's photos",
)
async def my_sales(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[SalesPage]:
    return ApiResponse(data=await purchase_service.list_sales(db, user, page, limit))


@router.get(
    "/{purchase_id}",
    response_model=ApiResponse[PurchaseResponse],
    responses={
        403: {"description": "Not a party to the purchase", "model": ErrorResponse},
        404: {"description": "Purchase not found", "model": ErrorResponse},
    },
    summary="Get one purchase",
)
async def get_purchase(
    purchase_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PurchaseResponse]:
    purchase = await purchase_service.get_purchase(db, user, purchase_id)
    return ApiResponse(data=PurchaseResponse.model_validate(purchase))


@router.post(
    "/{purchase_id}/download",
    response_model=ApiResponse[DownloadGrant],
    responses={
        403: {"description": "Not completed, limit reached or expired", "model": ErrorResponse},
        404: {"description": "Purchase not found", "model": ErrorResponse},
    },
    summary="Count a download and get a short-lived file URL",
)
async def download_purchase(
    purchase_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[DownloadGrant]:
    grant = await purchase_service.grant_download(db, user, purchase_id=purchase_id)
    return ApiResponse(message="Download ready", data=grant)


@router.post(
    "/{purchase_id}/payment-callback",
    response_model=ApiResponse[PurchaseResponse],
    responses={
        400: {"description": "Malformed body or transaction mismatch", "model": ErrorResponse},
        401: {"description": "Missing or invalid signature", "model": ErrorResponse},
        404: {"description": "Purchase not found", "model": ErrorResponse},
    },
    summary="Payment provider notification",
    description=(
        'Body: {"status": "completed" | "failed", "transactionId": "..."}. '
        f"{SIGNATURE_HEADER} is the hex HMAC-SHA256 of the raw body. "
        "Repeating a callback that was already applied changes nothing."
    ),
)
async def payment_callback(
    purchase_id: UUID,
    request: Request,
    signature: Optional[str] = Header(default=None, alias=SIGNATURE_HEADER),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PurchaseResponse]:
    body = await request.body()
    purchase = await purchase_service.handle_payment_callback(db, purchase_id, body, signature)
    return ApiResponse(
        message=f"Purchase {purchase.status}",
        data=PurchaseResponse.model_validate(purchase),
    )
