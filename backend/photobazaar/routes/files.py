"""
PhotoBazaar Backend: File Routes
=================================

    GET /uploads/{path}            public display copies, thumbnails, avatars
    GET /api/downloads/{token}     purchased original, as an attachment

Public files need no credentials. A `token` query parameter is accepted for
clients that append one, and is rejected only if it is present and invalid.
Originals are reachable only through a download token issued by a counted
download; fetching the file itself does not count again.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.schemas.common import ErrorResponse
from photobazaar.security.tokens import ACCESS, decode_token
from photobazaar.services.file_service import PUBLIC_URL_PREFIX, file_service
from photobazaar.services.purchase_service import purchase_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])


@router.get(
    PUBLIC_URL_PREFIX + "/{file_path:path}",
    responses={
        200: {"description": "Image file"},
        401: {"description": "Invalid token", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Serve a public image",
)
async def serve_public_file(
    file_path: str,
    token: Optional[str] = Query(default=None),
) -> FileResponse:
    if token:
        decode_token(token, ACCESS)
    full_path = file_service.resolve_public(file_path)
    return FileResponse(
        path=str(full_path),
        media_type=file_service.media_type_for(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.get(
    "/api/downloads/{token}",
    responses={
        200: {"description": "Original image as an attachment"},
        401: {"description": "Invalid or expired link", "model": ErrorResponse},
        403: {"description": "Purchase no longer valid", "model": ErrorResponse},
    },
    summary="Download a purchased original",
)
async def download_original(
    token: str,
    db: AsyncSession = Depends(get_db_session),
) -> FileResponse:
    path, filename = await purchase_service.resolve_download(db, token)
    logger.info("Streaming original %s", filename)
    return FileResponse(
        path=str(path),
        media_type=file_service.media_type_for(path),
        filename=filename,
        headers={"Cache-Control": "private, no-store"},
    )
