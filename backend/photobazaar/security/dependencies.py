"""
FastAPI dependencies that resolve the calling user from a Bearer token.

    get_current_user   401 unless a valid token for an existing user is sent
    get_optional_user  None for anonymous callers; a bad token is still a 401
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.exceptions import AuthenticationError
from photobazaar.models.user import User
from photobazaar.security.tokens import ACCESS, decode_token, token_subject

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def _resolve_user(db: AsyncSession, token: str) -> User:
    payload = decode_token(token, ACCESS)
    user = await db.get(User, token_subject(payload))
    if user is None:
        logger.info("Token for missing user %s rejected", payload.get("sub"))
        raise AuthenticationError("User no longer exists")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    return await _resolve_user(db, credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    if credentials is None or not credentials.credentials:
        return None
    return await _resolve_user(db, credentials.credentials)
