"""
PhotoBazaar Backend: Signed Tokens
===================================

What:  HS256 JWTs for two purposes, told apart by the "type" claim:

    access    Bearer token returned at login/registration.
              Claims: sub (user id), role, type, iat, exp
    download  Embedded in the short-lived URL handed out after a download
              has been counted. Claims: sub (buyer id), pid (purchase id),
              type, iat, exp

How:   PyJWT signs and verifies; any decoding failure becomes an
       AuthenticationError so routes never see jwt exceptions.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Tuple

import jwt

from photobazaar.config import settings
from photobazaar.exceptions import AuthenticationError
from photobazaar.utils import utcnow

ACCESS = "access"
DOWNLOAD = "download"


def _encode(claims: Dict[str, Any], lifetime: timedelta) -> Tuple[str, datetime]:
    issued = utcnow()
    expires = issued + lifetime
    payload = {**claims, "iat": issued, "exp": expires}
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires


def create_access_token(user_id: uuid.UUID, role: str) -> str:
    token, _ = _encode(
        {"sub": str(user_id), "role": role, "type": ACCESS},
        timedelta(minutes=settings.access_token_expire_minutes),
    )
    return token


def create_download_token(user_id: uuid.UUID, purchase_id: uuid.UUID) -> Tuple[str, datetime]:
    return _encode(
        {"sub": str(user_id), "pid": str(purchase_id), "type": DOWNLOAD},
        timedelta(minutes=settings.download_token_minutes),
    )


def decode_token(token: str, expected_type: str) -> Dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises:
        AuthenticationError: expired, tampered, or the wrong kind of token
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired. Please sign in again.")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid authentication token")

    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid authentication token")
    return payload


def token_subject(payload: Dict[str, Any], claim: str = "sub") -> uuid.UUID:
    try:
        return uuid.UUID(str(payload[claim]))
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid authentication token")
