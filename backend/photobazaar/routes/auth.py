"""
PhotoBazaar Backend: Auth Routes
=================================

Accounts and sessions. Tokens are stateless JWTs, so logout only tells the
client to discard its token.

    POST /api/auth/register               create account, returns {user, token}
    POST /api/auth/login                  returns {user, token}
    GET  /api/auth/verify                 validate the Bearer token
    GET  /api/auth/profile                the caller's account
    PUT  /api/auth/profile                multipart edit, optional profileImage
    POST /api/auth/logout
    POST /api/auth/send-verification      email a 4-digit code
    POST /api/auth/verify-and-register    exchange the code for an account
    POST /api/auth/resend-verification    fresh code for a pending signup
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.database import get_db_session
from photobazaar.models.user import User
from photobazaar.schemas.common import ApiResponse, ErrorResponse
from photobazaar.schemas.user import (
    AuthPayload,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    UserResponse,
    VerificationSent,
    VerifyRegistrationRequest,
)
from photobazaar.security.dependencies import get_current_user
from photobazaar.services.email_base import EmailSender
from photobazaar.services.email_service import get_email_sender
from photobazaar.services.file_service import file_service
from photobazaar.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=ApiResponse[AuthPayload],
    responses={
        400: {"description": "Invalid registration data", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Register a new account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await user_service.register(db, body)
    return ApiResponse(message="User registered successfully", data=payload)


@router.post(
    "/login",
    response_model=ApiResponse[AuthPayload],
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Log in with email and password",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await user_service.login(db, body.email, body.password)
    return ApiResponse(message="Login successful", data=payload)


@router.get(
    "/verify",
    response_model=ApiResponse[UserResponse],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="Check that the Bearer token is valid",
)
async def verify_token(user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(message="Token is valid", data=UserResponse.model_validate(user))


@router.get(
    "/profile",
    response_model=ApiResponse[UserResponse],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="Get the caller's profile",
)
async def get_profile(user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(user))


@router.put(
    "/profile",
    response_model=ApiResponse[UserResponse],
    responses={
        400: {"description": "Invalid field or image", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
    },
    summary="Update the caller's profile",
    description="Multipart form. Send only the fields to change; profileImage replaces the avatar.",
)
async def update_profile(
    first_name: Optional[str] = Form(default=None, alias="firstName"),
    last_name: Optional[str] = Form(default=None, alias="lastName"),
    bio: Optional[str] = Form(default=None),
    profile_image: Optional[UploadFile] = File(default=None, alias="profileImage"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserResponse]:
    avatar_url = None
    previous_avatar = user.profile_image
    if profile_image is not None and profile_image.filename:
        try:
            content = await profile_image.read()
            avatar_url = await file_service.store_avatar(
                profile_image.filename, content, profile_image.size
            )
        finally:
            await profile_image.close()

    try:
        updated = await user_service.update_profile(
            db,
            user,
            first_name=first_name,
            last_name=last_name,
            bio=bio,
            profile_image=avatar_url,
        )
    except Exception:
        if avatar_url:
            await file_service.remove_public_url(avatar_url)
        raise

    if avatar_url and previous_avatar:
        await file_service.remove_public_url(previous_avatar)
    return ApiResponse(message="Profile updated successfully", data=UserResponse.model_validate(updated))


@router.post(
    "/logout",
    response_model=ApiResponse[None],
    summary="Log out",
)
async def logout(user: User = Depends(get_current_user)) -> ApiResponse[None]:
    logger.info("User logged out: %s", user.id)
    return ApiResponse(message="Logged out successfully")


@router.post(
    "/send-verification",
    response_model=ApiResponse[VerificationSent],
    responses={
        409: {"description": "Email already registered", "model": ErrorResponse},
        503: {"description": "Email could not be delivered", "model": ErrorResponse},
    },
    summary="Start an email-verified registration",
)
async def send_verification(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
    sender: EmailSender = Depends(get_email_sender),
) -> ApiResponse[VerificationSent]:
    sent = await user_service.send_verification(db, body, sender)
    return ApiResponse(message="Verification code sent", data=sent)


@router.post(
    "/verify-and-register",
    status_code=201,
    response_model=ApiResponse[AuthPayload],
    responses={
        400: {"description": "Invalid or expired code", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Complete registration with the emailed code",
)
async def verify_and_register(
    body: VerifyRegistrationRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    payload = await user_service.verify_and_register(db, body.email, body.code)
    return ApiResponse(message="Email verified and account created", data=payload)


@router.post(
    "/resend-verification",
    response_model=ApiResponse[VerificationSent],
    responses={
        404: {"description": "No pending registration", "model": ErrorResponse},
        503: {"description": "Email could not be delivered", "model": ErrorResponse},
    },
    summary="Send a fresh verification code",
)
async def resend_verification(
    body: ResendVerificationRequest,
    db: AsyncSession = Depends(get_db_session),
    sender: EmailSender = Depends(get_email_sender),
) -> ApiResponse[VerificationSent]:
    sent = await user_service.resend_verification(db, body.email, sender)
    return ApiResponse(message="Verification code resent", data=sent)
