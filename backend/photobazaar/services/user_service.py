"""
PhotoBazaar Backend: Account Service
=====================================

What:  Registration (direct and email-verified), login, profile edits,
       public profiles, featured photographers and the owner dashboard.
How:   Stateless service; every method receives the request's AsyncSession
       and leaves commit/rollback to the session dependency.

Email-verified registration:
    send-verification      store pending row (bcrypt hash, 4-digit code,
                           expiry) → email the code
    verify-and-register    match email+code, unused, unexpired → create a
                           verified user, mark the row used
                           (a wrong code counts; the row is retired after
                           verification_max_attempts misses)
    resend-verification    retire the pending row → issue a fresh code
"""

import hmac
import logging
import uuid
from datetime import timedelta
from typing import List, NoReturn, Optional, Tuple

from sqlalchemy import and_, case, desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.config import settings
from photobazaar.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from photobazaar.models.email_verification import EmailVerification
from photobazaar.models.photo import Photo
from photobazaar.models.purchase import STATUS_COMPLETED, Purchase
from photobazaar.models.user import ROLE_PHOTOGRAPHER, User
from photobazaar.schemas.user import (
    AuthPayload,
    DashboardResponse,
    DashboardSale,
    DashboardStats,
    DashboardTopPhoto,
    FeaturedPhotographer,
    PublicProfile,
    PublicProfileStats,
    RegisterRequest,
    UserResponse,
    UserSummary,
    VerificationSent,
)
from photobazaar.security.passwords import hash_password, verify_password
from photobazaar.security.policy import Action, authorize
from photobazaar.security.tokens import create_access_token
from photobazaar.services.email_base import EmailSender
from photobazaar.utils import generate_verification_code, utcnow

logger = logging.getLogger(__name__)


class UserService:
    # ── Registration & Login ──────────────────────────────────────────────

    async def _ensure_email_free(self, db: AsyncSession, email: str) -> None:
        existing = await db.scalar(select(User.id).where(User.email == email))
        if existing is not None:
            raise ConflictError(
                message="An account with this email already exists",
                context={"field": "email"},
            )

    async def _insert_user(self, db: AsyncSession, user: User) -> User:
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError(
                message="An account with this email already exists",
                context={"field": "email"},
            )
        return user

    def _auth_payload(self, user: User) -> AuthPayload:
        return AuthPayload(
            user=UserResponse.model_validate(user),
            token=create_access_token(user.id, user.role),
        )

    async def register(self, db: AsyncSession, data: RegisterRequest) -> AuthPayload:
        """Create an account immediately, without email verification."""
        await self._ensure_email_free(db, data.email)
        user = await self._insert_user(
            db,
            User(
                first_name=data.first_name,
                last_name=data.last_name,
                email=data.email,
                password_hash=hash_password(data.password),
                role=data.role,
                is_verified=False,
            ),
        )
        logger.info("User registered: %s (role=%s)", user.id, user.role)
        return self._auth_payload(user)

    async def login(self, db: AsyncSession, email: str, password: str) -> AuthPayload:
        user = await db.scalar(select(User).where(User.email == email))
        # Same message for unknown email and wrong password
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError("Invalid email or password")

        user.last_login_at = utcnow()
        await db.flush()
        logger.info("User logged in: %s", user.id)
        return self._auth_payload(user)

    # ── Email Verification ────────────────────────────────────────────────

    async def _retire_pending(self, db: AsyncSession, email: str) -> None:
        await db.execute(
            update(EmailVerification)
            .where(EmailVerification.email == email, EmailVerification.is_used.is_(False))
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )

    async def _issue_code(
        self,
        db: AsyncSession,
        sender: EmailSender,
        email: str,
        first_name: str,
        last_name: str,
        password_hash: str,
        role: str,
    ) -> VerificationSent:
        ttl = settings.verification_code_ttl_minutes
        verification = EmailVerification(
            email=email,
            code=generate_verification_code(),
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
            role=role,
            expires_at=utcnow() + timedelta(minutes=ttl),
        )
        db.add(verification)
        await db.flush()

        # A delivery failure raises and rolls the pending row back with it
        await sender.send_verification_code(email, first_name, verification.code, ttl)
        logger.info("Verification code issued for %s", email)
        return VerificationSent(email=email, expires_in_minutes=ttl)

    async def send_verification(
        self, db: AsyncSession, data: RegisterRequest, sender: EmailSender
    ) -> VerificationSent:
        await self._ensure_email_free(db, data.email)
        await self._retire_pending(db, data.email)
        return await self._issue_code(
            db,
            sender,
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            password_hash=hash_password(data.password),
            role=data.role,
        )

    async def _record_failed_attempt(self, db: AsyncSession, verification: EmailVerification) -> NoReturn:
        """Count a wrong code, retire the row at the cap, and raise."""
        max_attempts = settings.verification_max_attempts
        attempts = EmailVerification.failed_attempts + 1
        await db.execute(
            update(EmailVerification)
            .where(EmailVerification.id == verification.id)
            .values(
                failed_attempts=attempts,
                is_used=case((attempts >= max_attempts, True), else_=EmailVerification.is_used),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(verification, ["failed_attempts", "is_used"])
        # The request session rolls back on error; the count must survive it
        await db.commit()

        remaining = max(max_attempts - verification.failed_attempts, 0)
        logger.warning(
            "Wrong verification code for %s (%d attempts left)",
            verification.email,
            remaining,
        )
        raise ValidationError(
            message="Invalid or expired verification code",
            field="code",
            context={"attempts_remaining": remaining},
        )

    async def verify_and_register(self, db: AsyncSession, email: str, code: str) -> AuthPayload:
        """
        Confirm an emailed code and create the verified account.

        Each wrong code counts against the pending row; after
        `verification_max_attempts` misses the row is retired and the caller
        must request a new code.

        Raises:
            ValidationError: no live pending row, or the code does not match
            ConflictError: the email was registered in the meantime
        """
        verification = await db.scalar(
            select(EmailVerification)
            .where(
                EmailVerification.email == email,
                EmailVerification.is_used.is_(False),
                EmailVerification.expires_at > utcnow(),
            )
            .order_by(desc(EmailVerification.created_at))
            .limit(1)
        )
        if verification is None:
            raise ValidationError(
                message="Invalid or expired verification code",
                field="code",
            )
        if not hmac.compare_digest(verification.code.encode(), code.encode()):
            await self._record_failed_attempt(db, verification)

        await self._ensure_email_free(db, email)
        verification.is_used = True
        user = await self._insert_user(
            db,
            User(
                first_name=verification.first_name,
                last_name=verification.last_name,
                email=email,
                password_hash=verification.password_hash,
                role=verification.role,
                is_verified=True,
            ),
        )
        logger.info("User registered via email verification: %s", user.id)
        return self._auth_payload(user)

    async def resend_verification(
        self, db: AsyncSession, email: str, sender: EmailSender
    ) -> VerificationSent:
        pending = await db.scalar(
            select(EmailVerification)
            .where(EmailVerification.email == email, EmailVerification.is_used.is_(False))
            .order_by(desc(EmailVerification.created_at))
            .limit(1)
        )
        if pending is None:
            raise NotFoundError(resource="pending registration", context={"email": email})

        await self._ensure_email_free(db, email)
        await self._retire_pending(db, email)
        return await self._issue_code(
            db,
            sender,
            email=email,
            first_name=pending.first_name,
            last_name=pending.last_name,
            password_hash=pending.password_hash,
            role=pending.role,
        )

    # ── Profiles ──────────────────────────────────────────────────────────

    async def update_profile(
        self,
        db: AsyncSession,
        user: User,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        bio: Optional[str] = None,
        profile_image: Optional[str] = None,
    ) -> User:
        for field, value in (("first_name", first_name), ("last_name", last_name)):
            if value is None:
                continue
            value = value.strip()
            if not 2 <= len(value) <= 50:
                raise ValidationError(
                    message=f"{field.replace('_', ' ').capitalize()} must be 2 to 50 characters",
                    field=field,
                )
            setattr(user, field, value)
        if bio is not None:
            if len(bio) > 1000:
                raise ValidationError(message="Bio must be at most 1000 characters", field="bio")
            user.bio = bio.strip() or None
        if profile_image is not None:
            user.profile_image = profile_image

        await db.flush()
        await db.refresh(user)
        logger.info("Profile updated: %s", user.id)
        return user

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=str(user_id))
        return user

    async def _photo_totals(self, db: AsyncSession, user_id: uuid.UUID) -> Tuple[int, int, int, int]:
        row = (
            await db.execute(
                select(
                    func.count(Photo.id),
                    func.coalesce(func.sum(Photo.views), 0),
                    func.coalesce(func.sum(Photo.downloads), 0),
                    func.coalesce(func.sum(Photo.likes_count), 0),
                ).where(Photo.photographer_id == user_id, Photo.is_active.is_(True))
            )
        ).one()
        return int(row[0]), int(row[1]), int(row[2]), int(row[3])

    async def get_public_profile(self, db: AsyncSession, user_id: uuid.UUID) -> PublicProfile:
        user = await self.get_user(db, user_id)
        photos, views, downloads, _ = await self._photo_totals(db, user.id)
        return PublicProfile(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            bio=user.bio,
            profile_image=user.profile_image,
            created_at=user.created_at,
            stats=PublicProfileStats(
                total_photos=photos,
                total_downloads=downloads,
                total_views=views,
            ),
        )

    async def list_featured_photographers(
        self, db: AsyncSession, limit: int = 8
    ) -> List[FeaturedPhotographer]:
        photo_counts = (
            select(Photo.photographer_id, func.count(Photo.id).label("photo_count"))
            .where(Photo.is_active.is_(True))
            .group_by(Photo.photographer_id)
            .subquery()
        )
        rows = await db.execute(
            select(User, func.coalesce(photo_counts.c.photo_count, 0))
            .outerjoin(photo_counts, photo_counts.c.photographer_id == User.id)
            .where(User.role == ROLE_PHOTOGRAPHER)
            .order_by(desc(User.total_earnings), desc(User.total_sales), User.created_at)
            .limit(limit)
        )
        return [
            FeaturedPhotographer(
                id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                bio=user.bio,
                profile_image=user.profile_image,
                total_sales=user.total_sales,
                total_earnings=user.total_earnings,
                photo_count=int(count),
            )
            for user, count in rows.all()
        ]

    async def get_dashboard(
        self, db: AsyncSession, actor: User, user_id: uuid.UUID
    ) -> DashboardResponse:
        target = await self.get_user(db, user_id)
        authorize(actor, Action.VIEW_DASHBOARD, target)

        photos, views, downloads, likes = await self._photo_totals(db, target.id)
        purchases_made = await db.scalar(
            select(func.count(Purchase.id)).where(
                Purchase.buyer_id == target.id, Purchase.status == STATUS_COMPLETED
            )
        )

        recent = await db.scalars(
            select(Purchase)
            .where(
                and_(
                    Purchase.photographer_id == target.id,
                    Purchase.status == STATUS_COMPLETED,
                )
            )
            .order_by(desc(Purchase.completed_at))
            .limit(5)
        )
        top = await db.scalars(
            select(Photo)
            .where(Photo.photographer_id == target.id, Photo.is_active.is_(True))
            .order_by(desc(Photo.downloads), desc(Photo.likes_count), desc(Photo.views))
            .limit(5)
        )

        return DashboardResponse(
            stats=DashboardStats(
                total_photos=photos,
                total_views=views,
                total_downloads=downloads,
                total_likes=likes,
                total_sales=target.total_sales,
                total_earnings=target.total_earnings,
                total_purchases=purchases_made or 0,
            ),
            recent_sales=[
                DashboardSale(
                    id=sale.id,
                    photo_id=sale.photo_id,
                    photo_title=sale.photo.title,
                    buyer=UserSummary.model_validate(sale.buyer),
                    amount=sale.amount,
                    photographer_earning=sale.photographer_earning,
                    completed_at=sale.completed_at,
                )
                for sale in recent.all()
            ],
            top_photos=[DashboardTopPhoto.model_validate(photo) for photo in top.all()],
        )


user_service = UserService()
