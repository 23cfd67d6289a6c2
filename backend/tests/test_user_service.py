"""
PhotoBazaar Backend: Account Service Tests
===========================================

What we test:
    ✅ direct registration and login; one account per email
    ✅ email-verified registration with a mocked EmailSender
    ✅ profile validation
    ✅ public profiles, featured photographers and dashboard access
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from conftest import TEST_PASSWORD
from photobazaar.config import settings
from photobazaar.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    EmailDeliveryError,
    NotFoundError,
    ValidationError,
)
from photobazaar.models.email_verification import EmailVerification
from photobazaar.models.user import ROLE_ADMIN, ROLE_PHOTOGRAPHER
from photobazaar.schemas.user import RegisterRequest
from photobazaar.security.tokens import ACCESS, decode_token
from photobazaar.services.purchase_service import purchase_service
from photobazaar.services.user_service import user_service
from photobazaar.utils import utcnow


def registration(email: str = "ada@example.com", role: str = "user") -> RegisterRequest:
    return RegisterRequest(
        first_name="Ada",
        last_name="Lovelace",
        email=email,
        password=TEST_PASSWORD,
        role=role,
    )


class TestRegisterAndLogin:
    @pytest.mark.asyncio
    async def test_register_returns_token(self, db_session):
        payload = await user_service.register(db_session, registration(role="photographer"))

        assert payload.user.email == "ada@example.com"
        assert payload.user.role == "photographer"
        assert payload.user.is_verified is False
        assert decode_token(payload.token, ACCESS)["sub"] == str(payload.user.id)

    @pytest.mark.asyncio
    async def test_duplicate_email(self, db_session):
        await user_service.register(db_session, registration())
        with pytest.raises(ConflictError):
            await user_service.register(db_session, registration("ADA@example.com"))

    def test_admin_role_not_self_assignable(self):
        with pytest.raises(ValueError):
            registration(role=ROLE_ADMIN)

    @pytest.mark.asyncio
    async def test_login(self, db_session):
        await user_service.register(db_session, registration())

        payload = await user_service.login(db_session, "ada@example.com", TEST_PASSWORD)
        assert payload.user.last_login_at is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email, password", [("ada@example.com", "wrong-pass"), ("nobody@example.com", TEST_PASSWORD)])
    async def test_login_failures_look_identical(self, db_session, email, password):
        await user_service.register(db_session, registration())

        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await user_service.login(db_session, email, password)


class TestEmailVerification:
    @pytest.mark.asyncio
    async def test_code_round_trip(self, db_session, email_sender):
        sent = await user_service.send_verification(db_session, registration(), email_sender)
        assert sent.email == "ada@example.com"

        email_sender.send_verification_code.assert_awaited_once()
        code = email_sender.send_verification_code.await_args.args[2]
        assert len(code) == 4 and code.isdigit()

        payload = await user_service.verify_and_register(db_session, "ada@example.com", code)
        assert payload.user.is_verified is True

        # A code works once
        with pytest.raises(ValidationError):
            await user_service.verify_and_register(db_session, "ada@example.com", code)

    @pytest.mark.asyncio
    async def test_wrong_code(self, db_session, email_sender):
        await user_service.send_verification(db_session, registration(), email_sender)
        code = email_sender.send_verification_code.await_args.args[2]
        wrong = f"{(int(code) + 1) % 10_000:04d}"

        with pytest.raises(ValidationError, match="verification code"):
            await user_service.verify_and_register(db_session, "ada@example.com", wrong)

    @pytest.mark.asyncio
    async def test_wrong_codes_retire_pending_row(self, db_session, email_sender):
        await user_service.send_verification(db_session, registration(), email_sender)
        code = email_sender.send_verification_code.await_args.args[2]
        wrong = f"{(int(code) + 1) % 10_000:04d}"
        max_attempts = settings.verification_max_attempts

        for attempt in range(1, max_attempts + 1):
            with pytest.raises(ValidationError) as exc_info:
                await user_service.verify_and_register(db_session, "ada@example.com", wrong)
            assert exc_info.value.context["attempts_remaining"] == max_attempts - attempt

        # The right code no longer works once the row is retired
        with pytest.raises(ValidationError):
            await user_service.verify_and_register(db_session, "ada@example.com", code)
        assert (await db_session.scalars(select(EmailVerification.is_used))).all() == [True]

    @pytest.mark.asyncio
    async def test_right_code_after_a_miss(self, db_session, email_sender):
        await user_service.send_verification(db_session, registration(), email_sender)
        code = email_sender.send_verification_code.await_args.args[2]
        wrong = f"{(int(code) + 1) % 10_000:04d}"

        with pytest.raises(ValidationError):
            await user_service.verify_and_register(db_session, "ada@example.com", wrong)

        payload = await user_service.verify_and_register(db_session, "ada@example.com", code)
        assert payload.user.is_verified is True
        attempts = await db_session.scalar(select(EmailVerification.failed_attempts))
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_expired_code(self, db_session, email_sender):
        await user_service.send_verification(db_session, registration(), email_sender)
        code = email_sender.send_verification_code.await_args.args[2]
        await db_session.execute(
            update(EmailVerification).values(expires_at=utcnow() - timedelta(seconds=1))
        )

        with pytest.raises(ValidationError):
            await user_service.verify_and_register(db_session, "ada@example.com", code)

    @pytest.mark.asyncio
    async def test_resend_retires_previous_code(self, db_session, email_sender):
        await user_service.send_verification(db_session, registration(), email_sender)
        await user_service.resend_verification(db_session, "ada@example.com", email_sender)

        used = (await db_session.scalars(select(EmailVerification.is_used))).all()
        assert sorted(used) == [False, True]
        assert email_sender.send_verification_code.await_count == 2

    @pytest.mark.asyncio
    async def test_resend_without_pending(self, db_session, email_sender):
        with pytest.raises(NotFoundError):
            await user_service.resend_verification(db_session, "ghost@example.com", email_sender)
        email_sender.send_verification_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_failure_propagates(self, db_session, email_sender):
        email_sender.send_verification_code.side_effect = EmailDeliveryError("SMTP down")

        with pytest.raises(EmailDeliveryError):
            await user_service.send_verification(db_session, registration(), email_sender)

    @pytest.mark.asyncio
    async def test_existing_account_cannot_request_code(self, db_session, email_sender):
        await user_service.register(db_session, registration())
        with pytest.raises(ConflictError):
            await user_service.send_verification(db_session, registration(), email_sender)


class TestProfiles:
    @pytest.mark.asyncio
    async def test_update_profile(self, db_session, make_user):
        user = await make_user()

        updated = await user_service.update_profile(db_session, user, first_name="  Grace ", bio="Shoots film")
        assert (updated.first_name, updated.bio) == ("Grace", "Shoots film")

    @pytest.mark.asyncio
    async def test_update_profile_rejects_short_name(self, db_session, make_user):
        with pytest.raises(ValidationError) as exc_info:
            await user_service.update_profile(db_session, await make_user(), last_name="X")
        assert exc_info.value.field == "last_name"

    @pytest.mark.asyncio
    async def test_public_profile_counts_active_photos(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        await make_photo(photographer, views=7)
        await make_photo(photographer, views=3, is_active=False)

        profile = await user_service.get_public_profile(db_session, photographer.id)
        assert (profile.stats.total_photos, profile.stats.total_views) == (1, 7)

    @pytest.mark.asyncio
    async def test_featured_photographers_ranked_by_earnings(self, db_session, make_user, make_photo):
        quiet = await make_user(ROLE_PHOTOGRAPHER, first_name="Quiet")
        busy = await make_user(ROLE_PHOTOGRAPHER, first_name="Busy")
        await make_user(first_name="Buyer")
        photo = await make_photo(busy, price="40.00")
        await make_photo(quiet)
        await purchase_service.create_purchase(db_session, await make_user(), photo.id)

        featured = await user_service.list_featured_photographers(db_session, limit=5)
        assert [p.first_name for p in featured] == ["Busy", "Quiet"]
        assert featured[0].photo_count == 1


class TestDashboard:
    @pytest.mark.asyncio
    async def test_own_dashboard(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        buyer = await make_user()
        photo = await make_photo(photographer, title="Best seller", price="10.00")
        await purchase_service.create_purchase(db_session, buyer, photo.id)
        await db_session.refresh(photographer)

        dashboard = await user_service.get_dashboard(db_session, photographer, photographer.id)
        assert dashboard.stats.total_sales == 1
        assert [sale.photo_title for sale in dashboard.recent_sales] == ["Best seller"]
        assert dashboard.top_photos[0].title == "Best seller"

    @pytest.mark.asyncio
    async def test_others_dashboard_forbidden(self, db_session, make_user):
        owner, other = await make_user(ROLE_PHOTOGRAPHER), await make_user()

        with pytest.raises(AuthorizationError):
            await user_service.get_dashboard(db_session, other, owner.id)

        admin = await make_user(ROLE_ADMIN)
        assert (await user_service.get_dashboard(db_session, admin, owner.id)).stats.total_photos == 0
