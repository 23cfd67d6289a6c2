"""
PhotoBazaar Backend: Test Configuration (conftest.py)
======================================================

Shared fixtures for the suite. Tests run against a throwaway SQLite file
through aiosqlite; tables are created before and dropped after every test.

Fixture Hierarchy:
    database            create_all / drop_all around one test
    ├── db_session      one AsyncSession, never committed (service tests)
    │   ├── make_user   flush a User with a known password
    │   └── make_photo  flush a Photo (no files on disk)
    ├── seed_user       commit a User in its own session (API tests)
    └── client          httpx AsyncClient over ASGITransport
        └── email_sender  AsyncMock installed as the email dependency
"""

import io
import os
import tempfile
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before any photobazaar import reads settings
_TEST_DIR = tempfile.mkdtemp(prefix="photobazaar_test_")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "1"
os.environ["PAYMENT_MODE"] = "instant"
os.environ["JWT_SECRET"] = "test-secret-key-with-more-than-32-characters"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["SMTP_HOST"] = ""

from photobazaar.database import Base, async_session_factory, engine  # noqa: E402
from photobazaar.models.photo import Photo  # noqa: E402
from photobazaar.models.user import ROLE_USER, User  # noqa: E402
from photobazaar.security.passwords import hash_password  # noqa: E402
from photobazaar.security.tokens import create_access_token  # noqa: E402

TEST_PASSWORD = "secret123"


def make_image_bytes(fmt: str = "JPEG", size=(64, 48), color=(200, 120, 40)) -> bytes:
    """Encode a solid-color image with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def _new_user(role: str, email=None, **fields) -> User:
    return User(
        first_name=fields.pop("first_name", "Test"),
        last_name=fields.pop("last_name", role.capitalize()),
        email=email or f"{role}-{uuid4().hex[:8]}@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        **fields,
    )


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def database():
    import photobazaar.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def make_user(db_session):
    async def _make(role: str = ROLE_USER, email=None, **fields) -> User:
        user = _new_user(role, email, **fields)
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def make_photo(db_session):
    async def _make(photographer: User, price: str = "10.00", **fields) -> Photo:
        stem = uuid4().hex
        photo = Photo(
            photographer_id=photographer.id,
            title=fields.pop("title", "Harbor at dawn"),
            price=Decimal(price),
            image_url=f"/uploads/2025/01/01/{stem}.jpg",
            thumbnail_url=f"/uploads/2025/01/01/{stem}_thumb.jpg",
            full_image_path=f"2025/01/01/{stem}.jpg",
            **fields,
        )
        db_session.add(photo)
        await db_session.flush()
        await db_session.refresh(photo)
        return photo

    return _make


@pytest_asyncio.fixture
async def seed_user(database):
    """Committed users for API tests, which run in their own sessions."""

    async def _seed(role: str = ROLE_USER, email=None, **fields) -> User:
        async with async_session_factory() as session:
            user = _new_user(role, email, **fields)
            session.add(user)
            await session.commit()
            return user

    return _seed


# ══════════════════════════════════════════════════════════════════════════
# API Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def email_sender():
    from photobazaar.services.email_base import EmailSender

    sender = MagicMock(spec=EmailSender)
    sender.send = AsyncMock()
    sender.send_verification_code = AsyncMock()
    return sender


@pytest_asyncio.fixture
async def client(database, email_sender):
    """
    HTTPX AsyncClient wired straight into the ASGI app.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from photobazaar.main import app
    from photobazaar.services.email_service import get_email_sender

    app.dependency_overrides[get_email_sender] = lambda: email_sender
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG", size=(320, 200))


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG", size=(120, 90))
