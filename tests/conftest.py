"""
Pytest configuration and shared fixtures for imagefile-api tests.

This module provides:
- Database fixtures (fresh SQLite file per test)
- API client fixtures
- Authentication fixtures
- Image builders
"""

import io
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Callable

# Point the application at a throwaway database before it is imported
_TEST_DIR = tempfile.mkdtemp(prefix="imagefile-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'app.db')}")

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from imagefile.main import app
from imagefile.core.config import settings
from imagefile.db.base import Base
from imagefile.db.session import get_session
from imagefile.repositories.image_repository import ImageRepository


# ============================================================================
# Database fixtures
# ============================================================================

@pytest.fixture
async def test_db_session(tmp_path: Path) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session with schema initialized.

    This creates a fresh database for each test.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with SessionLocal() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def image_repository(test_db_session: AsyncSession) -> ImageRepository:
    return ImageRepository(test_db_session)


# ============================================================================
# API Client fixtures
# ============================================================================

@pytest.fixture
async def async_client(test_db_session) -> AsyncGenerator[AsyncClient, None]:
    """Asynchronous test client bound to the per-test database session."""
    async def override_get_session():
        yield test_db_session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Authentication fixtures
# ============================================================================

@pytest.fixture
def jwt_token() -> str:
    """Token signed with the configured secret."""
    return jwt.encode(
        {"sub": "test-user-123", "email": "user@example.com"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest.fixture
def auth_headers(jwt_token: str) -> dict:
    return {"Authorization": f"Bearer {jwt_token}"}


# ============================================================================
# Test data fixtures
# ============================================================================

def build_image(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    """Encode a small gradient image so resampling has real content to work on."""
    image = Image.new(mode, (width, height))
    if mode in ("RGB", "RGBA"):
        for x in range(width):
            for y in range(height):
                pixel = (x * 255 // max(width - 1, 1), y * 255 // max(height - 1, 1), 128)
                image.putpixel((x, y), pixel + (200,) if mode == "RGBA" else pixel)

    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory fixture: make_image(width, height, fmt="PNG", mode="RGB") -> bytes."""
    return build_image


@pytest.fixture
def png_400x200() -> bytes:
    return build_image(400, 200, "PNG")


@pytest.fixture
def jpeg_50x50() -> bytes:
    return build_image(50, 50, "JPEG")


def image_size(encoded: bytes) -> tuple:
    with Image.open(io.BytesIO(encoded)) as image:
        return image.size


def image_format(encoded: bytes) -> str:
    with Image.open(io.BytesIO(encoded)) as image:
        return image.format
