"""FastAPI dependencies for authentication, validation, and service wiring."""

from fastapi import Depends, Header, Request, UploadFile
from typing import Optional
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from imagefile.core.config import settings
from imagefile.core.errors import ErrorCode, ServiceError, auth_error
from imagefile.core.logging_config import get_logger
from imagefile.db.session import get_session
from imagefile.repositories.image_repository import ImageRepository
from imagefile.services.image_service import ImageService


logger = get_logger(__name__)


class AuthContext(BaseModel):
    """Authenticated caller from a validated JWT payload."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


def _max_upload_bytes() -> int:
    return settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024


def _upload_too_large(**details) -> ServiceError:
    return ServiceError(
        status_code=413,
        code=ErrorCode.UPLOAD_TOO_LARGE,
        message=f"File too large. Maximum allowed: {settings.MAX_UPLOAD_SIZE_MB}MB",
        details={"max_size_mb": settings.MAX_UPLOAD_SIZE_MB, **details},
    )


async def verify_content_length(
    content_length: Optional[int] = Header(None),
) -> Optional[int]:
    """Pre-validate upload size before the body is parsed.

    Raises:
        ServiceError: 413 if the declared size exceeds MAX_UPLOAD_SIZE_MB
    """
    if content_length and content_length > _max_upload_bytes():
        raise _upload_too_large(content_length=content_length)
    return content_length


async def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file, enforcing MAX_UPLOAD_SIZE_MB on the bytes received.

    Chunked requests have no Content-Length, so verify_content_length cannot
    see them; this reads at most one byte past the limit.

    Raises:
        ServiceError: 413 if the file exceeds MAX_UPLOAD_SIZE_MB
    """
    max_size = _max_upload_bytes()
    raw_bytes = await file.read(max_size + 1)
    if len(raw_bytes) > max_size:
        logger.warning("upload_too_large", filename=file.filename, max_size_bytes=max_size)
        raise _upload_too_large(filename=file.filename)
    return raw_bytes


def require_authenticated(request: Request) -> AuthContext:
    """Require a caller authenticated by JWTAuthMiddleware.

    Raises:
        ServiceError: 401 if not authenticated or the token lacks a subject
    """
    if not getattr(request.state, "authenticated", False):
        raise auth_error(ErrorCode.AUTH_NOT_AUTHENTICATED, "Not authenticated")

    payload = getattr(request.state, "auth_payload", None) or {}

    try:
        return AuthContext(
            user_id=payload["sub"],
            email=payload.get("email"),
            name=payload.get("name"),
        )
    except (KeyError, ValidationError) as e:
        logger.error(
            "invalid_token_claims",
            error=str(e),
            payload_keys=list(payload.keys()),
        )
        raise auth_error(ErrorCode.AUTH_INVALID_TOKEN, f"Invalid token claims: {e}")


def get_image_repository(session: AsyncSession = Depends(get_session)) -> ImageRepository:
    return ImageRepository(session)


def get_image_service(
    repository: ImageRepository = Depends(get_image_repository),
) -> ImageService:
    """Factory for ImageService with an explicitly constructed repository."""
    return ImageService(repository)
