"""
Image API endpoints.

- Router handles HTTP concerns (multipart parsing, status codes, headers)
- ImageService handles ingestion and persistence
- Dependencies enforce authentication and size limits
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from pydantic import BaseModel

from imagefile.api.dependencies import (
    AuthContext,
    get_image_service,
    read_upload,
    require_authenticated,
    verify_content_length,
)
from imagefile.api.v1.metrics import image_upload_bytes, image_uploads_total
from imagefile.core.config import settings
from imagefile.core.errors import ErrorCode, IngestionError, ServiceError, not_found_error
from imagefile.core.logging_config import get_logger
from imagefile.db.models import ImageFile
from imagefile.services.image_service import ImageService
from imagefile.services.ingestion import thumbnail_media_type


logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/images", tags=["images"])


class ImageMetadata(BaseModel):
    """Public view of a stored image (binary content excluded)."""
    id: str
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    width: int
    height: int
    size_bytes: int
    has_thumbnail: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, image: ImageFile) -> "ImageMetadata":
        return cls(
            id=image.id,
            file_name=image.file_name,
            file_type=image.file_type,
            width=image.width,
            height=image.height,
            size_bytes=len(image.file),
            has_thumbnail=image.thumbnail is not None,
            created_at=image.created_at,
        )


@router.post("/upload", status_code=status.HTTP_201_CREATED, response_model=ImageMetadata)
async def upload_image(
    file: UploadFile = File(...),
    thumbnail: bool = Form(True),
    thumbnail_size: int = Form(settings.DEFAULT_THUMBNAIL_SIZE, gt=0, le=8192),
    content_length: Optional[int] = Depends(verify_content_length),
    auth: AuthContext = Depends(require_authenticated),
    service: ImageService = Depends(get_image_service),
):
    """Upload an image and store it with its metadata and thumbnail.

    **Authorization**: Requires an authenticated caller.

    Args:
        file: Image file upload
        thumbnail: Whether to derive a thumbnail (default true)
        thumbnail_size: Longer edge of the thumbnail in pixels
        content_length: Pre-validated content length (via dependency)
        auth: Authenticated caller (via dependency)
        service: Image service (via dependency injection)

    Returns:
        ImageMetadata: 201 Created with the stored record's metadata

    Raises:
        400 if the upload is empty or not a decodable image
        401 if not authenticated
        413 if the upload is too large
        500 if the thumbnail or persistence step fails
    """
    logger.info(
        "upload_request_received",
        filename=file.filename,
        content_type=file.content_type,
        content_length=content_length,
        user_id=auth.user_id,
    )

    try:
        raw_bytes = await read_upload(file)
        image = await service.save_image(
            raw_bytes,
            file.content_type,
            file.filename,
            create_thumbnail=thumbnail,
            thumbnail_target_size=thumbnail_size,
        )
    except IngestionError as exc:
        outcome = "rejected" if exc.http_status < 500 else "failed"
        image_uploads_total.labels(service=settings.SERVICE_NAME, status=outcome).inc()
        raise
    except ServiceError as exc:
        outcome = "rejected" if exc.status_code < 500 else "failed"
        image_uploads_total.labels(service=settings.SERVICE_NAME, status=outcome).inc()
        raise
    finally:
        await file.close()

    image_uploads_total.labels(service=settings.SERVICE_NAME, status="stored").inc()
    image_upload_bytes.labels(service=settings.SERVICE_NAME).observe(len(raw_bytes))

    logger.info(
        "upload_stored",
        image_id=image.id,
        user_id=auth.user_id,
        filename=image.file_name,
        width=image.width,
        height=image.height,
    )

    return ImageMetadata.from_record(image)


@router.get("/{image_id}", response_model=ImageMetadata)
async def get_image_metadata(
    image_id: str,
    auth: AuthContext = Depends(require_authenticated),
    service: ImageService = Depends(get_image_service),
):
    """Get metadata of a stored image."""
    image = await service.get_image(image_id)
    return ImageMetadata.from_record(image)


@router.get("/{image_id}/file")
async def get_image_file(
    image_id: str,
    auth: AuthContext = Depends(require_authenticated),
    service: ImageService = Depends(get_image_service),
):
    """Download the original image bytes with the declared content type."""
    image = await service.get_image(image_id)
    logger.debug("image_file_served", image_id=image_id, size_bytes=len(image.file))

    return Response(
        content=image.file,
        media_type=image.file_type or "application/octet-stream",
    )


@router.get("/{image_id}/thumbnail")
async def get_image_thumbnail(
    image_id: str,
    auth: AuthContext = Depends(require_authenticated),
    service: ImageService = Depends(get_image_service),
):
    """Download the thumbnail, encoded in the format named by the file extension.

    Raises:
        404 if the image does not exist or was stored without a thumbnail
    """
    image = await service.get_image(image_id)

    if image.thumbnail is None:
        raise not_found_error(
            code=ErrorCode.THUMBNAIL_NOT_FOUND,
            message=f"Image {image_id} has no thumbnail",
            details={"image_id": image_id},
        )

    return Response(
        content=image.thumbnail,
        media_type=(
            thumbnail_media_type(image.file_name)
            or image.file_type
            or "application/octet-stream"
        ),
    )


@router.delete("/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: str,
    auth: AuthContext = Depends(require_authenticated),
    service: ImageService = Depends(get_image_service),
):
    """Delete a stored image."""
    await service.delete_image(image_id)
    logger.info("image_delete_requested", image_id=image_id, user_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
