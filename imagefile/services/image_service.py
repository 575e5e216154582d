"""
Image Service Layer - Business Logic Orchestration

Couples the ingestion layer with the persistence collaborator:
- Ingestion (decode, dimensions, thumbnail) runs in a worker thread
- The repository assigns identifiers and stores records
- This layer owns the transaction (commit on success, rollback on failure)

Does NOT know about request/response formats or authentication; callers
must gate access before invoking it.
"""
import time
from typing import Optional

from starlette.concurrency import run_in_threadpool

from imagefile.core.config import settings
from imagefile.core.errors import (
    ErrorCode,
    InvalidInputError,
    processing_error,
    not_found_error,
)
from imagefile.core.logging_config import get_logger
from imagefile.db.models import ImageFile
from imagefile.repositories.image_repository import ImageRepository
from imagefile.services.ingestion import ImageIngestor

logger = get_logger(__name__)


class ImageService:
    """Upload, fetch and delete image records."""

    def __init__(self, repository: ImageRepository, ingestor: Optional[ImageIngestor] = None):
        self.repository = repository
        self.ingestor = ingestor or ImageIngestor()

    async def upload_file(
        self,
        raw_bytes: Optional[bytes],
        content_type: Optional[str],
        file_name: Optional[str],
    ) -> ImageFile:
        """Store an upload with a thumbnail of the default size.

        Raises:
            InvalidInputError: If the upload is missing or empty
            DecodeError, ThumbnailError: From ingestion
            ServiceError: If the record could not be persisted
        """
        if not raw_bytes:
            logger.error("upload_rejected_empty", file_name=file_name)
            raise InvalidInputError(
                "upload is null or empty",
                details={"file_name": file_name},
            )

        image = await self.save_image(
            raw_bytes,
            content_type,
            file_name,
            create_thumbnail=True,
            thumbnail_target_size=settings.DEFAULT_THUMBNAIL_SIZE,
        )
        logger.info("image_uploaded", image_id=image.id, file_name=image.file_name)
        return image

    async def save_image(
        self,
        raw_bytes: Optional[bytes],
        content_type: Optional[str],
        file_name: Optional[str],
        create_thumbnail: bool,
        thumbnail_target_size: int,
    ) -> ImageFile:
        """Ingest an upload and persist the resulting record as one unit.

        Flow:
        1. Ingest in a worker thread (nothing is written if this fails)
        2. Hand the record to the repository, which assigns its id
        3. Commit, or roll back and raise on persistence failure

        Args:
            raw_bytes: Encoded image content
            content_type: Declared MIME type
            file_name: Declared original filename
            create_thumbnail: Whether to derive a thumbnail
            thumbnail_target_size: Longer edge of the thumbnail in pixels

        Returns:
            ImageFile: The persisted record

        Raises:
            IngestionError: Propagated unchanged from ingestion
            ServiceError: IMAGE_PERSIST_FAILED if the repository fails
        """
        start_time = time.time()

        image = await run_in_threadpool(
            self.ingestor.ingest_upload,
            raw_bytes,
            content_type,
            file_name,
            create_thumbnail,
            thumbnail_target_size,
        )

        try:
            image = await self.repository.save(image)
            await self.repository.commit()
        except Exception as exc:
            await self.repository.rollback()
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "image_persist_failed",
                file_name=file_name,
                duration_ms=round(duration_ms, 2),
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )
            raise processing_error(
                code=ErrorCode.IMAGE_PERSIST_FAILED,
                message="Could not create the image in the database",
                details={"file_name": file_name},
            ) from exc

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "image_saved",
            image_id=image.id,
            file_name=image.file_name,
            width=image.width,
            height=image.height,
            has_thumbnail=image.thumbnail is not None,
            duration_ms=round(duration_ms, 2),
        )
        return image

    async def get_image(self, image_id: str) -> ImageFile:
        """Fetch a record by id.

        Raises:
            ServiceError: IMAGE_NOT_FOUND (404)
        """
        image = await self.repository.get(image_id)
        if image is None:
            logger.debug("image_not_found", image_id=image_id)
            raise not_found_error(
                code=ErrorCode.IMAGE_NOT_FOUND,
                message=f"Image not found: {image_id}",
                details={"image_id": image_id},
            )
        return image

    async def delete_image(self, image_id: str) -> None:
        """Delete a record by id.

        Raises:
            ServiceError: IMAGE_NOT_FOUND (404)
        """
        try:
            deleted = await self.repository.delete(image_id)
            if deleted:
                await self.repository.commit()
        except Exception as exc:
            await self.repository.rollback()
            logger.error(
                "image_delete_failed",
                image_id=image_id,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )
            raise

        if not deleted:
            raise not_found_error(
                code=ErrorCode.IMAGE_NOT_FOUND,
                message=f"Image not found: {image_id}",
                details={"image_id": image_id},
            )

        logger.info("image_deleted", image_id=image_id)
