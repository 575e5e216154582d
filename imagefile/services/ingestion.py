"""Image ingestion: decode uploads, derive thumbnails, build image records.

Everything in this module is synchronous and CPU bound. Callers on the event
loop should run it in a worker thread.
"""

import io
import os
import time
from typing import Callable, Optional, Tuple

from PIL import Image

from imagefile.core.config import settings
from imagefile.core.errors import ErrorCode, InvalidInputError, DecodeError, ThumbnailError
from imagefile.core.logging_config import get_logger
from imagefile.db.models import ImageFile

logger = get_logger(__name__)

RecordFactory = Callable[..., ImageFile]

# JPEG cannot carry alpha or a palette
JPEG_COMPATIBLE_MODES = ("RGB", "L", "CMYK")


def output_format_for(file_name: Optional[str]) -> str:
    """Return the extension of a declared filename without the dot.

    Args:
        file_name: Original filename as declared by the uploader

    Returns:
        str: Extension such as "png", or "" when there is none
    """
    if not file_name:
        return ""
    return os.path.splitext(file_name)[1].lstrip(".")


def resolve_pillow_format(output_format: str) -> str:
    """Map a file extension to a Pillow format name that can be written.

    Args:
        output_format: Extension with or without leading dot (e.g. "jpg")

    Returns:
        str: Pillow format name (e.g. "JPEG")

    Raises:
        ThumbnailError: If the extension is missing, unknown or read-only
    """
    if not output_format:
        raise ThumbnailError(
            "No output format: file name has no extension",
            details={"output_format": output_format},
        )

    extension = "." + output_format.lower().lstrip(".")
    pillow_format = Image.registered_extensions().get(extension)

    if pillow_format is None or pillow_format not in Image.SAVE:
        raise ThumbnailError(
            f"No image encoder for output format '{output_format}'",
            details={"output_format": output_format},
        )

    return pillow_format


def thumbnail_media_type(file_name: Optional[str]) -> Optional[str]:
    """MIME type of a thumbnail derived for file_name, or None if unknown."""
    extension = "." + output_format_for(file_name).lower()
    return Image.MIME.get(Image.registered_extensions().get(extension, ""))


def fit_to_box(width: int, height: int, target_size: int) -> Tuple[int, int]:
    """Scale (width, height) so the longer edge equals target_size.

    Landscape and square images fit to width, portrait images fit to height.
    The other edge keeps the aspect ratio, rounded half up, and is at least 1.
    """
    if width >= height:
        return target_size, max(1, int(height * target_size / width + 0.5))
    return max(1, int(width * target_size / height + 0.5)), target_size


def read_dimensions(raw_bytes: bytes) -> Tuple[int, int]:
    """Decode image bytes completely and return their pixel size.

    Raises:
        DecodeError: If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(raw_bytes)) as image:
            # open() only parses the header; load() decodes the pixel data
            image.load()
            return image.size
    except Exception as exc:
        raise DecodeError(
            f"Upload is not a decodable image: {exc}",
            details={"error_type": type(exc).__name__},
        ) from exc


def derive_thumbnail(raw_bytes: bytes, output_format: str, target_size: int) -> bytes:
    """Resize an image so its longer edge is target_size and re-encode it.

    The aspect ratio is preserved (box fit, no cropping or letterboxing).
    Targets larger than the source upscale.

    Args:
        raw_bytes: Encoded source image
        output_format: File extension selecting the encoder (e.g. "png")
        target_size: Longer edge of the result in pixels

    Returns:
        bytes: Encoded thumbnail

    Raises:
        ThumbnailError: On unknown format, decode failure or encode failure
    """
    pillow_format = resolve_pillow_format(output_format)

    try:
        source = Image.open(io.BytesIO(raw_bytes))
    except Exception as exc:
        raise ThumbnailError(
            f"Could not decode image for thumbnail: {exc}",
            details={"error_type": type(exc).__name__},
        ) from exc

    with source:
        try:
            source.load()
        except Exception as exc:
            raise ThumbnailError(
                f"Could not decode image for thumbnail: {exc}",
                details={"error_type": type(exc).__name__},
            ) from exc

        image = source
        # Palette images would otherwise be resized with nearest neighbour
        if image.mode == "P":
            image = image.convert("RGBA" if "transparency" in image.info else "RGB")
        if pillow_format == "JPEG" and image.mode not in JPEG_COMPATIBLE_MODES:
            image = image.convert("RGB")

        new_size = fit_to_box(image.width, image.height, target_size)

        try:
            resized = image.resize(new_size, Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            save_options = {"quality": settings.JPEG_QUALITY} if pillow_format == "JPEG" else {}
            resized.save(buffer, format=pillow_format, **save_options)
        except Exception as exc:
            raise ThumbnailError(
                f"Error on resizing an image: {exc}",
                details={
                    "output_format": output_format,
                    "error_type": type(exc).__name__,
                },
            ) from exc

        return buffer.getvalue()


class ImageIngestor:
    """Turns raw upload bytes into a populated, not yet persisted, image record."""

    def __init__(self, record_factory: RecordFactory = ImageFile):
        self.record_factory = record_factory

    def ingest_upload(
        self,
        raw_bytes: Optional[bytes],
        content_type: Optional[str],
        file_name: Optional[str],
        generate_thumbnail: bool,
        thumbnail_target_size: int,
    ) -> ImageFile:
        """Validate an upload, read its dimensions and optionally build a thumbnail.

        Flow:
        1. Reject missing or empty payloads
        2. Decode once to read width and height
        3. Derive the thumbnail, if requested, using the filename extension
        4. Build the record through the record factory

        Args:
            raw_bytes: Encoded image content
            content_type: Declared MIME type (stored unverified)
            file_name: Declared original filename (stored unverified)
            generate_thumbnail: Whether to derive a thumbnail
            thumbnail_target_size: Longer edge of the thumbnail in pixels

        Returns:
            ImageFile: Transient record ready for the repository

        Raises:
            InvalidInputError: Payload is None or empty, or target size is not positive
            DecodeError: Payload is not a decodable image
            ThumbnailError: Thumbnail could not be derived
        """
        if not raw_bytes:
            logger.error("image_ingest_rejected", file_name=file_name, reason="empty_upload")
            raise InvalidInputError(
                "upload is null or empty",
                details={"file_name": file_name},
            )

        if generate_thumbnail and (
            not isinstance(thumbnail_target_size, int) or thumbnail_target_size <= 0
        ):
            raise InvalidInputError(
                f"Thumbnail target size must be a positive integer, got {thumbnail_target_size!r}",
                details={"thumbnail_target_size": thumbnail_target_size},
                code=ErrorCode.INVALID_THUMBNAIL_SIZE,
            )

        start_time = time.time()
        logger.debug(
            "image_ingest_started",
            file_name=file_name,
            content_type=content_type,
            size_bytes=len(raw_bytes),
            generate_thumbnail=generate_thumbnail,
        )

        width, height = read_dimensions(raw_bytes)

        thumbnail = None
        if generate_thumbnail:
            thumbnail = derive_thumbnail(
                raw_bytes,
                output_format_for(file_name),
                thumbnail_target_size,
            )
            logger.debug(
                "thumbnail_derived",
                file_name=file_name,
                target_size=thumbnail_target_size,
                thumbnail_bytes=len(thumbnail),
            )

        record = self.record_factory(
            file=bytes(raw_bytes),
            thumbnail=thumbnail,
            width=width,
            height=height,
            file_type=content_type,
            file_name=file_name,
        )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "image_ingest_success",
            file_name=file_name,
            width=width,
            height=height,
            has_thumbnail=thumbnail is not None,
            duration_ms=round(duration_ms, 2),
        )

        return record
