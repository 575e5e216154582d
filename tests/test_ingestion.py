"""
Ingestion tests: dimensions, thumbnail derivation and the error taxonomy.

These run synchronously against Pillow without a database or HTTP.
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from imagefile.core.errors import DecodeError, ErrorCode, InvalidInputError, ThumbnailError
from imagefile.db.models import ImageFile
from imagefile.services.ingestion import (
    ImageIngestor,
    derive_thumbnail,
    fit_to_box,
    output_format_for,
    read_dimensions,
    resolve_pillow_format,
    thumbnail_media_type,
)

from conftest import build_image, image_format, image_size


@pytest.fixture
def ingestor() -> ImageIngestor:
    return ImageIngestor()


# ============================================================================
# Dimensions
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize(
    "width,height,fmt,name",
    [
        (400, 200, "PNG", "wide.png"),
        (37, 91, "JPEG", "tall.jpg"),
        (1, 1, "GIF", "dot.gif"),
        (64, 64, "BMP", "square.bmp"),
    ],
)
def test_ingest_without_thumbnail_reads_dimensions(ingestor, width, height, fmt, name):
    raw = build_image(width, height, fmt)

    record = ingestor.ingest_upload(raw, "image/whatever", name, False, 100)

    assert isinstance(record, ImageFile)
    assert (record.width, record.height) == (width, height)
    assert record.thumbnail is None
    assert record.file == raw


@pytest.mark.unit
def test_declared_metadata_is_passed_through(ingestor, png_400x200):
    """Content type and filename are stored as declared, not checked."""
    record = ingestor.ingest_upload(png_400x200, "image/jpeg", "holiday.png", False, 100)

    assert record.file_type == "image/jpeg"
    assert record.file_name == "holiday.png"
    assert record.id is None


# ============================================================================
# Thumbnails
# ============================================================================

@pytest.mark.unit
def test_landscape_png_thumbnail(ingestor, png_400x200):
    record = ingestor.ingest_upload(png_400x200, "image/png", "landscape.png", True, 100)

    assert (record.width, record.height) == (400, 200)
    assert image_size(record.thumbnail) == (100, 50)
    assert image_format(record.thumbnail) == "PNG"


@pytest.mark.unit
def test_small_jpeg_is_upscaled(ingestor, jpeg_50x50):
    record = ingestor.ingest_upload(jpeg_50x50, "image/jpeg", "avatar.jpg", True, 100)

    assert (record.width, record.height) == (50, 50)
    assert image_size(record.thumbnail) == (100, 100)
    assert image_format(record.thumbnail) == "JPEG"


@pytest.mark.unit
def test_portrait_fits_to_height(ingestor):
    raw = build_image(200, 400, "PNG")

    record = ingestor.ingest_upload(raw, "image/png", "portrait.png", True, 100)

    assert image_size(record.thumbnail) == (50, 100)


@pytest.mark.unit
@pytest.mark.parametrize(
    "width,height,target",
    [(333, 101, 64), (101, 333, 64), (640, 480, 150), (7, 300, 20), (1000, 3, 50)],
)
def test_thumbnail_keeps_aspect_ratio(ingestor, width, height, target):
    raw = build_image(width, height, "PNG")

    record = ingestor.ingest_upload(raw, "image/png", "ratio.png", True, target)
    thumb_w, thumb_h = image_size(record.thumbnail)

    assert max(thumb_w, thumb_h) == target
    if width >= height:
        assert abs(thumb_h - height * target / width) <= 1
    else:
        assert abs(thumb_w - width * target / height) <= 1


@pytest.mark.unit
def test_ingestion_is_deterministic(ingestor, png_400x200):
    first = ingestor.ingest_upload(png_400x200, "image/png", "same.png", True, 100)
    second = ingestor.ingest_upload(png_400x200, "image/png", "same.png", True, 100)

    assert (first.width, first.height) == (second.width, second.height)
    assert first.thumbnail == second.thumbnail


@pytest.mark.unit
def test_rgba_png_declared_as_jpeg_is_flattened(ingestor):
    raw = build_image(80, 40, "PNG", mode="RGBA")

    record = ingestor.ingest_upload(raw, "image/png", "transparent.jpg", True, 40)

    with Image.open(io.BytesIO(record.thumbnail)) as thumb:
        assert thumb.format == "JPEG"
        assert thumb.mode == "RGB"
        assert thumb.size == (40, 20)


@pytest.mark.unit
def test_palette_image_thumbnail(ingestor):
    palette = Image.new("RGB", (120, 60), (10, 200, 30)).convert("P")
    buffer = io.BytesIO()
    palette.save(buffer, format="GIF")

    record = ingestor.ingest_upload(buffer.getvalue(), "image/gif", "logo.gif", True, 30)

    assert image_size(record.thumbnail) == (30, 15)
    assert image_format(record.thumbnail) == "GIF"


@pytest.mark.unit
def test_record_factory_is_used(png_400x200):
    factory = MagicMock(side_effect=ImageFile)
    ingestor = ImageIngestor(record_factory=factory)

    record = ingestor.ingest_upload(png_400x200, "image/png", "factory.png", False, 100)

    factory.assert_called_once_with(
        file=png_400x200,
        thumbnail=None,
        width=400,
        height=200,
        file_type="image/png",
        file_name="factory.png",
    )
    assert isinstance(record, ImageFile)


# ============================================================================
# Error taxonomy
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("raw", [None, b""])
def test_missing_or_empty_upload_is_invalid(raw):
    factory = MagicMock()
    ingestor = ImageIngestor(record_factory=factory)

    with pytest.raises(InvalidInputError) as exc_info:
        ingestor.ingest_upload(raw, "image/png", "empty.png", True, 100)

    assert exc_info.value.code == ErrorCode.UPLOAD_EMPTY
    assert "null or empty" in exc_info.value.message
    factory.assert_not_called()


@pytest.mark.unit
def test_empty_upload_fails_before_decoding(ingestor):
    with patch("imagefile.services.ingestion.read_dimensions") as mock_read:
        with pytest.raises(InvalidInputError):
            ingestor.ingest_upload(b"", "image/png", "empty.png", False, 100)

    mock_read.assert_not_called()


@pytest.mark.unit
def test_non_image_bytes_fail_to_decode(ingestor):
    with pytest.raises(DecodeError) as exc_info:
        ingestor.ingest_upload(b"this is not an image", "image/png", "notes.png", False, 100)

    assert exc_info.value.code == ErrorCode.IMAGE_DECODE_FAILED
    assert exc_info.value.__cause__ is not None


@pytest.mark.unit
def test_truncated_image_fails_to_decode(ingestor, png_400x200):
    truncated = png_400x200[: len(png_400x200) // 2]

    with pytest.raises(DecodeError):
        ingestor.ingest_upload(truncated, "image/png", "cut.png", False, 100)


@pytest.mark.unit
def test_decode_error_takes_precedence_over_thumbnail(ingestor):
    """Undecodable input is a client problem even when a thumbnail was requested."""
    with pytest.raises(DecodeError):
        ingestor.ingest_upload(b"GIF89a-garbage", "image/gif", "broken.gif", True, 100)


@pytest.mark.unit
@pytest.mark.parametrize("file_name", ["no-extension", "photo.xyz", "", None])
def test_unusable_extension_fails_thumbnail(ingestor, png_400x200, file_name):
    with pytest.raises(ThumbnailError) as exc_info:
        ingestor.ingest_upload(png_400x200, "image/png", file_name, True, 100)

    assert exc_info.value.code == ErrorCode.THUMBNAIL_FAILED
    assert exc_info.value.http_status == 500


@pytest.mark.unit
def test_missing_extension_is_fine_without_thumbnail(ingestor, png_400x200):
    record = ingestor.ingest_upload(png_400x200, "image/png", "no-extension", False, 100)

    assert record.width == 400


@pytest.mark.unit
@pytest.mark.parametrize("target", [0, -5])
def test_non_positive_target_size_is_invalid(ingestor, png_400x200, target):
    with pytest.raises(InvalidInputError) as exc_info:
        ingestor.ingest_upload(png_400x200, "image/png", "a.png", True, target)

    assert exc_info.value.code == ErrorCode.INVALID_THUMBNAIL_SIZE
    assert exc_info.value.http_status == 400
    assert exc_info.value.to_dict()["details"] == {"thumbnail_target_size": target}


@pytest.mark.unit
def test_encoder_failure_becomes_thumbnail_error(png_400x200):
    with patch("PIL.Image.Image.save", side_effect=OSError("disk on fire")):
        with pytest.raises(ThumbnailError) as exc_info:
            derive_thumbnail(png_400x200, "png", 100)

    assert isinstance(exc_info.value.__cause__, OSError)
    assert "disk on fire" in exc_info.value.message


@pytest.mark.unit
def test_derive_thumbnail_rejects_undecodable_bytes():
    with pytest.raises(ThumbnailError) as exc_info:
        derive_thumbnail(b"not an image", "png", 100)

    assert exc_info.value.__cause__ is not None


# ============================================================================
# Helpers
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize(
    "file_name,expected",
    [
        ("photo.PNG", "PNG"),
        ("archive.tar.gz", "gz"),
        ("no-extension", ""),
        (".hidden", ""),
        (None, ""),
    ],
)
def test_output_format_for(file_name, expected):
    assert output_format_for(file_name) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "extension,expected",
    [("png", "PNG"), ("JPG", "JPEG"), ("jpeg", "JPEG"), (".gif", "GIF"), ("bmp", "BMP")],
)
def test_resolve_pillow_format(extension, expected):
    assert resolve_pillow_format(extension) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "size,target,expected",
    [
        ((400, 200), 100, (100, 50)),
        ((200, 400), 100, (50, 100)),
        ((50, 50), 100, (100, 100)),
        ((1000, 1), 10, (10, 1)),
        ((3, 2), 2, (2, 1)),
    ],
)
def test_fit_to_box(size, target, expected):
    assert fit_to_box(*size, target) == expected


@pytest.mark.unit
def test_read_dimensions(make_image):
    assert read_dimensions(make_image(12, 34)) == (12, 34)


@pytest.mark.unit
@pytest.mark.parametrize(
    "file_name,expected",
    [("a.png", "image/png"), ("b.JPG", "image/jpeg"), ("c.gif", "image/gif"), ("plain", None), (None, None)],
)
def test_thumbnail_media_type(file_name, expected):
    assert thumbnail_media_type(file_name) == expected
