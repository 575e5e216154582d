"""
Services package - Business Logic Layer

Contains all business logic separated from HTTP/API concerns.
"""
from imagefile.services.image_service import ImageService
from imagefile.services.ingestion import ImageIngestor, derive_thumbnail

__all__ = ["ImageService", "ImageIngestor", "derive_thumbnail"]
