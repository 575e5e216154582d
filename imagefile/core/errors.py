"""
Error Handling for the image file service

Two families of errors live here:

- IngestionError and its subclasses are raised by the ingestion layer, which
  knows nothing about HTTP. Each carries a stable error code and the HTTP
  status the transport layer should map it to.
- ServiceError is an HTTPException raised by the service and API layers
  (persistence failures, missing records, authentication).

Both render to the same JSON structure:

    {
        "code": "IMAGE_DECODE_FAILED",
        "message": "Upload is not a decodable image",
        "details": {"file_name": "notes.txt"}
    }
"""
from enum import Enum
from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    """Standardized error codes for the entire application."""

    # Upload errors
    UPLOAD_EMPTY = "UPLOAD_EMPTY"
    UPLOAD_TOO_LARGE = "UPLOAD_TOO_LARGE"
    INVALID_THUMBNAIL_SIZE = "INVALID_THUMBNAIL_SIZE"

    # Ingestion errors
    IMAGE_DECODE_FAILED = "IMAGE_DECODE_FAILED"
    THUMBNAIL_FAILED = "THUMBNAIL_FAILED"

    # Persistence errors
    IMAGE_PERSIST_FAILED = "IMAGE_PERSIST_FAILED"
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
    THUMBNAIL_NOT_FOUND = "THUMBNAIL_NOT_FOUND"

    # Auth errors
    AUTH_NOT_AUTHENTICATED = "AUTH_NOT_AUTHENTICATED"
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"


class IngestionError(Exception):
    """Base class for failures while turning an upload into an image record."""

    code: ErrorCode = ErrorCode.IMAGE_DECODE_FAILED
    http_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(IngestionError):
    """Upload payload is missing or empty, or a parameter is out of range."""

    code = ErrorCode.UPLOAD_EMPTY
    http_status = status.HTTP_400_BAD_REQUEST


class DecodeError(IngestionError):
    """Upload payload does not decode as an image."""

    code = ErrorCode.IMAGE_DECODE_FAILED
    http_status = status.HTTP_400_BAD_REQUEST


class ThumbnailError(IngestionError):
    """Resizing or re-encoding the thumbnail failed."""

    code = ErrorCode.THUMBNAIL_FAILED
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


class ServiceError(HTTPException):
    """
    Base class for business logic errors.

    This exception is caught by FastAPI's exception handler and converted
    to a JSON response with the structure shown in the module docstring.
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details or {}
            }
        )
        self.code = code
        self.user_message = message
        self.error_details = details or {}


# Convenience functions for common errors
def processing_error(code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> ServiceError:
    """Create a processing-related error (500 Internal Server Error)."""
    return ServiceError(status.HTTP_500_INTERNAL_SERVER_ERROR, code, message, details)


def auth_error(code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> ServiceError:
    """Create an authentication error (401 Unauthorized)."""
    return ServiceError(status.HTTP_401_UNAUTHORIZED, code, message, details)


def not_found_error(code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> ServiceError:
    """Create a not-found error (404 Not Found)."""
    return ServiceError(status.HTTP_404_NOT_FOUND, code, message, details)
