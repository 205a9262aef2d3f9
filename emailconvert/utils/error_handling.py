"""
Centralized error handling for the email conversion service.

This module provides the error codes of the conversion pipeline, the typed
exceptions raised by each stage, and the standardized JSON error response
the HTTP layer returns for them.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for consistent error handling."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Ingestion errors
    NO_FILES_UPLOADED = "NO_FILES_UPLOADED"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_ARCHIVE = "INVALID_ARCHIVE"

    # Bundle content errors
    NO_DOCUMENT_FOUND = "NO_DOCUMENT_FOUND"
    EMPTY_DOCUMENT = "EMPTY_DOCUMENT"
    NO_IMAGES_FOUND = "NO_IMAGES_FOUND"
    EMPTY_ASSET = "EMPTY_ASSET"
    PARSE_FAILED = "PARSE_FAILED"

    # Storage errors
    UPLOAD_AUTH_FAILED = "UPLOAD_AUTH_FAILED"
    UPLOAD_TRANSPORT_FAILED = "UPLOAD_TRANSPORT_FAILED"


class ErrorSeverity(str, Enum):
    """Error severity levels for logging and response handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Error code to HTTP status code mapping
ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    # 4xx Client Errors
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.NO_FILES_UPLOADED: 400,
    ErrorCode.FILE_TOO_LARGE: 400,
    ErrorCode.INVALID_ARCHIVE: 400,
    ErrorCode.NO_DOCUMENT_FOUND: 400,
    ErrorCode.EMPTY_DOCUMENT: 400,
    ErrorCode.NO_IMAGES_FOUND: 400,
    ErrorCode.EMPTY_ASSET: 400,
    ErrorCode.PARSE_FAILED: 400,

    # 5xx Server Errors
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.UPLOAD_AUTH_FAILED: 500,
    ErrorCode.UPLOAD_TRANSPORT_FAILED: 502,
}

# Error code to severity mapping
ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.UPLOAD_AUTH_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.UPLOAD_TRANSPORT_FAILED: ErrorSeverity.HIGH,
    ErrorCode.PARSE_FAILED: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_REQUEST: ErrorSeverity.MEDIUM,
    ErrorCode.NO_FILES_UPLOADED: ErrorSeverity.LOW,
    ErrorCode.FILE_TOO_LARGE: ErrorSeverity.LOW,
    ErrorCode.INVALID_ARCHIVE: ErrorSeverity.LOW,
    ErrorCode.NO_DOCUMENT_FOUND: ErrorSeverity.LOW,
    ErrorCode.EMPTY_DOCUMENT: ErrorSeverity.LOW,
    ErrorCode.NO_IMAGES_FOUND: ErrorSeverity.LOW,
    ErrorCode.EMPTY_ASSET: ErrorSeverity.LOW,
}


# ===== EXCEPTIONS =====

class ConversionError(Exception):
    """
    Base class for every failure of the conversion pipeline.

    Each subclass carries a default error code; extra keyword arguments are
    kept as context and included in the error response.
    """

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None, **context: Any):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.context: Dict[str, Any] = context

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_MAP.get(self.error_code, 500)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class NoFilesUploaded(ConversionError):
    error_code = ErrorCode.NO_FILES_UPLOADED


class FileTooLarge(ConversionError):
    error_code = ErrorCode.FILE_TOO_LARGE


class InvalidArchive(ConversionError):
    error_code = ErrorCode.INVALID_ARCHIVE


class NoDocumentFound(ConversionError):
    error_code = ErrorCode.NO_DOCUMENT_FOUND


class EmptyDocument(ConversionError):
    error_code = ErrorCode.EMPTY_DOCUMENT


class NoImagesFound(ConversionError):
    error_code = ErrorCode.NO_IMAGES_FOUND


class EmptyAsset(ConversionError):
    """A collected image has no bytes."""

    error_code = ErrorCode.EMPTY_ASSET

    def __init__(self, filename: str):
        super().__init__(f"Image file {filename} is empty or corrupted", filename=filename)
        self.filename = filename


class ParseFailed(ConversionError):
    error_code = ErrorCode.PARSE_FAILED


class UploadError(ConversionError):
    """Base class for storage backend failures."""
    error_code = ErrorCode.UPLOAD_TRANSPORT_FAILED


class UploadAuthFailed(UploadError):
    """The storage backend rejected the configured credentials."""
    error_code = ErrorCode.UPLOAD_AUTH_FAILED


class UploadTransportFailed(UploadError):
    """A single asset could not be stored because of a network or backend failure."""
    error_code = ErrorCode.UPLOAD_TRANSPORT_FAILED


# ===== RESPONSES =====

def create_error_response(
    error_code: Union[ErrorCode, str],
    details: Optional[str] = None,
    status_code: Optional[int] = None,
    **kwargs
) -> JSONResponse:
    """
    Create a consistent JSON error response.

    Args:
        error_code: Error code from ErrorCode enum or custom string
        details: Human-readable message (truncated to 1000 chars)
        status_code: Override the default HTTP status code
        **kwargs: Additional fields to include in the error response

    Returns:
        JSONResponse with standardized error format
    """
    if isinstance(error_code, ErrorCode):
        error_type = error_code.value
        if status_code is None:
            status_code = ERROR_STATUS_MAP.get(error_code, 500)
        severity = ERROR_SEVERITY_MAP.get(error_code, ErrorSeverity.MEDIUM)
    else:
        error_type = str(error_code)
        if status_code is None:
            status_code = 500
        severity = ErrorSeverity.MEDIUM

    error_data = {
        "error": error_type,
        "timestamp": datetime.now().isoformat() + "Z",
        "status_code": status_code,
        "severity": severity.value
    }

    if details:
        error_data["message"] = str(details)[:1000]

    error_data.update(kwargs)

    log_message = f"Error response: {error_data}"
    if severity == ErrorSeverity.CRITICAL:
        logger.critical(log_message)
    elif severity == ErrorSeverity.HIGH:
        logger.error(log_message)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(log_message)
    else:
        logger.info(log_message)

    return JSONResponse(status_code=status_code, content=error_data)


def conversion_error_response(error: ConversionError) -> JSONResponse:
    """Render a pipeline exception as a standardized error response."""
    return create_error_response(
        error.error_code,
        details=error.message,
        **error.context
    )
