"""
Custom Exceptions Module.

This module provides the HTTP-facing exception classes for the Photo Ingest API.
All custom exceptions inherit from APIException base class and are designed
to be caught by FastAPI exception handlers to return consistent error responses.

Usage:
    from photo_ingest.core.exceptions import PayloadTooLargeError

    # In a route handler
    if size > limit:
        raise PayloadTooLargeError(max_bytes=limit)

Exception Hierarchy:
    APIException (base)
    ├── BadRequestError - Malformed request or missing file (400)
    ├── PayloadTooLargeError - File exceeds the size limit (413)
    ├── UnsupportedMediaTypeError - File type not allowed (415)
    ├── RateLimitError - Rate limit exceeded (429)
    ├── UploadProcessingError - Multipart body could not be parsed (500)
    └── StorageFailureError - Object storage failure (500)
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class APIException(HTTPException):
    """Base exception class for all API exceptions.

    This class extends FastAPI's HTTPException to provide additional
    context and consistent error formatting across the application.

    Attributes:
        status_code: HTTP status code for the error.
        error_code: Machine-readable error code string.
        message: Human-readable error message.
        details: Additional error details.
        headers: Optional HTTP headers to include in the response.

    Example:
        >>> raise APIException(
        ...     status_code=400,
        ...     error_code="INVALID_REQUEST",
        ...     message="The request could not be processed"
        ... )
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize the API exception.

        Args:
            status_code: HTTP status code for the error.
            error_code: Machine-readable error code string.
            message: Human-readable error message.
            details: Additional error details.
            headers: Optional HTTP headers to include in the response.
        """
        self.error_code = error_code
        self.message = message
        self.details = details

        # Build the detail dict for HTTPException
        detail = {
            "error_code": error_code,
            "message": message,
        }
        if details:
            detail["details"] = details

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __repr__(self) -> str:
        """Return string representation of the exception."""
        return (
            f"{self.__class__.__name__}("
            f"status_code={self.status_code}, "
            f"error_code='{self.error_code}', "
            f"message='{self.message}')"
        )


class BadRequestError(APIException):
    """Exception raised for malformed or incomplete requests.

    Example:
        >>> raise BadRequestError(message="No file uploaded")
    """

    def __init__(
        self,
        message: str = "Bad request",
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BAD_REQUEST",
            message=message,
            details=details,
        )


class PayloadTooLargeError(APIException):
    """Exception raised when an uploaded file exceeds the size limit.

    Attributes:
        max_bytes: The configured maximum size in bytes.

    Example:
        >>> raise PayloadTooLargeError(max_bytes=40 * 1024 * 1024)
        # Returns 413 with message "File too large. Maximum size is 40MB."
    """

    def __init__(self, max_bytes: int, message: Optional[str] = None) -> None:
        """Initialize PayloadTooLargeError.

        Args:
            max_bytes: The configured maximum size in bytes.
            message: Custom error message (optional).
        """
        self.max_bytes = max_bytes

        if message is None:
            message = f"File too large. Maximum size is {max_bytes / (1024 * 1024):g}MB."

        super().__init__(
            status_code=413,
            error_code="PAYLOAD_TOO_LARGE",
            message=message,
            details=[{"max_bytes": max_bytes}],
        )


class UnsupportedMediaTypeError(APIException):
    """Exception raised when the uploaded file type is not allowed.

    The rejected type is echoed back in both the message and the details.

    Attributes:
        media_type: The rejected MIME type (None when the part had none).

    Example:
        >>> raise UnsupportedMediaTypeError(media_type="text/plain")
    """

    def __init__(
        self,
        media_type: Optional[str],
        message: Optional[str] = None,
    ) -> None:
        """Initialize UnsupportedMediaTypeError.

        Args:
            media_type: The rejected MIME type.
            message: Custom error message (optional).
        """
        self.media_type = media_type
        shown = media_type or "unknown"

        if message is None:
            message = f"Invalid file type. File type {shown} is not supported. Only images are allowed."

        super().__init__(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            error_code="UNSUPPORTED_MEDIA_TYPE",
            message=message,
            details=[{"media_type": shown}],
        )


class RateLimitError(APIException):
    """Exception raised when rate limit is exceeded.

    This exception should be raised when a client exceeds their
    allowed request rate.

    Attributes:
        retry_after: Seconds until the rate limit resets.

    Example:
        >>> raise RateLimitError(retry_after=60)
    """

    def __init__(
        self,
        message: str = "Too Many Requests",
        retry_after: Optional[int] = None,
    ) -> None:
        """Initialize RateLimitError.

        Args:
            message: Human-readable error message.
            retry_after: Seconds until the rate limit resets.
        """
        self.retry_after = retry_after

        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}

        details = None
        if retry_after:
            details = [{"retry_after_seconds": retry_after}]

        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMIT_ERROR",
            message=message,
            details=details,
            headers=headers,
        )


class UploadProcessingError(APIException):
    """Exception raised when the multipart body cannot be parsed.

    Example:
        >>> raise UploadProcessingError(message="Error parsing form data")
    """

    def __init__(self, message: str = "Error parsing form data") -> None:
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="PARSE_ERROR",
            message=message,
        )


class StorageFailureError(APIException):
    """Exception raised when the object store cannot complete an operation.

    Backend error text belongs in server logs only; the message here is
    what the client sees.

    Example:
        >>> raise StorageFailureError(message="Error uploading file")
    """

    def __init__(
        self,
        message: str = "Error uploading file",
        operation: Optional[str] = None,
    ) -> None:
        """Initialize StorageFailureError.

        Args:
            message: Human-readable error message.
            operation: The storage operation that failed (e.g. "upload").
        """
        self.operation = operation

        details = None
        if operation:
            details = [{"operation": operation}]

        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="STORAGE_ERROR",
            message=message,
            details=details,
        )
