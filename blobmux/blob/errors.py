"""
Blob error taxonomy

This module defines the backend-independent error codes and the exception
hierarchy raised by the bucket facade. Drivers raise their own native errors;
the facade classifies them through ``driver.errorCode()`` and re-raises them
as one of the exceptions below, keeping the native error as ``originalError``.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Normalized error codes shared by every driver"""

    NOT_FOUND = "not-found"
    INVALID_ARGUMENT = "invalid-argument"
    UNIMPLEMENTED = "unimplemented"
    ALREADY_EXISTS = "already-exists"
    PERMISSION_DENIED = "permission-denied"
    CANCELED = "canceled"
    FAILED_PRECONDITION = "failed-precondition"
    UNKNOWN = "unknown"


class BlobError(Exception):
    """
    Base exception for all blob errors.

    Catch this to handle any blob error generically, and inspect ``code`` to
    decide what happened.

    Args:
        message: Description of the error
        originalError: The driver-native exception that caused this error (optional)
    """

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, originalError: BaseException | None = None):
        super().__init__(message)
        self.originalError = originalError


class BlobNotFoundError(BlobError):
    """Raised when an operation addresses a key that does not exist"""

    code = ErrorCode.NOT_FOUND


class BlobInvalidArgumentError(BlobError):
    """Raised for structurally invalid requests, such as an empty key on write"""

    code = ErrorCode.INVALID_ARGUMENT


class BlobUnimplementedError(BlobError):
    """Raised when a driver does not support the requested capability"""

    code = ErrorCode.UNIMPLEMENTED


class BlobAlreadyExistsError(BlobError):
    """Raised when the target of a create operation already exists"""

    code = ErrorCode.ALREADY_EXISTS


class BlobPermissionDeniedError(BlobError):
    """Raised when the backend refuses access to a key or bucket"""

    code = ErrorCode.PERMISSION_DENIED


class BlobCanceledError(BlobError):
    """Raised when a writer is closed after its cancel event was set"""

    code = ErrorCode.CANCELED


class BlobFailedPreconditionError(BlobError):
    """Raised for operations on a closed bucket or an already closed writer"""

    code = ErrorCode.FAILED_PRECONDITION


class BlobURLError(BlobInvalidArgumentError):
    """
    Raised when a bucket URL cannot be opened.

    This exception is raised at open time when:
    - The URL has no scheme
    - No opener is registered for the scheme
    - The URL carries a query parameter the opener does not understand
    - The backend-specific part of the URL is malformed
    """


_ERROR_CLASSES: dict[ErrorCode, type[BlobError]] = {
    ErrorCode.NOT_FOUND: BlobNotFoundError,
    ErrorCode.INVALID_ARGUMENT: BlobInvalidArgumentError,
    ErrorCode.UNIMPLEMENTED: BlobUnimplementedError,
    ErrorCode.ALREADY_EXISTS: BlobAlreadyExistsError,
    ErrorCode.PERMISSION_DENIED: BlobPermissionDeniedError,
    ErrorCode.CANCELED: BlobCanceledError,
    ErrorCode.FAILED_PRECONDITION: BlobFailedPreconditionError,
    ErrorCode.UNKNOWN: BlobError,
}


def newBlobError(code: ErrorCode, message: str, originalError: BaseException | None = None) -> BlobError:
    """
    Create the BlobError subclass matching the given code.

    Args:
        code: Normalized error code
        message: Description of the error
        originalError: The native exception being wrapped (optional)

    Returns:
        A BlobError instance whose ``code`` equals the requested code
    """
    return _ERROR_CLASSES.get(code, BlobError)(message, originalError=originalError)


def errorCodeOf(err: BaseException) -> ErrorCode:
    """
    Return the normalized code for any exception.

    Exceptions that are not BlobError instances map to UNKNOWN.
    """
    if isinstance(err, BlobError):
        return err.code
    return ErrorCode.UNKNOWN
