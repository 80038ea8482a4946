"""
Tests for the blob error hierarchy, dood!
"""

import pytest

from blobmux.blob import (
    BlobAlreadyExistsError,
    BlobCanceledError,
    BlobError,
    BlobFailedPreconditionError,
    BlobInvalidArgumentError,
    BlobNotFoundError,
    BlobPermissionDeniedError,
    BlobUnimplementedError,
    BlobURLError,
    ErrorCode,
    errorCodeOf,
)
from blobmux.blob.errors import newBlobError


class TestErrorHierarchy:
    """Test error classes and codes, dood!"""

    @pytest.mark.parametrize(
        "code,errorClass",
        [
            (ErrorCode.NOT_FOUND, BlobNotFoundError),
            (ErrorCode.INVALID_ARGUMENT, BlobInvalidArgumentError),
            (ErrorCode.UNIMPLEMENTED, BlobUnimplementedError),
            (ErrorCode.ALREADY_EXISTS, BlobAlreadyExistsError),
            (ErrorCode.PERMISSION_DENIED, BlobPermissionDeniedError),
            (ErrorCode.CANCELED, BlobCanceledError),
            (ErrorCode.FAILED_PRECONDITION, BlobFailedPreconditionError),
            (ErrorCode.UNKNOWN, BlobError),
        ],
    )
    def testNewBlobError(self, code, errorClass):
        """Test that each code produces its class and reports the code back"""
        original = OSError("native")
        err = newBlobError(code, "message", originalError=original)

        assert type(err) is errorClass
        assert err.code == code
        assert errorCodeOf(err) == code
        assert err.originalError is original
        assert str(err) == "message"

    def testURLErrorIsInvalidArgument(self):
        """Test that URL errors are a kind of invalid argument"""
        err = BlobURLError("bad url")
        assert isinstance(err, BlobInvalidArgumentError)
        assert err.code == ErrorCode.INVALID_ARGUMENT
        assert err.originalError is None

    def testCodesAreStrings(self):
        """Test that codes compare equal to their string values"""
        assert ErrorCode.NOT_FOUND == "not-found"
        assert str(ErrorCode.UNKNOWN) == "unknown"
