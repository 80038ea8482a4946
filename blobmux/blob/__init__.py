"""
Portable blob storage

This package provides a bucket abstraction over interchangeable storage
drivers (in-memory, local filesystem, S3), a URL multiplexer that opens
buckets from URLs such as ``mem://``, ``file:///path`` or ``s3://bucket``,
and a typed error hierarchy shared by every driver.
"""

from .bucket import Bucket, Reader, Writer, prefixedBucket
from .driver import AbstractBlobReader, AbstractBlobWriter, AbstractBucketDriver
from .errors import (
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
from .mux import BucketURLOpener, URLMux, createDefaultURLMux
from .types import (
    Attributes,
    CopyOptions,
    ListObject,
    ListOptions,
    ListPage,
    ReaderOptions,
    SignedURLOptions,
    WriterOptions,
)

__all__ = [
    "AbstractBlobReader",
    "AbstractBlobWriter",
    "AbstractBucketDriver",
    "Attributes",
    "BlobAlreadyExistsError",
    "BlobCanceledError",
    "BlobError",
    "BlobFailedPreconditionError",
    "BlobInvalidArgumentError",
    "BlobNotFoundError",
    "BlobPermissionDeniedError",
    "BlobURLError",
    "BlobUnimplementedError",
    "Bucket",
    "BucketURLOpener",
    "CopyOptions",
    "ErrorCode",
    "ListObject",
    "ListOptions",
    "ListPage",
    "Reader",
    "ReaderOptions",
    "SignedURLOptions",
    "URLMux",
    "Writer",
    "WriterOptions",
    "createDefaultURLMux",
    "errorCodeOf",
    "prefixedBucket",
]
