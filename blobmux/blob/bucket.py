"""
Bucket facade

This module provides the public Bucket object. A Bucket wraps exactly one
AbstractBucketDriver, exposes streaming readers and writers, a lazy listing
sequence and pass-through copy/delete/attributes calls, and normalizes every
driver error into the BlobError hierarchy before it reaches the caller.
"""

import dataclasses
import hashlib
import logging
import mimetypes
import threading
from typing import Any, Iterator

import magic

from .driver import AbstractBlobReader, AbstractBlobWriter, AbstractBucketDriver
from .drivers.prefixed import PrefixedBucketDriver
from .errors import (
    BlobCanceledError,
    BlobError,
    BlobFailedPreconditionError,
    BlobInvalidArgumentError,
    BlobNotFoundError,
    ErrorCode,
    newBlobError,
)
from .types import (
    DEFAULT_CONTENT_TYPE,
    Attributes,
    CopyOptions,
    ListObject,
    ListOptions,
    ListPage,
    ReaderAttributes,
    ReaderOptions,
    SignedURLOptions,
    WriterOptions,
)

logger = logging.getLogger(__name__)

# Number of leading bytes used to detect the content type of a blob
SNIFF_LEN = 512

# Results of content detection that say nothing specific about the payload
_GENERIC_CONTENT_TYPES = frozenset({DEFAULT_CONTENT_TYPE, "text/plain"})
_EMPTY_CONTENT_TYPES = frozenset({"application/x-empty", "inode/x-empty"})


def detectContentType(key: str, head: bytes) -> str:
    """
    Detect the content type of a blob from its first bytes.

    The payload is inspected with python-magic. When magic only finds a
    generic type (plain text, arbitrary binary or an empty blob), the key
    extension is consulted, so that ``data.csv`` is stored as text/csv.

    Args:
        key: Blob key, used for its extension
        head: Up to SNIFF_LEN leading bytes of the blob

    Returns:
        MIME type string, application/octet-stream when nothing is known
    """
    detected = magic.from_buffer(bytes(head[:SNIFF_LEN]), mime=True)
    if detected in _EMPTY_CONTENT_TYPES:
        detected = None
    if detected and detected not in _GENERIC_CONTENT_TYPES:
        return detected

    guessed, _ = mimetypes.guess_type(key)
    return guessed or detected or DEFAULT_CONTENT_TYPE


class _WriteCancelEvent(threading.Event):
    """Cancel event of one writer, also reporting set once the caller's event is set"""

    def __init__(self, parent: threading.Event | None = None):
        super().__init__()
        self._parent = parent

    def is_set(self) -> bool:
        return super().is_set() or (self._parent is not None and self._parent.is_set())


class Reader:
    """
    Streaming reader returned by Bucket.newReader() and Bucket.newRangeReader().

    Owned by a single caller. Use it as a context manager, or call close() on
    every exit path.
    """

    def __init__(self, bucket: "Bucket", key: str, reader: AbstractBlobReader):
        self._bucket = bucket
        self._key = key
        self._reader = reader
        self._attrs: ReaderAttributes = reader.attributes()
        self._closed = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def contentType(self) -> str:
        return self._attrs.contentType

    @property
    def modTime(self):
        return self._attrs.modTime

    @property
    def size(self) -> int:
        """Size of the whole blob, not of the requested range"""
        return self._attrs.size

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """
        Read up to size bytes (everything left in the range when size is negative).

        Raises:
            BlobFailedPreconditionError: If the reader is closed
            BlobError: If the driver fails to read
        """
        if self._closed:
            raise BlobFailedPreconditionError(f"blob (read {self._key!r}): reader is closed")
        try:
            return self._reader.read(size)
        except BlobError:
            raise
        except Exception as e:
            raise self._bucket._wrapError(e, "read", self._key) from e

    def close(self) -> None:
        """Release the reader. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        try:
            self._reader.close()
        except BlobError:
            raise
        except Exception as e:
            raise self._bucket._wrapError(e, "close reader", self._key) from e

    def __enter__(self) -> "Reader":
        return self

    def __exit__(self, excType, excValue, traceback) -> None:
        self.close()


class Writer:
    """
    Streaming writer returned by Bucket.newWriter().

    Nothing written becomes visible until close() succeeds. Leaving a ``with``
    block because of an exception aborts the write instead of committing it.
    A writer is owned by a single caller and must not be shared.

    When no content type was given, the first SNIFF_LEN bytes are buffered
    and the driver writer is opened once the type has been detected from
    them (or at close() for shorter blobs).
    """

    def __init__(self, bucket: "Bucket", key: str, opts: WriterOptions, cancelEvent: _WriteCancelEvent):
        self._bucket = bucket
        self._key = key
        self._opts = opts
        self._cancelEvent = cancelEvent
        self._contentMD5 = opts.contentMD5
        self._md5 = hashlib.md5() if opts.contentMD5 else None
        self._writer: AbstractBlobWriter | None = None
        self._head = bytearray()
        self._closed = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def closed(self) -> bool:
        return self._closed

    def _open(self, contentType: str) -> None:
        try:
            self._writer = self._bucket._driver.newTypedWriter(self._key, contentType, self._opts, self._cancelEvent)
        except BlobError:
            raise
        except Exception as e:
            raise self._bucket._wrapError(e, "new writer", self._key) from e

    def _writeToDriver(self, data: bytes) -> int:
        assert self._writer is not None
        try:
            return self._writer.write(data)
        except BlobError:
            raise
        except Exception as e:
            raise self._bucket._wrapError(e, "write", self._key) from e

    def _flushHead(self) -> None:
        """Open the driver writer with the sniffed content type and hand it the buffered bytes"""
        head = bytes(self._head)
        self._head = bytearray()
        contentType = detectContentType(self._key, head)
        logger.debug(f"Detected content type {contentType} for key: {self._key}")
        self._open(contentType)
        if head:
            self._writeToDriver(head)

    def write(self, data: bytes) -> int:
        """
        Append data to the pending blob.

        Returns:
            Number of bytes accepted

        Raises:
            BlobFailedPreconditionError: If the writer is already closed
            BlobError: If the driver rejects the data
        """
        if self._closed:
            raise BlobFailedPreconditionError(f"blob (write {self._key!r}): writer is closed")

        if self._writer is None:
            self._head.extend(data)
            if len(self._head) >= SNIFF_LEN:
                self._flushHead()
            written = len(data)
        else:
            written = self._writeToDriver(data)

        if self._md5 is not None:
            self._md5.update(data[:written])
        return written

    def close(self) -> None:
        """
        Commit the blob.

        When a content MD5 was supplied and does not match the written bytes,
        the write is aborted and BlobInvalidArgumentError is raised.

        Raises:
            BlobFailedPreconditionError: If the writer is already closed
            BlobCanceledError: If the write was canceled before close
            BlobInvalidArgumentError: If the content MD5 does not match
            BlobError: If the driver fails to commit
        """
        if self._closed:
            raise BlobFailedPreconditionError(f"blob (close writer {self._key!r}): writer is closed")
        self._closed = True

        md5Mismatch = (
            not self._cancelEvent.is_set() and self._md5 is not None and self._md5.digest() != self._contentMD5
        )

        if self._writer is None:
            # No driver writer is open yet
            if self._cancelEvent.is_set():
                self._head = bytearray()
                raise BlobCanceledError(f"blob (close writer {self._key!r}): write was canceled")
            if md5Mismatch:
                self._head = bytearray()
                raise BlobInvalidArgumentError(
                    f"blob (close writer {self._key!r}): content MD5 does not match the written data"
                )
            self._flushHead()

        if md5Mismatch:
            self._cancelEvent.set()

        try:
            self._writer.close()
        except Exception as e:
            if md5Mismatch:
                raise BlobInvalidArgumentError(
                    f"blob (close writer {self._key!r}): content MD5 does not match the written data",
                    originalError=e,
                ) from e
            if isinstance(e, BlobError):
                raise
            raise self._bucket._wrapError(e, "close writer", self._key) from e
        logger.debug(f"Committed blob with key: {self._key}")

    def abort(self) -> None:
        """Abort the write; the key keeps its previous state"""
        if self._closed:
            return
        self._cancelEvent.set()
        try:
            self.close()
        except BlobCanceledError:
            logger.debug(f"Aborted write to key: {self._key}")

    def __enter__(self) -> "Writer":
        return self

    def __exit__(self, excType, excValue, traceback) -> None:
        if excType is not None:
            self.abort()
        else:
            self.close()


class Bucket:
    """
    Public facade over a bucket driver.

    Usage:
        mux = createDefaultURLMux()
        with mux.openBucket("mem://") as bucket:
            bucket.writeAll("docs/a.txt", b"data")
            data = bucket.readAll("docs/a.txt")
            for obj in bucket.list(ListOptions(prefix="docs/", delimiter="/")):
                print(obj.key)

    Thread Safety:
        Bucket methods may be called concurrently; serialization is the
        driver's responsibility. Readers and writers are single-owner.
    """

    def __init__(self, driver: AbstractBucketDriver):
        self._driver = driver
        self._lock = threading.RLock()
        self._closed = False

    def _wrapError(self, err: BaseException, op: str, key: str = "") -> BlobError:
        """Classify a driver-native error and wrap it into a BlobError"""
        if isinstance(err, BlobError):
            return err
        try:
            code = self._driver.errorCode(err)
        except Exception:
            logger.exception(f"Driver {type(self._driver).__name__} failed to classify error {err!r}")
            code = ErrorCode.UNKNOWN
        return newBlobError(code, f"blob ({op} {key!r}): {err}", originalError=err)

    def _checkOpen(self, op: str, key: str = "") -> None:
        with self._lock:
            if self._closed:
                raise BlobFailedPreconditionError(f"blob ({op} {key!r}): bucket is closed")

    def attributes(self, key: str) -> Attributes:
        """
        Return the attributes of the blob at key.

        Raises:
            BlobNotFoundError: If the key does not exist
        """
        self._checkOpen("attributes", key)
        try:
            return self._driver.attributes(key)
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "attributes", key) from e

    def exists(self, key: str) -> bool:
        """Return True if a blob exists at key"""
        try:
            self.attributes(key)
        except BlobNotFoundError:
            return False
        return True

    def newReader(self, key: str, opts: ReaderOptions | None = None) -> Reader:
        """Open a reader over the whole blob at key"""
        return self.newRangeReader(key, 0, -1, opts)

    def newRangeReader(self, key: str, offset: int, length: int, opts: ReaderOptions | None = None) -> Reader:
        """
        Open a reader over ``length`` bytes of the blob at key, starting at offset.

        A negative length reads to the end of the blob.

        Raises:
            BlobInvalidArgumentError: If offset is negative or beyond the end of the blob
            BlobNotFoundError: If the key does not exist
        """
        self._checkOpen("new range reader", key)
        if offset < 0:
            raise BlobInvalidArgumentError(f"blob (new range reader {key!r}): negative offset {offset}")
        try:
            driverReader = self._driver.newRangeReader(key, offset, length, opts or ReaderOptions())
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "new range reader", key) from e
        return Reader(self, key, driverReader)

    def readAll(self, key: str, opts: ReaderOptions | None = None) -> bytes:
        """Read the whole blob at key"""
        with self.newReader(key, opts) as reader:
            return reader.read()

    def newWriter(
        self,
        key: str,
        opts: WriterOptions | None = None,
        cancelEvent: threading.Event | None = None,
    ) -> Writer:
        """
        Open a writer for key.

        The content type comes from ``opts.contentType``. When it is empty the
        driver writer is opened lazily: the first SNIFF_LEN bytes are buffered
        and the type is detected from them (see detectContentType), so driver
        errors such as an invalid key or a rejecting beforeWrite hook surface
        on the write that fills the buffer or on close().

        Args:
            key: Blob key (must not be empty)
            opts: Writer options
            cancelEvent: Setting this event before close() aborts the write

        Raises:
            BlobInvalidArgumentError: If the key is empty
        """
        self._checkOpen("new writer", key)
        if not key:
            raise BlobInvalidArgumentError("blob (new writer ''): key must not be empty")
        opts = opts or WriterOptions()
        writer = Writer(self, key, opts, _WriteCancelEvent(cancelEvent))
        if opts.contentType:
            writer._open(opts.contentType)
        return writer

    def writeAll(self, key: str, data: bytes, opts: WriterOptions | None = None) -> None:
        """Write data to key in one call"""
        with self.newWriter(key, opts) as writer:
            writer.write(data)

    def listPage(self, pageToken: bytes = b"", pageSize: int = 0, opts: ListOptions | None = None) -> ListPage:
        """
        Return a single page of listing results.

        Args:
            pageToken: Continuation token from a previous page (empty for the first page)
            pageSize: Maximum number of entries (0 for the driver default)
            opts: Prefix, delimiter and hook; its own pageToken/pageSize are ignored
        """
        self._checkOpen("list")
        if pageSize < 0:
            raise BlobInvalidArgumentError(f"blob (list): negative page size {pageSize}")
        pageOpts = dataclasses.replace(opts or ListOptions(), pageToken=pageToken, pageSize=pageSize)
        try:
            return self._driver.listPaged(pageOpts)
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "list", pageOpts.prefix) from e

    def list(self, opts: ListOptions | None = None) -> Iterator[ListObject]:
        """
        Lazily iterate over all objects matching opts.

        Pages are fetched on demand by following continuation tokens until the
        driver returns an empty one. Each call starts a fresh listing.
        """
        opts = opts or ListOptions()
        pageToken = opts.pageToken
        while True:
            page = self.listPage(pageToken, opts.pageSize, opts)
            yield from page.objects
            if not page.nextPageToken:
                return
            pageToken = page.nextPageToken

    def copy(self, dstKey: str, srcKey: str, opts: CopyOptions | None = None) -> None:
        """
        Copy the blob at srcKey, with its attributes, to dstKey.

        Raises:
            BlobInvalidArgumentError: If either key is empty
            BlobNotFoundError: If srcKey does not exist
        """
        self._checkOpen("copy", srcKey)
        if not dstKey or not srcKey:
            raise BlobInvalidArgumentError(f"blob (copy {srcKey!r} to {dstKey!r}): keys must not be empty")
        try:
            self._driver.copy(dstKey, srcKey, opts or CopyOptions())
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "copy", srcKey) from e
        logger.debug(f"Copied blob {srcKey} to {dstKey}")

    def delete(self, key: str) -> None:
        """
        Delete the blob at key.

        Raises:
            BlobNotFoundError: If the key does not exist
        """
        self._checkOpen("delete", key)
        try:
            self._driver.delete(key)
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "delete", key) from e
        logger.debug(f"Deleted blob with key: {key}")

    def signedURL(self, key: str, opts: SignedURLOptions | None = None) -> str:
        """
        Return a URL granting temporary access to key.

        Raises:
            BlobUnimplementedError: If the driver does not support signed URLs
        """
        self._checkOpen("signed url", key)
        opts = opts or SignedURLOptions()
        if opts.expiry.total_seconds() <= 0:
            raise BlobInvalidArgumentError(f"blob (signed url {key!r}): expiry must be positive")
        try:
            return self._driver.signedURL(key, opts)
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "signed url", key) from e

    def asNative(self) -> Any:
        """Return the driver's underlying native handle, or None"""
        return self._driver.asNative()

    def close(self) -> None:
        """Close the bucket and release its driver. Further calls fail with FAILED_PRECONDITION."""
        with self._lock:
            if self._closed:
                raise BlobFailedPreconditionError("blob (close): bucket is already closed")
            self._closed = True
        try:
            self._driver.close()
        except BlobError:
            raise
        except Exception as e:
            raise self._wrapError(e, "close") from e

    def __enter__(self) -> "Bucket":
        return self

    def __exit__(self, excType, excValue, traceback) -> None:
        self.close()


def prefixedBucket(bucket: Bucket, prefix: str) -> Bucket:
    """
    Return a bucket that scopes all keys of ``bucket`` under ``prefix``.

    The returned bucket shares the underlying driver; closing it closes that driver.
    """
    return Bucket(PrefixedBucketDriver(bucket._driver, prefix))
