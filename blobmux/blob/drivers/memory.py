"""
In-memory bucket driver

This module provides the reference driver: a mutex-guarded mapping from key to
blob held in process memory. It is the semantic ground truth for every other
driver and the test double for code built on top of the bucket facade.
"""

import datetime
import hashlib
import io
import logging
import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Dict
from urllib.parse import SplitResult

from ..bucket import Bucket
from ..driver import AbstractBlobReader, AbstractBlobWriter, AbstractBucketDriver
from ..errors import ErrorCode
from ..mux import BucketURLOpener, validateQueryParams
from ..types import (
    Attributes,
    CopyOptions,
    ListObject,
    ListOptions,
    ListPage,
    ReaderAttributes,
    ReaderOptions,
    SignedURLOptions,
    WriterOptions,
    runHook,
)
from .listing import InvalidPageTokenError, paginateKeys

logger = logging.getLogger(__name__)

SCHEME = "mem"


class MemoryBlobNotFoundError(KeyError):
    """The requested key is not in the bucket"""

    pass


class MemoryInvalidKeyError(ValueError):
    """The key cannot be used for a write"""

    pass


class MemoryInvalidRangeError(ValueError):
    """The requested read offset lies beyond the end of the blob"""

    pass


class MemoryNotImplementedError(NotImplementedError):
    """The memory driver does not support this capability"""

    pass


class MemoryWriteCanceledError(Exception):
    """The writer was closed after its cancel event was set"""

    pass


class MemoryWriterClosedError(Exception):
    """The writer already reached a terminal state"""

    pass


class WriterState(StrEnum):
    """Lifecycle of a memory writer"""

    OPEN = "open"
    ACCUMULATING = "accumulating"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class BlobEntry:
    """
    One committed blob.

    Entries are never mutated after commit, so several keys may share the
    same entry (see MemoryBucketDriver.copy).
    """

    content: bytes
    attributes: Attributes


class MemoryBlobReader(AbstractBlobReader):
    """Reader over an immutable slice of a committed blob"""

    def __init__(self, content: bytes, offset: int, length: int, attrs: ReaderAttributes):
        end = len(content) if length < 0 else min(len(content), offset + length)
        self._stream = io.BytesIO(content[offset:end])
        self._attrs = attrs

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def close(self) -> None:
        self._stream.close()

    def attributes(self) -> ReaderAttributes:
        return self._attrs


class MemoryBlobWriter(AbstractBlobWriter):
    """
    Writer buffering the payload until close().

    The MD5 digest is computed incrementally while bytes arrive. close()
    commits the payload atomically, or aborts it when the cancel event is set.
    A writer is never safe for concurrent use.
    """

    def __init__(
        self,
        driver: "MemoryBucketDriver",
        key: str,
        contentType: str,
        opts: WriterOptions,
        cancelEvent: threading.Event | None,
    ):
        self._driver = driver
        self._key = key
        self._contentType = contentType
        self._opts = opts
        self._metadata = dict(opts.metadata)
        self._cancelEvent = cancelEvent
        self._buffer = bytearray()
        self._md5 = hashlib.md5()
        self.state = WriterState.OPEN

    def _ensureWritable(self) -> None:
        if self.state in (WriterState.COMMITTED, WriterState.ABORTED):
            raise MemoryWriterClosedError(f"Writer for key '{self._key}' is already {self.state}")

    def write(self, data: bytes) -> int:
        self._ensureWritable()
        self._md5.update(data)
        self._buffer.extend(data)
        self.state = WriterState.ACCUMULATING
        return len(data)

    def close(self) -> None:
        self._ensureWritable()

        if self._cancelEvent is not None and self._cancelEvent.is_set():
            self.state = WriterState.ABORTED
            self._buffer = bytearray()
            raise MemoryWriteCanceledError(f"Write to key '{self._key}' was canceled")

        content = bytes(self._buffer)
        self._buffer = bytearray()
        self._driver._commit(self._key, content, self._md5.digest(), self._contentType, self._opts, self._metadata)
        self.state = WriterState.COMMITTED


class MemoryBucketDriver(AbstractBucketDriver):
    """
    Bucket driver keeping all blobs in a dict.

    Every operation holds the bucket-wide lock for its full duration, so all
    mutations and listings on one instance are strictly serialized. Only the
    accumulation of writer bytes happens outside the lock.

    Example:
        >>> bucket = openBucket()
        >>> bucket.writeAll("docs/readme.txt", b"hello")
        >>> bucket.readAll("docs/readme.txt")
        b'hello'
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._blobs: Dict[str, BlobEntry] = {}

    def errorCode(self, err: BaseException) -> ErrorCode:
        if isinstance(err, MemoryBlobNotFoundError):
            return ErrorCode.NOT_FOUND
        if isinstance(err, (MemoryInvalidKeyError, MemoryInvalidRangeError, InvalidPageTokenError)):
            return ErrorCode.INVALID_ARGUMENT
        if isinstance(err, MemoryNotImplementedError):
            return ErrorCode.UNIMPLEMENTED
        if isinstance(err, MemoryWriteCanceledError):
            return ErrorCode.CANCELED
        if isinstance(err, MemoryWriterClosedError):
            return ErrorCode.FAILED_PRECONDITION
        return ErrorCode.UNKNOWN

    def listPaged(self, opts: ListOptions) -> ListPage:
        with self._lock:
            runHook(opts.beforeList)
            keys = sorted(self._blobs)

            def makeObject(key: str) -> ListObject:
                attrs = self._blobs[key].attributes
                return ListObject(key=key, modTime=attrs.modTime, size=attrs.size, md5=attrs.md5)

            return paginateKeys(keys, opts, makeObject)

    def attributes(self, key: str) -> Attributes:
        with self._lock:
            entry = self._blobs.get(key)
            if entry is None:
                raise MemoryBlobNotFoundError(key)
            return entry.attributes.copy()

    def newRangeReader(self, key: str, offset: int, length: int, opts: ReaderOptions) -> AbstractBlobReader:
        with self._lock:
            entry = self._blobs.get(key)
            if entry is None:
                raise MemoryBlobNotFoundError(key)

            runHook(opts.beforeRead)

            if offset > len(entry.content):
                raise MemoryInvalidRangeError(
                    f"Offset {offset} is beyond the end of blob '{key}' ({len(entry.content)} bytes)"
                )

            attrs = entry.attributes
            return MemoryBlobReader(
                entry.content,
                offset,
                length,
                ReaderAttributes(contentType=attrs.contentType, modTime=attrs.modTime, size=attrs.size),
            )

    def newTypedWriter(
        self,
        key: str,
        contentType: str,
        opts: WriterOptions,
        cancelEvent: threading.Event | None = None,
    ) -> AbstractBlobWriter:
        if not key:
            raise MemoryInvalidKeyError("Invalid key (empty string)")

        with self._lock:
            runHook(opts.beforeWrite)
            return MemoryBlobWriter(self, key, contentType, opts, cancelEvent)

    def _commit(
        self,
        key: str,
        content: bytes,
        md5: bytes,
        contentType: str,
        opts: WriterOptions,
        metadata: Dict[str, str],
    ) -> None:
        """Atomically replace the entry for key with a freshly written blob"""
        nowNs = time.time_ns()
        now = datetime.datetime.fromtimestamp(nowNs / 1e9, tz=datetime.timezone.utc)

        with self._lock:
            prev = self._blobs.get(key)
            self._blobs[key] = BlobEntry(
                content=content,
                attributes=Attributes(
                    contentType=contentType,
                    cacheControl=opts.cacheControl,
                    contentDisposition=opts.contentDisposition,
                    contentEncoding=opts.contentEncoding,
                    contentLanguage=opts.contentLanguage,
                    metadata=metadata,
                    size=len(content),
                    createTime=prev.attributes.createTime if prev is not None else now,
                    modTime=now,
                    md5=md5,
                    eTag=f'"{nowNs:x}-{len(content):x}"',
                ),
            )
        logger.debug(f"Committed {len(content)} bytes to key '{key}'")

    def copy(self, dstKey: str, srcKey: str, opts: CopyOptions) -> None:
        if not dstKey or not srcKey:
            raise MemoryInvalidKeyError("Invalid key (empty string)")

        with self._lock:
            runHook(opts.beforeCopy)
            entry = self._blobs.get(srcKey)
            if entry is None:
                raise MemoryBlobNotFoundError(srcKey)
            self._blobs[dstKey] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._blobs:
                raise MemoryBlobNotFoundError(key)
            del self._blobs[key]

    def signedURL(self, key: str, opts: SignedURLOptions) -> str:
        raise MemoryNotImplementedError("Signed URLs are not supported by the memory driver")


def openBucket() -> Bucket:
    """Return a bucket backed by a fresh, empty MemoryBucketDriver"""
    return Bucket(MemoryBucketDriver())


class MemoryBucketURLOpener(BucketURLOpener):
    """Opens ``mem://`` URLs; no query parameters are accepted"""

    def openBucketURL(self, url: SplitResult) -> Bucket:
        validateQueryParams(url, allowed=())
        return openBucket()
