"""
Abstract bucket driver interface

This module defines the abstract base classes every storage backend must
implement. The bucket facade holds a single AbstractBucketDriver and never
looks at the concrete backend type.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any

from .errors import ErrorCode
from .types import (
    Attributes,
    CopyOptions,
    ListOptions,
    ListPage,
    ReaderAttributes,
    ReaderOptions,
    SignedURLOptions,
    WriterOptions,
)


class AbstractBlobReader(ABC):
    """
    Reader over (a range of) one blob.

    A reader is owned by exactly one caller and must be closed on every exit path.
    """

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        """
        Read up to ``size`` bytes (everything that is left when ``size`` is negative).

        Returns:
            The bytes read; an empty bytes object at end of range
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the reader"""
        pass

    @abstractmethod
    def attributes(self) -> ReaderAttributes:
        """Return attributes of the blob being read"""
        pass


class AbstractBlobWriter(ABC):
    """
    Writer for one blob.

    Nothing written becomes visible until close() succeeds. If the cancel event
    handed to the driver is set when close() is called, the write is aborted.
    """

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Append data to the pending payload.

        Returns:
            Number of bytes accepted
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Commit the payload, or abort it if the write was canceled"""
        pass


class AbstractBucketDriver(ABC):
    """
    Abstract base class for bucket drivers.

    Implementations raise their own native exceptions and classify them in
    errorCode(); the facade turns them into BlobError subclasses. Drivers may
    be called concurrently from several threads.
    """

    @abstractmethod
    def attributes(self, key: str) -> Attributes:
        """
        Return the attributes of the blob stored under key.

        Raises:
            Exception: A native error classified as NOT_FOUND when the key is absent
        """
        pass

    @abstractmethod
    def newRangeReader(self, key: str, offset: int, length: int, opts: ReaderOptions) -> AbstractBlobReader:
        """
        Open a reader over ``length`` bytes of the blob starting at ``offset``.

        Args:
            key: Blob key
            offset: First byte to read (must not exceed the blob size)
            length: Number of bytes to read; negative means "to the end"
            opts: Reader options (interception hook)
        """
        pass

    @abstractmethod
    def newTypedWriter(
        self,
        key: str,
        contentType: str,
        opts: WriterOptions,
        cancelEvent: threading.Event | None = None,
    ) -> AbstractBlobWriter:
        """
        Open a writer for key.

        Args:
            key: Blob key (must not be empty)
            contentType: MIME type stored with the blob
            opts: Writer options (metadata, content headers, interception hook)
            cancelEvent: If set by the time close() is called, the write is aborted
        """
        pass

    @abstractmethod
    def listPaged(self, opts: ListOptions) -> ListPage:
        """Return one page of objects matching opts"""
        pass

    @abstractmethod
    def copy(self, dstKey: str, srcKey: str, opts: CopyOptions) -> None:
        """Copy the blob at srcKey, with its attributes, to dstKey"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the blob at key"""
        pass

    @abstractmethod
    def signedURL(self, key: str, opts: SignedURLOptions) -> str:
        """Return a URL granting temporary access to key"""
        pass

    @abstractmethod
    def errorCode(self, err: BaseException) -> ErrorCode:
        """
        Classify a native error raised by this driver.

        Must never raise; unrecognized errors map to ErrorCode.UNKNOWN.
        """
        pass

    def asNative(self) -> Any:
        """Return the underlying native handle, or None if there is none"""
        return None

    def close(self) -> None:
        """Release driver resources"""
        pass
