"""
Prefixed bucket driver

Composite driver scoping another driver to a key prefix: every key is
prepended with the prefix on the way in and stripped from listing results on
the way out.
"""

import dataclasses
import threading
from typing import Any

from ..driver import AbstractBlobReader, AbstractBlobWriter, AbstractBucketDriver
from ..errors import ErrorCode
from ..types import (
    Attributes,
    CopyOptions,
    ListOptions,
    ListPage,
    ReaderOptions,
    SignedURLOptions,
    WriterOptions,
)


class PrefixedInvalidKeyError(ValueError):
    """The key is empty"""

    pass


class PrefixedBucketDriver(AbstractBucketDriver):
    """
    Driver that stores every key of the wrapped driver under ``prefix``.

    Args:
        base: The wrapped driver
        prefix: Prefix added to every key (usually ends with "/")
    """

    def __init__(self, base: AbstractBucketDriver, prefix: str):
        self.base = base
        self.prefix = prefix

    def _fullKey(self, key: str) -> str:
        if not key:
            raise PrefixedInvalidKeyError("Invalid key (empty string)")
        return self.prefix + key

    def errorCode(self, err: BaseException) -> ErrorCode:
        if isinstance(err, PrefixedInvalidKeyError):
            return ErrorCode.INVALID_ARGUMENT
        return self.base.errorCode(err)

    def attributes(self, key: str) -> Attributes:
        return self.base.attributes(self._fullKey(key))

    def newRangeReader(self, key: str, offset: int, length: int, opts: ReaderOptions) -> AbstractBlobReader:
        return self.base.newRangeReader(self._fullKey(key), offset, length, opts)

    def newTypedWriter(
        self,
        key: str,
        contentType: str,
        opts: WriterOptions,
        cancelEvent: threading.Event | None = None,
    ) -> AbstractBlobWriter:
        return self.base.newTypedWriter(self._fullKey(key), contentType, opts, cancelEvent)

    def listPaged(self, opts: ListOptions) -> ListPage:
        page = self.base.listPaged(dataclasses.replace(opts, prefix=self.prefix + opts.prefix))
        page.objects = [dataclasses.replace(obj, key=obj.key[len(self.prefix) :]) for obj in page.objects]
        return page

    def copy(self, dstKey: str, srcKey: str, opts: CopyOptions) -> None:
        self.base.copy(self._fullKey(dstKey), self._fullKey(srcKey), opts)

    def delete(self, key: str) -> None:
        self.base.delete(self._fullKey(key))

    def signedURL(self, key: str, opts: SignedURLOptions) -> str:
        return self.base.signedURL(self._fullKey(key), opts)

    def asNative(self) -> Any:
        return self.base.asNative()

    def close(self) -> None:
        self.base.close()
