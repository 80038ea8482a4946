"""
Filesystem bucket driver

This module provides a driver storing each blob as a file under a base
directory. Keys containing "/" map to subdirectories. The attributes of each
blob live in a JSON sidecar file next to it (``<file>.attrs``). Writes go to a
temporary file first and are renamed into place on commit.
"""

import datetime
import hashlib
import json
import logging
import os
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, BinaryIO, Dict, List
from urllib.parse import SplitResult, unquote

from ..bucket import Bucket
from ..driver import AbstractBlobReader, AbstractBlobWriter, AbstractBucketDriver
from ..errors import BlobURLError, ErrorCode
from ..mux import BucketURLOpener, parseBoolParam, validateQueryParams
from ..types import (
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
    runHook,
)
from .listing import InvalidPageTokenError, paginateKeys

logger = logging.getLogger(__name__)

SCHEME = "file"
ATTRS_SUFFIX = ".attrs"
TEMP_PREFIX = ".blobmux-tmp-"


class FileBlobNotFoundError(FileNotFoundError):
    """No blob is stored under the key"""

    pass


class FileInvalidKeyError(ValueError):
    """The key cannot be mapped to a path under the base directory"""

    pass


class FileInvalidRangeError(ValueError):
    """The requested read offset lies beyond the end of the blob"""

    pass


class FileNotImplementedError(NotImplementedError):
    """The filesystem driver does not support this capability"""

    pass


class FileWriteCanceledError(Exception):
    """The writer was closed after its cancel event was set"""

    pass


class FileWriterClosedError(Exception):
    """The writer was already closed"""

    pass


def _formatTime(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parseTime(value: Any) -> datetime.datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        return None


class FileBlobReader(AbstractBlobReader):
    """Reader over an open file handle, limited to the requested range"""

    def __init__(self, f: BinaryIO, length: int, attrs: ReaderAttributes):
        self._file = f
        self._remaining = length
        self._attrs = attrs

    def read(self, size: int = -1) -> bytes:
        if self._remaining < 0:
            return self._file.read(size)
        if self._remaining == 0:
            return b""
        if size < 0 or size > self._remaining:
            size = self._remaining
        data = self._file.read(size)
        self._remaining -= len(data)
        return data

    def close(self) -> None:
        self._file.close()

    def attributes(self) -> ReaderAttributes:
        return self._attrs


class FileBlobWriter(AbstractBlobWriter):
    """
    Writer streaming into a temporary file in the base directory.

    close() renames the temporary file over the target and writes the
    attributes sidecar, or removes it when the write was canceled.
    """

    def __init__(
        self,
        driver: "FileBucketDriver",
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
        self._md5 = hashlib.md5()
        self._size = 0
        self._closed = False
        self._tempFile = tempfile.NamedTemporaryFile(dir=driver.baseDir, prefix=TEMP_PREFIX, delete=False)
        self._tempPath = Path(self._tempFile.name)

    def write(self, data: bytes) -> int:
        if self._closed:
            raise FileWriterClosedError(f"Writer for key '{self._key}' is already closed")
        self._tempFile.write(data)
        self._md5.update(data)
        self._size += len(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            raise FileWriterClosedError(f"Writer for key '{self._key}' is already closed")
        self._closed = True

        try:
            self._tempFile.close()
            if self._cancelEvent is not None and self._cancelEvent.is_set():
                raise FileWriteCanceledError(f"Write to key '{self._key}' was canceled")
            self._driver._commit(
                self._key,
                self._tempPath,
                self._size,
                self._md5.digest(),
                self._contentType,
                self._opts,
                self._metadata,
            )
        finally:
            if self._tempPath.exists():
                self._tempPath.unlink()


class FileBucketDriver(AbstractBucketDriver):
    """
    Bucket driver storing blobs as files under a base directory.

    Features:
    - Keys with "/" map to nested directories
    - Attributes persisted in ``<file>.attrs`` JSON sidecars
    - Atomic commit by rename; file permissions set to 0o644
    - Keys resolving outside the base directory are rejected

    Args:
        baseDir: Base directory of the bucket
        createDir: Create baseDir (and parents) if it does not exist

    Raises:
        FileNotFoundError: If baseDir does not exist and createDir is False
        NotADirectoryError: If baseDir exists but is not a directory
    """

    def __init__(self, baseDir: str | Path, createDir: bool = False):
        self.baseDir = Path(baseDir)
        if createDir:
            self.baseDir.mkdir(parents=True, exist_ok=True)
        if not self.baseDir.exists():
            raise FileNotFoundError(f"Base directory '{baseDir}' does not exist")
        if not self.baseDir.is_dir():
            raise NotADirectoryError(f"Base path '{baseDir}' exists but is not a directory")
        self._root = self.baseDir.resolve()
        self._lock = threading.RLock()

    def _getFilePath(self, key: str) -> Path:
        """
        Map a key to a file path under the base directory.

        Raises:
            FileInvalidKeyError: If the key is empty, has empty, "." or ".."
                components, collides with sidecar/temporary names, or
                resolves outside the base directory
        """
        if not key:
            raise FileInvalidKeyError("Invalid key (empty string)")
        if "\x00" in key:
            raise FileInvalidKeyError(f"Invalid key {key!r}: contains a NUL byte")
        parts = key.split("/")
        for part in parts:
            if part in ("", ".", ".."):
                raise FileInvalidKeyError(f"Invalid key {key!r}: empty, '.' or '..' path component")
            if part.startswith(TEMP_PREFIX):
                raise FileInvalidKeyError(f"Invalid key {key!r}: reserved temporary file prefix")
        if key.endswith(ATTRS_SUFFIX):
            raise FileInvalidKeyError(f"Invalid key {key!r}: reserved '{ATTRS_SUFFIX}' suffix")

        candidate = (self._root / Path(*parts)).resolve()
        try:
            candidate.relative_to(self._root)
        except ValueError:
            raise FileInvalidKeyError(f"Invalid key {key!r}: resolves outside the base directory")
        return candidate

    def _attrsPath(self, filePath: Path) -> Path:
        return filePath.with_name(filePath.name + ATTRS_SUFFIX)

    def _readAttributes(self, key: str, filePath: Path) -> Attributes:
        """Load attributes from the sidecar, falling back to file stats when it is missing or broken"""
        try:
            stat = filePath.stat()
        except FileNotFoundError:
            raise FileBlobNotFoundError(key)
        if not filePath.is_file():
            raise FileBlobNotFoundError(key)

        statTime = datetime.datetime.fromtimestamp(stat.st_mtime, tz=datetime.timezone.utc)
        raw: Dict[str, Any] = {}
        try:
            loaded = json.loads(self._attrsPath(filePath).read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                raw = loaded
        except FileNotFoundError:
            pass
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable attributes of key '{key}': {e}")

        metadata = raw.get("metadata")
        md5Hex = raw.get("md5")
        try:
            md5 = bytes.fromhex(md5Hex) if isinstance(md5Hex, str) else b""
        except ValueError:
            md5 = b""
        return Attributes(
            contentType=raw.get("contentType") or DEFAULT_CONTENT_TYPE,
            cacheControl=raw.get("cacheControl", ""),
            contentDisposition=raw.get("contentDisposition", ""),
            contentEncoding=raw.get("contentEncoding", ""),
            contentLanguage=raw.get("contentLanguage", ""),
            metadata={str(k): str(v) for k, v in metadata.items()} if isinstance(metadata, dict) else {},
            size=stat.st_size,
            createTime=_parseTime(raw.get("createTime")) or statTime,
            modTime=_parseTime(raw.get("modTime")) or statTime,
            md5=md5,
            eTag=raw.get("eTag") or f'"{stat.st_mtime_ns:x}-{stat.st_size:x}"',
        )

    def _writeAttributes(self, filePath: Path, attrs: Attributes) -> None:
        """Atomically replace the sidecar of filePath"""
        payload = {
            "contentType": attrs.contentType,
            "cacheControl": attrs.cacheControl,
            "contentDisposition": attrs.contentDisposition,
            "contentEncoding": attrs.contentEncoding,
            "contentLanguage": attrs.contentLanguage,
            "metadata": attrs.metadata,
            "createTime": _formatTime(attrs.createTime),
            "modTime": _formatTime(attrs.modTime),
            "md5": attrs.md5.hex(),
            "eTag": attrs.eTag,
        }
        attrsPath = self._attrsPath(filePath)
        tempPath = attrsPath.with_name(TEMP_PREFIX + attrsPath.name)
        tempPath.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tempPath.replace(attrsPath)

    def _removeEmptyParents(self, filePath: Path) -> None:
        parent = filePath.parent
        while parent != self._root:
            try:
                parent.rmdir()
            except OSError:
                return
            parent = parent.parent

    def errorCode(self, err: BaseException) -> ErrorCode:
        if isinstance(err, FileNotFoundError):
            return ErrorCode.NOT_FOUND
        if isinstance(
            err,
            (FileInvalidKeyError, FileInvalidRangeError, InvalidPageTokenError, NotADirectoryError, IsADirectoryError),
        ):
            return ErrorCode.INVALID_ARGUMENT
        if isinstance(err, PermissionError):
            return ErrorCode.PERMISSION_DENIED
        if isinstance(err, FileExistsError):
            return ErrorCode.ALREADY_EXISTS
        if isinstance(err, FileNotImplementedError):
            return ErrorCode.UNIMPLEMENTED
        if isinstance(err, FileWriteCanceledError):
            return ErrorCode.CANCELED
        if isinstance(err, FileWriterClosedError):
            return ErrorCode.FAILED_PRECONDITION
        return ErrorCode.UNKNOWN

    def _listKeys(self) -> List[str]:
        keys: List[str] = []
        for dirPath, dirNames, fileNames in os.walk(self._root):
            dirNames[:] = [d for d in dirNames if not d.startswith(TEMP_PREFIX)]
            relDir = Path(dirPath).relative_to(self._root)
            for fileName in fileNames:
                if fileName.endswith(ATTRS_SUFFIX) or fileName.startswith(TEMP_PREFIX):
                    continue
                keys.append((relDir / fileName).as_posix())
        keys.sort()
        return keys

    def listPaged(self, opts: ListOptions) -> ListPage:
        with self._lock:
            runHook(opts.beforeList)

            def makeObject(key: str) -> ListObject:
                attrs = self._readAttributes(key, self._root / key)
                return ListObject(key=key, modTime=attrs.modTime, size=attrs.size, md5=attrs.md5)

            return paginateKeys(self._listKeys(), opts, makeObject)

    def attributes(self, key: str) -> Attributes:
        filePath = self._getFilePath(key)
        with self._lock:
            return self._readAttributes(key, filePath)

    def newRangeReader(self, key: str, offset: int, length: int, opts: ReaderOptions) -> AbstractBlobReader:
        filePath = self._getFilePath(key)
        with self._lock:
            attrs = self._readAttributes(key, filePath)
            runHook(opts.beforeRead)
            if offset > attrs.size:
                raise FileInvalidRangeError(f"Offset {offset} is beyond the end of blob '{key}' ({attrs.size} bytes)")
            f = open(filePath, "rb")

        try:
            f.seek(offset)
        except Exception:
            f.close()
            raise
        return FileBlobReader(
            f,
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
        self._getFilePath(key)
        runHook(opts.beforeWrite)
        return FileBlobWriter(self, key, contentType, opts, cancelEvent)

    def _commit(
        self,
        key: str,
        tempPath: Path,
        size: int,
        md5: bytes,
        contentType: str,
        opts: WriterOptions,
        metadata: Dict[str, str],
    ) -> None:
        """Move a finished temporary file into place and write its sidecar"""
        filePath = self._getFilePath(key)
        nowNs = time.time_ns()
        now = datetime.datetime.fromtimestamp(nowNs / 1e9, tz=datetime.timezone.utc)

        with self._lock:
            createTime = now
            if filePath.is_file():
                createTime = self._readAttributes(key, filePath).createTime or now

            filePath.parent.mkdir(parents=True, exist_ok=True)
            os.chmod(tempPath, 0o644)
            tempPath.replace(filePath)
            self._writeAttributes(
                filePath,
                Attributes(
                    contentType=contentType,
                    cacheControl=opts.cacheControl,
                    contentDisposition=opts.contentDisposition,
                    contentEncoding=opts.contentEncoding,
                    contentLanguage=opts.contentLanguage,
                    metadata=metadata,
                    size=size,
                    createTime=createTime,
                    modTime=now,
                    md5=md5,
                    eTag=f'"{nowNs:x}-{size:x}"',
                ),
            )
        logger.debug(f"Committed {size} bytes to {filePath}")

    def copy(self, dstKey: str, srcKey: str, opts: CopyOptions) -> None:
        srcPath = self._getFilePath(srcKey)
        dstPath = self._getFilePath(dstKey)
        with self._lock:
            runHook(opts.beforeCopy)
            attrs = self._readAttributes(srcKey, srcPath)
            if srcPath == dstPath:
                return

            dstPath.parent.mkdir(parents=True, exist_ok=True)
            tempPath = dstPath.with_name(TEMP_PREFIX + dstPath.name)
            try:
                shutil.copyfile(srcPath, tempPath)
                tempPath.replace(dstPath)
            finally:
                if tempPath.exists():
                    tempPath.unlink()
            self._writeAttributes(dstPath, attrs)

    def delete(self, key: str) -> None:
        filePath = self._getFilePath(key)
        with self._lock:
            if not filePath.is_file():
                raise FileBlobNotFoundError(key)
            filePath.unlink()
            attrsPath = self._attrsPath(filePath)
            if attrsPath.exists():
                attrsPath.unlink()
            self._removeEmptyParents(filePath)

    def signedURL(self, key: str, opts: SignedURLOptions) -> str:
        raise FileNotImplementedError("Signed URLs are not supported by the filesystem driver")

    def asNative(self) -> Any:
        return self.baseDir


def openBucket(baseDir: str | Path, createDir: bool = False) -> Bucket:
    """Return a bucket backed by the directory baseDir"""
    return Bucket(FileBucketDriver(baseDir, createDir=createDir))


class FileBucketURLOpener(BucketURLOpener):
    """
    Opens ``file:///absolute/path`` URLs.

    Query parameters:
        create_dir: Create the directory if it does not exist ("true"/"false")
    """

    def openBucketURL(self, url: SplitResult) -> Bucket:
        params = validateQueryParams(url, allowed=("create_dir",))
        if url.netloc:
            raise BlobURLError(f"open bucket {url.geturl()}: file URLs must not have a host, use file:///path")
        path = unquote(url.path)
        if not path:
            raise BlobURLError(f"open bucket {url.geturl()}: missing directory path")

        createDir = parseBoolParam(url, "create_dir", params["create_dir"]) if "create_dir" in params else False
        try:
            return openBucket(path, createDir=createDir)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise BlobURLError(f"open bucket {url.geturl()}: {e}", originalError=e) from e
