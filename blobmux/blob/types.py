"""Type definitions shared by the bucket facade and drivers."""

import datetime
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

# Lets a hook reach a driver-native request object. Returns True when the
# target was populated, False when the driver has nothing to offer.
AsFunc = Callable[[Any], bool]

# Interception hook run before an operation proceeds. Returning None lets the
# operation continue; returning (or raising) an exception aborts it.
InterceptionHook = Callable[[AsFunc], Optional[BaseException]]

DEFAULT_PAGE_SIZE = 1000
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def noNativeAccess(target: Any) -> bool:
    """AsFunc for drivers without native request objects"""
    return False


def runHook(hook: Optional[InterceptionHook], asFunc: AsFunc = noNativeAccess) -> None:
    """
    Run an optional interception hook.

    Args:
        hook: The hook to run, or None
        asFunc: Native access function handed to the hook

    Raises:
        Exception: Whatever error the hook returned or raised
    """
    if hook is None:
        return
    result = hook(asFunc)
    if isinstance(result, BaseException):
        raise result


@dataclass(frozen=True)
class Attributes:
    """
    Attributes of a committed blob.

    Attributes:
        contentType: MIME type of the content
        size: Size of the content in bytes
        createTime: Time the key was first written (preserved across overwrites)
        modTime: Time of the last successful write
        md5: 128-bit MD5 digest of the content
        eTag: Opaque version tag, unique per committed write
        metadata: Caller-supplied key/value pairs
    """

    contentType: str = ""
    cacheControl: str = ""
    contentDisposition: str = ""
    contentEncoding: str = ""
    contentLanguage: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)
    size: int = 0
    createTime: Optional[datetime.datetime] = None
    modTime: Optional[datetime.datetime] = None
    md5: bytes = b""
    eTag: str = ""

    def copy(self) -> "Attributes":
        """Return a copy that shares nothing mutable with this instance"""
        return replace(self, metadata=dict(self.metadata))


@dataclass(frozen=True)
class ReaderAttributes:
    """Subset of attributes known to an open reader"""

    contentType: str = ""
    modTime: Optional[datetime.datetime] = None
    size: int = 0


@dataclass(frozen=True)
class ListObject:
    """
    One entry of a listing.

    Either a blob summary, or a synthetic directory marker when ``isDir`` is
    True. Directory markers end with the delimiter and carry no content
    attributes.
    """

    key: str
    modTime: Optional[datetime.datetime] = None
    size: int = 0
    md5: bytes = b""
    isDir: bool = False


@dataclass
class ListPage:
    """One page of listing results; an empty ``nextPageToken`` ends the sequence"""

    objects: List[ListObject] = field(default_factory=list)
    nextPageToken: bytes = b""


@dataclass
class ListOptions:
    """
    Listing request.

    Attributes:
        prefix: Only keys starting with this prefix are returned
        delimiter: Separator used to compress keys into directory markers (empty disables)
        pageSize: Maximum number of entries per page (0 means DEFAULT_PAGE_SIZE)
        pageToken: Continuation token from the previous page (empty starts over)
        beforeList: Optional interception hook
    """

    prefix: str = ""
    delimiter: str = ""
    pageSize: int = 0
    pageToken: bytes = b""
    beforeList: Optional[InterceptionHook] = None


@dataclass
class ReaderOptions:
    """Options for opening a reader"""

    beforeRead: Optional[InterceptionHook] = None


@dataclass
class WriterOptions:
    """
    Options for opening a writer.

    Attributes:
        contentType: MIME type; guessed from the key when empty
        contentMD5: Expected MD5 of the full payload, verified at close (optional)
        metadata: Caller-supplied key/value pairs stored with the blob
        beforeWrite: Optional interception hook
    """

    contentType: str = ""
    cacheControl: str = ""
    contentDisposition: str = ""
    contentEncoding: str = ""
    contentLanguage: str = ""
    contentMD5: bytes = b""
    metadata: Dict[str, str] = field(default_factory=dict)
    beforeWrite: Optional[InterceptionHook] = None


@dataclass
class CopyOptions:
    """Options for copying a blob"""

    beforeCopy: Optional[InterceptionHook] = None


@dataclass
class SignedURLOptions:
    """Options for signed URL generation"""

    expiry: datetime.timedelta = datetime.timedelta(hours=1)
    method: str = "GET"
