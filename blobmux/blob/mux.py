"""
Bucket URL multiplexer

Maps URL schemes to openers. A URLMux is an explicitly constructed registry:
the application creates one (usually with createDefaultURLMux()), populates it
at initialization time and passes it to whatever needs to open buckets.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List
from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit

from .bucket import Bucket, prefixedBucket
from .errors import BlobError, BlobURLError

logger = logging.getLogger(__name__)

# Query parameter understood by every scheme: scopes the opened bucket to a key prefix
PREFIX_PARAM = "prefix"


class BucketURLOpener(ABC):
    """Opens buckets for one URL scheme"""

    @abstractmethod
    def openBucketURL(self, url: SplitResult) -> Bucket:
        """
        Open the bucket described by url.

        Implementations must reject every query parameter they do not
        understand (see validateQueryParams).

        Raises:
            BlobURLError: If the URL is malformed or carries unknown parameters
        """
        pass


def validateQueryParams(url: SplitResult, allowed: Iterable[str]) -> Dict[str, str]:
    """
    Parse the query of url and reject unknown or repeated parameters.

    Args:
        url: Parsed bucket URL
        allowed: Names of the parameters the opener understands

    Returns:
        Mapping of parameter name to value

    Raises:
        BlobURLError: If a parameter is not in allowed or appears more than once
    """
    allowedSet = set(allowed)
    params: Dict[str, str] = {}
    for name, value in parse_qsl(url.query, keep_blank_values=True):
        if name not in allowedSet:
            raise BlobURLError(f"open bucket {url.geturl()}: invalid query parameter '{name}'")
        if name in params:
            raise BlobURLError(f"open bucket {url.geturl()}: query parameter '{name}' is repeated")
        params[name] = value
    return params


def parseBoolParam(url: SplitResult, name: str, value: str) -> bool:
    """Parse a boolean query parameter value"""
    lowered = value.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise BlobURLError(f"open bucket {url.geturl()}: invalid value {value!r} for query parameter '{name}'")


class URLMux:
    """
    Thread-safe registry of bucket URL openers keyed by scheme.

    Usage:
        >>> mux = URLMux()
        >>> mux.registerBucket("mem", MemoryBucketURLOpener())
        >>> bucket = mux.openBucket("mem://")
        >>> scoped = mux.openBucket("mem://?prefix=logs/")
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._schemes: Dict[str, BucketURLOpener] = {}

    def registerBucket(self, scheme: str, opener: BucketURLOpener) -> None:
        """
        Register an opener for a URL scheme.

        Raises:
            ValueError: If the scheme is empty or already registered
        """
        scheme = scheme.lower()
        if not scheme:
            raise ValueError("Bucket URL scheme must not be empty")
        with self._lock:
            if scheme in self._schemes:
                raise ValueError(f"Bucket URL scheme '{scheme}' is already registered")
            self._schemes[scheme] = opener
        logger.info(f"Registered bucket opener {type(opener).__name__} for scheme '{scheme}', dood!")

    def validScheme(self, scheme: str) -> bool:
        """Return True if an opener is registered for scheme"""
        with self._lock:
            return scheme.lower() in self._schemes

    def bucketSchemes(self) -> List[str]:
        """Return the registered schemes, sorted"""
        with self._lock:
            return sorted(self._schemes)

    def openBucket(self, urlStr: str) -> Bucket:
        """
        Open the bucket described by a URL.

        The ``prefix`` query parameter is handled here for every scheme: the
        opened bucket is wrapped so that all keys live under that prefix.

        Raises:
            BlobURLError: If the scheme is missing or unknown, or the opener rejects the URL
            BlobError: If the opener fails for another reason
        """
        url = urlsplit(urlStr)
        scheme = url.scheme.lower()
        if not scheme:
            raise BlobURLError(f"open bucket {urlStr!r}: no scheme in URL")

        with self._lock:
            opener = self._schemes.get(scheme)
        if opener is None:
            raise BlobURLError(
                f"open bucket {urlStr!r}: no opener registered for scheme '{scheme}' "
                f"(known schemes: {', '.join(self.bucketSchemes()) or 'none'})"
            )

        prefix = ""
        query = parse_qsl(url.query, keep_blank_values=True)
        prefixValues = [value for name, value in query if name == PREFIX_PARAM]
        if len(prefixValues) > 1:
            raise BlobURLError(f"open bucket {urlStr!r}: query parameter '{PREFIX_PARAM}' is repeated")
        if prefixValues:
            prefix = prefixValues[0]
            url = url._replace(query=urlencode([(name, value) for name, value in query if name != PREFIX_PARAM]))

        try:
            bucket = opener.openBucketURL(url)
        except BlobError:
            raise
        except Exception as e:
            raise BlobError(f"open bucket {urlStr!r}: {e}", originalError=e) from e

        logger.info(f"Opened bucket {urlStr} with {type(opener).__name__}, dood!")
        if prefix:
            return prefixedBucket(bucket, prefix)
        return bucket


def createDefaultURLMux() -> URLMux:
    """
    Create a URLMux with the built-in drivers registered.

    Registers ``mem``, ``file`` and ``s3``.
    """
    from .drivers.filesystem import FileBucketURLOpener
    from .drivers.memory import MemoryBucketURLOpener
    from .drivers.s3 import S3BucketURLOpener

    mux = URLMux()
    mux.registerBucket("mem", MemoryBucketURLOpener())
    mux.registerBucket("file", FileBucketURLOpener())
    mux.registerBucket("s3", S3BucketURLOpener())
    return mux
