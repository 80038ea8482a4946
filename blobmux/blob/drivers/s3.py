"""
S3 bucket driver

This module provides a driver for AWS S3 and S3-compatible storage services
(MinIO, Yandex Object Storage, ...). Uses the boto3 client; credentials come
from the default boto3 credential chain.
"""

import base64
import io
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List
from urllib.parse import SplitResult

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from ..bucket import Bucket
from ..driver import AbstractBlobReader, AbstractBlobWriter, AbstractBucketDriver
from ..errors import BlobURLError, ErrorCode
from ..mux import BucketURLOpener, validateQueryParams
from ..types import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_PAGE_SIZE,
    Attributes,
    CopyOptions,
    InterceptionHook,
    ListObject,
    ListOptions,
    ListPage,
    ReaderAttributes,
    ReaderOptions,
    SignedURLOptions,
    WriterOptions,
    runHook,
)
from .listing import InvalidPageTokenError, decodePageToken

logger = logging.getLogger(__name__)

SCHEME = "s3"

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "NoSuchBucket", "404"})
_PERMISSION_DENIED_CODES = frozenset(
    {"AccessDenied", "Forbidden", "403", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
)
_INVALID_ARGUMENT_CODES = frozenset({"InvalidArgument", "InvalidRange", "BadDigest", "InvalidDigest", "400", "416"})
_ALREADY_EXISTS_CODES = frozenset({"BucketAlreadyExists", "BucketAlreadyOwnedByYou"})
_UNIMPLEMENTED_CODES = frozenset({"NotImplemented", "501"})
_FAILED_PRECONDITION_CODES = frozenset({"PreconditionFailed", "412"})

_CONTENT_RANGE_RE = re.compile(r"^bytes \d+-\d+/(\d+)$")
_MD5_ETAG_RE = re.compile(r'^"?([0-9a-fA-F]{32})"?$')


class S3InvalidKeyError(ValueError):
    """The key cannot be used as an S3 object key"""

    pass


class S3InvalidRangeError(ValueError):
    """The requested read offset lies beyond the end of the blob"""

    pass


class S3WriteCanceledError(Exception):
    """The writer was closed after its cancel event was set"""

    pass


class S3WriterClosedError(Exception):
    """The writer was already closed"""

    pass


@dataclass
class S3Request:
    """
    Native request handed to interception hooks.

    A hook calls ``asFunc(request)`` with an S3Request instance; the driver
    fills in the boto3 operation name and its keyword arguments. The params
    dict is the one passed to boto3, so hooks may modify it.
    """

    operation: str = ""
    params: Dict[str, Any] = field(default_factory=dict)


def _runRequestHook(hook: InterceptionHook | None, operation: str, params: Dict[str, Any]) -> None:
    def asFunc(target: Any) -> bool:
        if isinstance(target, S3Request):
            target.operation = operation
            target.params = params
            return True
        return False

    runHook(hook, asFunc)


def _md5FromETag(eTag: str | None) -> bytes:
    """Return the MD5 digest encoded in a single-part upload ETag, or b"" for multipart ETags"""
    if not eTag:
        return b""
    match = _MD5_ETAG_RE.match(eTag)
    if match is None:
        return b""
    return bytes.fromhex(match.group(1))


class S3BlobReader(AbstractBlobReader):
    """Reader over the streaming body of a get_object response"""

    def __init__(self, body: Any, attrs: ReaderAttributes):
        self._body = body
        self._attrs = attrs

    def read(self, size: int = -1) -> bytes:
        if self._body is None:
            return b""
        return self._body.read(size if size >= 0 else None)

    def close(self) -> None:
        if self._body is not None:
            self._body.close()

    def attributes(self) -> ReaderAttributes:
        return self._attrs


class S3BlobWriter(AbstractBlobWriter):
    """
    Writer buffering the payload and uploading it with put_object on close().

    The beforeWrite hook runs right before the upload, with the put_object
    parameters exposed through S3Request.
    """

    def __init__(
        self,
        driver: "S3BucketDriver",
        key: str,
        contentType: str,
        opts: WriterOptions,
        cancelEvent: threading.Event | None,
    ):
        self._driver = driver
        self._key = key
        self._contentType = contentType
        self._opts = opts
        self._cancelEvent = cancelEvent
        self._buffer = io.BytesIO()
        self._closed = False

    def write(self, data: bytes) -> int:
        if self._closed:
            raise S3WriterClosedError(f"Writer for key '{self._key}' is already closed")
        return self._buffer.write(data)

    def close(self) -> None:
        if self._closed:
            raise S3WriterClosedError(f"Writer for key '{self._key}' is already closed")
        self._closed = True

        data = self._buffer.getvalue()
        self._buffer = io.BytesIO()
        if self._cancelEvent is not None and self._cancelEvent.is_set():
            raise S3WriteCanceledError(f"Write to key '{self._key}' was canceled")

        opts = self._opts
        params: Dict[str, Any] = {
            "Bucket": self._driver.bucket,
            "Key": self._key,
            "Body": data,
            "ContentType": self._contentType,
        }
        if opts.cacheControl:
            params["CacheControl"] = opts.cacheControl
        if opts.contentDisposition:
            params["ContentDisposition"] = opts.contentDisposition
        if opts.contentEncoding:
            params["ContentEncoding"] = opts.contentEncoding
        if opts.contentLanguage:
            params["ContentLanguage"] = opts.contentLanguage
        if opts.contentMD5:
            params["ContentMD5"] = base64.b64encode(opts.contentMD5).decode("ascii")
        if opts.metadata:
            params["Metadata"] = dict(opts.metadata)

        _runRequestHook(opts.beforeWrite, "put_object", params)
        self._driver.client.put_object(**params)
        logger.debug(f"Uploaded {len(data)} bytes to s3://{self._driver.bucket}/{self._key}")


class S3BucketDriver(AbstractBucketDriver):
    """
    S3-based bucket driver using boto3.

    Features:
    - Support for custom S3 endpoints (for S3-compatible services)
    - Ranged reads through the HTTP Range header
    - Delimiter listing through CommonPrefixes
    - Server-side copy and presigned URLs
    - Native boto3 request parameters exposed to interception hooks (see S3Request)

    Args:
        bucket: S3 bucket name
        client: A boto3 S3 client

    Example:
        >>> driver = S3BucketDriver("my-bucket", boto3.client("s3", region_name="us-east-1"))
        >>> bucket = Bucket(driver)
        >>> bucket.writeAll("test-key", b"data")
    """

    def __init__(self, bucket: str, client: Any):
        self.bucket = bucket
        self.client = client

    def _checkKey(self, key: str) -> None:
        if not key:
            raise S3InvalidKeyError("Invalid key (empty string)")

    def errorCode(self, err: BaseException) -> ErrorCode:
        if isinstance(err, ClientError):
            code = str(err.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return ErrorCode.NOT_FOUND
            if code in _PERMISSION_DENIED_CODES:
                return ErrorCode.PERMISSION_DENIED
            if code in _INVALID_ARGUMENT_CODES:
                return ErrorCode.INVALID_ARGUMENT
            if code in _ALREADY_EXISTS_CODES:
                return ErrorCode.ALREADY_EXISTS
            if code in _UNIMPLEMENTED_CODES:
                return ErrorCode.UNIMPLEMENTED
            if code in _FAILED_PRECONDITION_CODES:
                return ErrorCode.FAILED_PRECONDITION
            return ErrorCode.UNKNOWN
        if isinstance(err, NoCredentialsError):
            return ErrorCode.PERMISSION_DENIED
        if isinstance(err, (S3InvalidKeyError, S3InvalidRangeError, InvalidPageTokenError)):
            return ErrorCode.INVALID_ARGUMENT
        if isinstance(err, S3WriteCanceledError):
            return ErrorCode.CANCELED
        if isinstance(err, S3WriterClosedError):
            return ErrorCode.FAILED_PRECONDITION
        return ErrorCode.UNKNOWN

    def attributes(self, key: str) -> Attributes:
        self._checkKey(key)
        response = self.client.head_object(Bucket=self.bucket, Key=key)
        eTag = response.get("ETag", "")
        return Attributes(
            contentType=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
            cacheControl=response.get("CacheControl", ""),
            contentDisposition=response.get("ContentDisposition", ""),
            contentEncoding=response.get("ContentEncoding", ""),
            contentLanguage=response.get("ContentLanguage", ""),
            metadata=dict(response.get("Metadata") or {}),
            size=response.get("ContentLength", 0),
            modTime=response.get("LastModified"),
            md5=_md5FromETag(eTag),
            eTag=eTag,
        )

    def newRangeReader(self, key: str, offset: int, length: int, opts: ReaderOptions) -> AbstractBlobReader:
        self._checkKey(key)

        if length == 0:
            # S3 cannot serve an empty range, a HEAD request checks existence instead
            attrs = self.attributes(key)
            runHook(opts.beforeRead)
            if offset > attrs.size:
                raise S3InvalidRangeError(f"Offset {offset} is beyond the end of blob '{key}' ({attrs.size} bytes)")
            return S3BlobReader(
                None, ReaderAttributes(contentType=attrs.contentType, modTime=attrs.modTime, size=attrs.size)
            )

        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if offset > 0 or length > 0:
            end = str(offset + length - 1) if length > 0 else ""
            params["Range"] = f"bytes={offset}-{end}"

        _runRequestHook(opts.beforeRead, "get_object", params)
        try:
            response = self.client.get_object(**params)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "InvalidRange":
                raise
            # Reading at exactly the end of the blob yields an empty reader
            attrs = self.attributes(key)
            if offset != attrs.size:
                raise
            return S3BlobReader(
                None, ReaderAttributes(contentType=attrs.contentType, modTime=attrs.modTime, size=attrs.size)
            )

        size = response.get("ContentLength", 0)
        contentRange = response.get("ContentRange")
        if contentRange:
            match = _CONTENT_RANGE_RE.match(contentRange)
            if match is not None:
                size = int(match.group(1))
        return S3BlobReader(
            response["Body"],
            ReaderAttributes(
                contentType=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
                modTime=response.get("LastModified"),
                size=size,
            ),
        )

    def newTypedWriter(
        self,
        key: str,
        contentType: str,
        opts: WriterOptions,
        cancelEvent: threading.Event | None = None,
    ) -> AbstractBlobWriter:
        self._checkKey(key)
        return S3BlobWriter(self, key, contentType, opts, cancelEvent)

    def listPaged(self, opts: ListOptions) -> ListPage:
        listParams: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": opts.prefix,
            "MaxKeys": opts.pageSize or DEFAULT_PAGE_SIZE,
        }
        if opts.delimiter:
            listParams["Delimiter"] = opts.delimiter
        if opts.pageToken:
            listParams["ContinuationToken"] = decodePageToken(opts.pageToken)

        _runRequestHook(opts.beforeList, "list_objects_v2", listParams)
        response = self.client.list_objects_v2(**listParams)

        objects: List[ListObject] = []
        for obj in response.get("Contents", []):
            objects.append(
                ListObject(
                    key=obj["Key"],
                    modTime=obj.get("LastModified"),
                    size=obj.get("Size", 0),
                    md5=_md5FromETag(obj.get("ETag")),
                )
            )
        for commonPrefix in response.get("CommonPrefixes", []):
            objects.append(ListObject(key=commonPrefix["Prefix"], isDir=True))
        objects.sort(key=lambda o: o.key)

        nextPageToken = b""
        if response.get("IsTruncated") and response.get("NextContinuationToken"):
            nextPageToken = response["NextContinuationToken"].encode("utf-8")
        return ListPage(objects=objects, nextPageToken=nextPageToken)

    def copy(self, dstKey: str, srcKey: str, opts: CopyOptions) -> None:
        self._checkKey(dstKey)
        self._checkKey(srcKey)
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": dstKey,
            "CopySource": {"Bucket": self.bucket, "Key": srcKey},
        }
        _runRequestHook(opts.beforeCopy, "copy_object", params)
        self.client.copy_object(**params)

    def delete(self, key: str) -> None:
        self._checkKey(key)
        # S3 deletes are idempotent, check existence first so missing keys report NOT_FOUND
        self.client.head_object(Bucket=self.bucket, Key=key)
        self.client.delete_object(Bucket=self.bucket, Key=key)

    def signedURL(self, key: str, opts: SignedURLOptions) -> str:
        self._checkKey(key)
        method = opts.method.upper()
        if method == "GET":
            clientMethod = "get_object"
        elif method == "PUT":
            clientMethod = "put_object"
        elif method == "DELETE":
            clientMethod = "delete_object"
        else:
            raise S3InvalidKeyError(f"Unsupported signed URL method '{opts.method}'")

        return self.client.generate_presigned_url(
            ClientMethod=clientMethod,
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=int(opts.expiry.total_seconds()),
        )

    def asNative(self) -> Any:
        return self.client


def openBucket(bucket: str, region: str | None = None, endpoint: str | None = None) -> Bucket:
    """
    Return a bucket backed by an S3 bucket.

    Args:
        bucket: S3 bucket name
        region: AWS region (default: from the boto3 configuration)
        endpoint: Custom endpoint URL for S3-compatible services
    """
    client = boto3.client("s3", region_name=region, endpoint_url=endpoint)
    logger.info(f"Created S3 client for bucket {bucket} (region: {region}, endpoint: {endpoint})")
    return Bucket(S3BucketDriver(bucket, client))


class S3BucketURLOpener(BucketURLOpener):
    """
    Opens ``s3://bucket-name`` URLs.

    Query parameters:
        region: AWS region
        endpoint: Endpoint URL of an S3-compatible service
    """

    def openBucketURL(self, url: SplitResult) -> Bucket:
        params = validateQueryParams(url, allowed=("region", "endpoint"))
        if not url.netloc:
            raise BlobURLError(f"open bucket {url.geturl()}: missing bucket name")
        if url.path not in ("", "/"):
            raise BlobURLError(f"open bucket {url.geturl()}: unexpected path {url.path!r}")
        return openBucket(url.netloc, region=params.get("region") or None, endpoint=params.get("endpoint") or None)
