"""
Storage service: named buckets opened from configuration

This module provides a service that opens every bucket listed in the
``[storage.buckets]`` configuration section through a URLMux and hands them
out by name.
"""

import logging
import threading
from typing import TYPE_CHECKING, Dict, List

from .blob import Bucket, BlobError, URLMux, createDefaultURLMux
from .logging_utils import initLogging

if TYPE_CHECKING:
    from .config.manager import ConfigManager

logger = logging.getLogger(__name__)


class StorageConfigError(Exception):
    """
    Raised when storage configuration is invalid or the service is used before configuration.

    Args:
        message: Human-readable error message
    """

    pass


class StorageService:
    """
    Service holding the named buckets of an application.

    The service is constructed explicitly and owns its URLMux; pass a custom
    mux to register additional schemes.

    Applications that also want logging configured from the same file can
    use bootstrapStorage() instead of calling injectConfig() directly.

    Usage:
        storage = StorageService()
        storage.injectConfig(configManager)

        bucket = storage.getBucket()           # the default bucket
        archive = storage.getBucket("archive")
        scratch = storage.openBucket("mem://")  # ad-hoc bucket, owned by the caller

        storage.close()

    Configuration format:
        [storage]
        default = "assets"

        [storage.buckets]
        assets = "file:///var/lib/app/assets?create_dir=true"
        archive = "s3://my-archive?region=us-east-1"

    Thread Safety:
        The bucket table is guarded by an RLock. Bucket operations are
        thread-safe as far as the underlying driver is.
    """

    def __init__(self, mux: URLMux | None = None):
        self.mux = mux if mux is not None else createDefaultURLMux()
        self._lock = threading.RLock()
        self._buckets: Dict[str, Bucket] = {}
        self._defaultName: str | None = None
        self.initialized = False
        logger.info("StorageService created, awaiting configuration, dood!")

    def injectConfig(self, configManager: "ConfigManager") -> None:
        """
        Open every configured bucket.

        Buckets opened by a previous call are closed first. If any bucket
        fails to open, the ones already opened by this call are closed again.

        Args:
            configManager: The configuration manager containing storage settings

        Raises:
            StorageConfigError: If configuration is invalid or a bucket cannot be opened
        """
        config = configManager.getStorageConfig()
        if not config:
            raise StorageConfigError("Storage configuration is missing")

        bucketUrls = config.get("buckets")
        if not bucketUrls or not isinstance(bucketUrls, dict):
            raise StorageConfigError("No buckets are configured in [storage.buckets]")

        for name, url in bucketUrls.items():
            if not isinstance(url, str) or not url:
                raise StorageConfigError(f"Bucket '{name}' must be configured with a non-empty URL")

        defaultName = config.get("default")
        if defaultName is None and len(bucketUrls) == 1:
            defaultName = next(iter(bucketUrls))
        if defaultName is not None and defaultName not in bucketUrls:
            raise StorageConfigError(f"Default bucket '{defaultName}' is not configured in [storage.buckets]")

        opened: Dict[str, Bucket] = {}
        try:
            for name, url in bucketUrls.items():
                opened[name] = self.mux.openBucket(url)
                logger.info(f"Opened bucket '{name}' from {url}, dood!")
        except BlobError as e:
            self._closeBuckets(opened)
            raise StorageConfigError(f"Failed to open bucket '{name}': {e}") from e

        with self._lock:
            previous = self._buckets
            self._buckets = opened
            self._defaultName = defaultName
            self.initialized = True
        self._closeBuckets(previous)

        logger.info(f"StorageService initialized with {len(opened)} buckets (default: {defaultName}), dood!")

    def _ensureInitialized(self) -> None:
        if not self.initialized:
            raise StorageConfigError("StorageService is not initialized. Call injectConfig() first, dood!")

    def getBucket(self, name: str | None = None) -> Bucket:
        """
        Return a configured bucket.

        Args:
            name: Bucket name from [storage.buckets]; None for the default bucket

        Raises:
            StorageConfigError: If the service is not configured, no default
                bucket is configured, or the name is unknown
        """
        with self._lock:
            self._ensureInitialized()
            if name is None:
                if self._defaultName is None:
                    raise StorageConfigError("No default bucket is configured")
                name = self._defaultName

            bucket = self._buckets.get(name)
            if bucket is None:
                logger.warning(f"Bucket '{name}' is not configured, dood!")
                raise StorageConfigError(f"Bucket '{name}' is not configured")
            return bucket

    def openBucket(self, url: str) -> Bucket:
        """
        Open a bucket that is not part of the configuration.

        The caller owns the returned bucket and must close it.

        Raises:
            BlobError: If the URL cannot be opened
        """
        return self.mux.openBucket(url)

    def listBuckets(self) -> List[str]:
        """Return the names of the configured buckets, sorted"""
        with self._lock:
            return sorted(self._buckets)

    def _closeBuckets(self, buckets: Dict[str, Bucket]) -> None:
        for name, bucket in buckets.items():
            try:
                bucket.close()
            except BlobError as e:
                logger.error(f"Failed to close bucket '{name}': {e}")

    def close(self) -> None:
        """Close every configured bucket and return to the unconfigured state"""
        with self._lock:
            buckets = self._buckets
            self._buckets = {}
            self._defaultName = None
            self.initialized = False
        self._closeBuckets(buckets)
        logger.info(f"StorageService closed {len(buckets)} buckets, dood!")


def bootstrapStorage(configManager: "ConfigManager", mux: URLMux | None = None) -> StorageService:
    """
    Set up logging and storage for an application from its configuration.

    Applies the [logging] section with initLogging() and returns a
    StorageService configured from the [storage] section.

    Usage:
        configManager = ConfigManager("config.toml", ["config.d"])
        storage = bootstrapStorage(configManager)
        try:
            storage.getBucket().writeAll("hello.txt", b"hello")
        finally:
            storage.close()

    Raises:
        StorageConfigError: If the storage configuration is invalid
    """
    initLogging(configManager.getLoggingConfig())

    service = StorageService(mux)
    service.injectConfig(configManager)
    return service
