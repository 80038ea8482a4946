"""
Tests for StorageService, dood!

This module tests configuration injection, bucket lookup by name and the
service lifecycle.
"""

from unittest.mock import Mock, patch

import pytest

from blobmux import StorageConfigError, StorageService, bootstrapStorage
from blobmux.blob import BlobFailedPreconditionError, Bucket, URLMux
from blobmux.blob.drivers.memory import MemoryBucketURLOpener


@pytest.fixture
def mockConfigManager():
    """Create a mock ConfigManager, dood!"""
    mock = Mock()
    mock.getStorageConfig = Mock()
    return mock


@pytest.fixture
def storageService():
    """Create a StorageService and close it after the test, dood!"""
    service = StorageService()
    yield service
    service.close()


class TestStorageServiceInitialization:
    """Test StorageService construction, dood!"""

    def testInitialState(self, storageService):
        """Test that a new service is unconfigured"""
        assert storageService.initialized is False
        assert storageService.listBuckets() == []
        assert storageService.mux.bucketSchemes() == ["file", "mem", "s3"]

    def testInstancesAreIndependent(self):
        """Test that the service is not a singleton"""
        assert StorageService() is not StorageService()

    def testCustomMux(self):
        """Test that a caller-provided mux is used"""
        mux = URLMux()
        mux.registerBucket("mem", MemoryBucketURLOpener())
        assert StorageService(mux).mux is mux

    def testUseBeforeConfiguration(self, storageService):
        """Test that lookups before injectConfig fail"""
        with pytest.raises(StorageConfigError):
            storageService.getBucket()


class TestStorageServiceInjectConfig:
    """Test configuration injection, dood!"""

    def testOpenConfiguredBuckets(self, storageService, mockConfigManager, tmp_path):
        """Test that every configured bucket is opened and reachable by name"""
        mockConfigManager.getStorageConfig.return_value = {
            "default": "files",
            "buckets": {
                "files": f"file://{tmp_path}/files?create_dir=true",
                "scratch": "mem://",
            },
        }

        storageService.injectConfig(mockConfigManager)

        assert storageService.initialized is True
        assert storageService.listBuckets() == ["files", "scratch"]
        storageService.getBucket().writeAll("k", b"x")
        assert (tmp_path / "files" / "k").read_bytes() == b"x"
        assert isinstance(storageService.getBucket("scratch"), Bucket)

    def testSingleBucketIsDefault(self, storageService, mockConfigManager):
        """Test that a lone bucket becomes the default"""
        mockConfigManager.getStorageConfig.return_value = {"buckets": {"only": "mem://"}}
        storageService.injectConfig(mockConfigManager)
        assert storageService.getBucket() is storageService.getBucket("only")

    def testNoDefaultWithSeveralBuckets(self, storageService, mockConfigManager):
        """Test that several buckets without a default need explicit names"""
        mockConfigManager.getStorageConfig.return_value = {"buckets": {"a": "mem://", "b": "mem://"}}
        storageService.injectConfig(mockConfigManager)

        with pytest.raises(StorageConfigError):
            storageService.getBucket()
        assert isinstance(storageService.getBucket("a"), Bucket)

    def testUnknownBucketName(self, storageService, mockConfigManager):
        """Test lookup of an unconfigured name"""
        mockConfigManager.getStorageConfig.return_value = {"buckets": {"a": "mem://"}}
        storageService.injectConfig(mockConfigManager)

        with pytest.raises(StorageConfigError):
            storageService.getBucket("nope")

    @pytest.mark.parametrize(
        "config",
        [
            {},
            {"default": "a"},
            {"buckets": {}},
            {"buckets": {"a": ""}},
            {"buckets": {"a": 42}},
            {"default": "missing", "buckets": {"a": "mem://"}},
        ],
    )
    def testInvalidConfig(self, storageService, mockConfigManager, config):
        """Test that malformed configuration is rejected"""
        mockConfigManager.getStorageConfig.return_value = config
        with pytest.raises(StorageConfigError):
            storageService.injectConfig(mockConfigManager)
        assert storageService.initialized is False

    def testUnopenableBucket(self, storageService, mockConfigManager):
        """Test that a bad URL fails the whole injection and closes opened buckets"""
        mockConfigManager.getStorageConfig.return_value = {
            "buckets": {"good": "mem://", "bad": "gs://unsupported"},
        }

        with pytest.raises(StorageConfigError) as excInfo:
            storageService.injectConfig(mockConfigManager)
        assert "bad" in str(excInfo.value)
        assert storageService.listBuckets() == []

    def testReinjectClosesPreviousBuckets(self, storageService, mockConfigManager):
        """Test that a second injection replaces and closes the old buckets"""
        mockConfigManager.getStorageConfig.return_value = {"buckets": {"a": "mem://"}}
        storageService.injectConfig(mockConfigManager)
        oldBucket = storageService.getBucket("a")

        mockConfigManager.getStorageConfig.return_value = {"buckets": {"b": "mem://"}}
        storageService.injectConfig(mockConfigManager)

        assert storageService.listBuckets() == ["b"]
        with pytest.raises(BlobFailedPreconditionError):
            oldBucket.attributes("k")


class TestStorageServiceLifecycle:
    """Test ad-hoc buckets and close, dood!"""

    def testOpenBucketAdHoc(self, storageService):
        """Test that ad-hoc buckets do not join the configured set"""
        bucket = storageService.openBucket("mem://")
        bucket.writeAll("k", b"v")

        assert bucket.readAll("k") == b"v"
        assert storageService.listBuckets() == []

    def testCloseClosesBuckets(self, mockConfigManager):
        """Test that close() closes every bucket and resets the service"""
        service = StorageService()
        mockConfigManager.getStorageConfig.return_value = {"buckets": {"a": "mem://"}}
        service.injectConfig(mockConfigManager)
        bucket = service.getBucket("a")

        service.close()

        assert service.initialized is False
        assert service.listBuckets() == []
        with pytest.raises(BlobFailedPreconditionError):
            bucket.attributes("k")
        with pytest.raises(StorageConfigError):
            service.getBucket("a")


class TestBootstrapStorage:
    """Test application bootstrap from a ConfigManager, dood!"""

    @patch("blobmux.service.initLogging")
    def testConfiguresLoggingAndStorage(self, mockInitLogging, mockConfigManager):
        """Test that the logging section is applied and the buckets are opened"""
        mockConfigManager.getLoggingConfig.return_value = {"level": "DEBUG", "sdk-level": "ERROR"}
        mockConfigManager.getStorageConfig.return_value = {"buckets": {"main": "mem://"}}

        service = bootstrapStorage(mockConfigManager)
        try:
            mockInitLogging.assert_called_once_with({"level": "DEBUG", "sdk-level": "ERROR"})
            assert service.initialized is True
            assert service.listBuckets() == ["main"]
        finally:
            service.close()

    @patch("blobmux.service.initLogging")
    def testInvalidStorageConfigRaises(self, mockInitLogging, mockConfigManager):
        """Test that storage errors still surface after logging is set up"""
        mockConfigManager.getLoggingConfig.return_value = {}
        mockConfigManager.getStorageConfig.return_value = {}

        with pytest.raises(StorageConfigError):
            bootstrapStorage(mockConfigManager)
        mockInitLogging.assert_called_once_with({})
