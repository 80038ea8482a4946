"""
Tests for URLMux and the bucket URL helpers, dood!
"""

from unittest.mock import Mock
from urllib.parse import urlsplit

import pytest

from blobmux.blob import BlobError, BlobURLError, Bucket, BucketURLOpener, URLMux, createDefaultURLMux
from blobmux.blob.drivers.memory import MemoryBucketDriver, MemoryBucketURLOpener
from blobmux.blob.drivers.prefixed import PrefixedBucketDriver
from blobmux.blob.mux import parseBoolParam, validateQueryParams


class RecordingOpener(BucketURLOpener):
    """Opener remembering the URLs it was asked to open"""

    def __init__(self):
        self.urls = []

    def openBucketURL(self, url):
        self.urls.append(url)
        return Bucket(MemoryBucketDriver())


class TestURLMuxRegistration:
    """Test scheme registration, dood!"""

    def testRegisterAndQuery(self):
        """Test that registered schemes are reported"""
        mux = URLMux()
        mux.registerBucket("mem", MemoryBucketURLOpener())
        mux.registerBucket("test", RecordingOpener())

        assert mux.validScheme("mem") is True
        assert mux.validScheme("MEM") is True
        assert mux.validScheme("gs") is False
        assert mux.bucketSchemes() == ["mem", "test"]

    def testDuplicateSchemeRejected(self):
        """Test that registering a scheme twice raises ValueError"""
        mux = URLMux()
        mux.registerBucket("mem", MemoryBucketURLOpener())

        with pytest.raises(ValueError):
            mux.registerBucket("mem", MemoryBucketURLOpener())
        with pytest.raises(ValueError):
            mux.registerBucket("MEM", MemoryBucketURLOpener())

    def testEmptySchemeRejected(self):
        """Test that an empty scheme raises ValueError"""
        with pytest.raises(ValueError):
            URLMux().registerBucket("", MemoryBucketURLOpener())

    def testDefaultMuxSchemes(self):
        """Test the built-in schemes"""
        assert createDefaultURLMux().bucketSchemes() == ["file", "mem", "s3"]

    def testDefaultMuxInstancesAreIndependent(self):
        """Test that registrations on one mux do not leak into another"""
        first = createDefaultURLMux()
        first.registerBucket("extra", RecordingOpener())
        assert createDefaultURLMux().validScheme("extra") is False


class TestURLMuxOpen:
    """Test opening buckets by URL, dood!"""

    def testOpenMemoryBucket(self, defaultMux):
        """Test that mem:// opens a working, empty bucket"""
        bucket = defaultMux.openBucket("mem://")
        bucket.writeAll("k", b"v")
        assert bucket.readAll("k") == b"v"

    def testEachOpenIsIndependent(self, defaultMux):
        """Test that two mem:// buckets do not share state"""
        first = defaultMux.openBucket("mem://")
        second = defaultMux.openBucket("mem://")
        first.writeAll("k", b"v")
        assert second.exists("k") is False

    def testSchemeIsCaseInsensitive(self, defaultMux):
        """Test that the scheme is matched case-insensitively"""
        assert isinstance(defaultMux.openBucket("MEM://"), Bucket)

    @pytest.mark.parametrize("url", ["", "no-scheme-here", "/just/a/path"])
    def testMissingScheme(self, defaultMux, url):
        """Test that URLs without a scheme are rejected"""
        with pytest.raises(BlobURLError):
            defaultMux.openBucket(url)

    def testUnknownScheme(self, defaultMux):
        """Test that unregistered schemes are rejected"""
        with pytest.raises(BlobURLError) as excInfo:
            defaultMux.openBucket("gs://bucket")
        assert "gs" in str(excInfo.value)

    def testUnknownQueryParameter(self, defaultMux):
        """Test that openers reject parameters they do not understand"""
        with pytest.raises(BlobURLError):
            defaultMux.openBucket("mem://?flavor=vanilla")

    def testPrefixParameterWrapsBucket(self, defaultMux):
        """Test that ?prefix= scopes the opened bucket"""
        bucket = defaultMux.openBucket("mem://?prefix=logs/")
        bucket.writeAll("today.txt", b"x")

        driver = bucket._driver
        assert isinstance(driver, PrefixedBucketDriver)
        assert driver.prefix == "logs/"
        assert driver.base.attributes("logs/today.txt").size == 1
        assert [obj.key for obj in bucket.list()] == ["today.txt"]

    def testPrefixParameterStrippedBeforeOpener(self):
        """Test that openers never see the prefix parameter"""
        opener = RecordingOpener()
        mux = URLMux()
        mux.registerBucket("rec", opener)

        mux.openBucket("rec://host/path?prefix=a/&flag=1")

        [url] = opener.urls
        assert url.scheme == "rec"
        assert url.netloc == "host"
        assert url.path == "/path"
        assert url.query == "flag=1"

    def testRepeatedPrefixRejected(self, defaultMux):
        """Test that a repeated prefix parameter is rejected"""
        with pytest.raises(BlobURLError):
            defaultMux.openBucket("mem://?prefix=a/&prefix=b/")

    def testOpenerFailureIsWrapped(self):
        """Test that non-BlobError opener failures become BlobError"""
        opener = Mock(spec=BucketURLOpener)
        failure = RuntimeError("backend unavailable")
        opener.openBucketURL.side_effect = failure
        mux = URLMux()
        mux.registerBucket("broken", opener)

        with pytest.raises(BlobError) as excInfo:
            mux.openBucket("broken://x")
        assert excInfo.value.originalError is failure


class TestURLHelpers:
    """Test query parameter helpers, dood!"""

    def testValidateQueryParams(self):
        """Test that allowed parameters are returned"""
        url = urlsplit("x://b?region=eu&endpoint=")
        assert validateQueryParams(url, allowed=("region", "endpoint")) == {"region": "eu", "endpoint": ""}

    def testValidateQueryParamsUnknown(self):
        """Test that unknown parameters are rejected"""
        with pytest.raises(BlobURLError):
            validateQueryParams(urlsplit("x://b?bogus=1"), allowed=("region",))

    @pytest.mark.parametrize(
        "value,expected", [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False)]
    )
    def testParseBoolParam(self, value, expected):
        """Test accepted boolean spellings"""
        assert parseBoolParam(urlsplit("x://"), "flag", value) is expected

    def testParseBoolParamInvalid(self):
        """Test that other values are rejected"""
        with pytest.raises(BlobURLError):
            parseBoolParam(urlsplit("x://"), "flag", "perhaps")
