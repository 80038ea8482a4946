"""
Pytest configuration and common fixtures for blobmux tests.

This module provides shared fixtures for buckets backed by every driver and
for a mocked boto3 S3 client. All fixtures follow camelCase naming convention.
"""

from typing import Generator
from unittest.mock import Mock

import pytest

from blobmux.blob import Bucket, URLMux, createDefaultURLMux
from blobmux.blob.drivers import filesystem, memory
from blobmux.blob.drivers.s3 import S3BucketDriver

# ============================================================================
# Bucket Fixtures
# ============================================================================


@pytest.fixture
def memBucket() -> Generator[Bucket, None, None]:
    """
    Provide an empty bucket backed by the memory driver.

    Yields:
        Bucket: Fresh in-memory bucket, closed after the test unless the test closed it
    """
    bucket = memory.openBucket()
    yield bucket
    if not bucket._closed:
        bucket.close()


@pytest.fixture
def fsBucket(tmp_path) -> Generator[Bucket, None, None]:
    """
    Provide an empty bucket backed by the filesystem driver in a temporary directory.

    Yields:
        Bucket: Filesystem bucket rooted at ``tmp_path / "bucket"``
    """
    bucket = filesystem.openBucket(tmp_path / "bucket", createDir=True)
    yield bucket
    if not bucket._closed:
        bucket.close()


@pytest.fixture(params=["mem", "file"])
def anyBucket(request, tmp_path) -> Generator[Bucket, None, None]:
    """
    Provide an empty bucket for each local driver.

    Tests using this fixture run once per driver and check behavior every
    driver must share.
    """
    if request.param == "mem":
        bucket = memory.openBucket()
    else:
        bucket = filesystem.openBucket(tmp_path / "bucket", createDir=True)
    yield bucket
    if not bucket._closed:
        bucket.close()


@pytest.fixture
def defaultMux() -> URLMux:
    """Provide a URLMux with the built-in schemes registered"""
    return createDefaultURLMux()


# ============================================================================
# S3 Fixtures
# ============================================================================


@pytest.fixture
def mockS3Client():
    """
    Create a mock boto3 S3 client.

    Returns:
        Mock: Client with the S3 operations used by the driver pre-configured

    Example:
        def testSomething(mockS3Client, s3Bucket):
            mockS3Client.head_object.return_value = {"ContentLength": 3}
    """
    client = Mock()
    client.put_object = Mock(return_value={})
    client.get_object = Mock()
    client.head_object = Mock(return_value={})
    client.copy_object = Mock(return_value={})
    client.delete_object = Mock(return_value={})
    client.list_objects_v2 = Mock(return_value={})
    client.generate_presigned_url = Mock(return_value="https://example.com/signed")
    return client


@pytest.fixture
def s3Bucket(mockS3Client) -> Bucket:
    """Provide a bucket backed by S3BucketDriver with a mocked client"""
    return Bucket(S3BucketDriver("test-bucket", mockS3Client))
