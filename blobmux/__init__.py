"""
blobmux: portable blob storage for Python applications

Open buckets by URL, read and write blobs through one interface, and switch
between in-memory, filesystem and S3 storage through configuration.
"""

from .service import StorageConfigError, StorageService, bootstrapStorage

__all__ = ["StorageConfigError", "StorageService", "bootstrapStorage"]
