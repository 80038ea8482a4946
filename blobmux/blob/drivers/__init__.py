"""
Bucket drivers

Each module implements AbstractBucketDriver for one backend:
- memory: in-process reference driver (``mem://``)
- filesystem: local directory (``file://``)
- s3: AWS S3 and S3-compatible stores (``s3://``)
- prefixed: composite driver scoping another driver to a key prefix

Submodules are imported explicitly; this package does not import them eagerly.
"""
