"""Test doubles shared by the test-suite."""

from bucketfs_core.testing.fake_s3 import FakeS3Client, StoreOp

__all__ = ["FakeS3Client", "StoreOp"]
